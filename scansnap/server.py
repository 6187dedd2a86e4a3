"""
HTTP Front-end
==============
Flask application exposing the scanner as a single URL.

Endpoints:
    ANY    /scan.pdf    → Scan everything in the feeder, return one PDF

The scanner is one physical device, so requests go through a single-slot
admission gate. A request that cannot get the scanner within the configured
wait gets 503 instead of racing another scan for the device.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

from flask import Flask, Response

from .acquisition import SaneBackend
from .config import PipelineSettings, ScanConfiguration, ServerSettings
from .errors import ScanError
from .pipeline import ScanResult, scan_to_pdf

logger = logging.getLogger(__name__)

ROUTE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class HandlerState(Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    RESAMPLING = "resampling"
    ASSEMBLING = "assembling"
    RESPONDING = "responding"
    FAILED = "failed"


def format_duration(seconds: float) -> str:
    return f"{seconds:.3f}s"


class ScanHandler:
    """
    Runs one scan request end to end.

    Idle → Acquiring → Resampling → Assembling → Responding → Idle, or
    Failed from any busy state. Nothing is retried.
    """

    def __init__(
        self,
        config: ScanConfiguration,
        settings: PipelineSettings,
        backend_factory: Callable[[], Any] = SaneBackend,
        busy_timeout: float = 0.0
    ):
        self.config = config
        self.settings = settings
        self.backend_factory = backend_factory
        self.busy_timeout = busy_timeout
        self.state = HandlerState.IDLE
        self._gate = threading.Lock()

    def _enter(self, state: HandlerState):
        logger.debug(f"Scan handler: {self.state.value} -> {state.value}")
        self.state = state

    def _admit(self) -> bool:
        if self.busy_timeout > 0:
            return self._gate.acquire(timeout=self.busy_timeout)
        return self._gate.acquire(blocking=False)

    def run(self) -> ScanResult:
        """Execute the pipeline stages; raises on any failure."""
        return scan_to_pdf(
            self.config,
            self.settings,
            self.backend_factory(),
            on_stage=lambda stage: self._enter(HandlerState(stage)),
        )

    def _fail(self, message: str) -> Response:
        self._enter(HandlerState.FAILED)
        return Response(f"{message}\n", status=500, mimetype="text/plain")

    def __call__(self) -> Response:
        if not self._admit():
            logger.warning("Rejected scan request: scanner is busy")
            return Response("Scanner is busy\n", status=503, mimetype="text/plain")

        start = time.time()
        try:
            try:
                result = self.run()
            except ScanError as e:
                logger.exception(f"{e.stage_message} ({e.__class__.__name__})")
                return self._fail(e.stage_message)
            except Exception:
                stage = self.state.value
                logger.exception(f"Unexpected error while {stage}")
                return self._fail(f"Scan failed while {stage}")

            self._enter(HandlerState.RESPONDING)
            return Response(
                result.document,
                status=200,
                mimetype="application/pdf",
                headers={
                    "Cache-Control": "no-cache",
                    "X-Generation-Time": format_duration(time.time() - start),
                },
            )
        finally:
            self._enter(HandlerState.IDLE)
            self._gate.release()


def create_app(
    config: Optional[ScanConfiguration] = None,
    settings: Optional[PipelineSettings] = None,
    server_settings: Optional[ServerSettings] = None,
    backend_factory: Callable[[], Any] = SaneBackend,
) -> Flask:
    """Create the Flask app serving /scan.pdf."""
    settings = (settings or PipelineSettings()).validate()
    server_settings = server_settings or ServerSettings()
    if config is None:
        config = settings.scan_configuration()

    app = Flask(__name__)
    handler = ScanHandler(
        config,
        settings,
        backend_factory=backend_factory,
        busy_timeout=server_settings.busy_timeout,
    )
    app.extensions["scan_handler"] = handler

    @app.route("/scan.pdf", methods=ROUTE_METHODS, provide_automatic_options=False)
    def scan_pdf():
        return handler()

    return app
