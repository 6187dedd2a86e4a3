"""
config.py - Process-wide scan configuration.

Everything here is built once at startup and treated as read-only after that.
Scanner behaviour is changed by redeploying, never per request.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Tuple, Union

from .errors import StartupError

logger = logging.getLogger(__name__)

OptionValue = Union[bool, int, float, str]

# Acquisition and output resolution
SCAN_DPI = 300
PDF_DPI = 150

# ISO A4 in millimeters
A4_WIDTH_MM = 210.0
A4_HEIGHT_MM = 297.0

DEFAULT_JPEG_QUALITY = 95
DEFAULT_LISTEN = ":3000"
DEFAULT_LOG_LEVEL = "info"


def default_scanner_options(scan_dpi: int = SCAN_DPI) -> Dict[str, OptionValue]:
    """Option set for a duplex ADF scanner feeding A4 sheets."""
    return {
        "ald": True,               # Detect page end for short pages
        "brightness": 25,          # Whiten the paper background
        "br-x": A4_WIDTH_MM,
        "br-y": A4_HEIGHT_MM,
        "buffermode": "On",        # Read pages into the scanner buffer
        "mode": "Color",
        "offtimer": 0,             # Never power off
        "page-height": A4_HEIGHT_MM,
        "page-width": A4_WIDTH_MM,
        "resolution": scan_dpi,
        "source": "ADF Duplex",    # Both sides in one pass
        "swdespeck": 2,            # Remove black spots
        "swskip": 10.0,            # Drop pages that are >= 10% empty
        "tl-x": 0.0,
        "tl-y": 0.0,
    }


DEFAULT_SCANNER_OPTIONS = MappingProxyType(default_scanner_options())


@dataclass(frozen=True)
class ScanConfiguration:
    """Immutable mapping of device option name to value."""
    options: Mapping[str, OptionValue] = field(
        default_factory=lambda: DEFAULT_SCANNER_OPTIONS
    )

    def __post_init__(self):
        # Snapshot so later changes to the caller's dict cannot leak in
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    def __iter__(self) -> Iterator[Tuple[str, OptionValue]]:
        return iter(self.options.items())

    def __len__(self) -> int:
        return len(self.options)

    def __getitem__(self, name: str) -> OptionValue:
        return self.options[name]

    def with_options(self, **overrides: OptionValue) -> "ScanConfiguration":
        """Return a new configuration. Underscores in keys become dashes."""
        merged = dict(self.options)
        merged.update({k.replace("_", "-"): v for k, v in overrides.items()})
        return ScanConfiguration(merged)


@dataclass
class PipelineSettings:
    """Resolution, quality and page geometry used by every request."""
    scan_dpi: int = SCAN_DPI
    pdf_dpi: int = PDF_DPI
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    page_width_mm: float = A4_WIDTH_MM
    page_height_mm: float = A4_HEIGHT_MM
    detect_grayscale: bool = False

    @property
    def dpi_ratio(self) -> int:
        return self.scan_dpi // self.pdf_dpi

    def validate(self) -> "PipelineSettings":
        if self.scan_dpi <= 0 or self.pdf_dpi <= 0:
            raise StartupError(
                f"Resolutions must be positive: scan={self.scan_dpi} pdf={self.pdf_dpi}"
            )
        if self.dpi_ratio < 1:
            raise StartupError(
                f"Output DPI {self.pdf_dpi} exceeds scan DPI {self.scan_dpi}"
            )
        if self.scan_dpi % self.pdf_dpi:
            logger.warning(
                f"Scan DPI {self.scan_dpi} is not a multiple of {self.pdf_dpi}, "
                f"using ratio {self.dpi_ratio}"
            )
        if not 0 <= self.jpeg_quality <= 100:
            raise StartupError(f"JPEG quality out of range: {self.jpeg_quality}")
        if self.page_width_mm <= 0 or self.page_height_mm <= 0:
            raise StartupError("Page size must be positive")
        return self

    def scan_configuration(self) -> ScanConfiguration:
        """Default device options at this acquisition resolution."""
        return ScanConfiguration(default_scanner_options(self.scan_dpi))


@dataclass
class ServerSettings:
    listen: str = DEFAULT_LISTEN
    log_level: str = DEFAULT_LOG_LEVEL
    busy_timeout: float = 0.0  # seconds to wait for the scanner, 0 = reject


def parse_listen(address: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    ":3000" listens on all interfaces, "127.0.0.1:8080" on one.
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise StartupError(f"Listen address needs a port: {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    try:
        port_num = int(port)
    except ValueError:
        raise StartupError(f"Invalid port in listen address: {address!r}")
    if not 0 < port_num < 65536:
        raise StartupError(f"Port out of range: {port_num}")
    return host, port_num
