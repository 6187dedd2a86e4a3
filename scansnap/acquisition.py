"""
acquisition.py - Pull pages out of a SANE scanner.

Session lifetime:
1. Initialise the driver subsystem
2. Open the first device the driver reports
3. Apply every configured option
4. Drain the feeder until it runs out of paper
5. Cancel, close, release the driver (always, on every exit path)

The driver is reached through a small backend adapter so the session can be
exercised without hardware.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence

import numpy as np
from PIL import Image

from .config import SCAN_DPI, OptionValue, ScanConfiguration
from .errors import (
    InitError,
    ListError,
    NoDeviceError,
    OpenError,
    OptionRejectedError,
    ReadError,
    ReleaseError,
)

logger = logging.getLogger(__name__)


@dataclass
class RasterPage:
    """One scanned sheet side as an RGB or grayscale array."""
    index: int
    image: np.ndarray
    dpi: int

    @property
    def width(self) -> int:
        return self.image.shape[1]

    @property
    def height(self) -> int:
        return self.image.shape[0]

    @property
    def is_color(self) -> bool:
        return self.image.ndim == 3


def to_raster(image: Image.Image, index: int, dpi: int) -> RasterPage:
    """Convert a driver image into a RasterPage (RGB, or L for gray scans)."""
    if image.mode not in ("RGB", "L"):
        image = image.convert("L" if image.mode in ("1", "I", "I;16") else "RGB")
    return RasterPage(index=index, image=np.array(image), dpi=dpi)


class SaneDevice:
    """Open handle on one SANE device."""

    def __init__(self, dev: Any):
        self._dev = dev

    def set_option(self, name: str, value: OptionValue):
        # python-sane exposes options as attributes with '-' mapped to '_'
        # and silently stores unknown names, so check membership first.
        py_name = name.replace("-", "_")
        if py_name not in self._dev.opt:
            raise KeyError(f"Device has no option {name!r}")
        setattr(self._dev, py_name, value)

    def scan_pages(self) -> Iterator[Image.Image]:
        """Yield one PIL image per page until the feeder is empty."""
        return iter(self._dev.multi_scan())

    def cancel(self):
        self._dev.cancel()

    def close(self):
        self._dev.close()


class SaneBackend:
    """Adapter over the python-sane module."""

    def __init__(self):
        self._sane = None

    def init(self):
        try:
            import sane  # pip install python-sane (needs libsane)
        except ImportError as e:
            raise InitError("SANE bindings are not installed", e)
        version = sane.init()
        self._sane = sane
        logger.debug(f"SANE initialised: {version}")

    def get_devices(self) -> Sequence[str]:
        # Entries are (name, vendor, model, type)
        return [entry[0] for entry in self._sane.get_devices()]

    def open(self, name: str) -> SaneDevice:
        return SaneDevice(self._sane.open(name))

    def exit(self):
        if self._sane is not None:
            self._sane.exit()
            self._sane = None


class AcquisitionSession:
    """
    Scoped ownership of the scanner.

    Use as a context manager; the device is opened on enter and released on
    exit whatever happened in between.

        with AcquisitionSession(config, backend) as session:
            pages = session.drain()
    """

    def __init__(
        self,
        config: ScanConfiguration,
        backend: Optional[Any] = None,
        scan_dpi: int = SCAN_DPI
    ):
        self.config = config
        self.backend = backend if backend is not None else SaneBackend()
        self.scan_dpi = scan_dpi
        self.device_name: Optional[str] = None
        self._device = None

    def __enter__(self) -> "AcquisitionSession":
        try:
            self.backend.init()
        except InitError:
            raise
        except Exception as e:
            raise InitError("Unable to initialize SANE", e)

        try:
            self._open_first_device()
        except BaseException:
            self.backend.exit()
            raise
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self._release()
        except Exception as e:
            if exc is not None:
                # Keep the error that ended the scan
                logger.warning(f"Error releasing scanner {self.device_name}: {e}")
                return False
            raise ReleaseError(f"Unable to release scanner {self.device_name}", e)
        return False

    def _open_first_device(self):
        try:
            devices = list(self.backend.get_devices())
        except Exception as e:
            raise ListError("Unable to list devices", e)

        if not devices:
            raise NoDeviceError()

        self.device_name = devices[0]
        logger.info(f"Using scanner {self.device_name} ({len(devices)} found)")

        try:
            self._device = self.backend.open(self.device_name)
        except Exception as e:
            raise OpenError(f"Unable to open scanner {self.device_name}", e)

    def _release(self):
        device, self._device = self._device, None
        try:
            if device is not None:
                try:
                    device.cancel()
                finally:
                    device.close()
        finally:
            self.backend.exit()
        logger.debug(f"Released scanner {self.device_name}")

    def apply_options(self):
        for name, value in self.config:
            logger.debug(f"Setting {name}={value!r}")
            try:
                self._device.set_option(name, value)
            except Exception as e:
                raise OptionRejectedError(name, e)

    def read_pages(self) -> List[RasterPage]:
        """Read every page the feeder produces, in feed order."""
        pages = []
        try:
            for image in self._device.scan_pages():
                page = to_raster(image, len(pages), self.scan_dpi)
                logger.debug(
                    f"Page {page.index}: {page.width}x{page.height} @ {page.dpi} DPI"
                )
                pages.append(page)
        except Exception as e:
            # Partial scans are never used
            raise ReadError(f"Unable to read page {len(pages)}", e)
        return pages

    def drain(self) -> List[RasterPage]:
        """Apply the configuration, then read all available pages."""
        if self._device is None:
            raise OpenError("Session is not open")
        self.apply_options()
        pages = self.read_pages()
        logger.info(f"Scanned {len(pages)} pages from {self.device_name}")
        return pages


def acquire(
    config: ScanConfiguration,
    backend: Optional[Any] = None,
    scan_dpi: int = SCAN_DPI
) -> List[RasterPage]:
    """Open the scanner, scan everything in the feeder, release the scanner."""
    with AcquisitionSession(config, backend, scan_dpi) as session:
        return session.drain()
