"""
errors.py - Failure taxonomy for the scan pipeline.

Every error carries a short caller-facing message naming the failed stage.
The full cause is only ever logged, never sent to the client.
"""

from typing import Optional


class ScanError(Exception):
    """Base class for all pipeline errors."""

    stage_message = "Scan failed"

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}" if message else str(cause)
        super().__init__(message or self.stage_message)


class StartupError(ScanError):
    """Invalid process configuration. Fatal before serving."""

    stage_message = "Invalid configuration"


# Device errors

class DeviceError(ScanError):
    stage_message = "Unable to fetch pages"


class InitError(DeviceError):
    """Driver subsystem failed to start."""


class ListError(DeviceError):
    """Device enumeration failed."""


class NoDeviceError(DeviceError):
    def __init__(self):
        super().__init__("No scanners found")


class OpenError(DeviceError):
    pass


class OptionRejectedError(DeviceError):
    def __init__(self, option: str, cause: Optional[BaseException] = None):
        self.option = option
        super().__init__(f"Unable to set option {option!r}", cause)


class ReadError(DeviceError):
    """I/O failure while draining pages. Partial pages are discarded."""


class ReleaseError(DeviceError):
    """Cancel, close or driver exit failed after a successful scan."""


# Processing errors

class EncodeError(ScanError):
    def __init__(self, page_index: int, cause: Optional[BaseException] = None):
        self.page_index = page_index
        super().__init__(f"Unable to encode page {page_index}", cause)

    @property
    def stage_message(self) -> str:
        return f"Unable to encode page {self.page_index}"


class RenderError(ScanError):
    stage_message = "Unable to generate PDF"


class EmptyDocumentError(RenderError):
    stage_message = "No pages were scanned"

    def __init__(self):
        super().__init__("Document has no pages")
