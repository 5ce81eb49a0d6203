class GhostClipError(Exception):
    """Base class for every error raised by ghostclip."""


class UnsupportedEnvironment(GhostClipError):
    """The offload worker cannot be started here; callers run inline."""


class WorkerFailure(GhostClipError):
    """An offloaded composition failed or the worker process died."""


class DecodeError(GhostClipError, ValueError):
    """Source bytes could not be decoded into an image."""


class OversizeInputError(GhostClipError, ValueError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"File too large. Max {limit // (1024 * 1024)}MB.")
        self.size = size
        self.limit = limit


class RasterTransferredError(GhostClipError, RuntimeError):
    """A raster was read after its buffer was handed to the worker."""


class NothingToExportError(GhostClipError):
    def __init__(self, message: str = "No successfully processed images to download."):
        super().__init__(message)


class ExportError(GhostClipError):
    """The bulk export archive could not be produced."""
