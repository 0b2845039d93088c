from __future__ import annotations


class PrintFileError(Exception):
    """Base class for every failure the print-file pipeline can report."""

    code = "PRINT_FILE_ERROR"

    def __init__(self, message: str, *, asset: str | None = None):
        super().__init__(message)
        self.message = message
        self.asset = asset


class InvalidLayoutParameters(PrintFileError, ValueError):
    code = "INVALID_LAYOUT_PARAMETERS"


class ArtworkUnavailable(PrintFileError):
    code = "ARTWORK_UNAVAILABLE"


class UnsupportedImageFormat(PrintFileError):
    code = "UNSUPPORTED_IMAGE_FORMAT"


class QrEncodingError(PrintFileError):
    code = "QR_ENCODING_ERROR"


class CompositingError(PrintFileError):
    """A layer does not fit the canvas. Always a geometry bug, never clipped."""

    code = "COMPOSITING_ERROR"


class UploadFailed(PrintFileError):
    code = "UPLOAD_FAILED"
