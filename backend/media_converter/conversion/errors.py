"""Failure kinds surfaced by the conversion pipeline."""
from typing import Optional


class ConversionServiceError(Exception):
    """Base class. `message` is safe to return to clients."""

    default_message = "Conversion failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class DownloadError(ConversionServiceError):
    default_message = "File not found or cannot be downloaded"


class EmptyFileError(ConversionServiceError):
    default_message = "File cannot be downloaded or is empty"


class UnsupportedTypeError(ConversionServiceError):
    default_message = "Could not detect file type"


class ConversionError(ConversionServiceError):
    default_message = "Conversion failed: output file not created or is empty"


class KTX2Error(ConversionServiceError):
    default_message = "KTX2 conversion failed"


class UploadError(ConversionServiceError):
    default_message = "Failed to store converted file"


class DuplicateInFlight(ConversionServiceError):
    """The same asset is already being converted; retry after `retry_after` seconds."""

    default_message = "File is already being processed, retry later"

    def __init__(self, message: Optional[str] = None, retry_after: int = 30):
        super().__init__(message)
        self.retry_after = retry_after
