from .errors import (
    ConversionError,
    ConversionServiceError,
    DownloadError,
    DuplicateInFlight,
    EmptyFileError,
    KTX2Error,
    UnsupportedTypeError,
    UploadError,
)
from .models import ConversionPlan, ConversionRequest, SourceFormat

# ConversionService lives in .service; it is not re-exported here because
# media_converter.storage imports the error types from this package.
__all__ = [
    "ConversionPlan",
    "ConversionRequest",
    "SourceFormat",
    "ConversionServiceError",
    "DownloadError",
    "EmptyFileError",
    "UnsupportedTypeError",
    "ConversionError",
    "KTX2Error",
    "UploadError",
    "DuplicateInFlight",
]
