from .errors import (
    DownloadError,
    ExtractionError,
    MediaError,
    MetadataError,
    ServerBusyError,
    ToolNotFoundError,
    TranscodeError,
    ValidationError,
)

__all__ = [
    "DownloadError",
    "ExtractionError",
    "MediaError",
    "MetadataError",
    "ServerBusyError",
    "ToolNotFoundError",
    "TranscodeError",
    "ValidationError",
]
