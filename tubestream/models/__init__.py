from .internal import DownloadStrategy, MediaKind, MediaMetadata, MediaRequest, ResolvedLocator
from .request import DownloadRequest, InfoRequest
from .response import AudioTier, ErrorResponse, VideoInfo, VideoTier

__all__ = [
    "AudioTier",
    "DownloadRequest",
    "DownloadStrategy",
    "ErrorResponse",
    "InfoRequest",
    "MediaKind",
    "MediaMetadata",
    "MediaRequest",
    "ResolvedLocator",
    "VideoInfo",
    "VideoTier",
]
