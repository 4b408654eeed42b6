from enum import Enum
from pydantic import BaseModel
from typing import Optional

class MediaKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"

class DownloadStrategy(str, Enum):
    STREAM = "stream"  # resolve locator, transcode through ffmpeg
    FILE = "file"      # let yt-dlp write a scratch file, then serve it

class MediaRequest(BaseModel):
    """Internal download request (separated from HTTP concerns)"""
    url: str
    kind: MediaKind
    quality: str = "best"

class ResolvedLocator(BaseModel):
    """
    Direct, time-limited media URL plus display title.
    Consumed by exactly one transcoder run; never cached.
    """
    media_url: str
    title: str
    audio_url: Optional[str] = None

class MediaMetadata(BaseModel):
    """Output container details per kind"""
    ext: str
    media_type: str
