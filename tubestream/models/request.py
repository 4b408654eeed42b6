from pydantic import BaseModel, Field, validator
from typing import Optional
from tubestream.models.internal import MediaRequest, MediaKind, DownloadStrategy

class InfoRequest(BaseModel):
    url: str = Field(..., description="Video URL")

    @validator('url')
    def strip_url(cls, v):
        """Host pattern check is done at the endpoint"""
        return v.strip()

class DownloadRequest(InfoRequest):
    kind: MediaKind = Field(..., description="video or audio")
    quality: Optional[str] = Field(None, description="Height (360, 720...) or audio bitrate (128, 256...)")
    strategy: DownloadStrategy = Field(DownloadStrategy.STREAM, description="stream (ffmpeg) or file (yt-dlp to disk)")

    @validator('quality')
    def normalize_quality(cls, v):
        """Treat empty as best, accept a trailing p/k ("720p", "256k")"""
        if v is None or not v.strip():
            return "best"
        v = v.strip().lower()
        if v[-1] in ("p", "k") and v[:-1].isdigit():
            v = v[:-1]
        return v

    def to_media_request(self) -> MediaRequest:
        return MediaRequest(url=self.url, kind=self.kind, quality=self.quality or "best")
