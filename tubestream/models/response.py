from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VideoTier(BaseModel):
    """One video quality offered to the client (one per height)"""
    model_config = ConfigDict(populate_by_name=True)

    quality: str
    quality_label: str = Field(alias="qualityLabel")
    height: int
    format: str
    has_audio: bool = Field(alias="hasAudio")
    fps: int = 30
    filesize: int = 0


class AudioTier(BaseModel):
    """One audio quality offered to the client; bitrate is the 32 kbps bucket"""
    quality: str
    format: str
    bitrate: int
    filesize: int = 0


class VideoInfo(BaseModel):
    """Metadata endpoint response"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    title: str
    author: str
    thumbnail: str
    duration: int = 0
    video_id: str = Field("", alias="videoId")
    video_formats: List[VideoTier] = Field(default_factory=list, alias="videoFormats")
    audio_formats: List[AudioTier] = Field(default_factory=list, alias="audioFormats")


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[str] = None
