from typing import Optional
from tubestream.models.internal import MediaKind, MediaMetadata

# Requested audio quality -> MP3 bitrate
AUDIO_BITRATES = {
    "128": "128k",
    "192": "192k",
    "256": "256k",
    "320": "320k",
    "best": "256k",
}
DEFAULT_AUDIO_BITRATE = "256k"

# Requested video quality -> scale target
VIDEO_RESOLUTIONS = {
    "360": "640x360",
    "480": "854x480",
    "720": "1280x720",
    "1080": "1920x1080",
}

VIDEO_AUDIO_BITRATE = "192k"
VIDEO_PRESET = "ultrafast"
VIDEO_CRF = "23"

class FormatDecision:
    """Make format decisions"""

    @staticmethod
    def height_for(quality: Optional[str]) -> Optional[int]:
        """Numeric tier, or None for best/unknown"""
        if quality and quality.isdigit() and int(quality) > 0:
            return int(quality)
        return None

    @staticmethod
    def decide(kind: MediaKind, quality: Optional[str]) -> str:
        """yt-dlp format selector for (kind, quality)"""
        if kind == MediaKind.AUDIO:
            return "bestaudio"

        height = FormatDecision.height_for(quality)
        if height is None:
            return "best"

        # Separate streams merged, else a progressive stream under the cap
        return f"bestvideo[height<={height}]+bestaudio/best[height<={height}]"

    @staticmethod
    def audio_bitrate(quality: Optional[str]) -> str:
        return AUDIO_BITRATES.get((quality or "").lower(), DEFAULT_AUDIO_BITRATE)

    @staticmethod
    def video_resolution(quality: Optional[str]) -> Optional[str]:
        return VIDEO_RESOLUTIONS.get((quality or "").lower())

    @staticmethod
    def get_metadata(kind: MediaKind) -> MediaMetadata:
        """Output container for a kind"""
        if kind == MediaKind.AUDIO:
            return MediaMetadata(ext='mp3', media_type='audio/mpeg')
        return MediaMetadata(ext='mp4', media_type='video/mp4')
