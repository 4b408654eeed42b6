import asyncio
import json
import logging
import math
from typing import Any, Dict, Iterable, List
from tubestream.config.settings import config
from tubestream.core.errors import ExtractionError, MetadataError
from tubestream.core.security import SourceUrlValidator
from tubestream.models.response import AudioTier, VideoInfo, VideoTier
from tubestream.services.ytdlp import YTDLPCommandBuilder, SubprocessExecutor
from tubestream.infra.redis import cache_get_json, cache_set_json
from tubestream.utils.hash import cache_key

logger = logging.getLogger(__name__)

AUDIO_BUCKET_KBPS = 32
DEFAULT_AUDIO_KBPS = 128
DEFAULT_FPS = 30
THUMBNAIL_TEMPLATE = "https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


def _has_codec(value: Any) -> bool:
    return bool(value) and value != "none"


def _filesize(f: Dict[str, Any]) -> int:
    return int(f.get("filesize") or f.get("filesize_approx") or 0)


def bucket_bitrate(kbps: float) -> int:
    """Round to the nearest 32 kbps (halves round up)"""
    return int(math.floor(kbps / AUDIO_BUCKET_KBPS + 0.5)) * AUDIO_BUCKET_KBPS


def build_video_tiers(formats: Iterable[Dict[str, Any]]) -> List[VideoTier]:
    """
    One tier per height, best candidate wins. A candidate with embedded audio
    beats a video-only one at the same height. Sorted by height, descending.
    """
    best: Dict[int, Dict[str, Any]] = {}

    def rank(f: Dict[str, Any]):
        return (_has_codec(f.get("acodec")), f.get("fps") or 0, f.get("tbr") or 0)

    for f in formats:
        if not isinstance(f, dict) or not _has_codec(f.get("vcodec")) or not f.get("height"):
            continue
        height = int(f["height"])
        current = best.get(height)
        if current is None or rank(f) > rank(current):
            best[height] = f

    tiers = []
    for height in sorted(best, reverse=True):
        f = best[height]
        tiers.append(VideoTier(
            quality=f"{height}p",
            quality_label=f.get("format_note") or f"{height}p",
            height=height,
            format=f.get("ext") or "mp4",
            has_audio=_has_codec(f.get("acodec")),
            fps=int(round(f.get("fps") or DEFAULT_FPS)),
            filesize=_filesize(f),
        ))
    return tiers


def build_audio_tiers(formats: Iterable[Dict[str, Any]]) -> List[AudioTier]:
    """
    Audio-only entries bucketed by bitrate rounded to 32 kbps. The highest
    raw bitrate in each bucket survives. Sorted by bitrate, descending.
    """
    best: Dict[int, Dict[str, Any]] = {}

    for f in formats:
        if not isinstance(f, dict) or not _has_codec(f.get("acodec")) or _has_codec(f.get("vcodec")):
            continue
        abr = f.get("abr") or DEFAULT_AUDIO_KBPS
        key = bucket_bitrate(abr)
        current = best.get(key)
        if current is None or abr > (current.get("abr") or DEFAULT_AUDIO_KBPS):
            best[key] = f

    return [
        AudioTier(
            quality=f"{key}kbps",
            format=best[key].get("ext") or "mp3",
            bitrate=key,
            filesize=_filesize(best[key]),
        )
        for key in sorted(best, reverse=True)
    ]


def build_video_info(data: Dict[str, Any], url: str) -> VideoInfo:
    """Flatten yt-dlp JSON into the metadata response. Defaults never raise."""
    video_id = str(data.get("id") or SourceUrlValidator.extract_video_id(url))
    formats = data.get("formats")
    if not isinstance(formats, list):
        formats = []

    duration = data.get("duration") or 0
    try:
        duration = int(duration)
    except (TypeError, ValueError):
        duration = 0

    return VideoInfo(
        title=data.get("title") or "Unknown Title",
        author=data.get("uploader") or data.get("channel") or "Unknown",
        thumbnail=data.get("thumbnail") or THUMBNAIL_TEMPLATE.format(video_id=video_id),
        duration=duration,
        video_id=video_id,
        video_formats=build_video_tiers(formats),
        audio_formats=build_audio_tiers(formats),
    )


class FormatCatalogService:
    """Video metadata and quality tiers"""

    @staticmethod
    async def fetch(url: str) -> VideoInfo:
        """
        Fetch metadata with Redis caching.
        ExtractionError on non-zero exit, MetadataError on unparsable JSON.
        """
        key = cache_key("info", url)
        cached = await cache_get_json(key)
        if cached:
            return VideoInfo(**cached)

        cmd = YTDLPCommandBuilder.build_info_command(url)
        try:
            result = await SubprocessExecutor.run(cmd, timeout=config.download.extractor_timeout)
        except asyncio.TimeoutError:
            raise ExtractionError(f"yt-dlp --dump-json timed out after {config.download.extractor_timeout}s")

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="ignore").strip()
            raise ExtractionError(f"yt-dlp exited with {result.returncode}: {error_msg[:500]}")

        try:
            data = json.loads(result.stdout.decode(errors="ignore"))
        except json.JSONDecodeError as e:
            raise MetadataError(f"Invalid JSON from yt-dlp: {e}")
        if not isinstance(data, dict):
            raise MetadataError(f"Unexpected JSON type from yt-dlp: {type(data).__name__}")

        video_info = build_video_info(data, url)

        await cache_set_json(key, video_info.model_dump_json(by_alias=True), config.redis.info_cache_ttl)

        return video_info
