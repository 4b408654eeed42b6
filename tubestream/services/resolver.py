import asyncio
import logging
from tubestream.config.settings import config
from tubestream.core.errors import ExtractionError, ToolNotFoundError
from tubestream.models.internal import MediaRequest, ResolvedLocator
from tubestream.services.format import FormatDecision
from tubestream.services.ytdlp import YTDLPCommandBuilder, SubprocessExecutor

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "download"

class LocatorResolver:
    """Resolve a page URL to a direct media URL with yt-dlp"""

    @staticmethod
    async def resolve(media_request: MediaRequest) -> ResolvedLocator:
        """
        Run `yt-dlp -g` with the selector for (kind, quality).
        The first printed line is the media URL; when yt-dlp picks separate
        video and audio streams it prints the audio URL on a second line.
        Raises ExtractionError; never retries.
        """
        format_str = FormatDecision.decide(media_request.kind, media_request.quality)
        cmd = YTDLPCommandBuilder.build_get_url_command(media_request.url, format_str)

        try:
            result = await SubprocessExecutor.run(cmd, timeout=config.download.extractor_timeout)
        except asyncio.TimeoutError:
            raise ExtractionError(f"yt-dlp -g timed out after {config.download.extractor_timeout}s")

        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="ignore").strip()
            raise ExtractionError(f"yt-dlp exited with {result.returncode}: {error_msg[:500]}")

        lines = [
            line.strip()
            for line in result.stdout.decode(errors="ignore").splitlines()
            if line.strip()
        ]
        if not lines:
            raise ExtractionError("yt-dlp printed no media URL")

        title = await LocatorResolver.fetch_title(media_request.url)

        return ResolvedLocator(
            media_url=lines[0],
            audio_url=lines[1] if len(lines) > 1 else None,
            title=title,
        )

    @staticmethod
    async def fetch_title(url: str) -> str:
        """Best effort: any failure yields FALLBACK_TITLE"""
        cmd = YTDLPCommandBuilder.build_title_command(url)
        try:
            result = await SubprocessExecutor.run(cmd, timeout=config.download.title_timeout)
        except (asyncio.TimeoutError, ToolNotFoundError, OSError) as e:
            logger.warning(f"Title lookup failed: {e!r}")
            return FALLBACK_TITLE

        if result.returncode != 0:
            logger.warning(f"Title lookup exited with {result.returncode}")
            return FALLBACK_TITLE

        title = result.stdout.decode(errors="ignore").strip().splitlines()
        return title[0].strip() if title and title[0].strip() else FALLBACK_TITLE
