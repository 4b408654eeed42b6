import asyncio
import functools
from typing import AsyncIterator, Optional
from fastapi import APIRouter, Request, Depends, Query
from pydantic import ValidationError as PydanticValidationError
from tubestream.config.settings import config
from tubestream.models.internal import DownloadStrategy, MediaKind, MediaRequest
from tubestream.models.request import DownloadRequest
from tubestream.services.resolver import LocatorResolver
from tubestream.services.stream import TranscodeService
from tubestream.services.download import FallbackDownloadService
from tubestream.core.errors import MediaError, ValidationError
from tubestream.core.responses import ManagedStreamingResponse
from tubestream.core.security import SourceUrlValidator
from tubestream.core.logging import log_info, log_error
from tubestream.infra.concurrency import concurrency_limiter, release_download_slot
from tubestream.utils.locale import get_locale, safe_url_for_log
from tubestream.i18n import i18n

router = APIRouter()

def parse_download_request(
    url: Optional[str],
    kind: Optional[str],
    quality: Optional[str],
    strategy: Optional[str],
) -> DownloadRequest:
    """Validate query parameters. Nothing is spawned before this passes."""
    url = SourceUrlValidator.require_valid(url)

    kind = (kind or "").strip().lower()
    if kind not in (MediaKind.VIDEO.value, MediaKind.AUDIO.value):
        raise ValidationError(f"unknown format {kind!r}", message_key="error.invalid_kind")

    try:
        return DownloadRequest(
            url=url,
            kind=kind,
            quality=quality,
            strategy=strategy or DownloadStrategy.STREAM.value,
        )
    except PydanticValidationError as e:
        raise ValidationError(str(e))

async def relay(request: Request, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Pass chunks through; log failures that abort an already started body"""
    try:
        async for chunk in chunks:
            yield chunk
    except MediaError as e:
        log_error(request, f"Stream aborted ({e.__class__.__name__}): {e.detail}")
        raise

async def stream_response(request: Request, media_request: MediaRequest) -> ManagedStreamingResponse:
    """Primary path: yt-dlp -g, then ffmpeg to stdout"""
    locator = await LocatorResolver.resolve(media_request)
    log_info(request, f"Resolved locator {safe_url_for_log(locator.media_url)} title={locator.title!r}")

    session = await TranscodeService.start(locator, media_request.kind, media_request.quality)
    log_info(request, f"ffmpeg started pid={session.pid}")

    headers = TranscodeService.build_headers(locator.title, media_request.kind)
    media_type = headers.pop('Content-Type')

    return ManagedStreamingResponse(
        relay(request, session.iter_bytes()),
        media_type=media_type,
        headers=headers,
        on_close=[session.close, functools.partial(release_download_slot, request)],
    )

async def file_response(request: Request, media_request: MediaRequest) -> ManagedStreamingResponse:
    """Fallback path: yt-dlp writes a scratch file, which is streamed then deleted"""
    title = await LocatorResolver.fetch_title(media_request.url)
    temp_file = await FallbackDownloadService.download_to_file(media_request)
    log_info(request, f"Download finished. Streaming {temp_file.size / 1024 / 1024:.1f} MB")

    headers = TranscodeService.build_headers(title, media_request.kind)
    media_type = headers.pop('Content-Type')
    headers['Content-Length'] = str(temp_file.size)

    return ManagedStreamingResponse(
        relay(request, temp_file.iter_file(config.download.chunk_size)),
        media_type=media_type,
        headers=headers,
        on_close=[temp_file.close, functools.partial(release_download_slot, request)],
    )

@router.get("/download", dependencies=[Depends(concurrency_limiter)])
async def download_media(
    request: Request,
    url: Optional[str] = Query(None, description="Video URL"),
    format: Optional[str] = Query(None, description="video or audio"),
    quality: Optional[str] = Query(None, description="360/480/720/1080 or 128/192/256/320"),
    strategy: Optional[str] = Query(None, description="stream (default) or file"),
):
    """Download converted media as an attachment"""

    _ = i18n.translator(get_locale(request.headers.get("accept-language")))

    try:
        download_request = parse_download_request(url, format, quality, strategy)
        media_request = download_request.to_media_request()

        log_info(request, _(
            "log.starting_download",
            strategy=download_request.strategy.value,
            kind=media_request.kind.value,
            quality=media_request.quality,
            url=safe_url_for_log(media_request.url),
        ))

        if download_request.strategy == DownloadStrategy.FILE:
            return await file_response(request, media_request)
        return await stream_response(request, media_request)

    except (MediaError, asyncio.CancelledError):
        await release_download_slot(request)
        raise
    except Exception as e:
        await release_download_slot(request)
        log_error(request, f"Download error: {e!r}")
        raise MediaError(str(e)) from e
