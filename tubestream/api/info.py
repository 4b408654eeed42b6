from fastapi import APIRouter, Request
from tubestream.models.request import InfoRequest
from tubestream.models.response import VideoInfo
from tubestream.services.catalog import FormatCatalogService
from tubestream.core.errors import MediaError
from tubestream.core.security import SourceUrlValidator
from tubestream.core.logging import log_info, log_error
from tubestream.utils.locale import get_locale, safe_url_for_log
from tubestream.i18n import i18n

router = APIRouter()

@router.post("/info", response_model=VideoInfo)
async def get_video_info(request: Request, info_request: InfoRequest):
    """Title, author, thumbnail and quality tiers for a video"""

    _ = i18n.translator(get_locale(request.headers.get("accept-language")))

    url = SourceUrlValidator.require_valid(info_request.url)

    safe_url = safe_url_for_log(url)
    log_info(request, _("log.fetching_info", url=safe_url))

    try:
        video_info = await FormatCatalogService.fetch(url)
    except MediaError:
        raise
    except Exception as e:
        log_error(request, f"Video info error: {e!r}")
        raise MediaError(str(e)) from e

    log_info(request, _("log.info_retrieved", title=video_info.title))
    return video_info
