from fastapi import APIRouter

from tubestream.config.settings import config
from tubestream.core.state import state
from tubestream.i18n import i18n

router = APIRouter()


async def redis_status() -> str:
    if not state.redis:
        return i18n.get("response.redis_disabled")
    try:
        await state.redis.ping()
        return i18n.get("response.redis_connected")
    except Exception:
        return i18n.get("response.redis_disconnected")


@router.get("/")
async def root():
    """Root endpoint"""
    return {
        "status": i18n.get("response.status_running"),
        "service": config.api.title,
        "version": config.api.version,
        "ytdlp_version": state.ytdlp_version,
        "ffmpeg_version": state.ffmpeg_version,
        "redis_enabled": state.redis is not None
    }


@router.get("/health")
async def health_check():
    """Lightweight health check"""
    return {
        "status": i18n.get("health.status"),
        "redis": await redis_status()
    }
