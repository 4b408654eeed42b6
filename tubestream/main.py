import asyncio
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from tubestream.api import health, info, download
from tubestream.config.settings import config
from tubestream.core.errors import MediaError, ValidationError
from tubestream.core.logging import RequestIdMiddleware, log_error, log_warning, setup_logging
from tubestream.core.state import state
from tubestream.infra.redis import init_redis, close_redis
from tubestream.models.response import ErrorResponse
from tubestream.services.stream import FFmpegCommandBuilder
from tubestream.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder
from tubestream.utils.locale import get_locale
from tubestream.i18n import i18n

logger = logging.getLogger(__name__)

app = FastAPI(
    title=config.api.title,
    description=config.api.description,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Request-ID"],
)
app.add_middleware(RequestIdMiddleware)

# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(info.router, tags=["Info"])
app.include_router(download.router, tags=["Download"])

def error_response(request: Request, exc: MediaError) -> JSONResponse:
    locale = get_locale(request.headers.get("accept-language"))
    body = ErrorResponse(
        error=i18n.get(exc.message_key, locale=locale, reason=exc.detail, **exc.params),
        details=exc.detail if config.api.debug else None,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))

@app.exception_handler(MediaError)
async def media_error_handler(request: Request, exc: MediaError):
    """Map pipeline failures to 400/500. Details only leave the server in debug mode."""
    if exc.status_code >= 500:
        log_error(request, f"{exc.__class__.__name__}: {exc.detail}")
    else:
        log_warning(request, f"Rejected request: {exc.detail}")
    return error_response(request, exc)

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400, like any other validation failure"""
    reason = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    log_warning(request, f"Rejected request: {reason}")
    return error_response(request, ValidationError(reason))

async def tool_version(cmd) -> str:
    """First line of `<tool> --version`, or a marker when the tool is unusable"""
    try:
        result = await SubprocessExecutor.run(cmd, timeout=10.0)
    except MediaError:
        logger.error(f"{cmd[0]} not found on PATH; requests that need it will fail")
        return "missing"
    except asyncio.TimeoutError:
        return "unknown"
    lines = result.stdout.decode(errors="ignore").strip().splitlines()
    return lines[0] if result.returncode == 0 and lines else "unknown"

@app.on_event("startup")
async def startup_event():
    setup_logging()
    state.ytdlp_version = await tool_version(YTDLPCommandBuilder.build_version_command())
    state.ffmpeg_version = await tool_version(FFmpegCommandBuilder.build_version_command())
    logger.info(f"yt-dlp {state.ytdlp_version}, {state.ffmpeg_version}")
    state.redis = await init_redis()

@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()
