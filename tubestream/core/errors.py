from typing import Optional


class MediaError(Exception):
    """
    Base class for pipeline failures.

    `message_key` is an i18n key for the user-facing message, `detail` is the
    diagnostic text that is logged and only echoed back in development mode.
    """
    status_code = 500
    message_key = "error.internal"

    def __init__(self, detail: str = "", message_key: Optional[str] = None, **params):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail
        self.params = params
        if message_key:
            self.message_key = message_key


class ValidationError(MediaError):
    """Bad, missing or unrecognized input. Raised before any subprocess runs."""
    status_code = 400
    message_key = "error.invalid_request"


class ExtractionError(MediaError):
    """yt-dlp exited non-zero or printed nothing usable"""
    message_key = "error.extraction_failed"


class ToolNotFoundError(MediaError):
    """Required executable is not on PATH"""
    message_key = "error.tool_missing"

    def __init__(self, tool: str):
        super().__init__(f"{tool} executable not found")
        self.tool = tool


class MetadataError(MediaError):
    """yt-dlp succeeded but its JSON output could not be parsed"""
    message_key = "error.parse_failed"


class TranscodeError(MediaError):
    """ffmpeg failed to start or terminated abnormally"""
    message_key = "error.transcode_failed"


class DownloadError(MediaError):
    """File download failed: non-zero exit or missing output file"""
    message_key = "error.download_failed"


class ServerBusyError(MediaError):
    """All download slots are taken"""
    status_code = 503
    message_key = "error.server_busy"

    def __init__(self, limit: int):
        super().__init__(f"{limit} downloads already running", max=limit)
