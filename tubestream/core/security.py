import re
from enum import Enum, auto
from typing import Optional
from tubestream.core.errors import ValidationError

# Optional scheme, optional www., one of the two accepted hosts, non-empty path
SOURCE_URL_PATTERN = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+")

VIDEO_ID_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^&\n?#]+)"),
    re.compile(r"^([a-zA-Z0-9_-]{11})$"),
)


class UrlValidationResult(Enum):
    """URL validation result without throwing exceptions"""
    OK = auto()
    MISSING = auto()
    INVALID = auto()


class SourceUrlValidator:
    """
    Validate source URLs against the accepted host pattern.
    Pure string check: no DNS, no subprocess.
    """

    @staticmethod
    def validate_url(url: Optional[str]) -> UrlValidationResult:
        if not url or not url.strip():
            return UrlValidationResult.MISSING
        if not SOURCE_URL_PATTERN.match(url.strip()):
            return UrlValidationResult.INVALID
        return UrlValidationResult.OK

    @staticmethod
    def require_valid(url: Optional[str]) -> str:
        """Stripped URL, or ValidationError before anything else runs"""
        result = SourceUrlValidator.validate_url(url)
        if result == UrlValidationResult.MISSING:
            raise ValidationError("url is missing", message_key="error.missing_url")
        if result == UrlValidationResult.INVALID:
            raise ValidationError(f"url does not match accepted hosts: {url[:200]}", message_key="error.invalid_url")
        return url.strip()

    @staticmethod
    def extract_video_id(url: str) -> str:
        """Video id from a watch/short/embed URL, or "" if none found"""
        for pattern in VIDEO_ID_PATTERNS:
            match = pattern.search(url)
            if match and match.group(1):
                return match.group(1)
        return ""
