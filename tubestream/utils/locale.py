from typing import Optional
from urllib.parse import parse_qs, urlparse
from tubestream.config.settings import config

def get_locale(accept_language: Optional[str] = None) -> str:
    """Extract locale from Accept-Language header"""
    if not accept_language:
        return config.i18n.default_locale

    languages = []
    for lang in accept_language.split(","):
        parts = lang.strip().split(";")
        locale = parts[0].split("-")[0].lower()
        languages.append(locale)

    for locale in languages:
        if locale in config.i18n.supported_locales:
            return locale

    return config.i18n.default_locale

def safe_url_for_log(url: str) -> str:
    """
    Safe URL for logging: scheme, host and path, plus the video id.
    Signed media locators keep their query out of the logs.
    """
    try:
        parsed = urlparse(url)
        base_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path}"

        video_id = parse_qs(parsed.query).get("v")
        if video_id:
            return f"{base_url}?v={video_id[0]}"
        if parsed.query:
            return f"{base_url}?..."
        return base_url
    except ValueError:
        return "invalid_url"
