import functools
import json
import logging
import os
from typing import Any, Callable, Dict, Optional
from tubestream.config.settings import config

logger = logging.getLogger(__name__)

LOCALES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "locales")

class I18n:
    """User-facing messages from tubestream/locales/<code>.json"""

    def __init__(self, locales_dir: str = LOCALES_DIR):
        self.locales: Dict[str, Dict[str, Any]] = {}
        self.default_locale = config.i18n.default_locale
        self.load_locales(locales_dir)

    def load_locales(self, locales_dir: str):
        if not os.path.isdir(locales_dir):
            logger.warning(f"Locales directory not found at {locales_dir}")
            return

        for filename in sorted(os.listdir(locales_dir)):
            locale_code, ext = os.path.splitext(filename)
            if ext != ".json" or locale_code not in config.i18n.supported_locales:
                continue
            try:
                with open(os.path.join(locales_dir, filename), "r", encoding="utf-8") as f:
                    self.locales[locale_code] = json.load(f)
            except (OSError, ValueError) as e:
                logger.error(f"Error loading locale {locale_code}: {e}")

    def _lookup(self, locale: str, key: str) -> Optional[str]:
        value: Any = self.locales.get(locale, {})
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return None
            value = value[part]
        return value if isinstance(value, str) else None

    def get(self, key: str, locale: Optional[str] = None, **kwargs) -> str:
        """
        Message for a dotted key ("error.invalid_url") in `locale`, falling
        back to the default locale, then to the key itself. Placeholders
        missing from kwargs are left as they are.
        """
        template = None
        if locale:
            template = self._lookup(locale, key)
        if template is None:
            template = self._lookup(self.default_locale, key)
        if template is None:
            return key

        try:
            return template.format(**kwargs)
        except (KeyError, IndexError):
            return template

    def translator(self, locale: str) -> Callable[..., str]:
        """i18n.get bound to one locale"""
        return functools.partial(self.get, locale=locale)

i18n = I18n()
