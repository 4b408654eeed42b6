import re
import unicodedata

WINDOWS_RESERVED = {
    'CON', 'PRN', 'AUX', 'NUL',
    'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
    'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
}


def sanitize_filename(name: str, max_length: int = 100, fallback: str = "download") -> str:
    """
    Header-safe filename stem: ASCII letters, digits, '-' and '_' only,
    whitespace collapsed to '_'.
    """
    name = unicodedata.normalize("NFKD", name or "")
    name = name.encode("ascii", "ignore").decode("ascii")
    name = re.sub(r'[^A-Za-z0-9\s\-_]', '', name)
    name = re.sub(r'\s+', '_', name.strip())
    name = name[:max_length].strip('_')

    if not name:
        return fallback
    if name.upper() in WINDOWS_RESERVED:
        name = f"_{name}"
    return name
