import pytest

from tubestream.core.errors import ValidationError
from tubestream.core.security import SourceUrlValidator, UrlValidationResult


@pytest.mark.parametrize("url", [
    "https://www.youtube.com/watch?v=abc12345678",
    "http://youtube.com/watch?v=abc12345678",
    "youtube.com/shorts/abc12345678",
    "www.youtube.com/embed/abc12345678",
    "https://youtu.be/abc12345678",
    "youtu.be/abc12345678",
])
def test_accepted_urls(url):
    assert SourceUrlValidator.validate_url(url) == UrlValidationResult.OK


@pytest.mark.parametrize("url", [
    "https://vimeo.com/12345",
    "https://www.youtube.com/",
    "https://youtube.com",
    "https://m.youtube.com/watch?v=abc12345678",
    "https://evil.com/youtube.com/watch?v=x",
    "ftp://youtube.com/watch?v=abc12345678",
    "not a url",
])
def test_rejected_urls(url):
    assert SourceUrlValidator.validate_url(url) == UrlValidationResult.INVALID


@pytest.mark.parametrize("url", [None, "", "   "])
def test_missing_url(url):
    assert SourceUrlValidator.validate_url(url) == UrlValidationResult.MISSING
    with pytest.raises(ValidationError) as exc_info:
        SourceUrlValidator.require_valid(url)
    assert exc_info.value.message_key == "error.missing_url"
    assert exc_info.value.status_code == 400


def test_require_valid_strips():
    assert SourceUrlValidator.require_valid("  https://youtu.be/abc12345678 ") == "https://youtu.be/abc12345678"


def test_require_valid_rejects_host():
    with pytest.raises(ValidationError) as exc_info:
        SourceUrlValidator.require_valid("https://example.com/watch?v=abc")
    assert exc_info.value.message_key == "error.invalid_url"


@pytest.mark.parametrize("url,expected", [
    ("https://www.youtube.com/watch?v=abc12345678&t=10", "abc12345678"),
    ("https://youtu.be/xyz98765432?si=foo", "xyz98765432"),
    ("https://www.youtube.com/embed/emb12345678", "emb12345678"),
    ("dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/shorts/abc", ""),
])
def test_extract_video_id(url, expected):
    assert SourceUrlValidator.extract_video_id(url) == expected
