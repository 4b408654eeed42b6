import pytest

from tubestream.core.errors import ExtractionError, ToolNotFoundError
from tubestream.models.internal import MediaKind, MediaRequest
from tubestream.services.resolver import FALLBACK_TITLE, LocatorResolver
from tubestream.services.ytdlp import YTDLPCommandBuilder

from conftest import printing_tool

SAMPLE_URL = "https://www.youtube.com/watch?v=abc12345678"


def patch_tools(monkeypatch, get_url_cmd, title_cmd):
    monkeypatch.setattr(YTDLPCommandBuilder, "build_get_url_command", staticmethod(lambda url, fmt: get_url_cmd))
    monkeypatch.setattr(YTDLPCommandBuilder, "build_title_command", staticmethod(lambda url: title_cmd))


@pytest.mark.asyncio
async def test_resolve_single_url(monkeypatch):
    patch_tools(
        monkeypatch,
        printing_tool("https://media.example/audio.m4a\n"),
        printing_tool("My Song\n"),
    )

    locator = await LocatorResolver.resolve(MediaRequest(url=SAMPLE_URL, kind=MediaKind.AUDIO))

    assert locator.media_url == "https://media.example/audio.m4a"
    assert locator.audio_url is None
    assert locator.title == "My Song"


@pytest.mark.asyncio
async def test_resolve_separate_streams(monkeypatch):
    patch_tools(
        monkeypatch,
        printing_tool("https://media.example/v.mp4\nhttps://media.example/a.m4a\n"),
        printing_tool("Clip\n"),
    )

    locator = await LocatorResolver.resolve(MediaRequest(url=SAMPLE_URL, kind=MediaKind.VIDEO, quality="720"))

    assert locator.media_url == "https://media.example/v.mp4"
    assert locator.audio_url == "https://media.example/a.m4a"


@pytest.mark.asyncio
async def test_resolve_passes_selector(monkeypatch):
    seen = []

    def build(url, fmt):
        seen.append((url, fmt))
        return printing_tool("https://media.example/v.mp4\n")

    monkeypatch.setattr(YTDLPCommandBuilder, "build_get_url_command", staticmethod(build))
    monkeypatch.setattr(YTDLPCommandBuilder, "build_title_command", staticmethod(lambda url: printing_tool("t")))

    await LocatorResolver.resolve(MediaRequest(url=SAMPLE_URL, kind=MediaKind.VIDEO, quality="480"))

    assert seen == [(SAMPLE_URL, "bestvideo[height<=480]+bestaudio/best[height<=480]")]


@pytest.mark.asyncio
async def test_title_failure_falls_back(monkeypatch):
    patch_tools(
        monkeypatch,
        printing_tool("https://media.example/a.m4a\n"),
        printing_tool("", returncode=1, stderr="ERROR: nope"),
    )

    locator = await LocatorResolver.resolve(MediaRequest(url=SAMPLE_URL, kind=MediaKind.AUDIO))
    assert locator.title == FALLBACK_TITLE


@pytest.mark.asyncio
async def test_title_missing_tool_falls_back(monkeypatch, tmp_path):
    patch_tools(
        monkeypatch,
        printing_tool("https://media.example/a.m4a\n"),
        [str(tmp_path / "no-such-yt-dlp")],
    )

    locator = await LocatorResolver.resolve(MediaRequest(url=SAMPLE_URL, kind=MediaKind.AUDIO))
    assert locator.title == FALLBACK_TITLE


@pytest.mark.asyncio
async def test_title_blank_falls_back(monkeypatch):
    monkeypatch.setattr(YTDLPCommandBuilder, "build_title_command", staticmethod(lambda url: printing_tool("  \n")))
    assert await LocatorResolver.fetch_title(SAMPLE_URL) == "download"


@pytest.mark.asyncio
async def test_extractor_failure(monkeypatch):
    patch_tools(
        monkeypatch,
        printing_tool("", returncode=1, stderr="ERROR: Private video"),
        printing_tool("never used"),
    )

    with pytest.raises(ExtractionError) as exc_info:
        await LocatorResolver.resolve(MediaRequest(url=SAMPLE_URL, kind=MediaKind.AUDIO))
    assert "Private video" in exc_info.value.detail


@pytest.mark.asyncio
async def test_extractor_prints_nothing(monkeypatch):
    patch_tools(monkeypatch, printing_tool("\n\n"), printing_tool("t"))

    with pytest.raises(ExtractionError):
        await LocatorResolver.resolve(MediaRequest(url=SAMPLE_URL, kind=MediaKind.AUDIO))


@pytest.mark.asyncio
async def test_extractor_missing(monkeypatch, tmp_path, spawned):
    patch_tools(monkeypatch, [str(tmp_path / "no-such-yt-dlp"), "-g"], printing_tool("t"))

    with pytest.raises(ToolNotFoundError) as exc_info:
        await LocatorResolver.resolve(MediaRequest(url=SAMPLE_URL, kind=MediaKind.AUDIO))
    assert exc_info.value.status_code == 500
    assert exc_info.value.message_key == "error.tool_missing"
    assert len(spawned) == 1
