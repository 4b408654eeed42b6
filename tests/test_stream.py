import asyncio
import time

import anyio
import pytest

from tubestream.config.settings import config
from tubestream.core.errors import TranscodeError
from tubestream.models.internal import MediaKind, ResolvedLocator
from tubestream.services.stream import FFmpegCommandBuilder, TranscodeService

from conftest import is_alive, printing_tool, python_tool

LOCATOR = ResolvedLocator(media_url="https://media.example/a.m4a", title="Song")

# Writes forever and leaves a sleeping grandchild behind
ENDLESS_WRITER = (
    "import os, subprocess, sys, time\n"
    "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(300)'])\n"
    "sys.stderr.write(f'child={child.pid}\\n'); sys.stderr.flush()\n"
    "while True:\n"
    "    sys.stdout.buffer.write(b'x' * 65536)\n"
    "    sys.stdout.flush()\n"
)

# One chunk, then silence until killed
STALLED_WRITER = (
    "import sys, time\n"
    "sys.stdout.buffer.write(b'y' * 1024)\n"
    "sys.stdout.flush()\n"
    "time.sleep(300)\n"
)


def use_ffmpeg(monkeypatch, cmd):
    monkeypatch.setattr(FFmpegCommandBuilder, "build", staticmethod(lambda locator, kind, quality: cmd))


async def wait_dead(pid: int, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not is_alive(pid):
            return True
        await asyncio.sleep(0.05)
    return False


@pytest.mark.asyncio
async def test_stream_output_in_order(monkeypatch):
    use_ffmpeg(monkeypatch, python_tool(
        "import sys\n"
        "for i in range(200):\n"
        "    sys.stdout.write(f'{i:05d}')\n"
    ))

    session = await TranscodeService.start(LOCATOR, MediaKind.AUDIO, "256")
    body = b"".join([chunk async for chunk in session.iter_bytes()])

    assert body == b"".join(f"{i:05d}".encode() for i in range(200))
    assert session.bytes_sent == len(body)
    assert session.process.returncode == 0


@pytest.mark.asyncio
async def test_stream_abnormal_exit_raises(monkeypatch):
    use_ffmpeg(monkeypatch, printing_tool("partial", returncode=1, stderr="Conversion failed!"))

    session = await TranscodeService.start(LOCATOR, MediaKind.AUDIO, "256")
    received = []
    with pytest.raises(TranscodeError) as exc_info:
        async for chunk in session.iter_bytes():
            received.append(chunk)

    assert b"".join(received) == b"partial"
    assert "Conversion failed!" in exc_info.value.detail


@pytest.mark.asyncio
async def test_spawn_failure(monkeypatch, tmp_path):
    use_ffmpeg(monkeypatch, [str(tmp_path / "no-such-ffmpeg"), "-i", "x"])

    with pytest.raises(TranscodeError) as exc_info:
        await TranscodeService.start(LOCATOR, MediaKind.AUDIO, "256")
    assert exc_info.value.message_key == "error.tool_missing"


@pytest.mark.asyncio
async def test_immediate_exit_detected_before_response(monkeypatch):
    use_ffmpeg(monkeypatch, printing_tool("", returncode=1, stderr="Invalid data found when processing input"))

    with pytest.raises(TranscodeError) as exc_info:
        await TranscodeService.start(LOCATOR, MediaKind.AUDIO, "256")
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_close_kills_process_group(monkeypatch):
    use_ffmpeg(monkeypatch, python_tool(ENDLESS_WRITER))

    session = await TranscodeService.start(LOCATOR, MediaKind.VIDEO, "720")
    chunks = session.iter_bytes()
    await chunks.__anext__()

    child_pid = None
    for _ in range(100):
        for line in session.stderr_lines:
            if line.startswith("child="):
                child_pid = int(line.split("=", 1)[1])
        if child_pid:
            break
        await asyncio.sleep(0.05)
    assert child_pid is not None

    pid = session.pid
    await chunks.aclose()

    assert session.process.returncode is not None
    assert not is_alive(pid)
    assert await wait_dead(child_pid)


@pytest.mark.asyncio
async def test_close_is_idempotent(monkeypatch):
    use_ffmpeg(monkeypatch, python_tool(ENDLESS_WRITER))

    session = await TranscodeService.start(LOCATOR, MediaKind.AUDIO, "256")
    await session.close()
    await session.close()
    assert session.process.returncode is not None


@pytest.mark.asyncio
async def test_stream_size_limit(monkeypatch):
    monkeypatch.setattr(config.download, "max_stream_bytes", 256 * 1024)
    use_ffmpeg(monkeypatch, python_tool(ENDLESS_WRITER))

    session = await TranscodeService.start(LOCATOR, MediaKind.AUDIO, "256")
    with pytest.raises(TranscodeError):
        async for _ in session.iter_bytes():
            pass

    assert session.bytes_sent <= 256 * 1024 + config.download.chunk_size
    assert not is_alive(session.pid)


@pytest.mark.asyncio
async def test_close_finishes_when_consumer_cancelled(monkeypatch):
    use_ffmpeg(monkeypatch, python_tool(STALLED_WRITER))

    session = await TranscodeService.start(LOCATOR, MediaKind.AUDIO, "256")
    pid = session.pid

    # cancellation is re-delivered at every await inside the scope, including
    # the ones in the generator's cleanup
    with anyio.CancelScope() as scope:
        async for _ in session.iter_bytes():
            scope.cancel()
    assert scope.cancelled_caught

    await session.close()

    assert session.process.returncode is not None
    assert not is_alive(pid)
    assert session._stderr_task.done()
