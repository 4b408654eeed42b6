import asyncio
import json
import sys
from typing import Any, List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tubestream.config.settings import config
from tubestream.main import app


def python_tool(code: str) -> List[str]:
    """Command line for a tiny stand-in for yt-dlp/ffmpeg"""
    return [sys.executable, "-c", code]


def printing_tool(text: str, returncode: int = 0, stderr: str = "") -> List[str]:
    return python_tool(
        "import sys\n"
        f"sys.stdout.write({text!r})\n"
        f"sys.stderr.write({stderr!r})\n"
        f"sys.exit({returncode})\n"
    )


def json_tool(payload: Any) -> List[str]:
    return printing_tool(json.dumps(payload))


def is_alive(pid: int) -> bool:
    """True while pid exists and is not a zombie"""
    try:
        with open(f"/proc/{pid}/status") as f:
            for line in f:
                if line.startswith("State:"):
                    return "Z" not in line.split()[1]
    except FileNotFoundError:
        return False
    return True


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture
def scratch_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(config.download, "scratch_dir", str(tmp_path))
    return tmp_path


@pytest.fixture
def spawned(monkeypatch):
    """Records every subprocess command line"""
    calls = []
    real_exec = asyncio.create_subprocess_exec

    async def recording_exec(*args, **kwargs):
        calls.append(list(args))
        return await real_exec(*args, **kwargs)

    monkeypatch.setattr(asyncio, "create_subprocess_exec", recording_exec)
    return calls


@pytest.fixture
def debug_mode(monkeypatch):
    monkeypatch.setattr(config.api, "debug", True)


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
