import asyncio
import glob
import logging
import os
import time
import uuid
import aiofiles
from typing import AsyncIterator
from collections import deque
from contextlib import suppress
from tubestream.config.settings import config
from tubestream.core.errors import DownloadError
from tubestream.models.internal import MediaKind, MediaRequest
from tubestream.services.format import FormatDecision
from tubestream.services.ytdlp import YTDLPCommandBuilder, SubprocessExecutor

logger = logging.getLogger(__name__)

STDERR_MAX_LINES = 50

class TempFile:
    """
    Scratch file owned by one request. Every name is unique, so requests never
    share content and no locking is needed.
    """

    def __init__(self, base: str, ext: str):
        self.base = base
        self.path = f"{base}.{ext}"
        self._removed = False

    @property
    def size(self) -> int:
        return os.path.getsize(self.path)

    async def iter_file(self, chunk_size: int) -> AsyncIterator[bytes]:
        """Stream the file, delete it at end-of-stream"""
        try:
            async with aiofiles.open(self.path, 'rb') as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
        finally:
            self.cleanup()

    async def close(self) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Delete the file and any partials for this base. Never raises."""
        if self._removed:
            return
        self._removed = True
        for path in glob.glob(glob.escape(self.base) + ".*"):
            try:
                os.remove(path)
                logger.info(f"Cleaned up {path}")
            except OSError as e:
                logger.warning(f"Failed to delete {path}: {e}")

class FallbackDownloadService:
    """Let yt-dlp write a complete file, then serve it"""

    @staticmethod
    def new_temp_file(kind: MediaKind) -> TempFile:
        os.makedirs(config.download.scratch_dir, exist_ok=True)
        base = os.path.join(
            config.download.scratch_dir,
            f"tubestream_{time.monotonic_ns()}_{uuid.uuid4().hex[:8]}"
        )
        return TempFile(base, FormatDecision.get_metadata(kind).ext)

    @staticmethod
    async def download_to_file(media_request: MediaRequest) -> TempFile:
        """
        Run yt-dlp to completion. Success needs exit code 0 AND the expected
        file on disk; anything else raises DownloadError.
        """
        temp_file = FallbackDownloadService.new_temp_file(media_request.kind)
        format_str = FormatDecision.decide(media_request.kind, media_request.quality)
        cmd = YTDLPCommandBuilder.build_download_command(
            media_request.url,
            format_str,
            media_request.kind == MediaKind.AUDIO,
            f"{temp_file.base}.%(ext)s",
        )

        try:
            await FallbackDownloadService._run(cmd)
            if not os.path.isfile(temp_file.path):
                raise DownloadError(f"yt-dlp exited 0 but {temp_file.path} does not exist")
        except BaseException:
            temp_file.cleanup()
            raise

        return temp_file

    @staticmethod
    async def _run(cmd) -> None:
        process = await SubprocessExecutor.spawn(
            cmd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )

        stderr_lines = deque(maxlen=STDERR_MAX_LINES)

        async def drain_stderr():
            while True:
                line = await process.stderr.readline()
                if not line:
                    break
                stderr_lines.append(line.decode(errors="ignore").strip())

        stderr_task = asyncio.create_task(drain_stderr())

        try:
            returncode = await asyncio.wait_for(
                process.wait(),
                timeout=config.download.timeout_seconds
            )
        except asyncio.TimeoutError:
            raise DownloadError(f"yt-dlp download timed out after {config.download.timeout_seconds}s")
        finally:
            if process.returncode is None:
                await SubprocessExecutor.terminate(process)
            with suppress(asyncio.TimeoutError, asyncio.CancelledError):
                await asyncio.wait_for(stderr_task, timeout=1.0)
            stderr_task.cancel()

        if returncode != 0:
            error_summary = '\n'.join(stderr_lines)
            raise DownloadError(f"yt-dlp exited with {returncode}: {error_summary[-500:]}")
