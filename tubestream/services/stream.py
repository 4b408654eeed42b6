import asyncio
import logging
from typing import AsyncIterator, List, Optional
from collections import deque
from contextlib import suppress
from urllib.parse import quote
from tubestream.config.settings import config
from tubestream.core.errors import ToolNotFoundError, TranscodeError
from tubestream.models.internal import MediaKind, ResolvedLocator
from tubestream.services.format import (
    FormatDecision,
    VIDEO_AUDIO_BITRATE,
    VIDEO_CRF,
    VIDEO_PRESET,
)
from tubestream.services.ytdlp import SubprocessExecutor
from tubestream.utils.filename import sanitize_filename

logger = logging.getLogger(__name__)

STDERR_MAX_LINES = 50
EXIT_WAIT_SECONDS = 5.0

class FFmpegCommandBuilder:
    """Build ffmpeg commands that write to stdout"""

    @staticmethod
    def build_version_command() -> List[str]:
        return [config.tools.ffmpeg_path, "-version"]

    @staticmethod
    def build(locator: ResolvedLocator, kind: MediaKind, quality: Optional[str]) -> List[str]:
        cmd = [
            config.tools.ffmpeg_path,
            '-hide_banner',
            '-loglevel', 'error',
            '-i', locator.media_url,
        ]

        if kind == MediaKind.AUDIO:
            cmd.extend([
                '-vn',
                '-ar', '44100',
                '-ac', '2',
                '-b:a', FormatDecision.audio_bitrate(quality),
                '-f', 'mp3',
                'pipe:1',
            ])
            return cmd

        if locator.audio_url:
            # yt-dlp picked separate streams: video from input 0, audio from input 1
            cmd.extend(['-i', locator.audio_url, '-map', '0:v:0', '-map', '1:a:0'])

        resolution = FormatDecision.video_resolution(quality)
        if resolution:
            cmd.extend(['-vf', f'scale={resolution}'])

        cmd.extend([
            '-c:v', 'libx264',
            '-preset', VIDEO_PRESET,
            '-crf', VIDEO_CRF,
            '-c:a', 'aac',
            '-b:a', VIDEO_AUDIO_BITRATE,
            # fragmented MP4 is playable before the whole stream is written
            '-movflags', 'frag_keyframe+empty_moov',
            '-f', 'mp4',
            'pipe:1',
        ])
        return cmd

class StreamSession:
    """
    One running ffmpeg process bridged to one response body.

    stdout is only read when the consumer asks for the next chunk, so a slow
    client leaves the pipe full and ffmpeg blocks on write.
    """

    def __init__(self, process: asyncio.subprocess.Process):
        self.process = process
        self.stderr_lines: deque = deque(maxlen=STDERR_MAX_LINES)
        self.bytes_sent = 0
        self.chunk_size = config.download.chunk_size
        self._loop = asyncio.get_running_loop()
        self._deadline = self._loop.time() + config.download.timeout_seconds
        self._first_chunk: Optional[bytes] = None
        self._close_task: Optional[asyncio.Task] = None
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    @property
    def pid(self) -> int:
        return self.process.pid

    async def _drain_stderr(self):
        """Drain stderr to prevent buffer deadlock; kept for logging only"""
        while True:
            line = await self.process.stderr.readline()
            if not line:
                break
            self.stderr_lines.append(line.decode(errors="ignore").strip())

    def error_summary(self) -> str:
        return '\n'.join(self.stderr_lines)[-500:]

    async def _read(self) -> bytes:
        remaining = self._deadline - self._loop.time()
        if remaining <= 0:
            raise TranscodeError(f"Stream exceeded {config.download.timeout_seconds}s")
        try:
            return await asyncio.wait_for(self.process.stdout.read(self.chunk_size), timeout=remaining)
        except asyncio.TimeoutError:
            raise TranscodeError(f"Stream exceeded {config.download.timeout_seconds}s")

    async def _wait_exit(self) -> int:
        try:
            return await asyncio.wait_for(self.process.wait(), timeout=EXIT_WAIT_SECONDS)
        except asyncio.TimeoutError:
            await SubprocessExecutor.terminate(self.process)
            return self.process.returncode if self.process.returncode is not None else -1

    async def _settle_stderr(self) -> None:
        """Give the drain task a moment to collect the last lines"""
        with suppress(asyncio.TimeoutError, asyncio.CancelledError):
            await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=1.0)

    async def prime(self) -> None:
        """
        Read the first chunk before the response is committed, so that an
        ffmpeg run that dies immediately becomes a normal error response.
        """
        chunk = await self._read()
        if not chunk:
            returncode = await self._wait_exit()
            await self._settle_stderr()
            raise TranscodeError(
                f"ffmpeg exited with {returncode} before producing output: {self.error_summary()}"
            )
        self._first_chunk = chunk

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """
        Yield ffmpeg output in order. Raises TranscodeError on abnormal exit
        so the transfer is aborted instead of ending as a truncated file.
        """
        try:
            if self._first_chunk:
                chunk, self._first_chunk = self._first_chunk, None
                self.bytes_sent += len(chunk)
                yield chunk

            while True:
                chunk = await self._read()
                if not chunk:
                    break
                self.bytes_sent += len(chunk)
                max_bytes = config.download.max_stream_bytes
                if max_bytes and self.bytes_sent > max_bytes:
                    raise TranscodeError(f"Stream exceeded {max_bytes} bytes")
                yield chunk

            returncode = await self._wait_exit()
            if returncode != 0:
                await self._settle_stderr()
                raise TranscodeError(f"ffmpeg exited with {returncode}: {self.error_summary()}")
        finally:
            await self.close()

    async def close(self) -> None:
        """
        Kill ffmpeg (if still running) and stop the stderr drain. Idempotent.
        The shutdown runs in its own task, so a caller cancelled mid-close
        (client disconnect) does not leave it half done; a later call waits
        for it to finish.
        """
        if self._close_task is None:
            self._stderr_task.cancel()
            self._close_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._close_task)

    async def _shutdown(self) -> None:
        if self.process.returncode is None:
            logger.info(f"Terminating ffmpeg pid={self.process.pid} after {self.bytes_sent} bytes")
            await SubprocessExecutor.terminate(self.process)

        with suppress(asyncio.CancelledError):
            await self._stderr_task

        if self.process.returncode not in (0, None) and self.stderr_lines:
            logger.warning(f"ffmpeg stderr (rc={self.process.returncode}): {self.error_summary()}")

class TranscodeService:
    """Pipe a resolved locator through ffmpeg"""

    @staticmethod
    async def start(locator: ResolvedLocator, kind: MediaKind, quality: Optional[str]) -> StreamSession:
        """Spawn ffmpeg and read its first chunk. Raises TranscodeError."""
        cmd = FFmpegCommandBuilder.build(locator, kind, quality)

        try:
            process = await SubprocessExecutor.spawn(
                cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except ToolNotFoundError as e:
            raise TranscodeError(e.detail, message_key="error.tool_missing")
        except OSError as e:
            raise TranscodeError(f"ffmpeg spawn failed: {e}")

        session = StreamSession(process)
        try:
            await session.prime()
        except BaseException:
            await session.close()
            raise
        return session

    @staticmethod
    def build_headers(title: str, kind: MediaKind) -> dict:
        """Download headers for a title and kind"""
        metadata = FormatDecision.get_metadata(kind)
        filename = f"{sanitize_filename(title)}.{metadata.ext}"

        disposition = f'attachment; filename="{filename}"'
        if not title.isascii():
            disposition += f"; filename*=UTF-8''{quote(title.strip(), safe='')}.{metadata.ext}"

        return {
            'Content-Type': metadata.media_type,
            'Content-Disposition': disposition,
            'X-Content-Type-Options': 'nosniff',
            'Cache-Control': 'no-cache',
        }
