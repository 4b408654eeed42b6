from typing import List, Optional, NamedTuple
import asyncio
import logging
import os
import signal
from contextlib import suppress
from tubestream.config.settings import config
from tubestream.core.errors import ToolNotFoundError

logger = logging.getLogger(__name__)

class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes

class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def spawn(cmd: List[str], **kwargs) -> asyncio.subprocess.Process:
        """
        Start a process in its own process group so that it can be killed
        together with anything it forks (yt-dlp runs ffmpeg for merges).
        """
        kwargs.setdefault("stdin", asyncio.subprocess.DEVNULL)
        try:
            return await asyncio.create_subprocess_exec(
                *cmd,
                start_new_session=True,
                **kwargs
            )
        except FileNotFoundError:
            raise ToolNotFoundError(cmd[0])

    @staticmethod
    async def terminate(process: asyncio.subprocess.Process, grace: float = 2.0) -> None:
        """Kill the process group and reap the leader. Safe to call twice."""
        if process.returncode is not None:
            return
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            # group already gone, fall back to the leader
            with suppress(ProcessLookupError):
                process.kill()
        try:
            await asyncio.wait_for(process.wait(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning(f"Process {process.pid} did not exit after SIGKILL")

    @staticmethod
    async def run(
        cmd: List[str],
        timeout: float,
        capture_stderr: bool = True
    ) -> CompletedProcess:
        """
        Run subprocess with timeout and proper cleanup.
        Prevents process leaks and ensures consistent error handling.
        """
        process = await SubprocessExecutor.spawn(
            cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE if capture_stderr else asyncio.subprocess.DEVNULL,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout
            )

            return CompletedProcess(
                returncode=process.returncode,
                stdout=stdout,
                stderr=stderr if capture_stderr else b""
            )

        finally:
            # timeout, cancellation (client went away) or any other error
            if process.returncode is None:
                await SubprocessExecutor.terminate(process)

class YTDLPCommandBuilder:
    """Build yt-dlp commands"""

    @staticmethod
    def _base() -> List[str]:
        return [
            config.tools.ytdlp_path,
            '--no-warnings',
            '--no-playlist',
        ]

    @staticmethod
    def build_version_command() -> List[str]:
        return [config.tools.ytdlp_path, '--version']

    @staticmethod
    def build_info_command(url: str) -> List[str]:
        """Build command for dumping full JSON metadata"""
        cmd = YTDLPCommandBuilder._base()
        cmd.extend(['--dump-json', '--skip-download'])
        cmd.append(url)
        return cmd

    @staticmethod
    def build_title_command(url: str) -> List[str]:
        """Build command for fetching the bare title"""
        cmd = YTDLPCommandBuilder._base()
        cmd.append('--get-title')
        cmd.append(url)
        return cmd

    @staticmethod
    def build_get_url_command(url: str, format_str: str) -> List[str]:
        """Build command for fetching direct media URL(s), one per line"""
        cmd = YTDLPCommandBuilder._base()
        cmd.extend(['-g', '-f', format_str])
        cmd.append(url)
        return cmd

    @staticmethod
    def build_download_command(
        url: str,
        format_str: str,
        audio_only: bool,
        output_template: str,
        merge_format: Optional[str] = "mp4"
    ) -> List[str]:
        """Build command that writes the selected format to output_template"""
        cmd = YTDLPCommandBuilder._base()
        cmd.extend(['-f', format_str, '--no-progress'])

        if audio_only:
            cmd.extend(['-x', '--audio-format', 'mp3', '--audio-quality', '0'])
        elif merge_format:
            # merge separate streams, remux a single progressive one
            cmd.extend(['--merge-output-format', merge_format, '--remux-video', merge_format])

        cmd.extend(['-o', output_template, url])
        return cmd
