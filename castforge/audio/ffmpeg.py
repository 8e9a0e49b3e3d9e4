"""
Thin async wrapper around the ffmpeg and ffprobe command line tools.

Every invocation runs as its own subprocess under a wall-clock timeout and
is killed if the timeout expires.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..errors import AudioToolError
from ..utils.files import safe_unlink, verify_file_ready

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FFmpegRunner:
    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout: float = 900.0,
        sample_rate: int = 44100,
        bitrate: str = "192k",
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.sample_rate = sample_rate
        self.bitrate = bitrate

    @classmethod
    def from_settings(cls, settings) -> "FFmpegRunner":
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
            timeout=settings.ffmpeg_timeout_seconds,
            sample_rate=settings.audio_sample_rate,
            bitrate=settings.audio_bitrate,
        )

    async def run(
        self,
        args: Sequence[str],
        input_data: Optional[bytes] = None,
        timeout: Optional[float] = None,
        program: Optional[str] = None,
    ) -> bytes:
        """
        Run the tool with ``args`` and return its stdout.

        Raises:
            AudioToolError: non-zero exit, timeout, or missing executable
        """
        program = program or self.ffmpeg_path
        timeout = timeout or self.timeout
        cmd = [program, *args]
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE if input_data is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise AudioToolError(f"{program} not found on PATH") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(input_data), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise AudioToolError(f"{program} timed out after {timeout:.0f}s", timed_out=True)

        if process.returncode != 0:
            error_msg = stderr.decode(errors="replace").strip() if stderr else "Unknown ffmpeg error"
            raise AudioToolError(
                f"{program} exited with {process.returncode}: {error_msg[:500]}",
                returncode=process.returncode,
                stderr=error_msg,
            )
        return stdout

    async def _run_to_file(self, args: List[str], output: PathLike, input_data: Optional[bytes] = None) -> Path:
        output = Path(output)
        try:
            await self.run(args, input_data=input_data)
        except AudioToolError:
            safe_unlink(output)
            raise
        if not verify_file_ready(output):
            safe_unlink(output)
            raise AudioToolError(f"ffmpeg produced no output at {output}")
        return output

    async def apply_filter(self, input_path: PathLike, output_path: PathLike, filter_expr: str) -> Path:
        """Re-encode ``input_path`` through an audio filter graph to mp3."""
        args = [
            "-hide_banner", "-loglevel", "error",
            "-i", str(input_path),
            "-af", filter_expr,
            "-ar", str(self.sample_rate),
            "-codec:a", "libmp3lame",
            "-b:a", self.bitrate,
            "-y", str(output_path),
        ]
        return await self._run_to_file(args, output_path)

    async def concat_bytes(self, buffers: Sequence[bytes], output_path: PathLike) -> Path:
        """Stream-copy concatenate mp3 buffers fed through stdin."""
        args = [
            "-hide_banner", "-loglevel", "error",
            "-f", "mp3", "-i", "pipe:0",
            "-c", "copy",
            "-y", str(output_path),
        ]
        return await self._run_to_file(args, output_path, input_data=b"".join(buffers))

    async def concat_files(self, inputs: Sequence[PathLike], output_path: PathLike, list_path: PathLike) -> Path:
        """Stream-copy concatenate files with the concat demuxer."""
        list_path = Path(list_path)
        lines = []
        for path in inputs:
            escaped = str(Path(path).resolve()).replace("'", "'\\''")
            lines.append(f"file '{escaped}'")
        list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")

        args = [
            "-hide_banner", "-loglevel", "error",
            "-f", "concat", "-safe", "0",
            "-i", str(list_path),
            "-c", "copy",
            "-y", str(output_path),
        ]
        try:
            return await self._run_to_file(args, output_path)
        finally:
            safe_unlink(list_path)

    async def probe_duration(self, path: PathLike) -> Optional[float]:
        """Duration in seconds, or None when it cannot be determined."""
        args = [
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        try:
            stdout = await self.run(args, program=self.ffprobe_path, timeout=min(self.timeout, 60.0))
        except AudioToolError as e:
            logger.warning(f"ffprobe failed for {path}: {e}")
            return None

        try:
            duration = float(stdout.decode().strip())
        except ValueError:
            logger.warning(f"Unparseable duration for {path}: {stdout[:50]!r}")
            return None
        return duration if duration > 0 else None
