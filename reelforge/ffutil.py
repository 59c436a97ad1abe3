"""FFmpeg/ffprobe subprocess helpers."""

import asyncio
import logging
import math
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from reelforge.errors import FFmpegNotFoundError, ToolUnavailableError, UnparsableOutputError

logger = logging.getLogger(__name__)

# Level prefixes emitted with ``-loglevel level+...``.
ERROR_LEVELS = ("[error]", "[fatal]", "[panic]")
# The level tag follows an optional "[component @ 0x...]" context tag.
LEVEL_TAG_RE = re.compile(r"\s*(?:\[[^\]]* @ 0x[0-9a-fA-F]+\]\s*)?\[([a-z]+)\]")
TERMINATE_GRACE_SECONDS = 3.0


def check_ffmpeg(ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in (ffmpeg, ffprobe):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def parse_duration(stdout: str, path: Path | None = None) -> float:
    """Parse the single seconds value printed by a format=duration probe."""
    text = stdout.strip()
    try:
        value = float(text)
    except ValueError:
        raise UnparsableOutputError(f"Unparsable duration {text!r} for {path}", path=path) from None
    if not math.isfinite(value) or value <= 0:
        raise UnparsableOutputError(f"Duration {value} for {path} is not a positive number", path=path)
    return value


def parse_progress_line(line: str) -> float | None:
    """Return the encoded position in seconds from a ``-progress`` key=value line.

    ``out_time_us`` and ``out_time_ms`` both carry microseconds. Lines without a
    usable position (including ``out_time=N/A``) return None.
    """
    key, sep, value = line.strip().partition("=")
    if not sep:
        return None
    try:
        if key in ("out_time_us", "out_time_ms"):
            return max(int(value), 0) / 1_000_000
        if key == "out_time":
            h, m, s = value.split(":")
            return max(int(h) * 3600 + int(m) * 60 + float(s), 0.0)
    except ValueError:
        return None
    return None


def is_error_line(line: str) -> bool:
    """True if a diagnostic line carries an error-or-worse level prefix."""
    match = LEVEL_TAG_RE.match(line)
    return match is not None and f"[{match.group(1)}]" in ERROR_LEVELS


@dataclass
class EngineRun:
    """Outcome of one ffmpeg invocation."""

    returncode: int
    error_lines: list[str] = field(default_factory=list)
    tail: list[str] = field(default_factory=list)

    @property
    def details(self) -> str:
        lines = self.error_lines or self.tail
        return "\n".join(lines[-20:])


class MediaEngine:
    """Handle to the external media-processing engine (ffmpeg + ffprobe).

    Passed explicitly to everything that spawns a subprocess so tests can
    substitute a fake.
    """

    def __init__(
        self,
        ffmpeg: str = "ffmpeg",
        ffprobe: str = "ffprobe",
        probe_timeout: float = 30.0,
        max_parallel_probes: int = 4,
    ):
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe
        self.probe_timeout = probe_timeout
        self.max_parallel_probes = max_parallel_probes

    def check(self) -> None:
        check_ffmpeg(self.ffmpeg, self.ffprobe)

    async def probe_duration(self, path: Path) -> float:
        """Measure a media file's playable duration without decoding it."""
        cmd = [
            self.ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ToolUnavailableError(f"Could not start {self.ffprobe}: {e}", path=path) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            await _stop(proc)
            raise ToolUnavailableError(
                f"{self.ffprobe} timed out after {self.probe_timeout}s for {path}", path=path
            ) from None
        except BaseException:
            await _stop(proc)
            raise

        if proc.returncode != 0:
            msg = stderr.decode("utf-8", errors="replace").strip()
            raise UnparsableOutputError(
                f"{self.ffprobe} exited {proc.returncode} for {path}: {msg[-300:]}", path=path
            )
        return parse_duration(stdout.decode("utf-8", errors="replace"), path)

    async def run(
        self,
        args: list[str],
        on_position: Callable[[float], None] | None = None,
        timeout: float | None = None,
    ) -> EngineRun:
        """Run ffmpeg with *args*, streaming progress and diagnostics.

        Progress comes from ``-progress pipe:1`` markers on stdout. Diagnostic
        lines on stderr are classified by their level tag: error lines are
        captured, everything else is routine and only kept as a short tail.
        Cancelling the awaiting task terminates the subprocess.
        """
        cmd = [
            self.ffmpeg,
            "-hide_banner",
            "-nostats",
            "-loglevel", "level+info",
            "-progress", "pipe:1",
            *args,
        ]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            return EngineRun(returncode=-1, error_lines=[f"Could not start {self.ffmpeg}: {e}"])

        result = EngineRun(returncode=0)

        async def read_progress():
            assert proc.stdout is not None
            async for raw in proc.stdout:
                position = parse_progress_line(raw.decode("utf-8", errors="replace"))
                if position is not None and on_position:
                    on_position(position)

        async def read_diagnostics():
            assert proc.stderr is not None
            async for raw in proc.stderr:
                line = raw.decode("utf-8", errors="replace").rstrip()
                if not line:
                    continue
                if is_error_line(line):
                    result.error_lines.append(line)
                    logger.debug("ffmpeg: %s", line)
                result.tail = (result.tail + [line])[-20:]

        try:
            await asyncio.wait_for(
                asyncio.gather(read_progress(), read_diagnostics(), proc.wait()),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await _stop(proc)
            result.returncode = proc.returncode if proc.returncode is not None else -1
            result.error_lines.append(f"ffmpeg timed out after {timeout}s")
            return result
        except BaseException:
            await _stop(proc)
            raise

        result.returncode = proc.returncode
        return result


async def _stop(proc: asyncio.subprocess.Process) -> None:
    """Terminate a subprocess, escalating to SIGKILL after a grace period."""
    if proc.returncode is not None:
        return
    logger.info("Terminating pid %s", proc.pid)
    try:
        proc.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Process %s did not terminate, sending SIGKILL", proc.pid)
        proc.kill()
        await proc.wait()
