"""Shared subprocess runner for the external media tools.

Hey future me - ffprobe/ffmpeg have NO timeout of their own here. The caller owns
abort: when the awaiting task gets cancelled (a newer scan request, shutdown), we
kill the child and reap it BEFORE letting CancelledError continue. Otherwise every
cancelled scan would leave an ffmpeg zombie chewing through a FLAC file.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of one tool run."""

    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()


async def run_process(args: list[str]) -> ProcessResult | None:
    """Run a command with stdin closed and capture its output.

    Returns:
        ProcessResult, or None if the executable could not be started
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        logger.warning(f"Executable not found: {args[0]}")
        return None
    except OSError as e:
        logger.warning(f"Failed to start {args[0]}: {e}")
        return None

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        # Reap the child, but never swallow the cancellation itself
        with contextlib.suppress(Exception):
            await asyncio.shield(process.wait())
        raise

    return ProcessResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout or b"",
        stderr=stderr or b"",
    )
