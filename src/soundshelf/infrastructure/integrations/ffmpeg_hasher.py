"""ffmpeg stream hasher - content digest of one elementary stream.

Yo, this is what makes cover art change detection cheap: instead of storing picture bytes we
let ffmpeg copy ONE stream into its "hash" muxer and keep only the leading 64 bits of the
digest. Same digest as last scan -> the Picture row stays untouched.

Command:
    ffmpeg -nostdin -v fatal -i <path> -map 0:<index> -c copy -f hash -hash <alg> -

Output (stdout):
    SHA256=3a1f...e9
"""

import logging
import string
from pathlib import Path

from soundshelf.config import ScannerSettings
from soundshelf.domain.ports import IStreamHasher
from soundshelf.infrastructure.integrations.process_runner import run_process

logger = logging.getLogger(__name__)

# Upper bound for any digest the hash muxer offers
MAX_DIGEST_BYTES = 128

_HEX_DIGITS = frozenset(string.hexdigits)


def build_hash_args(
    executable: str, path: Path, stream_index: int, algorithm: str
) -> list[str]:
    """Build the ffmpeg argument vector for hashing one stream."""
    return [
        executable,
        "-nostdin",
        "-v",
        "fatal",
        "-i",
        str(path),
        "-map",
        f"0:{stream_index}",
        "-c",
        "copy",
        "-f",
        "hash",
        "-hash",
        algorithm,
        "-",
    ]


def parse_hash_output(text: str) -> bytes | None:
    """Parse "<ALG>=<hex>" into raw digest bytes.

    Returns:
        Digest bytes, or None if the line is malformed (no '=', empty value,
        odd number of digits, non-hex characters, longer than MAX_DIGEST_BYTES)
    """
    lines = text.splitlines()
    if not lines:
        return None
    _, sep, value = lines[0].partition("=")
    if not sep:
        return None
    value = value.strip()
    if not value or len(value) % 2 != 0:
        return None
    if any(c not in _HEX_DIGITS for c in value):
        return None
    if len(value) // 2 > MAX_DIGEST_BYTES:
        return None
    return bytes.fromhex(value)


def digest_to_int64(digest: bytes) -> int:
    """Leading 8 bytes of a digest as a signed big-endian 64-bit integer.

    Shorter digests are left-padded with zero bytes. The result fits a BIGINT column.
    """
    head = digest[:8].rjust(8, b"\x00")
    return int.from_bytes(head, byteorder="big", signed=True)


class FfmpegStreamHasher(IStreamHasher):
    """IStreamHasher backed by ffmpeg's hash muxer."""

    def __init__(self, settings: ScannerSettings) -> None:
        """Initialize hasher.

        Args:
            settings: Scanner settings (ffmpeg_path, hash_algorithm understood by the hash muxer)
        """
        self.settings = settings

    async def hash_stream(self, path: Path, stream_index: int) -> bytes | None:
        args = build_hash_args(
            self.settings.ffmpeg_path, path, stream_index, self.settings.hash_algorithm
        )
        result = await run_process(args)
        if result is None:
            return None
        if result.returncode != 0:
            logger.debug(
                f"ffmpeg hash failed for {path} stream {stream_index} "
                f"(exit code {result.returncode}): {result.stderr_text}"
            )
            return None

        digest = parse_hash_output(result.stdout.decode("ascii", errors="replace"))
        if digest is None:
            logger.warning(f"Unexpected ffmpeg hash output for {path} stream {stream_index}")
        return digest
