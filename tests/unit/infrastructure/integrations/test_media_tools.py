"""Tests for the ffprobe/ffmpeg subprocess clients.

Hey future me - no real ffprobe here! asyncio.create_subprocess_exec is patched with an
AsyncMock returning a fake process, so these tests check argument vectors, output parsing
and the kill-on-cancel behaviour only.
"""

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from soundshelf.config import ScannerSettings
from soundshelf.domain.value_objects import ProbeSection
from soundshelf.infrastructure.integrations.ffmpeg_hasher import (
    MAX_DIGEST_BYTES,
    FfmpegStreamHasher,
    build_hash_args,
    digest_to_int64,
    parse_hash_output,
)
from soundshelf.infrastructure.integrations.ffprobe_client import (
    FfprobeClient,
    build_probe_args,
)
from soundshelf.infrastructure.integrations.process_runner import run_process

SPAWN = "asyncio.create_subprocess_exec"
DEFAULT_SETTINGS = ScannerSettings()


def _process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.returncode = returncode
    process.wait = AsyncMock(return_value=returncode)
    process.kill = MagicMock()
    return process


class TestRunProcess:
    """Test the shared subprocess runner."""

    async def test_captures_output(self) -> None:
        process = _process(stdout=b"out", stderr=b" warn \n", returncode=3)
        with patch(SPAWN, AsyncMock(return_value=process)) as spawn:
            result = await run_process(["tool", "arg"])

        assert result is not None
        assert result.returncode == 3
        assert result.stdout == b"out"
        assert result.stderr_text == "warn"
        assert spawn.call_args.args == ("tool", "arg")
        assert spawn.call_args.kwargs["stdin"] == asyncio.subprocess.DEVNULL

    async def test_missing_executable_returns_none(self) -> None:
        with patch(SPAWN, AsyncMock(side_effect=FileNotFoundError("nope"))):
            assert await run_process(["missing-tool"]) is None

    async def test_cancellation_kills_the_child(self) -> None:
        process = _process()
        process.communicate = AsyncMock(side_effect=asyncio.CancelledError())
        with patch(SPAWN, AsyncMock(return_value=process)):
            with pytest.raises(asyncio.CancelledError):
                await run_process(["ffprobe", "x"])

        process.kill.assert_called_once()
        process.wait.assert_awaited()


class TestFfprobeClient:
    """Test FfprobeClient."""

    def test_probe_args(self) -> None:
        args = build_probe_args("ffprobe", Path("/m/a.flac"), ProbeSection.DEFAULT)
        assert args == [
            "ffprobe",
            "-v",
            "fatal",
            "-print_format",
            "json",
            "-noshow_private_data",
            "-show_error",
            "-show_format",
            "-show_streams",
            "/m/a.flac",
        ]

    def test_probe_args_with_packets(self) -> None:
        args = build_probe_args(
            "ffprobe", Path("/m/a.ogg"), ProbeSection.DEFAULT | ProbeSection.PACKETS
        )
        assert "-show_packets" in args
        assert args[-1] == "/m/a.ogg"

    async def test_parses_report(self) -> None:
        document = {
            "format": {"format_name": "flac", "duration": "12.5", "tags": {"ARTIST": "A"}},
            "streams": [{"index": 0, "codec_type": "audio", "codec_name": "flac"}],
        }
        process = _process(stdout=json.dumps(document).encode())
        with patch(SPAWN, AsyncMock(return_value=process)):
            report = await FfprobeClient(DEFAULT_SETTINGS).probe(Path("/m/a.flac"))

        assert report is not None
        assert report.format is not None
        assert report.format.tags == {"ARTIST": "A"}
        assert report.audio_streams()[0].codec_name == "flac"

    async def test_configured_executable_is_spawned(self) -> None:
        process = _process(stdout=b"{}")
        settings = ScannerSettings(ffprobe_path="/opt/ffmpeg/bin/ffprobe")
        with patch(SPAWN, AsyncMock(return_value=process)) as spawn:
            await FfprobeClient(settings).probe(Path("/m/a.flac"))

        assert spawn.call_args.args[0] == "/opt/ffmpeg/bin/ffprobe"
        assert spawn.call_args.args[-1] == "/m/a.flac"

    async def test_error_section_is_returned(self) -> None:
        document = {"error": {"code": -2, "string": "No such file or directory"}}
        process = _process(stdout=json.dumps(document).encode(), returncode=1)
        with patch(SPAWN, AsyncMock(return_value=process)):
            report = await FfprobeClient(DEFAULT_SETTINGS).probe(Path("/m/gone.flac"))

        assert report is not None
        assert report.error is not None
        assert report.error.message == "No such file or directory"

    async def test_garbage_output_returns_none(self) -> None:
        process = _process(stdout=b"{not json")
        with patch(SPAWN, AsyncMock(return_value=process)):
            assert await FfprobeClient(DEFAULT_SETTINGS).probe(Path("/m/a.flac")) is None

    async def test_empty_output_returns_none(self) -> None:
        process = _process(stdout=b"", stderr=b"boom", returncode=1)
        with patch(SPAWN, AsyncMock(return_value=process)):
            assert await FfprobeClient(DEFAULT_SETTINGS).probe(Path("/m/a.flac")) is None

    async def test_missing_executable_returns_none(self) -> None:
        with patch(SPAWN, AsyncMock(side_effect=FileNotFoundError())):
            client = FfprobeClient(ScannerSettings(ffprobe_path="nope"))
            assert await client.probe(Path("/m/a.flac")) is None


class TestHashOutput:
    """Test digest line parsing."""

    def test_parses_hex_digest(self) -> None:
        assert parse_hash_output("SHA256=00ff10\n") == bytes([0x00, 0xFF, 0x10])

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "SHA256",
            "SHA256=",
            "SHA256=abc",
            "SHA256=zz",
            "SHA256=" + "00" * (MAX_DIGEST_BYTES + 1),
        ],
    )
    def test_rejects_malformed_lines(self, text: str) -> None:
        assert parse_hash_output(text) is None

    def test_only_first_line_counts(self) -> None:
        assert parse_hash_output("MD5=0a\nMD5=0b\n") == b"\x0a"

    def test_digest_keeps_leading_eight_bytes(self) -> None:
        digest = bytes.fromhex("0102030405060708ffff")
        assert digest_to_int64(digest) == 0x0102030405060708

    def test_digest_is_signed(self) -> None:
        assert digest_to_int64(b"\xff" * 8) == -1

    def test_short_digest_is_left_padded(self) -> None:
        assert digest_to_int64(b"\x01\x00") == 256


class TestFfmpegStreamHasher:
    """Test FfmpegStreamHasher."""

    def test_hash_args(self) -> None:
        args = build_hash_args("ffmpeg", Path("/m/a.mp3"), 2, "sha256")
        assert args == [
            "ffmpeg",
            "-nostdin",
            "-v",
            "fatal",
            "-i",
            "/m/a.mp3",
            "-map",
            "0:2",
            "-c",
            "copy",
            "-f",
            "hash",
            "-hash",
            "sha256",
            "-",
        ]

    async def test_returns_digest(self) -> None:
        process = _process(stdout=b"SHA256=" + b"ab" * 32 + b"\n")
        with patch(SPAWN, AsyncMock(return_value=process)) as spawn:
            digest = await FfmpegStreamHasher(DEFAULT_SETTINGS).hash_stream(Path("/m/a.mp3"), 1)

        assert digest == b"\xab" * 32
        assert "0:1" in spawn.call_args.args

    async def test_configured_executable_and_algorithm_are_used(self) -> None:
        process = _process(stdout=b"MD5=" + b"0f" * 16 + b"\n")
        settings = ScannerSettings(ffmpeg_path="/opt/ffmpeg/bin/ffmpeg", hash_algorithm="MD5")
        with patch(SPAWN, AsyncMock(return_value=process)) as spawn:
            digest = await FfmpegStreamHasher(settings).hash_stream(Path("/m/a.mp3"), 1)

        assert digest == b"\x0f" * 16
        args = spawn.call_args.args
        assert args[0] == "/opt/ffmpeg/bin/ffmpeg"
        assert args[args.index("-hash") + 1] == "md5"

    async def test_failed_exit_returns_none(self) -> None:
        process = _process(stderr=b"Stream map '0:9' matches no streams", returncode=1)
        with patch(SPAWN, AsyncMock(return_value=process)):
            hasher = FfmpegStreamHasher(DEFAULT_SETTINGS)
            assert await hasher.hash_stream(Path("/m/a.mp3"), 9) is None

    async def test_malformed_output_returns_none(self) -> None:
        process = _process(stdout=b"garbage\n")
        with patch(SPAWN, AsyncMock(return_value=process)):
            hasher = FfmpegStreamHasher(DEFAULT_SETTINGS)
            assert await hasher.hash_stream(Path("/m/a.mp3"), 1) is None
