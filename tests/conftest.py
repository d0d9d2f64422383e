"""Shared fixtures: in-memory catalog database and fake media tools.

Hey future me - the scanner tests never run ffprobe/ffmpeg. FakeProber answers from a dict
keyed by file NAME (tmp_path differs per test), FakeHasher likewise keyed by
(file name, stream index). Anything not registered behaves like an unreadable file.
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from soundshelf.config import DatabaseSettings, Settings
from soundshelf.domain.ports import IMediaProber, IStreamHasher
from soundshelf.domain.value_objects import ProbeReport, ProbeSection
from soundshelf.infrastructure.persistence import Database


class FakeProber(IMediaProber):
    """IMediaProber answering from registered per-file JSON documents."""

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        # Documents returned only when PACKETS is requested
        self.packet_documents: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, ProbeSection]] = []

    def register(
        self,
        name: str,
        document: dict[str, Any],
        with_packets: dict[str, Any] | None = None,
    ) -> None:
        self.documents[name] = document
        if with_packets is not None:
            self.packet_documents[name] = with_packets

    async def probe(
        self, path: Path, sections: ProbeSection = ProbeSection.DEFAULT
    ) -> ProbeReport | None:
        self.calls.append((path.name, sections))
        if ProbeSection.PACKETS in sections and path.name in self.packet_documents:
            return ProbeReport.from_json(self.packet_documents[path.name], sections)
        document = self.documents.get(path.name)
        if document is None:
            return None
        return ProbeReport.from_json(document, sections)

    def probed_names(self) -> list[str]:
        return [name for name, _ in self.calls]


class FakeHasher(IStreamHasher):
    """IStreamHasher answering from registered digests."""

    def __init__(self) -> None:
        self.digests: dict[tuple[str, int], bytes] = {}
        self.calls: list[tuple[str, int]] = []

    async def hash_stream(self, path: Path, stream_index: int) -> bytes | None:
        self.calls.append((path.name, stream_index))
        return self.digests.get((path.name, stream_index))


def audio_document(
    tags: dict[str, str] | None = None,
    *,
    format_name: str = "flac",
    duration: str | None = "180.0",
    bit_rate: str | None = "900000",
    extra_streams: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """ffprobe-style JSON for a file with one audio stream (index 0)."""
    audio: dict[str, Any] = {"index": 0, "codec_type": "audio", "codec_name": "flac"}
    if bit_rate is not None:
        audio["bit_rate"] = bit_rate
    if duration is not None:
        audio["duration"] = duration
    return {
        "format": {"format_name": format_name, "size": "1000", "tags": dict(tags or {})},
        "streams": [audio, *(extra_streams or [])],
    }


def picture_stream(index: int, comment: str | None = None) -> dict[str, Any]:
    """An attached-picture video stream."""
    stream: dict[str, Any] = {
        "index": index,
        "codec_type": "video",
        "codec_name": "mjpeg",
        "disposition": {"attached_pic": 1},
    }
    if comment is not None:
        stream["tags"] = {"comment": comment}
    return stream


def image_document() -> dict[str, Any]:
    """ffprobe-style JSON for a standalone cover.jpg."""
    return {
        "format": {"format_name": "image2", "size": "2048"},
        "streams": [{"index": 0, "codec_type": "video", "codec_name": "mjpeg"}],
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(database=DatabaseSettings(url="sqlite+aiosqlite://"))


@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    """Fresh in-memory catalog per test."""
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
async def session(db: Database) -> AsyncGenerator[AsyncSession, None]:
    async with db.session_factory() as s:
        yield s


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def hasher() -> FakeHasher:
    return FakeHasher()


@pytest.fixture
def make_audio_document() -> Callable[..., dict[str, Any]]:
    return audio_document


@pytest.fixture
def make_picture_stream() -> Callable[..., dict[str, Any]]:
    return picture_stream


@pytest.fixture
def make_image_document() -> Callable[[], dict[str, Any]]:
    return image_document
