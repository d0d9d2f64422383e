"""Ports (interfaces) for the external media tools.

Hey future me - the scanner only talks to these interfaces, never to subprocess
directly. The real implementations live in infrastructure/integrations/
(FfprobeClient, FfmpegStreamHasher); tests plug in in-memory fakes.

FLOW:
    LibraryScannerService
        ├─► IMediaProber.probe(path, sections)        -> ProbeReport | None
        └─► IStreamHasher.hash_stream(path, index)    -> bytes | None

Both return None for "tool failed / output unusable" - that's an expected
per-file outcome, NOT an exception. Cancellation (asyncio.CancelledError) is the
only thing that escapes.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from soundshelf.domain.value_objects.probe import ProbeReport, ProbeSection


class IMediaProber(ABC):
    """Inspects one media file and reports container/stream/tag information."""

    @abstractmethod
    async def probe(
        self, path: Path, sections: ProbeSection = ProbeSection.DEFAULT
    ) -> ProbeReport | None:
        """Probe a file.

        Args:
            path: Media file to inspect
            sections: Report sections to request

        Returns:
            Parsed report, or None if the tool failed or its output was unusable
        """
        ...


class IStreamHasher(ABC):
    """Computes a content digest of one elementary stream of a file."""

    @abstractmethod
    async def hash_stream(self, path: Path, stream_index: int) -> bytes | None:
        """Digest a stream.

        Args:
            path: Media file
            stream_index: Index of the stream to digest

        Returns:
            Raw digest bytes, or None on failure
        """
        ...


__all__ = ["IMediaProber", "IStreamHasher"]
