"""External tool integrations (ffprobe, ffmpeg)."""

from soundshelf.infrastructure.integrations.ffmpeg_hasher import FfmpegStreamHasher
from soundshelf.infrastructure.integrations.ffprobe_client import FfprobeClient

__all__ = [
    "FfmpegStreamHasher",
    "FfprobeClient",
]
