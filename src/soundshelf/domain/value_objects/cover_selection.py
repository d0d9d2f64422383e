"""Cover picture stream selection.

Hey future me - embedded cover art shows up in ffprobe as a VIDEO stream with the
"attached_pic" disposition. Which one is the front cover depends on the container:

1. ID3 (MP3): APIC frames carry their picture type in the "comment" tag, the front
   cover is literally comment="Cover (front)".
2. Vorbis/FLAC pictures: ffmpeg doesn't set a comment at all.
3. A standalone "cover.jpg"/"cover.png" probes as a still-image format whose first
   video stream IS the picture.

First match wins, in that order.
"""

from soundshelf.domain.value_objects.probe import ProbeReport, ProbeStream

FRONT_COVER_COMMENT = "Cover (front)"

# Sidecar picture files used for tracks without an embedded cover (compared lowercased)
DIRECTORY_COVER_NAMES = ("cover.jpg", "cover.png")

# ffprobe demuxer names for single still images
STILL_IMAGE_FORMATS = frozenset(
    {"image2", "jpeg_pipe", "png_pipe", "webp_pipe", "bmp_pipe", "gif_pipe"}
)


def _attached_pictures(report: ProbeReport) -> list[ProbeStream]:
    return [s for s in report.streams or () if s.is_video and s.attached_pic]


def select_cover_stream(report: ProbeReport) -> ProbeStream | None:
    """Choose the stream holding this file's cover picture, if any."""
    pictures = _attached_pictures(report)

    for stream in pictures:
        if stream.tags.get("comment") == FRONT_COVER_COMMENT:
            return stream

    for stream in pictures:
        if "comment" not in stream.tags:
            return stream

    if report.format is not None and report.format.format_name in STILL_IMAGE_FORMATS:
        for stream in report.streams or ():
            if stream.is_video:
                return stream

    return None


def is_directory_cover_name(file_name: str) -> bool:
    """True for "cover.jpg"/"cover.png" in any letter case."""
    return file_name.lower() in DIRECTORY_COVER_NAMES
