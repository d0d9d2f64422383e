"""Structured media probe report (what ffprobe tells us about one file).

Hey future me - this is the ffprobe JSON output turned into frozen dataclasses.
ffprobe prints almost every number as a STRING ("bit_rate": "320000"), omits
keys it doesn't know, and sometimes prints "N/A". All numeric fields are parsed
leniently here (garbage -> None), only structurally broken documents (not an
object, stream without index) raise ValueError so the client can treat them
like a failed probe.

Usage:
    report = ProbeReport.from_json(json.loads(stdout), sections)
    for stream in report.audio_streams():
        ...
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Flag, auto
from typing import Any


class ProbeSection(Flag):
    """Report sections requested from the probe tool."""

    NONE = 0
    ERROR = auto()
    FORMAT = auto()
    STREAMS = auto()
    PACKETS = auto()

    DEFAULT = ERROR | FORMAT | STREAMS


def _parse_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _parse_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def _parse_tags(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def preferred_format_name(format_name: str) -> str:
    """Pick one name out of ffprobe's comma-joined demuxer names.

    "mov,mp4,m4a,3gp,3g2,mj2" -> "mp4"; anything else is returned unchanged.
    """
    if "," in format_name and "mp4" in format_name.split(","):
        return "mp4"
    return format_name


@dataclass(frozen=True)
class ProbeErrorInfo:
    """Top-level error reported by the probe tool."""

    code: int | None
    message: str


@dataclass(frozen=True)
class ProbeFormat:
    """Container-level information."""

    format_name: str
    duration: float | None = None
    size: int | None = None
    bit_rate: int | None = None
    tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "ProbeFormat":
        return cls(
            format_name=str(data.get("format_name") or ""),
            duration=_parse_float(data.get("duration")),
            size=_parse_int(data.get("size")),
            bit_rate=_parse_int(data.get("bit_rate")),
            tags=_parse_tags(data.get("tags")),
        )


@dataclass(frozen=True)
class ProbeStream:
    """One elementary stream."""

    index: int
    codec_type: str | None = None
    codec_name: str | None = None
    bit_rate: int | None = None
    duration: float | None = None
    attached_pic: bool = False
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def is_audio(self) -> bool:
        return self.codec_type == "audio"

    @property
    def is_video(self) -> bool:
        return self.codec_type == "video"

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "ProbeStream":
        index = _parse_int(data.get("index"))
        if index is None:
            raise ValueError(f"Stream without a valid index: {data.get('index')!r}")
        disposition = data.get("disposition")
        attached_pic = False
        if isinstance(disposition, Mapping):
            attached_pic = _parse_int(disposition.get("attached_pic")) == 1
        return cls(
            index=index,
            codec_type=data.get("codec_type"),
            codec_name=data.get("codec_name"),
            bit_rate=_parse_int(data.get("bit_rate")),
            duration=_parse_float(data.get("duration")),
            attached_pic=attached_pic,
            tags=_parse_tags(data.get("tags")),
        )


@dataclass(frozen=True)
class ProbePacket:
    """Per-packet size/duration (only present when PACKETS was requested)."""

    stream_index: int
    size: int | None = None
    duration: float | None = None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "ProbePacket":
        stream_index = _parse_int(data.get("stream_index"))
        if stream_index is None:
            raise ValueError("Packet without a stream index")
        return cls(
            stream_index=stream_index,
            size=_parse_int(data.get("size")),
            duration=_parse_float(data.get("duration_time")),
        )


@dataclass(frozen=True)
class ProbeReport:
    """Everything one probe invocation returned."""

    sections: ProbeSection
    format: ProbeFormat | None = None
    streams: tuple[ProbeStream, ...] | None = None
    packets: tuple[ProbePacket, ...] | None = None
    error: ProbeErrorInfo | None = None

    @classmethod
    def from_json(cls, data: Any, sections: ProbeSection) -> "ProbeReport":
        """Build a report from parsed ffprobe JSON output.

        Raises:
            ValueError: If the document is structurally malformed
        """
        if not isinstance(data, Mapping):
            raise ValueError("Probe output is not a JSON object")

        error = None
        raw_error = data.get("error")
        if raw_error is not None:
            if isinstance(raw_error, Mapping):
                error = ProbeErrorInfo(
                    code=_parse_int(raw_error.get("code")),
                    message=str(raw_error.get("string") or ""),
                )
            else:
                error = ProbeErrorInfo(code=None, message=str(raw_error))

        fmt = None
        raw_format = data.get("format")
        if raw_format is not None:
            if not isinstance(raw_format, Mapping):
                raise ValueError("Probe 'format' section is not an object")
            fmt = ProbeFormat.from_json(raw_format)

        streams = None
        raw_streams = data.get("streams")
        if raw_streams is not None:
            if not isinstance(raw_streams, list):
                raise ValueError("Probe 'streams' section is not a list")
            streams = tuple(ProbeStream.from_json(s) for s in raw_streams)

        packets = None
        raw_packets = data.get("packets")
        if raw_packets is not None:
            if not isinstance(raw_packets, list):
                raise ValueError("Probe 'packets' section is not a list")
            packets = tuple(ProbePacket.from_json(p) for p in raw_packets)

        return cls(
            sections=sections,
            format=fmt,
            streams=streams,
            packets=packets,
            error=error,
        )

    @property
    def is_complete(self) -> bool:
        """True when both the format and the streams sections are present."""
        return self.format is not None and self.streams is not None

    def audio_streams(self) -> list[ProbeStream]:
        return [s for s in self.streams or () if s.is_audio]

    def needs_packet_detail(self) -> bool:
        """True if some audio stream lacks a usable duration or bit rate.

        Packet-level detail lets us derive both, but it makes ffprobe read the
        whole file - so only ask for it when packets weren't requested yet.
        """
        if ProbeSection.PACKETS in self.sections or not self.is_complete:
            return False
        format_duration = self.format.duration if self.format else None
        for stream in self.audio_streams():
            if format_duration is None and stream.duration is None:
                return True
            if stream.bit_rate is None:
                return True
        return False

    def packet_totals(self, stream_index: int) -> tuple[int, float]:
        """Sum (bytes, seconds) over the packets of one stream that carry a duration."""
        total_bytes = 0
        total_seconds = 0.0
        for packet in self.packets or ():
            if packet.stream_index == stream_index and packet.duration is not None:
                total_bytes += packet.size or 0
                total_seconds += packet.duration
        return total_bytes, total_seconds

    def stream_bit_rate(self, stream: ProbeStream) -> int | None:
        """Stream bit rate, falling back to the packet aggregate."""
        if stream.bit_rate is not None:
            return stream.bit_rate
        if self.packets is not None:
            total_bytes, total_seconds = self.packet_totals(stream.index)
            if total_seconds > 0:
                return round(total_bytes * 8 / total_seconds)
        return None

    def stream_duration(self, stream: ProbeStream) -> float | None:
        """Duration: stream -> container -> packet aggregate -> size/bit rate."""
        if stream.duration is not None:
            return stream.duration
        if self.format is not None and self.format.duration is not None:
            return self.format.duration
        if self.packets is not None:
            _, total_seconds = self.packet_totals(stream.index)
            if total_seconds > 0:
                return total_seconds
        bit_rate = self.stream_bit_rate(stream)
        if bit_rate and bit_rate > 0 and self.format is not None and self.format.size is not None:
            return self.format.size * 8 / bit_rate
        return None

    def merged_tags(self, stream: ProbeStream) -> dict[str, str]:
        """Format-level tags overlaid with stream-level tags (stream wins)."""
        tags: dict[str, str] = {}
        if self.format is not None:
            tags.update(self.format.tags)
        tags.update(stream.tags)
        return tags
