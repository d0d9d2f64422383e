"""Domain value objects."""

from soundshelf.domain.value_objects.cover_selection import (
    is_directory_cover_name,
    select_cover_stream,
)
from soundshelf.domain.value_objects.probe import (
    ProbeErrorInfo,
    ProbeFormat,
    ProbePacket,
    ProbeReport,
    ProbeSection,
    ProbeStream,
    preferred_format_name,
)
from soundshelf.domain.value_objects.tag_parsing import NormalizedTags, normalize_tags

__all__ = [
    "NormalizedTags",
    "ProbeErrorInfo",
    "ProbeFormat",
    "ProbePacket",
    "ProbeReport",
    "ProbeSection",
    "ProbeStream",
    "is_directory_cover_name",
    "normalize_tags",
    "preferred_format_name",
    "select_cover_stream",
]
