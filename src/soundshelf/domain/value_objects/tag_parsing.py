"""Tag normalization across competing tagging conventions.

Hey future me - ffprobe hands us tags exactly as the container stores them, and
every container has its own idea of naming:

- Vorbis comments (FLAC, Ogg, Opus): UPPERCASE keys - "ARTIST", "ARTISTSORT"
- ffmpeg's generic names for ID3 / MP4 / WMA: lowercase - "artist", "album_artist"
- MP4 sort atoms via ffmpeg: "sort_artist", "sort_album", "sort_name"
- ID3 frames ffmpeg doesn't rename: "TSO2", "TDOR", "TORY"
- WMA attributes: "WM/ArtistSortOrder", "WM/Year", ...

Each getter below tries a FIXED list of spellings in priority order and returns the
first one present. The order matters - don't "sort" these lists!

Parse failures never raise: an unparsable number/date/gain simply drops the field
(logged at DEBUG so a library full of broken tags doesn't flood the log).
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)


# =============================================================================
# KNOWN TAG KEYS (priority order!)
# =============================================================================

ARTIST_KEYS = (
    "ARTIST",  # Vorbis
    "artist",  # ffmpeg (ID3, MP4, WMA)
)
ARTIST_SORT_KEYS = (
    "ARTISTSORT",  # Vorbis
    "sort_artist",  # ffmpeg (MP4)
    "artist-sort",  # ffmpeg (ID3)
    "WM/ArtistSortOrder",  # WMA
)
ALBUM_ARTIST_KEYS = (
    "album_artist",  # ffmpeg (Vorbis, ID3, MP4, WMA)
    "ALBUMARTIST",  # Vorbis (when ffmpeg doesn't remap it)
)
ALBUM_KEYS = (
    "ALBUM",  # Vorbis
    "album",  # ffmpeg (ID3, MP4, WMA)
)
ALBUM_SORT_KEYS = (
    "ALBUMSORT",  # Vorbis
    "sort_album",  # ffmpeg (MP4)
    "album-sort",  # ffmpeg (ID3)
    "WM/AlbumSortOrder",  # WMA
)
DISC_KEYS = ("disc",)  # ffmpeg (Vorbis, ID3, MP4, WMA)
TRACK_KEYS = ("track",)  # ffmpeg (Vorbis, ID3, MP4, WMA)
TITLE_KEYS = (
    "TITLE",  # Vorbis
    "title",  # ffmpeg (ID3, MP4, WMA)
)
TITLE_SORT_KEYS = (
    "TITLESORT",  # Vorbis
    "sort_name",  # ffmpeg (MP4)
    "title-sort",  # ffmpeg (ID3)
    "WM/TitleSortOrder",  # WMA
)
DATE_KEYS = (
    "DATE",  # Vorbis
    "date",  # ffmpeg (ID3, MP4)
    "WM/Year",  # WMA
)
ORIGINAL_DATE_KEYS = (
    "ORIGINALDATE",  # Vorbis
    "ORIGINALYEAR",  # Vorbis
    "originalyear",  # ffmpeg (ID3)
    "WM/OriginalReleaseTime",  # WMA
    "WM/OriginalReleaseYear",  # WMA
    "TDOR",  # ID3v2.4
    "TORY",  # ID3v2.3
)
GENRE_KEYS = (
    "GENRE",  # Vorbis
    "genre",  # ffmpeg (ID3, MP4, WMA)
)
R128_ALBUM_GAIN_KEYS = ("R128_ALBUM_GAIN",)  # Opus
R128_TRACK_GAIN_KEYS = ("R128_TRACK_GAIN",)  # Opus
REPLAYGAIN_ALBUM_GAIN_KEYS = (
    "REPLAYGAIN_ALBUM_GAIN",  # Vorbis
    "replaygain_album_gain",  # ID3, MP4, WMA
)
REPLAYGAIN_TRACK_GAIN_KEYS = (
    "REPLAYGAIN_TRACK_GAIN",  # Vorbis
    "replaygain_track_gain",  # ID3, MP4, WMA
)

# R128 gains are relative to -23 LUFS, ReplayGain to -18 LUFS.
R128_TO_REPLAYGAIN_OFFSET_DB = 5.0

GENRE_SEPARATOR = ";"


# =============================================================================
# PRIMITIVE PARSERS
# =============================================================================

# Only an optional sign and ASCII digits - int() would also take " 7", "1_000", "٣"
INT_PATTERN = re.compile(r"^[+-]?[0-9]+$")
DECIMAL_PATTERN = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)$")
DECIBEL_SUFFIX = " dB"

INT16_MIN = -32768
INT16_MAX = 32767


def parse_int(value: str) -> int | None:
    """Parse a signed decimal integer, None if it isn't one."""
    if not INT_PATTERN.match(value):
        return None
    return int(value)


def parse_int_fraction(value: str) -> tuple[int, int | None] | None:
    """Parse "N" or "N/M" into (numerator, denominator).

    Examples:
        "7" -> (7, None), "3/12" -> (3, 12), "3/" -> None, "x" -> None
    """
    if "/" in value:
        numerator_text, denominator_text = value.split("/", 1)
        numerator = parse_int(numerator_text)
        denominator = parse_int(denominator_text)
        if numerator is None or denominator is None:
            return None
        return numerator, denominator

    numerator = parse_int(value)
    if numerator is None:
        return None
    return numerator, None


def parse_date(value: str) -> int | None:
    """Parse YYYY, YYYY-MM or YYYY-MM-DD[Thh:mm:ss...] into YYYYMMDD.

    Unknown month/day are encoded as 0, so "2004" -> 20040000 and
    "2004-07" -> 20040700. An out-of-range month or day drops the whole value.
    """
    if "-" not in value:
        year = parse_int(value)
        if year is None:
            return None
        return year * 10000

    # Strip time if specified
    date_part = value.split("T", 1)[0]
    fields = date_part.split("-", 2)

    year = parse_int(fields[0])
    if year is None:
        return None

    month = parse_int(fields[1])
    if month is None or not 1 <= month <= 12:
        return None

    if len(fields) == 2:
        return year * 10000 + month * 100

    day = parse_int(fields[2])
    if day is None or not 1 <= day <= 31:
        return None

    return year * 10000 + month * 100 + day


def parse_r128_gain(value: str) -> float | None:
    """Parse an R128 gain (signed 16-bit integer in 1/256 dB steps) into dB."""
    gain = parse_int(value)
    if gain is None or not INT16_MIN <= gain <= INT16_MAX:
        return None
    return gain / 256.0


def parse_decibel_value(value: str) -> float | None:
    """Parse a classic ReplayGain value like "-6.48 dB" into dB."""
    if not value.endswith(DECIBEL_SUFFIX):
        return None
    number = value[: -len(DECIBEL_SUFFIX)]
    if not DECIMAL_PATTERN.match(number):
        return None
    return float(number)


def split_genres(value: str) -> list[str]:
    """Split a ";"-separated genre tag, dropping blanks and duplicates (order kept)."""
    genres: list[str] = []
    for part in value.split(GENRE_SEPARATOR):
        name = part.strip()
        if name and name not in genres:
            genres.append(name)
    return genres


# =============================================================================
# FIELD GETTERS
# =============================================================================


def first_tag(tags: Mapping[str, str], keys: tuple[str, ...]) -> str | None:
    """Return the value of the first key in `keys` present in `tags`."""
    for key in keys:
        value = tags.get(key)
        if value is not None:
            return value
    return None


def get_artist_name(tags: Mapping[str, str]) -> str | None:
    return first_tag(tags, ARTIST_KEYS)


def get_artist_sort_name(tags: Mapping[str, str]) -> str | None:
    return first_tag(tags, ARTIST_SORT_KEYS)


def get_album_artist_name(tags: Mapping[str, str]) -> str | None:
    return first_tag(tags, ALBUM_ARTIST_KEYS)


def get_album_title(tags: Mapping[str, str]) -> str | None:
    return first_tag(tags, ALBUM_KEYS)


def get_album_sort_title(tags: Mapping[str, str]) -> str | None:
    return first_tag(tags, ALBUM_SORT_KEYS)


def get_track_title(tags: Mapping[str, str]) -> str | None:
    return first_tag(tags, TITLE_KEYS)


def get_track_sort_title(tags: Mapping[str, str]) -> str | None:
    return first_tag(tags, TITLE_SORT_KEYS)


def _get_positive_number(tags: Mapping[str, str], keys: tuple[str, ...], what: str) -> int | None:
    value = first_tag(tags, keys)
    if value is None:
        return None
    parsed = parse_int_fraction(value)
    if parsed is not None and parsed[0] > 0:
        return parsed[0]
    logger.debug(f"Failed to parse {what} number '{value}'")
    return None


def get_disc_number(tags: Mapping[str, str]) -> int | None:
    return _get_positive_number(tags, DISC_KEYS, "disc")


def get_track_number(tags: Mapping[str, str]) -> int | None:
    return _get_positive_number(tags, TRACK_KEYS, "track")


def _get_date(tags: Mapping[str, str], keys: tuple[str, ...]) -> int | None:
    value = first_tag(tags, keys)
    if value is None:
        return None
    date = parse_date(value)
    if date is None:
        logger.debug(f"Failed to parse date '{value}'")
    return date


def get_date(tags: Mapping[str, str]) -> int | None:
    return _get_date(tags, DATE_KEYS)


def get_original_date(tags: Mapping[str, str]) -> int | None:
    return _get_date(tags, ORIGINAL_DATE_KEYS)


def get_genre_names(tags: Mapping[str, str]) -> list[str]:
    value = first_tag(tags, GENRE_KEYS)
    if value is None:
        return []
    return split_genres(value)


def _get_gain(
    tags: Mapping[str, str],
    r128_keys: tuple[str, ...],
    replaygain_keys: tuple[str, ...],
    r128_offset: float,
    what: str,
) -> float | None:
    # R128 wins when both conventions are present
    value = first_tag(tags, r128_keys)
    if value is not None:
        gain = parse_r128_gain(value)
        if gain is not None:
            return gain + r128_offset
        logger.debug(f"Failed to parse {what} R128 gain '{value}'")

    value = first_tag(tags, replaygain_keys)
    if value is not None:
        gain = parse_decibel_value(value)
        if gain is not None:
            return gain
        logger.debug(f"Failed to parse {what} ReplayGain '{value}'")

    return None


def get_album_gain(tags: Mapping[str, str]) -> float | None:
    return _get_gain(tags, R128_ALBUM_GAIN_KEYS, REPLAYGAIN_ALBUM_GAIN_KEYS, 0.0, "album")


def get_track_gain(tags: Mapping[str, str]) -> float | None:
    return _get_gain(
        tags,
        R128_TRACK_GAIN_KEYS,
        REPLAYGAIN_TRACK_GAIN_KEYS,
        R128_TO_REPLAYGAIN_OFFSET_DB,
        "track",
    )


# =============================================================================
# NORMALIZED RESULT
# =============================================================================


@dataclass(frozen=True)
class NormalizedTags:
    """Canonical per-track metadata extracted from a merged tag dictionary.

    album_artist_name already falls back to artist_name. Sort values equal to
    their display value are normalized to None.
    """

    artist_name: str | None = None
    artist_sort_name: str | None = None
    album_artist_name: str | None = None
    album_title: str | None = None
    album_sort_title: str | None = None
    disc_number: int | None = None
    track_number: int | None = None
    title: str | None = None
    sort_title: str | None = None
    date: int | None = None
    original_date: int | None = None
    genres: tuple[str, ...] = ()
    album_gain: float | None = None
    track_gain: float | None = None

    @property
    def primary_genre(self) -> str | None:
        return self.genres[0] if self.genres else None


def _sort_value(sort_value: str | None, display_value: str | None) -> str | None:
    return None if sort_value == display_value else sort_value


def normalize_tags(tags: Mapping[str, str]) -> NormalizedTags:
    """Map a merged (format + stream) tag dictionary to canonical fields."""
    artist_name = get_artist_name(tags)
    album_title = get_album_title(tags)
    title = get_track_title(tags)
    album_artist_name = get_album_artist_name(tags)
    if album_artist_name is None:
        album_artist_name = artist_name

    return NormalizedTags(
        artist_name=artist_name,
        artist_sort_name=_sort_value(get_artist_sort_name(tags), artist_name),
        album_artist_name=album_artist_name,
        album_title=album_title,
        album_sort_title=_sort_value(get_album_sort_title(tags), album_title),
        disc_number=get_disc_number(tags),
        track_number=get_track_number(tags),
        title=title,
        sort_title=_sort_value(get_track_sort_title(tags), title),
        date=get_date(tags),
        original_date=get_original_date(tags),
        genres=tuple(get_genre_names(tags)),
        album_gain=get_album_gain(tags),
        track_gain=get_track_gain(tags),
    )
