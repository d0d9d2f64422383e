"""SQLAlchemy ORM models for the soundshelf catalog."""

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import (
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Hey future me, utc_now() ensures ALL timestamps are UTC! Never use datetime.now() without
# timezone - that's "naive" datetime and causes bugs when the server timezone changes.
def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! When we store UTC datetimes, they come
# back as "naive" (no tzinfo). The scanner compares stored file mtimes against fresh os.stat()
# values - ALWAYS run both through this helper or the comparison raises "can't compare
# offset-naive and offset-aware datetimes" TypeError.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# Hey future me - every table sets sqlite_autoincrement. Without it SQLite hands a deleted row's id
# to the next insert, and a cover picture replaced in the same transaction would come back
# with the SAME id as the one it replaced.
class Base(DeclarativeBase):
    """Base class for all ORM models.

    All models inherit from this to use the same metadata registry.
    """

    pass


# Yo, a Library is one configured music root. content_modified is bumped whenever ANY directory
# or file below it is added/changed/removed - clients use it to decide whether their cached
# listing is stale. It only ever moves forward.
class LibraryModel(Base):
    """A configured library root."""

    __tablename__ = "libraries"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    path: Mapped[str] = mapped_column(String(4096), nullable=False)
    is_access_controlled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    content_modified: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )


# Listen up, directories form a TREE per library: parent_id NULL marks the library root.
# ON DELETE CASCADE on parent_id means deleting a directory removes the whole subtree in the DB,
# the repository still deletes the descendants' tracks/pictures explicitly first (see
# DirectoryRepository.delete) so cover references get nulled and albums marked dirty.
class DirectoryModel(Base):
    """A directory below a library root."""

    __tablename__ = "directories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    library_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("libraries.id", ondelete="CASCADE"), nullable=False
    )
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("directories.id", ondelete="CASCADE"), nullable=True
    )
    path: Mapped[str] = mapped_column(String(4096), nullable=False)
    added: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("library_id", "path", name="uq_directories_library_path"),
        Index("ix_directories_parent", "parent_id"),
        {"sqlite_autoincrement": True},
    )


class FileModel(Base):
    """A file inside a catalogued directory."""

    __tablename__ = "files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    library_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("libraries.id", ondelete="CASCADE"), nullable=False
    )
    directory_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("directories.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(1024), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # Hey future me - mtime is compared with the on-disk value to decide whether a file needs
    # re-probing. It's stored timezone-aware, but SQLite hands it back naive: ensure_utc_aware!
    mtime: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    format_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    added: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        UniqueConstraint("directory_id", "name", name="uq_files_directory_name"),
        {"sqlite_autoincrement": True},
    )


# Yo, a Picture is one cover-art stream inside a File. stream_hash holds the leading 64 bits of
# the stream digest - only used to detect "same cover as last scan, leave it alone".
class PictureModel(Base):
    """A cover picture stream of a file."""

    __tablename__ = "pictures"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False
    )
    stream_index: Mapped[int] = mapped_column(Integer, nullable=False)
    stream_hash: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("file_id", "stream_index", name="uq_pictures_file_stream"),
        {"sqlite_autoincrement": True},
    )


# Hey future me - name NULL is a real artist row: "unknown artist". It is deduplicated like any
# other name (the reconciler matches NULL with IS NULL), so all untagged tracks share ONE row.
# dirty=True means "a track feeding sort_name changed", the fixup pass recomputes and clears it.
class ArtistModel(Base):
    """An artist (track artist or album artist)."""

    __tablename__ = "artists"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String(1024), nullable=True, index=True)
    sort_name: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    added: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    dirty: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )


class GenreModel(Base):
    """A genre name."""

    __tablename__ = "genres"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)


# Listen up, album identity is (artist_id, title, date) where date is YEAR-BUCKETED (YYYY0000).
# title NULL is the placeholder "tracks without an album" row per artist - never list it as an
# album! Its date is always NULL so there's exactly one placeholder per album artist.
# cover/genre/sort_title/original_date are DERIVED by the fixup pass from the album's tracks.
class AlbumModel(Base):
    """An album (or the no-album placeholder of an artist)."""

    __tablename__ = "albums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    artist_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("artists.id", ondelete="RESTRICT"), nullable=True
    )
    cover_picture_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("pictures.id", ondelete="SET NULL"), nullable=True
    )
    genre_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("genres.id", ondelete="RESTRICT"), nullable=True
    )
    date: Mapped[int | None] = mapped_column(Integer, nullable=True)
    original_date: Mapped[int | None] = mapped_column(Integer, nullable=True)
    title: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    sort_title: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    added: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utc_now
    )
    dirty: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, index=True
    )

    __table_args__ = (
        Index("ix_albums_identity", "artist_id", "title", "date"),
        {"sqlite_autoincrement": True},
    )


# Hey future me - ONE track per audio stream of a file, keyed by (file_id, stream_index).
# artist_sort_name/album_sort_title are the RAW tag values of this track; the fixup pass takes
# the most frequent of them as the artist's/album's sort value. genre_id is the primary genre
# (first tag), the full genre list lives in track_genres.
class TrackModel(Base):
    """An audio stream of a file with its normalized tags."""

    __tablename__ = "tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("files.id", ondelete="CASCADE"), nullable=False
    )
    stream_index: Mapped[int] = mapped_column(Integer, nullable=False)
    codec_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bit_rate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)
    artist_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("artists.id", ondelete="RESTRICT"), nullable=False
    )
    album_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("albums.id", ondelete="RESTRICT"), nullable=False
    )
    genre_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("genres.id", ondelete="RESTRICT"), nullable=True
    )
    cover_picture_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("pictures.id", ondelete="SET NULL"), nullable=True
    )
    artist_sort_name: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    album_sort_title: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    disc_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    sort_title: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    date: Mapped[int | None] = mapped_column(Integer, nullable=True)
    original_date: Mapped[int | None] = mapped_column(Integer, nullable=True)
    album_gain: Mapped[float | None] = mapped_column(Float, nullable=True)
    track_gain: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("file_id", "stream_index", name="uq_tracks_file_stream"),
        Index("ix_tracks_artist", "artist_id"),
        Index("ix_tracks_album", "album_id"),
        Index("ix_tracks_cover_picture", "cover_picture_id"),
        {"sqlite_autoincrement": True},
    )


class TrackGenreModel(Base):
    """Association of a track with one of its genres."""

    __tablename__ = "track_genres"

    track_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), primary_key=True
    )
    genre_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("genres.id", ondelete="RESTRICT"), primary_key=True
    )
