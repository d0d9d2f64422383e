"""initial catalog schema

Revision ID: 0001_initial_catalog
Revises:
Create Date: 2026-10-16 10:00:00.000000

Hey future me - THE WHOLE CATALOG IN ONE GO!

Table order matters for the foreign keys:
    libraries -> directories -> files -> pictures
    artists, genres -> albums (cover -> pictures) -> tracks -> track_genres

ON DELETE rules:
- CASCADE down the storage tree (library -> directory -> file -> picture/track)
- RESTRICT from tracks/albums to artists, albums and genres (catalog rows are never
  removed by a scan, only by hand and only when unreferenced)
- SET NULL for cover picture references

SQLite only enforces these with PRAGMA foreign_keys=ON, Database turns it on per connection.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial_catalog"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create all catalog tables."""
    op.create_table(
        "libraries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("path", sa.String(4096), nullable=False),
        sa.Column("is_access_controlled", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("content_modified", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "directories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "library_id",
            sa.Integer(),
            sa.ForeignKey("libraries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        # NULL parent = library root
        sa.Column(
            "parent_id",
            sa.Integer(),
            sa.ForeignKey("directories.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("path", sa.String(4096), nullable=False),
        sa.Column("added", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("library_id", "path", name="uq_directories_library_path"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_directories_parent", "directories", ["parent_id"])

    op.create_table(
        "files",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "library_id",
            sa.Integer(),
            sa.ForeignKey("libraries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "directory_id",
            sa.Integer(),
            sa.ForeignKey("directories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(1024), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("mtime", sa.DateTime(timezone=True), nullable=False),
        sa.Column("format_name", sa.String(64), nullable=True),
        sa.Column("added", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("directory_id", "name", name="uq_files_directory_name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "pictures",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "file_id",
            sa.Integer(),
            sa.ForeignKey("files.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("stream_index", sa.Integer(), nullable=False),
        sa.Column("stream_hash", sa.BigInteger(), nullable=False),
        sa.UniqueConstraint("file_id", "stream_index", name="uq_pictures_file_stream"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_pictures_stream_hash", "pictures", ["stream_hash"])

    op.create_table(
        "artists",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        # NULL name = unknown artist (one shared row)
        sa.Column("name", sa.String(1024), nullable=True),
        sa.Column("sort_name", sa.String(1024), nullable=True),
        sa.Column("added", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dirty", sa.Boolean(), nullable=False, server_default="0"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_artists_name", "artists", ["name"])
    op.create_index("ix_artists_dirty", "artists", ["dirty"])

    op.create_table(
        "genres",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "albums",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "artist_id",
            sa.Integer(),
            sa.ForeignKey("artists.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column(
            "cover_picture_id",
            sa.Integer(),
            sa.ForeignKey("pictures.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "genre_id",
            sa.Integer(),
            sa.ForeignKey("genres.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("date", sa.Integer(), nullable=True),  # YYYY0000
        sa.Column("original_date", sa.Integer(), nullable=True),
        # NULL title = "no album" placeholder of the artist
        sa.Column("title", sa.String(1024), nullable=True),
        sa.Column("sort_title", sa.String(1024), nullable=True),
        sa.Column("added", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dirty", sa.Boolean(), nullable=False, server_default="0"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_albums_identity", "albums", ["artist_id", "title", "date"])
    op.create_index("ix_albums_dirty", "albums", ["dirty"])

    op.create_table(
        "tracks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "file_id",
            sa.Integer(),
            sa.ForeignKey("files.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("stream_index", sa.Integer(), nullable=False),
        sa.Column("codec_name", sa.String(64), nullable=True),
        sa.Column("bit_rate", sa.Integer(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column(
            "artist_id",
            sa.Integer(),
            sa.ForeignKey("artists.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "album_id",
            sa.Integer(),
            sa.ForeignKey("albums.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "genre_id",
            sa.Integer(),
            sa.ForeignKey("genres.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column(
            "cover_picture_id",
            sa.Integer(),
            sa.ForeignKey("pictures.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("artist_sort_name", sa.String(1024), nullable=True),
        sa.Column("album_sort_title", sa.String(1024), nullable=True),
        sa.Column("disc_number", sa.Integer(), nullable=True),
        sa.Column("track_number", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(1024), nullable=False),
        sa.Column("sort_title", sa.String(1024), nullable=True),
        sa.Column("date", sa.Integer(), nullable=True),
        sa.Column("original_date", sa.Integer(), nullable=True),
        sa.Column("album_gain", sa.Float(), nullable=True),
        sa.Column("track_gain", sa.Float(), nullable=True),
        sa.UniqueConstraint("file_id", "stream_index", name="uq_tracks_file_stream"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_tracks_artist", "tracks", ["artist_id"])
    op.create_index("ix_tracks_album", "tracks", ["album_id"])
    op.create_index("ix_tracks_cover_picture", "tracks", ["cover_picture_id"])

    op.create_table(
        "track_genres",
        sa.Column(
            "track_id",
            sa.Integer(),
            sa.ForeignKey("tracks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "genre_id",
            sa.Integer(),
            sa.ForeignKey("genres.id", ondelete="RESTRICT"),
            primary_key=True,
        ),
    )


def downgrade() -> None:
    """Drop all catalog tables (reverse dependency order)."""
    op.drop_table("track_genres")
    op.drop_index("ix_tracks_cover_picture", table_name="tracks")
    op.drop_index("ix_tracks_album", table_name="tracks")
    op.drop_index("ix_tracks_artist", table_name="tracks")
    op.drop_table("tracks")
    op.drop_index("ix_albums_dirty", table_name="albums")
    op.drop_index("ix_albums_identity", table_name="albums")
    op.drop_table("albums")
    op.drop_table("genres")
    op.drop_index("ix_artists_dirty", table_name="artists")
    op.drop_index("ix_artists_name", table_name="artists")
    op.drop_table("artists")
    op.drop_index("ix_pictures_stream_hash", table_name="pictures")
    op.drop_table("pictures")
    op.drop_table("files")
    op.drop_index("ix_directories_parent", table_name="directories")
    op.drop_table("directories")
    op.drop_table("libraries")
