"""Get-or-create for the shared catalog entities (Artist, Album, Genre).

Hey future me - ONE scan touches the same new artist hundreds of times before anything is
committed (a 20-track album = 20 lookups). Two rules keep this from creating duplicates:

1. Every created row is flushed immediately (so it has an id and later queries in the same
   transaction can see it).
2. A natural-key -> id map sits IN FRONT of the database. It's consulted first, filled on every
   hit/create, and MUST be cleared at every commit/rollback boundary - after a rollback those
   ids point at rows that no longer exist! The scanner calls clear() from its checkpoint and
   its error handler.

Natural keys:
    Artist: name            (None = "unknown artist", a real row, deduplicated too)
    Album:  (artist_id, title, year-bucket of date)   title None = no-album placeholder
    Genre:  name
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from soundshelf.infrastructure.persistence.repositories import (
    AlbumRepository,
    ArtistRepository,
    GenreRepository,
)

logger = logging.getLogger(__name__)

AlbumKey = tuple[int | None, str | None, int | None]


def album_year_bucket(date: int | None) -> int | None:
    """Reduce a YYYYMMDD date to its year (YYYY0000), month and day dropped."""
    if date is None:
        return None
    return (date // 10000) * 10000


class EntityReconciler:
    """Deduplicating get-or-add for artists, albums and genres within one unit of work."""

    def __init__(self, session: AsyncSession) -> None:
        self.artist_repo = ArtistRepository(session)
        self.album_repo = AlbumRepository(session)
        self.genre_repo = GenreRepository(session)

        self._artist_cache: dict[str | None, int] = {}
        self._album_cache: dict[AlbumKey, int] = {}
        self._genre_cache: dict[str, int] = {}

        self.artists_created = 0
        self.albums_created = 0
        self.genres_created = 0

    def clear(self) -> None:
        """Forget cached ids (call at every commit and rollback)."""
        self._artist_cache.clear()
        self._album_cache.clear()
        self._genre_cache.clear()

    async def get_or_add_artist(self, name: str | None) -> int:
        """Id of the artist called `name`, created if needed."""
        if name in self._artist_cache:
            return self._artist_cache[name]

        existing = await self.artist_repo.get_by_name(name)
        if existing is not None:
            artist_id = existing.id
        else:
            artist_id = (await self.artist_repo.add(name)).id
            self.artists_created += 1
            logger.debug(f"Created artist {name!r} (id={artist_id})")

        self._artist_cache[name] = artist_id
        return artist_id

    async def get_or_add_album(
        self, artist_id: int | None, title: str | None, date: int | None
    ) -> int:
        """Id of the album identified by (artist, title, year), created if needed.

        Args:
            artist_id: Album artist (None for unknown/various artists)
            title: Album title, None for the "no album" placeholder
            date: YYYYMMDD release date, only its year is part of the identity

        Returns:
            Album id
        """
        # The placeholder is one row per artist regardless of the tracks' dates
        bucket = album_year_bucket(date) if title is not None else None
        key: AlbumKey = (artist_id, title, bucket)
        if key in self._album_cache:
            return self._album_cache[key]

        existing = await self.album_repo.find(artist_id, title, bucket)
        if existing is not None:
            album_id = existing.id
        else:
            album_id = (await self.album_repo.add(artist_id, title, bucket)).id
            self.albums_created += 1
            logger.debug(
                f"Created album {title!r} (artist_id={artist_id}, date={bucket}, id={album_id})"
            )

        self._album_cache[key] = album_id
        return album_id

    async def get_or_add_genre(self, name: str) -> int:
        """Id of the genre called `name`, created if needed."""
        if name in self._genre_cache:
            return self._genre_cache[name]

        existing = await self.genre_repo.get_by_name(name)
        if existing is not None:
            genre_id = existing.id
        else:
            genre_id = (await self.genre_repo.add(name)).id
            self.genres_created += 1
            logger.debug(f"Created genre {name!r} (id={genre_id})")

        self._genre_cache[name] = genre_id
        return genre_id
