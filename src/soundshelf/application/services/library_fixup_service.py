"""Post-scan fixup pass for values derived from many tracks.

Hey future me - the scanner only marks artists/albums dirty, it never computes aggregates
itself (it sees one track at a time). After a library is scanned, this pass recomputes for
every dirty row:

    Artist: sort_name     = most frequent non-null artist-sort tag of its tracks
    Album:  cover         = cover of the first track (disc, track; unnumbered last) having one
            genre         = most frequent primary genre of its tracks
            sort_title    = most frequent non-null album-sort tag of its tracks
            original_date = max original date of its tracks

Each entity is committed on its own, so a cancelled pass leaves the rest dirty for next time.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from soundshelf.infrastructure.persistence.repositories import (
    AlbumRepository,
    ArtistRepository,
    TrackRepository,
)

logger = logging.getLogger(__name__)


class LibraryFixupService:
    """Recomputes derived artist/album values and clears their dirty flags."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.artist_repo = ArtistRepository(session)
        self.album_repo = AlbumRepository(session)
        self.track_repo = TrackRepository(session)

    async def fix_dirty_artists(self) -> int:
        """Recompute sort names of all dirty artists.

        Returns:
            Number of artists fixed up
        """
        fixed = 0
        for artist_id in await self.artist_repo.list_dirty_ids():
            await asyncio.sleep(0)
            sort_name = await self.track_repo.most_frequent_artist_sort_name(artist_id)
            await self.artist_repo.apply_fixup(artist_id, sort_name)
            await self.session.commit()
            fixed += 1
        if fixed:
            logger.info(f"Fixed up {fixed} artists")
        return fixed

    async def fix_dirty_albums(self) -> int:
        """Recompute cover, genre, sort title and original date of all dirty albums.

        Returns:
            Number of albums fixed up
        """
        fixed = 0
        for album_id in await self.album_repo.list_dirty_ids():
            await asyncio.sleep(0)
            await self.album_repo.apply_fixup(
                album_id,
                cover_picture_id=await self.track_repo.first_cover_picture_id(album_id),
                genre_id=await self.track_repo.most_frequent_genre_id(album_id),
                sort_title=await self.track_repo.most_frequent_album_sort_title(album_id),
                original_date=await self.track_repo.max_original_date(album_id),
            )
            await self.session.commit()
            fixed += 1
        if fixed:
            logger.info(f"Fixed up {fixed} albums")
        return fixed
