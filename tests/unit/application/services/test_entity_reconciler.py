"""Tests for EntityReconciler deduplication."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from soundshelf.application.services.entity_reconciler import (
    EntityReconciler,
    album_year_bucket,
)
from soundshelf.infrastructure.persistence import (
    AlbumRepository,
    ArtistRepository,
    GenreRepository,
)


@pytest.fixture
def reconciler(session: AsyncSession) -> EntityReconciler:
    return EntityReconciler(session)


@pytest.mark.parametrize(
    ("date", "bucket"), [(20040715, 20040000), (20040000, 20040000), (None, None)]
)
def test_album_year_bucket(date: int | None, bucket: int | None) -> None:
    assert album_year_bucket(date) == bucket


class TestArtists:
    async def test_same_name_same_id(
        self, reconciler: EntityReconciler, session: AsyncSession
    ) -> None:
        first = await reconciler.get_or_add_artist("Nina Simone")
        second = await reconciler.get_or_add_artist("Nina Simone")
        assert first == second
        assert reconciler.artists_created == 1
        assert await ArtistRepository(session).count_all() == 1

    async def test_unknown_artist_is_deduplicated(
        self, reconciler: EntityReconciler, session: AsyncSession
    ) -> None:
        first = await reconciler.get_or_add_artist(None)
        second = await reconciler.get_or_add_artist(None)
        assert first == second
        assert await ArtistRepository(session).count_all() == 1

    async def test_in_flight_rows_are_found_after_clear(
        self, reconciler: EntityReconciler, session: AsyncSession
    ) -> None:
        """Uncommitted rows are flushed, so the DB lookup sees them without the cache."""
        first = await reconciler.get_or_add_artist("Björk")
        reconciler.clear()
        second = await reconciler.get_or_add_artist("Björk")
        assert first == second
        assert reconciler.artists_created == 1

    async def test_committed_rows_are_reused_by_a_new_reconciler(
        self, session: AsyncSession
    ) -> None:
        first = await EntityReconciler(session).get_or_add_artist("Sade")
        await session.commit()
        fresh = EntityReconciler(session)
        assert await fresh.get_or_add_artist("Sade") == first
        assert fresh.artists_created == 0


class TestAlbums:
    async def test_same_year_same_album(
        self, reconciler: EntityReconciler, session: AsyncSession
    ) -> None:
        artist_id = await reconciler.get_or_add_artist("Artist")
        first = await reconciler.get_or_add_album(artist_id, "Album", 20040715)
        second = await reconciler.get_or_add_album(artist_id, "Album", 20041201)
        assert first == second
        album = await AlbumRepository(session).get_by_id(first)
        assert album is not None
        assert album.date == 20040000

    async def test_different_year_different_album(self, reconciler: EntityReconciler) -> None:
        artist_id = await reconciler.get_or_add_artist("Artist")
        first = await reconciler.get_or_add_album(artist_id, "Greatest Hits", 19900000)
        second = await reconciler.get_or_add_album(artist_id, "Greatest Hits", 20000000)
        assert first != second

    async def test_different_artist_different_album(self, reconciler: EntityReconciler) -> None:
        a = await reconciler.get_or_add_artist("A")
        b = await reconciler.get_or_add_artist("B")
        assert await reconciler.get_or_add_album(a, "Untitled", None) != (
            await reconciler.get_or_add_album(b, "Untitled", None)
        )

    async def test_placeholder_ignores_date(
        self, reconciler: EntityReconciler, session: AsyncSession
    ) -> None:
        artist_id = await reconciler.get_or_add_artist("Artist")
        first = await reconciler.get_or_add_album(artist_id, None, 19990000)
        reconciler.clear()
        second = await reconciler.get_or_add_album(artist_id, None, 20010000)
        assert first == second
        placeholder = await AlbumRepository(session).get_by_id(first)
        assert placeholder is not None
        assert placeholder.date is None

    async def test_null_artist_album(self, reconciler: EntityReconciler) -> None:
        first = await reconciler.get_or_add_album(None, "Compilation", 20100000)
        reconciler.clear()
        assert await reconciler.get_or_add_album(None, "Compilation", 20100606) == first
        assert reconciler.albums_created == 1


class TestGenres:
    async def test_genres_are_deduplicated(
        self, reconciler: EntityReconciler, session: AsyncSession
    ) -> None:
        rock = await reconciler.get_or_add_genre("Rock")
        jazz = await reconciler.get_or_add_genre("Jazz")
        reconciler.clear()
        assert await reconciler.get_or_add_genre("Rock") == rock
        assert rock != jazz
        assert await GenreRepository(session).count_all() == 2
