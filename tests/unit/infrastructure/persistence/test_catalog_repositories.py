"""Tests for the catalog repositories against in-memory SQLite.

Hey future me - these cover the parts the scanner silently depends on: explicit cascades
(directory -> files -> tracks/pictures, covers unlinked and albums marked dirty), restrict
checks on artists/albums/genres, NULL-aware natural key lookups and the fixup aggregates.
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from soundshelf.domain.exceptions import EntityInUseException, EntityNotFoundException
from soundshelf.infrastructure.persistence import (
    AlbumModel,
    AlbumRepository,
    ArtistRepository,
    DirectoryRepository,
    FileRepository,
    GenreRepository,
    LibraryRepository,
    PictureModel,
    PictureRepository,
    TrackGenreModel,
    TrackModel,
    TrackRepository,
    ensure_utc_aware,
)

MTIME = datetime(2024, 1, 1, tzinfo=UTC)


async def _count(session: AsyncSession, model: type) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class _Catalog:
    """Tiny builder for library/directory/file/track rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.libraries = LibraryRepository(session)
        self.directories = DirectoryRepository(session)
        self.files = FileRepository(session)
        self.pictures = PictureRepository(session)
        self.tracks = TrackRepository(session)
        self.artists = ArtistRepository(session)
        self.albums = AlbumRepository(session)
        self.genres = GenreRepository(session)

    async def library(self, name: str = "Music", path: str = "/music") -> tuple[int, int]:
        library = await self.libraries.add(name, path)
        root = await self.directories.add(library.id, path)
        return library.id, root.id

    async def file(self, library_id: int, directory_id: int, name: str) -> int:
        return (await self.files.add(library_id, directory_id, name, 100, MTIME)).id

    async def track(
        self,
        file_id: int,
        artist_id: int,
        album_id: int,
        *,
        stream_index: int = 0,
        cover_picture_id: int | None = None,
        disc_number: int | None = None,
        track_number: int | None = None,
        genre_id: int | None = None,
        artist_sort_name: str | None = None,
        album_sort_title: str | None = None,
        original_date: int | None = None,
    ) -> int:
        track = TrackModel(
            file_id=file_id,
            stream_index=stream_index,
            artist_id=artist_id,
            album_id=album_id,
            title="Song",
            cover_picture_id=cover_picture_id,
            disc_number=disc_number,
            track_number=track_number,
            genre_id=genre_id,
            artist_sort_name=artist_sort_name,
            album_sort_title=album_sort_title,
            original_date=original_date,
        )
        return (await self.tracks.add(track)).id


@pytest.fixture
def catalog(session: AsyncSession) -> _Catalog:
    return _Catalog(session)


class TestLibraryRepository:
    async def test_content_modified_only_moves_forward(self, catalog: _Catalog) -> None:
        library_id, _ = await catalog.library()
        library = await catalog.libraries.get_by_id(library_id)
        assert library is not None
        start = ensure_utc_aware(library.content_modified)

        assert await catalog.libraries.touch_content_modified(
            library_id, start + timedelta(minutes=5)
        )
        assert not await catalog.libraries.touch_content_modified(
            library_id, start - timedelta(days=1)
        )
        assert ensure_utc_aware(library.content_modified) == start + timedelta(minutes=5)

    async def test_touch_unknown_library(self, catalog: _Catalog) -> None:
        with pytest.raises(EntityNotFoundException):
            await catalog.libraries.touch_content_modified(999)

    async def test_delete_removes_whole_tree(
        self, catalog: _Catalog, session: AsyncSession
    ) -> None:
        library_id, root_id = await catalog.library()
        sub = await catalog.directories.add(library_id, "/music/a", parent_id=root_id)
        file_id = await catalog.file(library_id, sub.id, "song.flac")
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", 20200000)
        await catalog.track(file_id, artist.id, album.id)

        await catalog.libraries.delete(library_id)

        assert await catalog.libraries.get_by_id(library_id) is None
        assert await _count(session, TrackModel) == 0
        assert await catalog.directories.list_paths(library_id) == []
        # Shared catalog entities survive
        assert await catalog.artists.count_all() == 1
        assert await catalog.albums.count_all() == 1


class TestDirectoryRepository:
    async def test_get_root(self, catalog: _Catalog) -> None:
        library_id, root_id = await catalog.library()
        await catalog.directories.add(library_id, "/music/a", parent_id=root_id)
        root = await catalog.directories.get_root(library_id)
        assert root is not None
        assert root.id == root_id

    async def test_delete_cascades_subtree(
        self, catalog: _Catalog, session: AsyncSession
    ) -> None:
        library_id, root_id = await catalog.library()
        a = await catalog.directories.add(library_id, "/music/a", parent_id=root_id)
        ab = await catalog.directories.add(library_id, "/music/a/b", parent_id=a.id)
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        genre = await catalog.genres.add("Rock")
        deep_file = await catalog.file(library_id, ab.id, "deep.flac")
        track_id = await catalog.track(deep_file, artist.id, album.id, genre_id=genre.id)
        await catalog.tracks.set_genres(track_id, [genre.id])
        await catalog.pictures.add(deep_file, 1, 42)
        kept_file = await catalog.file(library_id, root_id, "top.flac")

        await catalog.directories.delete(a.id)

        assert sorted(await catalog.directories.list_paths(library_id)) == ["/music"]
        assert await _count(session, TrackModel) == 0
        assert await _count(session, TrackGenreModel) == 0
        assert await _count(session, PictureModel) == 0
        assert await catalog.files.get_by_id(kept_file) is not None


class TestFileRepository:
    async def test_delete_unlinks_covers_and_marks_dirty(
        self, catalog: _Catalog, session: AsyncSession
    ) -> None:
        library_id, root_id = await catalog.library()
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        cover_file = await catalog.file(library_id, root_id, "cover.jpg")
        picture = await catalog.pictures.add(cover_file, 0, 7)
        song_file = await catalog.file(library_id, root_id, "song.flac")
        track_id = await catalog.track(
            song_file, artist.id, album.id, cover_picture_id=picture.id
        )
        await catalog.albums.apply_fixup(album.id, picture.id, None, None, None)

        await catalog.files.delete(cover_file)
        session.expunge_all()

        track = await catalog.tracks.get_by_id(track_id)
        assert track is not None
        assert track.cover_picture_id is None
        refreshed = await catalog.albums.get_by_id(album.id)
        assert refreshed is not None
        assert refreshed.cover_picture_id is None
        assert refreshed.dirty is True

    async def test_delete_marks_album_and_artist_of_tracks_dirty(
        self, catalog: _Catalog, session: AsyncSession
    ) -> None:
        library_id, root_id = await catalog.library()
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        file_id = await catalog.file(library_id, root_id, "song.flac")
        await catalog.track(file_id, artist.id, album.id)

        await catalog.files.delete(file_id)
        session.expunge_all()

        assert await catalog.artists.list_dirty_ids() == [artist.id]
        assert await catalog.albums.list_dirty_ids() == [album.id]

    async def test_delete_missing_file(self, catalog: _Catalog) -> None:
        with pytest.raises(EntityNotFoundException):
            await catalog.files.delete(12345)

    async def test_directory_cover_picture(self, catalog: _Catalog) -> None:
        library_id, root_id = await catalog.library()
        cover_file = await catalog.file(library_id, root_id, "Cover.JPG")
        picture = await catalog.pictures.add(cover_file, 0, 1)
        other = await catalog.file(library_id, root_id, "folder.jpg")
        await catalog.pictures.add(other, 0, 2)

        assert await catalog.files.get_directory_cover_picture_id(root_id) == picture.id


class TestPictureRepository:
    async def test_replaced_picture_gets_a_fresh_id(self, catalog: _Catalog) -> None:
        """Deleted ids are never handed out again, even inside one transaction."""
        library_id, root_id = await catalog.library()
        file_id = await catalog.file(library_id, root_id, "song.mp3")
        old = await catalog.pictures.add(file_id, 1, 111)
        old_id = old.id

        await catalog.pictures.delete(old_id)
        new = await catalog.pictures.add(file_id, 1, 222)

        assert new.id != old_id
        assert [p.id for p in await catalog.pictures.list_by_file(file_id)] == [new.id]


class TestRestrictOnDelete:
    async def test_artist_in_use(self, catalog: _Catalog) -> None:
        library_id, root_id = await catalog.library()
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        file_id = await catalog.file(library_id, root_id, "song.flac")
        await catalog.track(file_id, artist.id, album.id)

        with pytest.raises(EntityInUseException):
            await catalog.artists.delete(artist.id)
        with pytest.raises(EntityInUseException):
            await catalog.albums.delete(album.id)

    async def test_album_artist_in_use_by_album(self, catalog: _Catalog) -> None:
        artist = await catalog.artists.add("Artist")
        await catalog.albums.add(artist.id, "Album", None)
        with pytest.raises(EntityInUseException) as exc_info:
            await catalog.artists.delete(artist.id)
        assert exc_info.value.referenced_by == "Album"

    async def test_genre_in_use(self, catalog: _Catalog) -> None:
        library_id, root_id = await catalog.library()
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        genre = await catalog.genres.add("Jazz")
        file_id = await catalog.file(library_id, root_id, "song.flac")
        track_id = await catalog.track(file_id, artist.id, album.id)
        await catalog.tracks.set_genres(track_id, [genre.id])

        with pytest.raises(EntityInUseException):
            await catalog.genres.delete(genre.id)

    async def test_unreferenced_entities_can_be_deleted(self, catalog: _Catalog) -> None:
        artist = await catalog.artists.add("Lonely")
        genre = await catalog.genres.add("Polka")
        await catalog.artists.delete(artist.id)
        await catalog.genres.delete(genre.id)
        assert await catalog.artists.count_all() == 0
        assert await catalog.genres.count_all() == 0


class TestNaturalKeys:
    async def test_unknown_artist_matches_null(self, catalog: _Catalog) -> None:
        unknown = await catalog.artists.add(None)
        await catalog.artists.add("Known")
        found = await catalog.artists.get_by_name(None)
        assert found is not None
        assert found.id == unknown.id

    async def test_album_find_with_nulls(self, catalog: _Catalog) -> None:
        placeholder = await catalog.albums.add(None, None, None)
        await catalog.albums.add(None, "Real", None)
        found = await catalog.albums.find(None, None, None)
        assert found is not None
        assert found.id == placeholder.id
        assert await catalog.albums.find(None, "Real", 20000000) is None

    async def test_placeholders_are_not_listed(self, catalog: _Catalog) -> None:
        artist = await catalog.artists.add("Artist")
        await catalog.albums.add(artist.id, None, None)
        await catalog.albums.add(artist.id, "B-Sides", None)
        titles = [album.title for album in await catalog.albums.list_titled()]
        assert titles == ["B-Sides"]


class TestFixupQueries:
    async def test_most_frequent_sort_title(self, catalog: _Catalog) -> None:
        library_id, root_id = await catalog.library()
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        for name, sort_title in [("1.flac", "A"), ("2.flac", "B"), ("3.flac", "A")]:
            file_id = await catalog.file(library_id, root_id, name)
            await catalog.track(file_id, artist.id, album.id, album_sort_title=sort_title)
        file_id = await catalog.file(library_id, root_id, "4.flac")
        await catalog.track(file_id, artist.id, album.id)

        assert await catalog.tracks.most_frequent_album_sort_title(album.id) == "A"

    async def test_most_frequent_tie_goes_to_first_seen(self, catalog: _Catalog) -> None:
        library_id, root_id = await catalog.library()
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        for name, sort_name in [("1.flac", "Zed"), ("2.flac", "Abe")]:
            file_id = await catalog.file(library_id, root_id, name)
            await catalog.track(file_id, artist.id, album.id, artist_sort_name=sort_name)

        assert await catalog.tracks.most_frequent_artist_sort_name(artist.id) == "Zed"

    async def test_first_cover_puts_unnumbered_tracks_last(self, catalog: _Catalog) -> None:
        library_id, root_id = await catalog.library()
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        pictures = []
        for name in ("a.flac", "b.flac", "c.flac"):
            file_id = await catalog.file(library_id, root_id, name)
            pictures.append((file_id, (await catalog.pictures.add(file_id, 1, 0)).id))

        await catalog.track(pictures[0][0], artist.id, album.id, cover_picture_id=pictures[0][1])
        await catalog.track(
            pictures[1][0],
            artist.id,
            album.id,
            cover_picture_id=pictures[1][1],
            disc_number=2,
            track_number=1,
        )
        await catalog.track(
            pictures[2][0],
            artist.id,
            album.id,
            cover_picture_id=pictures[2][1],
            disc_number=1,
            track_number=5,
        )

        assert await catalog.tracks.first_cover_picture_id(album.id) == pictures[2][1]

    async def test_max_original_date(self, catalog: _Catalog) -> None:
        library_id, root_id = await catalog.library()
        artist = await catalog.artists.add("Artist")
        album = await catalog.albums.add(artist.id, "Album", None)
        for name, original_date in [("1.flac", 19790000), ("2.flac", 19790512), ("3.flac", None)]:
            file_id = await catalog.file(library_id, root_id, name)
            await catalog.track(file_id, artist.id, album.id, original_date=original_date)

        assert await catalog.tracks.max_original_date(album.id) == 19790512

    async def test_apply_fixup_clears_dirty(self, catalog: _Catalog, session: AsyncSession) -> None:
        album = await catalog.albums.add(None, "Album", None)
        await catalog.albums.mark_dirty(album.id)
        assert await catalog.albums.list_dirty_ids() == [album.id]

        await catalog.albums.apply_fixup(album.id, None, None, "Album, The", 19990000)
        session.expunge_all()

        refreshed = await session.get(AlbumModel, album.id)
        assert refreshed is not None
        assert refreshed.dirty is False
        assert refreshed.sort_title == "Album, The"
        assert refreshed.original_date == 19990000
