"""Repository implementations for the catalog tables."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from soundshelf.domain.exceptions import EntityInUseException, EntityNotFoundException
from soundshelf.domain.value_objects.cover_selection import DIRECTORY_COVER_NAMES

from .models import (
    AlbumModel,
    ArtistModel,
    DirectoryModel,
    FileModel,
    GenreModel,
    LibraryModel,
    PictureModel,
    TrackGenreModel,
    TrackModel,
    ensure_utc_aware,
    utc_now,
)

logger = logging.getLogger(__name__)

# Sorts tracks without disc/track number after every numbered one
_MAX_POSITION = 2**31 - 1


def _eq_or_null(column: Any, value: Any) -> ColumnElement[bool]:
    """Equality that treats NULL as a matchable value (name IS NULL)."""
    if value is None:
        return column.is_(None)
    return column == value


async def _mark_albums_dirty(session: AsyncSession, album_ids: Select[Any]) -> None:
    await session.execute(
        update(AlbumModel)
        .where(AlbumModel.id.in_(album_ids))
        .values(dirty=True)
        .execution_options(synchronize_session=False)
    )


async def _mark_artists_dirty(session: AsyncSession, artist_ids: Select[Any]) -> None:
    await session.execute(
        update(ArtistModel)
        .where(ArtistModel.id.in_(artist_ids))
        .values(dirty=True)
        .execution_options(synchronize_session=False)
    )


# Hey future me, this is THE explicit cascade for catalog files. The FKs have ON DELETE
# CASCADE / SET NULL too, but we can't rely on them alone:
# 1. Albums whose cover is one of the doomed pictures must get dirty=True so the fixup pass
#    picks a new cover. The DB's SET NULL can't do that.
# 2. Tracks in OTHER files may point at the doomed picture (directory cover fallback).
# 3. Albums/artists losing tracks need their derived values recomputed.
# Order matters: covers first, then track_genres -> tracks -> pictures -> files.
async def _delete_files(session: AsyncSession, file_ids: Select[Any]) -> int:
    picture_ids = select(PictureModel.id).where(PictureModel.file_id.in_(file_ids))
    track_ids = select(TrackModel.id).where(TrackModel.file_id.in_(file_ids))

    await _mark_albums_dirty(
        session, select(AlbumModel.id).where(AlbumModel.cover_picture_id.in_(picture_ids))
    )
    await _mark_albums_dirty(
        session,
        select(TrackModel.album_id).where(TrackModel.cover_picture_id.in_(picture_ids)),
    )
    await _mark_albums_dirty(
        session, select(TrackModel.album_id).where(TrackModel.file_id.in_(file_ids))
    )
    await _mark_artists_dirty(
        session, select(TrackModel.artist_id).where(TrackModel.file_id.in_(file_ids))
    )

    await session.execute(
        update(AlbumModel)
        .where(AlbumModel.cover_picture_id.in_(picture_ids))
        .values(cover_picture_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        update(TrackModel)
        .where(TrackModel.cover_picture_id.in_(picture_ids))
        .values(cover_picture_id=None)
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(TrackGenreModel)
        .where(TrackGenreModel.track_id.in_(track_ids))
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(TrackModel)
        .where(TrackModel.file_id.in_(file_ids))
        .execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(PictureModel)
        .where(PictureModel.file_id.in_(file_ids))
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(
        delete(FileModel)
        .where(FileModel.id.in_(file_ids))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0  # type: ignore[attr-defined]


class LibraryRepository:
    """Library rows."""

    # Hey future me, this is the Repository pattern! Each repo gets the AsyncSession injected
    # and NEVER commits - the scanner/service owns the transaction and its checkpoints.
    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(
        self, name: str, path: str, is_access_controlled: bool = False
    ) -> LibraryModel:
        """Add a library (flushed, so the id is available)."""
        model = LibraryModel(
            name=name,
            path=path,
            is_access_controlled=is_access_controlled,
            content_modified=utc_now(),
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_id(self, library_id: int) -> LibraryModel | None:
        return await self.session.get(LibraryModel, library_id)

    async def get_by_name(self, name: str) -> LibraryModel | None:
        stmt = select(LibraryModel).where(LibraryModel.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> Sequence[LibraryModel]:
        stmt = select(LibraryModel).order_by(LibraryModel.name)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def touch_content_modified(
        self, library_id: int, when: datetime | None = None
    ) -> bool:
        """Advance content_modified to `when` (default now), never backwards.

        Returns:
            True if the timestamp moved
        """
        model = await self.session.get(LibraryModel, library_id)
        if model is None:
            raise EntityNotFoundException("Library", library_id)
        when = ensure_utc_aware(when or utc_now())
        if ensure_utc_aware(model.content_modified) >= when:
            return False
        model.content_modified = when
        return True

    async def delete(self, library_id: int) -> None:
        """Delete a library with its whole directory tree."""
        model = await self.session.get(LibraryModel, library_id)
        if model is None:
            raise EntityNotFoundException("Library", library_id)

        await _delete_files(
            self.session, select(FileModel.id).where(FileModel.library_id == library_id)
        )
        await self.session.execute(
            delete(DirectoryModel)
            .where(DirectoryModel.library_id == library_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.delete(model)
        await self.session.flush()


class DirectoryRepository:
    """Directory rows (one tree per library)."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(
        self, library_id: int, path: str, parent_id: int | None = None
    ) -> DirectoryModel:
        model = DirectoryModel(library_id=library_id, parent_id=parent_id, path=path)
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_id(self, directory_id: int) -> DirectoryModel | None:
        return await self.session.get(DirectoryModel, directory_id)

    async def get_root(self, library_id: int) -> DirectoryModel | None:
        """The library's root directory (the one without a parent)."""
        stmt = select(DirectoryModel).where(
            DirectoryModel.library_id == library_id,
            DirectoryModel.parent_id.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_children(self, directory_id: int) -> Sequence[DirectoryModel]:
        stmt = (
            select(DirectoryModel)
            .where(DirectoryModel.parent_id == directory_id)
            .order_by(DirectoryModel.path)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_paths(self, library_id: int) -> list[str]:
        stmt = select(DirectoryModel.path).where(DirectoryModel.library_id == library_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _subtree_ids(self, directory_id: int) -> list[int]:
        # Breadth-first over parent_id, the tree is shallow enough for one query per level
        ids = [directory_id]
        frontier = [directory_id]
        while frontier:
            stmt = select(DirectoryModel.id).where(DirectoryModel.parent_id.in_(frontier))
            result = await self.session.execute(stmt)
            frontier = list(result.scalars().all())
            ids.extend(frontier)
        return ids

    async def delete(self, directory_id: int) -> None:
        """Delete a directory with its subdirectories, files, tracks and pictures."""
        subtree = await self._subtree_ids(directory_id)
        removed_files = await _delete_files(
            self.session, select(FileModel.id).where(FileModel.directory_id.in_(subtree))
        )
        # Children before parents so the self-referencing FK never blocks
        for dir_id in reversed(subtree):
            await self.session.execute(
                delete(DirectoryModel)
                .where(DirectoryModel.id == dir_id)
                .execution_options(synchronize_session=False)
            )
        logger.debug(
            f"Deleted directory {directory_id} ({len(subtree)} directories, "
            f"{removed_files} files)"
        )


class FileRepository:
    """File rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(
        self,
        library_id: int,
        directory_id: int,
        name: str,
        size: int,
        mtime: datetime,
    ) -> FileModel:
        model = FileModel(
            library_id=library_id,
            directory_id=directory_id,
            name=name,
            size=size,
            mtime=mtime,
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_id(self, file_id: int) -> FileModel | None:
        return await self.session.get(FileModel, file_id)

    async def list_by_directory(self, directory_id: int) -> Sequence[FileModel]:
        stmt = (
            select(FileModel)
            .where(FileModel.directory_id == directory_id)
            .order_by(FileModel.name)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete(self, file_id: int) -> None:
        """Delete a file with its tracks and pictures."""
        removed = await _delete_files(
            self.session, select(FileModel.id).where(FileModel.id == file_id)
        )
        if removed == 0:
            raise EntityNotFoundException("File", file_id)

    async def get_directory_cover_picture_id(self, directory_id: int) -> int | None:
        """Picture of a cover.jpg/cover.png file directly in the directory, if any."""
        stmt = (
            select(PictureModel.id)
            .join(FileModel, FileModel.id == PictureModel.file_id)
            .where(
                FileModel.directory_id == directory_id,
                func.lower(FileModel.name).in_(DIRECTORY_COVER_NAMES),
            )
            .order_by(FileModel.name, PictureModel.stream_index)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class PictureRepository:
    """Cover picture rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, file_id: int, stream_index: int, stream_hash: int) -> PictureModel:
        model = PictureModel(
            file_id=file_id, stream_index=stream_index, stream_hash=stream_hash
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def list_by_file(self, file_id: int) -> Sequence[PictureModel]:
        stmt = (
            select(PictureModel)
            .where(PictureModel.file_id == file_id)
            .order_by(PictureModel.stream_index)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete(self, picture_id: int) -> None:
        """Delete a picture, unlinking it from every album and track using it."""
        await _mark_albums_dirty(
            self.session,
            select(AlbumModel.id).where(AlbumModel.cover_picture_id == picture_id),
        )
        await _mark_albums_dirty(
            self.session,
            select(TrackModel.album_id).where(TrackModel.cover_picture_id == picture_id),
        )
        await self.session.execute(
            update(AlbumModel)
            .where(AlbumModel.cover_picture_id == picture_id)
            .values(cover_picture_id=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            update(TrackModel)
            .where(TrackModel.cover_picture_id == picture_id)
            .values(cover_picture_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            delete(PictureModel)
            .where(PictureModel.id == picture_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise EntityNotFoundException("Picture", picture_id)


class TrackRepository:
    """Track rows plus the aggregate queries of the fixup pass."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, model: TrackModel) -> TrackModel:
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_id(self, track_id: int) -> TrackModel | None:
        return await self.session.get(TrackModel, track_id)

    async def list_by_file(self, file_id: int) -> Sequence[TrackModel]:
        stmt = (
            select(TrackModel)
            .where(TrackModel.file_id == file_id)
            .order_by(TrackModel.stream_index)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete(self, track_id: int) -> None:
        """Delete a track and its genre links, marking its album and artist dirty."""
        model = await self.session.get(TrackModel, track_id)
        if model is None:
            raise EntityNotFoundException("Track", track_id)
        await _mark_albums_dirty(
            self.session, select(TrackModel.album_id).where(TrackModel.id == track_id)
        )
        await _mark_artists_dirty(
            self.session, select(TrackModel.artist_id).where(TrackModel.id == track_id)
        )
        await self.session.execute(
            delete(TrackGenreModel)
            .where(TrackGenreModel.track_id == track_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.delete(model)
        await self.session.flush()

    async def set_genres(self, track_id: int, genre_ids: Sequence[int]) -> None:
        """Replace the track's genre links."""
        await self.session.execute(
            delete(TrackGenreModel)
            .where(TrackGenreModel.track_id == track_id)
            .execution_options(synchronize_session=False)
        )
        for genre_id in dict.fromkeys(genre_ids):
            self.session.add(TrackGenreModel(track_id=track_id, genre_id=genre_id))
        await self.session.flush()

    # Hey future me - this is the DIRECTORY COVER FALLBACK. Only tracks WITHOUT a cover are
    # touched: a track's own embedded cover always wins over a cover.jpg next to it. Their
    # albums get dirty so the fixup pass can pick the new cover up.
    async def assign_missing_covers(self, directory_id: int, picture_id: int) -> int:
        """Set picture_id as cover of every coverless track directly in the directory.

        Returns:
            Number of tracks updated
        """
        targets = (
            select(TrackModel.id)
            .join(FileModel, FileModel.id == TrackModel.file_id)
            .where(
                FileModel.directory_id == directory_id,
                TrackModel.cover_picture_id.is_(None),
            )
        )
        await _mark_albums_dirty(
            self.session, select(TrackModel.album_id).where(TrackModel.id.in_(targets))
        )
        result = await self.session.execute(
            update(TrackModel)
            .where(TrackModel.id.in_(targets))
            .values(cover_picture_id=picture_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def _most_frequent(
        self, column: Any, where: ColumnElement[bool]
    ) -> Any | None:
        # Ties go to the value seen first (lowest track id)
        stmt = (
            select(column)
            .where(where, column.is_not(None))
            .group_by(column)
            .order_by(func.count().desc(), func.min(TrackModel.id))
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def most_frequent_artist_sort_name(self, artist_id: int) -> str | None:
        return await self._most_frequent(
            TrackModel.artist_sort_name, TrackModel.artist_id == artist_id
        )

    async def most_frequent_album_sort_title(self, album_id: int) -> str | None:
        return await self._most_frequent(
            TrackModel.album_sort_title, TrackModel.album_id == album_id
        )

    async def most_frequent_genre_id(self, album_id: int) -> int | None:
        return await self._most_frequent(TrackModel.genre_id, TrackModel.album_id == album_id)

    async def max_original_date(self, album_id: int) -> int | None:
        stmt = select(func.max(TrackModel.original_date)).where(
            TrackModel.album_id == album_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def first_cover_picture_id(self, album_id: int) -> int | None:
        """Cover of the first track (disc, then track number, unnumbered last) having one."""
        stmt = (
            select(TrackModel.cover_picture_id)
            .where(
                TrackModel.album_id == album_id,
                TrackModel.cover_picture_id.is_not(None),
            )
            .order_by(
                func.coalesce(TrackModel.disc_number, _MAX_POSITION),
                func.coalesce(TrackModel.track_number, _MAX_POSITION),
                TrackModel.id,
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class ArtistRepository:
    """Artist rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, name: str | None) -> ArtistModel:
        model = ArtistModel(name=name)
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_id(self, artist_id: int) -> ArtistModel | None:
        return await self.session.get(ArtistModel, artist_id)

    async def get_by_name(self, name: str | None) -> ArtistModel | None:
        """Find an artist by exact name, None matching the unknown artist."""
        stmt = (
            select(ArtistModel)
            .where(_eq_or_null(ArtistModel.name, name))
            .order_by(ArtistModel.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_all(self) -> int:
        result = await self.session.execute(select(func.count(ArtistModel.id)))
        return result.scalar_one()

    async def list_dirty_ids(self) -> list[int]:
        stmt = select(ArtistModel.id).where(ArtistModel.dirty.is_(True)).order_by(
            ArtistModel.id
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_dirty(self, artist_id: int) -> None:
        await self.session.execute(
            update(ArtistModel).where(ArtistModel.id == artist_id).values(dirty=True)
        )

    # Plain UPDATE instead of touching a loaded model: bulk statements elsewhere run with
    # synchronize_session=False, so a model from the identity map may hold stale values and
    # the ORM would skip writing "unchanged" ones.
    async def apply_fixup(self, artist_id: int, sort_name: str | None) -> None:
        """Store the recomputed sort name and clear the dirty flag."""
        await self.session.execute(
            update(ArtistModel)
            .where(ArtistModel.id == artist_id)
            .values(sort_name=sort_name, dirty=False)
        )

    async def delete(self, artist_id: int) -> None:
        """Delete an artist that nothing references anymore.

        Raises:
            EntityNotFoundException: If the artist doesn't exist
            EntityInUseException: If a track or album still references it
        """
        model = await self.session.get(ArtistModel, artist_id)
        if model is None:
            raise EntityNotFoundException("Artist", artist_id)
        if await _exists(self.session, TrackModel.artist_id == artist_id):
            raise EntityInUseException("Artist", artist_id, "Track")
        if await _exists(self.session, AlbumModel.artist_id == artist_id):
            raise EntityInUseException("Artist", artist_id, "Album")
        await self.session.delete(model)
        await self.session.flush()


class AlbumRepository:
    """Album rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(
        self, artist_id: int | None, title: str | None, date: int | None
    ) -> AlbumModel:
        model = AlbumModel(artist_id=artist_id, title=title, date=date)
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_id(self, album_id: int) -> AlbumModel | None:
        return await self.session.get(AlbumModel, album_id)

    async def find(
        self, artist_id: int | None, title: str | None, date: int | None
    ) -> AlbumModel | None:
        """Find an album by its identity (NULLs match NULLs)."""
        stmt = (
            select(AlbumModel)
            .where(
                _eq_or_null(AlbumModel.artist_id, artist_id),
                _eq_or_null(AlbumModel.title, title),
                _eq_or_null(AlbumModel.date, date),
            )
            .order_by(AlbumModel.id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_all(self) -> int:
        result = await self.session.execute(select(func.count(AlbumModel.id)))
        return result.scalar_one()

    async def list_titled(self) -> Sequence[AlbumModel]:
        """Real albums only, the no-album placeholders are left out."""
        stmt = (
            select(AlbumModel)
            .where(AlbumModel.title.is_not(None))
            .order_by(func.coalesce(AlbumModel.sort_title, AlbumModel.title))
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_dirty_ids(self) -> list[int]:
        stmt = select(AlbumModel.id).where(AlbumModel.dirty.is_(True)).order_by(AlbumModel.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def mark_dirty(self, album_id: int) -> None:
        await self.session.execute(
            update(AlbumModel).where(AlbumModel.id == album_id).values(dirty=True)
        )

    async def apply_fixup(
        self,
        album_id: int,
        cover_picture_id: int | None,
        genre_id: int | None,
        sort_title: str | None,
        original_date: int | None,
    ) -> None:
        """Store the recomputed derived values and clear the dirty flag."""
        await self.session.execute(
            update(AlbumModel)
            .where(AlbumModel.id == album_id)
            .values(
                cover_picture_id=cover_picture_id,
                genre_id=genre_id,
                sort_title=sort_title,
                original_date=original_date,
                dirty=False,
            )
        )

    async def delete(self, album_id: int) -> None:
        """Delete an album no track belongs to.

        Raises:
            EntityNotFoundException: If the album doesn't exist
            EntityInUseException: If a track still references it
        """
        model = await self.session.get(AlbumModel, album_id)
        if model is None:
            raise EntityNotFoundException("Album", album_id)
        if await _exists(self.session, TrackModel.album_id == album_id):
            raise EntityInUseException("Album", album_id, "Track")
        await self.session.delete(model)
        await self.session.flush()


class GenreRepository:
    """Genre rows."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with session."""
        self.session = session

    async def add(self, name: str) -> GenreModel:
        model = GenreModel(name=name)
        self.session.add(model)
        await self.session.flush()
        return model

    async def get_by_name(self, name: str) -> GenreModel | None:
        stmt = select(GenreModel).where(GenreModel.name == name)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_all(self) -> int:
        result = await self.session.execute(select(func.count(GenreModel.id)))
        return result.scalar_one()

    async def delete(self, genre_id: int) -> None:
        """Delete a genre nothing references anymore.

        Raises:
            EntityNotFoundException: If the genre doesn't exist
            EntityInUseException: If a track or album still references it
        """
        model = await self.session.get(GenreModel, genre_id)
        if model is None:
            raise EntityNotFoundException("Genre", genre_id)
        if await _exists(self.session, TrackModel.genre_id == genre_id) or await _exists(
            self.session, TrackGenreModel.genre_id == genre_id
        ):
            raise EntityInUseException("Genre", genre_id, "Track")
        if await _exists(self.session, AlbumModel.genre_id == genre_id):
            raise EntityInUseException("Genre", genre_id, "Album")
        await self.session.delete(model)
        await self.session.flush()


async def _exists(session: AsyncSession, condition: ColumnElement[bool]) -> bool:
    result = await session.execute(select(select(1).where(condition).exists()))
    return bool(result.scalar())
