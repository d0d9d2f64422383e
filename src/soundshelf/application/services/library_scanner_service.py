# Hey future me - this service walks every library root and keeps the catalog in sync with disk!
# Key features:
# 1. TREE DIFF - per directory: on-disk subdirs/files vs. catalog rows -> add / rescan / delete
# 2. INCREMENTAL - unchanged size+mtime = file skipped, force=True re-probes everything
# 3. PROBE ESCALATION - ffprobe without packets first, with packets only when needed
# 4. CHECKPOINTS - commit after every file and before every subdirectory, so a cancelled or
#    crashed scan keeps everything done so far
# 5. FAIL ONE, NOT ALL - a broken file/directory is dropped from the catalog and the scan goes on
"""Library scanner service: reconciles library directories on disk with the catalog."""

import asyncio
import contextlib
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum, auto
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from soundshelf.application.services.entity_reconciler import EntityReconciler
from soundshelf.application.services.library_fixup_service import LibraryFixupService
from soundshelf.domain.exceptions import EntityNotFoundException
from soundshelf.domain.ports import IMediaProber, IStreamHasher
from soundshelf.domain.value_objects import (
    ProbeReport,
    ProbeSection,
    ProbeStream,
    is_directory_cover_name,
    normalize_tags,
    preferred_format_name,
    select_cover_stream,
)
from soundshelf.infrastructure.integrations.ffmpeg_hasher import digest_to_int64
from soundshelf.infrastructure.persistence.models import (
    DirectoryModel,
    TrackModel,
    ensure_utc_aware,
    utc_now,
)
from soundshelf.infrastructure.persistence.repositories import (
    AlbumRepository,
    ArtistRepository,
    DirectoryRepository,
    FileRepository,
    LibraryRepository,
    PictureRepository,
    TrackRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class ScanStatistics:
    """Counters of one scan run."""

    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None
    libraries: int = 0
    directories_scanned: int = 0
    directories_added: int = 0
    directories_removed: int = 0
    files_probed: int = 0
    files_skipped: int = 0
    files_added: int = 0
    files_removed: int = 0
    files_failed: int = 0
    artists_fixed: int = 0
    albums_fixed: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class ProbeState(Enum):
    """Per-file probing progress."""

    INITIAL = auto()
    PROBED_MINIMAL = auto()
    PROBED_WITH_PACKETS = auto()
    DONE = auto()
    FAILED = auto()


class MediaToolError(Exception):
    """ffprobe/ffmpeg couldn't make sense of a file."""


# Hey future me - the scanner NEVER holds ORM objects across a checkpoint! After a rollback
# (error handler) every loaded model is expired/stale and touching one triggers lazy IO on an
# async session -> MissingGreenlet. These frozen refs carry just what the walk needs.
@dataclass(frozen=True)
class _DirectoryRef:
    id: int
    library_id: int
    parent_id: int | None
    path: str

    @classmethod
    def of(cls, model: DirectoryModel) -> "_DirectoryRef":
        return cls(
            id=model.id,
            library_id=model.library_id,
            parent_id=model.parent_id,
            path=model.path,
        )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(frozen=True)
class _FileRef:
    id: int
    name: str
    size: int
    mtime: datetime


@dataclass(frozen=True)
class _DirectoryListing:
    subdirectories: list[str]
    files: dict[str, os.stat_result]


def _list_directory(path: str) -> _DirectoryListing:
    """Read one directory level (blocking, run in a worker thread)."""
    subdirectories: list[str] = []
    files: dict[str, os.stat_result] = {}
    with os.scandir(path) as entries:
        for entry in entries:
            try:
                if entry.is_dir():
                    subdirectories.append(entry.path)
                elif entry.is_file():
                    files[entry.name] = entry.stat()
            except OSError:
                # Vanished between listing and stat
                continue
    subdirectories.sort()
    return _DirectoryListing(subdirectories=subdirectories, files=files)


def _mtime_of(stat: os.stat_result) -> datetime:
    return datetime.fromtimestamp(stat.st_mtime, tz=UTC)


class LibraryScannerService:
    """Scans all libraries and reconciles directories, files, tracks and pictures.

    One instance = one scan run on one session. Not safe for concurrent use, the
    worker guarantees a single active scan.
    """

    def __init__(
        self,
        session: AsyncSession,
        prober: IMediaProber,
        hasher: IStreamHasher,
    ) -> None:
        """Initialize scanner service.

        Args:
            session: Database session (committed at checkpoints by this service)
            prober: Media probe tool
            hasher: Stream digest tool
        """
        self.session = session
        self.prober = prober
        self.hasher = hasher

        self.library_repo = LibraryRepository(session)
        self.directory_repo = DirectoryRepository(session)
        self.file_repo = FileRepository(session)
        self.picture_repo = PictureRepository(session)
        self.track_repo = TrackRepository(session)
        self.artist_repo = ArtistRepository(session)
        self.album_repo = AlbumRepository(session)

        self.reconciler = EntityReconciler(session)
        self.fixup = LibraryFixupService(session)
        self.stats = ScanStatistics()

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    async def _checkpoint(self, library_id: int, modified: bool) -> None:
        """Commit the current unit of work, bumping the library's content timestamp."""
        if modified:
            await self.library_repo.touch_content_modified(library_id)
        await self.session.commit()
        self.session.expunge_all()
        self.reconciler.clear()

    async def _discard(self) -> None:
        """Throw away the current unit of work after an error."""
        await self.session.rollback()
        self.session.expunge_all()
        self.reconciler.clear()

    # =========================================================================
    # LIBRARIES
    # =========================================================================

    async def scan_libraries(self, force: bool = False) -> ScanStatistics:
        """Scan every library, then fix up dirty artists/albums per library.

        Args:
            force: Re-probe files even if size and mtime are unchanged

        Returns:
            Statistics of this run
        """
        self.stats = ScanStatistics()
        library_ids = [library.id for library in await self.library_repo.list_all()]
        logger.info(f"Scanning {len(library_ids)} libraries (force={force})")

        for library_id in library_ids:
            await self.scan_library(library_id, force=force)

        self.stats.finished_at = utc_now()
        logger.info(
            f"Scan complete: {self.stats.files_probed} probed, "
            f"{self.stats.files_skipped} unchanged, {self.stats.files_added} added, "
            f"{self.stats.files_removed} removed, {self.stats.files_failed} failed, "
            f"{self.stats.directories_added} directories added, "
            f"{self.stats.directories_removed} directories removed"
        )
        return self.stats

    async def scan_library(self, library_id: int, force: bool = False) -> None:
        """Scan one library's tree and run the fixup pass.

        Raises:
            EntityNotFoundException: If the library doesn't exist
        """
        library = await self.library_repo.get_by_id(library_id)
        if library is None:
            raise EntityNotFoundException("Library", library_id)
        library_name = library.name
        library_path = library.path

        logger.info(f"Scanning library '{library_name}' at {library_path}")

        root = await self.directory_repo.get_root(library_id)
        if root is None:
            # Library row without its root directory (e.g. created by hand), heal it
            root = await self.directory_repo.add(library_id, library_path)
            await self._checkpoint(library_id, modified=True)
            root_ref = _DirectoryRef(
                id=root.id, library_id=library_id, parent_id=None, path=library_path
            )
        else:
            root_ref = _DirectoryRef.of(root)

        await self._scan_directory(root_ref, force)
        self.stats.libraries += 1

        logger.info(f"Fixing up artists of library '{library_name}'")
        self.stats.artists_fixed += await self.fixup.fix_dirty_artists()
        logger.info(f"Fixing up albums of library '{library_name}'")
        self.stats.albums_fixed += await self.fixup.fix_dirty_albums()

    # =========================================================================
    # DIRECTORIES
    # =========================================================================

    async def _scan_directory(self, directory: _DirectoryRef, force: bool) -> bool:
        """Scan one directory recursively.

        Returns:
            True if anything in the catalog changed
        """
        # Cancellation point before touching anything
        await asyncio.sleep(0)
        logger.debug(f"Scanning directory {directory.path}")
        self.stats.directories_scanned += 1

        try:
            listing = await asyncio.to_thread(_list_directory, directory.path)
        except OSError as e:
            if directory.is_root:
                logger.warning(f"Library root {directory.path} is not readable: {e}")
                return False
            logger.info(f"Directory {directory.path} is gone: {e}")
            return await self._delete_directory(directory)

        try:
            modified = await self._scan_subdirectories(directory, listing, force)
            modified |= await self._scan_files(directory, listing, force)
            covers_assigned = await self._apply_directory_cover(directory, listing)
            await self._checkpoint(directory.library_id, covers_assigned)
            return modified or covers_assigned
        except Exception:
            logger.warning(f"Failed to scan directory {directory.path}", exc_info=True)
            await self._discard()
            if directory.is_root:
                return False
            return await self._delete_directory(directory)

    async def _delete_directory(self, directory: _DirectoryRef) -> bool:
        await self.directory_repo.delete(directory.id)
        await self._checkpoint(directory.library_id, modified=True)
        self.stats.directories_removed += 1
        return True

    async def _scan_subdirectories(
        self, directory: _DirectoryRef, listing: _DirectoryListing, force: bool
    ) -> bool:
        modified = False
        # Changes not committed yet
        pending = False
        on_disk = set(listing.subdirectories)
        known = {
            child.path: _DirectoryRef.of(child)
            for child in await self.directory_repo.list_children(directory.id)
        }

        for path, child in known.items():
            if path not in on_disk:
                logger.debug(f"Removing vanished directory {path}")
                await self.directory_repo.delete(child.id)
                self.stats.directories_removed += 1
                modified = pending = True

        for path in listing.subdirectories:
            child = known.get(path)
            if child is None:
                model = await self.directory_repo.add(
                    directory.library_id, path, parent_id=directory.id
                )
                child = _DirectoryRef.of(model)
                self.stats.directories_added += 1
                modified = pending = True

            # Checkpoint before descending: the subtree commits on its own
            await self._checkpoint(directory.library_id, pending)
            pending = False
            modified |= await self._scan_directory(child, force)

        if pending:
            await self._checkpoint(directory.library_id, modified=True)
        return modified

    async def _apply_directory_cover(
        self, directory: _DirectoryRef, listing: _DirectoryListing
    ) -> bool:
        """Give coverless tracks of this directory the cover.jpg/cover.png picture."""
        if not any(is_directory_cover_name(name) for name in listing.files):
            return False
        picture_id = await self.file_repo.get_directory_cover_picture_id(directory.id)
        if picture_id is None:
            return False
        updated = await self.track_repo.assign_missing_covers(directory.id, picture_id)
        if updated:
            logger.debug(f"Assigned directory cover to {updated} tracks in {directory.path}")
        return updated > 0

    # =========================================================================
    # FILES
    # =========================================================================

    async def _scan_files(
        self, directory: _DirectoryRef, listing: _DirectoryListing, force: bool
    ) -> bool:
        modified = False
        known = {
            f.name: _FileRef(
                id=f.id, name=f.name, size=f.size, mtime=ensure_utc_aware(f.mtime)
            )
            for f in await self.file_repo.list_by_directory(directory.id)
        }

        for name, file in known.items():
            if name not in listing.files:
                logger.debug(f"Removing vanished file {Path(directory.path) / name}")
                await self.file_repo.delete(file.id)
                self.stats.files_removed += 1
                modified = True
        if modified:
            await self._checkpoint(directory.library_id, modified=True)

        for name in sorted(listing.files):
            modified |= await self._scan_file(
                directory, name, listing.files[name], known.get(name), force
            )

        return modified

    async def _scan_file(
        self,
        directory: _DirectoryRef,
        name: str,
        stat: os.stat_result,
        existing: _FileRef | None,
        force: bool,
    ) -> bool:
        """Probe one file and rebuild its pictures and tracks.

        Returns:
            True if the catalog changed
        """
        await asyncio.sleep(0)
        path = Path(directory.path) / name
        mtime = _mtime_of(stat)

        if (
            existing is not None
            and not force
            and existing.size == stat.st_size
            and existing.mtime == mtime
        ):
            self.stats.files_skipped += 1
            return False

        logger.debug(f"Scanning file {path}")
        try:
            report = await self._probe(path)
            if report is None:
                raise MediaToolError(f"ffprobe could not read {path}")

            if existing is None:
                file = await self.file_repo.add(
                    directory.library_id, directory.id, name, stat.st_size, mtime
                )
            else:
                file = await self.file_repo.get_by_id(existing.id)
                if file is None:
                    raise EntityNotFoundException("File", existing.id)
                file.size = stat.st_size
                file.mtime = mtime
            file_id = file.id

            # Without both sections there's nothing to build, keep just the file row
            if report.format is not None and report.streams is not None:
                file.format_name = preferred_format_name(report.format.format_name)
                cover_picture_id = await self._resolve_cover(file_id, path, report)
                await self._build_tracks(file_id, name, report, cover_picture_id)

            await self._checkpoint(directory.library_id, modified=True)
        except MediaToolError as e:
            logger.warning(f"Skipping unreadable file: {e}")
            return await self._drop_file(directory, existing)
        except Exception:
            logger.warning(f"Failed to scan file {path}", exc_info=True)
            return await self._drop_file(directory, existing)

        self.stats.files_probed += 1
        if existing is None:
            self.stats.files_added += 1
        return True

    async def _drop_file(self, directory: _DirectoryRef, existing: _FileRef | None) -> bool:
        """Forget a file that couldn't be scanned (it's retried on the next scan)."""
        await self._discard()
        self.stats.files_failed += 1
        if existing is None:
            return False
        with contextlib.suppress(EntityNotFoundException):
            await self.file_repo.delete(existing.id)
        await self._checkpoint(directory.library_id, modified=True)
        self.stats.files_removed += 1
        return True

    async def _probe(self, path: Path) -> ProbeReport | None:
        """Probe with escalating detail.

        INITIAL -> PROBED_MINIMAL -> (PROBED_WITH_PACKETS) -> DONE, any failure -> FAILED
        """
        state = ProbeState.INITIAL
        report: ProbeReport | None = None

        while state not in (ProbeState.DONE, ProbeState.FAILED):
            if state is ProbeState.INITIAL:
                report = await self.prober.probe(path, ProbeSection.DEFAULT)
                state = ProbeState.PROBED_MINIMAL
            elif state is ProbeState.PROBED_MINIMAL:
                if report is None or report.error is not None:
                    state = ProbeState.FAILED
                elif report.needs_packet_detail():
                    logger.debug(f"Probing {path} again with packets")
                    report = await self.prober.probe(
                        path, ProbeSection.DEFAULT | ProbeSection.PACKETS
                    )
                    state = ProbeState.PROBED_WITH_PACKETS
                else:
                    state = ProbeState.DONE
            elif state is ProbeState.PROBED_WITH_PACKETS:
                if report is None or report.error is not None:
                    state = ProbeState.FAILED
                else:
                    state = ProbeState.DONE

        if state is ProbeState.FAILED:
            if report is not None and report.error is not None:
                logger.debug(
                    f"ffprobe reported an error for {path}: "
                    f"{report.error.code} {report.error.message}"
                )
            return None
        return report

    # =========================================================================
    # PICTURES
    # =========================================================================

    async def _resolve_cover(
        self, file_id: int, path: Path, report: ProbeReport
    ) -> int | None:
        """Sync the file's Picture rows with its current cover stream.

        Returns:
            Picture id of the file's cover, or None
        """
        pictures = {
            p.stream_index: (p.id, p.stream_hash)
            for p in await self.picture_repo.list_by_file(file_id)
        }

        stream = select_cover_stream(report)
        cover_picture_id: int | None = None
        stream_hash: int | None = None

        if stream is not None:
            digest = await self.hasher.hash_stream(path, stream.index)
            if digest is None:
                raise MediaToolError(f"ffmpeg could not digest stream {stream.index} of {path}")
            stream_hash = digest_to_int64(digest)

            current = pictures.get(stream.index)
            if current is not None and current[1] == stream_hash:
                # Same picture as last scan, leave the row alone
                del pictures[stream.index]
                cover_picture_id = current[0]

        for picture_id, _ in pictures.values():
            await self.picture_repo.delete(picture_id)

        if stream is not None and stream_hash is not None and cover_picture_id is None:
            picture = await self.picture_repo.add(file_id, stream.index, stream_hash)
            cover_picture_id = picture.id

        return cover_picture_id

    # =========================================================================
    # TRACKS
    # =========================================================================

    async def _build_tracks(
        self,
        file_id: int,
        file_name: str,
        report: ProbeReport,
        cover_picture_id: int | None,
    ) -> None:
        """One track per audio stream: update matching rows, add new, drop stale."""
        tracks = {t.stream_index: t for t in await self.track_repo.list_by_file(file_id)}
        streams = {s.index: s for s in report.audio_streams()}

        for stream_index, stale in list(tracks.items()):
            if stream_index not in streams:
                await self.track_repo.delete(stale.id)
                del tracks[stream_index]

        for stream_index, stream in streams.items():
            track = tracks.get(stream_index)
            is_new = track is None
            if track is None:
                track = TrackModel(file_id=file_id, stream_index=stream_index)
            genre_ids = await self._fill_track(
                track, file_name, report, stream, cover_picture_id
            )
            if is_new:
                await self.track_repo.add(track)
            else:
                await self.session.flush()
            await self.track_repo.set_genres(track.id, genre_ids)

    async def _fill_track(
        self,
        track: TrackModel,
        file_name: str,
        report: ProbeReport,
        stream: ProbeStream,
        cover_picture_id: int | None,
    ) -> list[int]:
        """Copy probe data and normalized tags onto a track.

        Returns:
            Ids of the track's genres (deduplicated, tag order)
        """
        tags = normalize_tags(report.merged_tags(stream))
        # None for a new track
        previous_artist_id = track.artist_id
        previous_album_id = track.album_id

        artist_id = await self.reconciler.get_or_add_artist(tags.artist_name)
        if tags.album_artist_name is None:
            album_artist_id = artist_id
        else:
            album_artist_id = await self.reconciler.get_or_add_artist(tags.album_artist_name)
        album_id = await self.reconciler.get_or_add_album(
            album_artist_id, tags.album_title, tags.date
        )
        genre_ids: list[int] = []
        for genre_name in tags.genres:
            genre_id = await self.reconciler.get_or_add_genre(genre_name)
            if genre_id not in genre_ids:
                genre_ids.append(genre_id)

        track.codec_name = stream.codec_name
        track.bit_rate = report.stream_bit_rate(stream)
        track.duration = report.stream_duration(stream)
        track.artist_id = artist_id
        track.album_id = album_id
        track.genre_id = genre_ids[0] if genre_ids else None
        track.cover_picture_id = cover_picture_id
        track.artist_sort_name = tags.artist_sort_name
        track.album_sort_title = tags.album_sort_title
        track.disc_number = tags.disc_number
        track.track_number = tags.track_number
        track.title = tags.title if tags.title is not None else Path(file_name).stem
        track.sort_title = tags.sort_title
        track.date = tags.date
        track.original_date = tags.original_date
        track.album_gain = tags.album_gain
        track.track_gain = tags.track_gain

        # Derived values (sort names, album cover/genre/dates) need a fixup
        if tags.artist_name is not None:
            await self.artist_repo.mark_dirty(artist_id)
        if tags.album_artist_name is not None:
            await self.artist_repo.mark_dirty(album_artist_id)
        if tags.album_title is not None:
            await self.album_repo.mark_dirty(album_id)
        # A retagged track no longer feeds its old artist/album
        if previous_artist_id is not None and previous_artist_id != artist_id:
            await self.artist_repo.mark_dirty(previous_artist_id)
        if previous_album_id is not None and previous_album_id != album_id:
            await self.album_repo.mark_dirty(previous_album_id)

        return genre_ids
