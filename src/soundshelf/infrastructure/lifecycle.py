"""Startup and shutdown of a scanner process.

Usage:
    async with scanner_lifespan() as worker:
        stats = await worker.scan(force=True)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from soundshelf.application.workers import LibraryScanWorker
from soundshelf.config import Settings, get_settings
from soundshelf.domain.exceptions import ConfigurationError
from soundshelf.infrastructure.integrations import FfmpegStreamHasher, FfprobeClient
from soundshelf.infrastructure.observability import configure_logging
from soundshelf.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


# Hey future me, this runs BEFORE the engine exists. SQLite creates its -journal/-wal files
# next to the .db file, so the whole directory must be writable, not just the file. We don't
# pre-create the .db itself, an empty file confuses nothing but also proves nothing.
def _validate_sqlite_path(settings: Settings) -> None:
    """Make sure the SQLite database directory exists and is writable."""
    db_path = settings.get_sqlite_db_path()
    if db_path is None:
        return

    try:
        if str(db_path.parent) != ".":
            db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured SQLite parent directory exists: {db_path.parent}")
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update DATABASE__URL or adjust directory permissions."
        ) from exc

    try:
        test_file = db_path.parent / f".{db_path.stem}_write_test"
        test_file.write_bytes(b"test")
        test_file.unlink()
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to write files in database directory '{db_path.parent}': {exc}. "
            "SQLite needs to create the database and its journal files there."
        ) from exc


def create_scan_worker(settings: Settings, db: Database) -> LibraryScanWorker:
    """Build a scan worker wired to the configured ffprobe/ffmpeg executables."""
    return LibraryScanWorker(
        db=db,
        settings=settings,
        prober=FfprobeClient(settings.scanner),
        hasher=FfmpegStreamHasher(settings.scanner),
    )


# Listen future me, everything before `yield` is startup, everything after is shutdown. The
# finally runs even when startup itself blows up halfway, so each step only cleans up what
# actually got created.
@asynccontextmanager
async def scanner_lifespan(
    settings: Settings | None = None,
) -> AsyncGenerator[LibraryScanWorker, None]:
    """Configure logging, open the catalog and run the background scan worker.

    Args:
        settings: Settings to use, the cached environment settings when None

    Yields:
        The started LibraryScanWorker
    """
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info(f"Starting {settings.app_name}")

    _validate_sqlite_path(settings)

    db = Database(settings)
    worker: LibraryScanWorker | None = None
    try:
        await db.create_tables()
        worker = create_scan_worker(settings, db)
        await worker.start()
        yield worker
    finally:
        if worker is not None:
            await worker.stop()
        await db.close()
        logger.info(f"Stopped {settings.app_name}")
