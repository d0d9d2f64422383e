"""Background worker that keeps the catalog in sync with the library folders.

Hey future me - there is exactly ONE scan at any time! Two scans writing the same
directories/files rows would fight over every checkpoint. The rules:

1. scan() cancels whatever scan is running, WAITS until it has fully stopped (its session
   rolled back and closed), and only then starts the new one.
2. The caller whose scan was cancelled gets asyncio.CancelledError. Work that scan already
   committed at its checkpoints stays, the next scan picks up from there.
3. The scheduler loop is just another caller of scan(). A manual scan that supersedes a
   scheduled one doesn't kill the loop.

Usage:
    worker = LibraryScanWorker(db=db, settings=settings, prober=prober, hasher=hasher)
    await worker.start()        # periodic rescans
    stats = await worker.scan(force=True)
    await worker.stop()
"""

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from soundshelf.application.services.library_scanner_service import (
    LibraryScannerService,
    ScanStatistics,
)
from soundshelf.infrastructure.observability import set_scan_id
from soundshelf.infrastructure.persistence.models import utc_now

if TYPE_CHECKING:
    from soundshelf.config import Settings
    from soundshelf.domain.ports import IMediaProber, IStreamHasher
    from soundshelf.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


class LibraryScanWorker:
    """Single-flight library scans plus a periodic rescan loop."""

    def __init__(
        self,
        db: "Database",
        settings: "Settings",
        prober: "IMediaProber",
        hasher: "IStreamHasher",
    ) -> None:
        """Initialize scan worker.

        Args:
            db: Database instance for creating sessions
            settings: Application settings (scanner.rescan_interval_hours, scan_on_startup)
            prober: Media probe tool handed to every scan
            hasher: Stream digest tool handed to every scan
        """
        self.db = db
        self.settings = settings
        self.prober = prober
        self.hasher = hasher

        self._lock = asyncio.Lock()
        self._active_task: asyncio.Task[ScanStatistics | None] | None = None

        self._running = False
        self._loop_task: asyncio.Task[None] | None = None

        self._last_stats: ScanStatistics | None = None
        self._last_scan_started: datetime | None = None
        self._last_scan_finished: datetime | None = None
        self._last_error: str | None = None

    @property
    def is_scanning(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    # =========================================================================
    # SCANS
    # =========================================================================

    async def scan(self, force: bool = False) -> ScanStatistics | None:
        """Run a scan, superseding any scan in progress.

        Args:
            force: Re-probe every file, not just changed ones

        Returns:
            Statistics of the scan, or None if it failed

        Raises:
            asyncio.CancelledError: If a newer scan() call cancelled this one
        """
        async with self._lock:
            await self._cancel_active()
            task = asyncio.create_task(self._run_scan(force))
            self._active_task = task
        return await task

    async def stop_scan(self) -> None:
        """Cancel the active scan and wait for it to stop (no-op when idle)."""
        async with self._lock:
            await self._cancel_active()

    async def _cancel_active(self) -> None:
        task = self._active_task
        if task is None or task.done():
            return
        logger.info("Cancelling active library scan")
        task.cancel()
        # asyncio.wait never raises, so a cancellation of OUR caller still gets through
        await asyncio.wait([task])

    async def _run_scan(self, force: bool) -> ScanStatistics | None:
        scan_id = set_scan_id()
        self._last_scan_started = utc_now()
        logger.info(f"Library scan {scan_id} started (force={force})")

        try:
            async with self.db.session_scope() as session:
                scanner = LibraryScannerService(session, self.prober, self.hasher)
                stats = await scanner.scan_libraries(force=force)
        except asyncio.CancelledError:
            logger.info(f"Library scan {scan_id} cancelled")
            raise
        except Exception as e:
            # Keep the worker alive, the next scan starts from the last checkpoint
            self._last_error = str(e)
            self._last_scan_finished = utc_now()
            logger.error(f"Library scan {scan_id} failed: {e}", exc_info=True)
            return None

        self._last_stats = stats
        self._last_error = None
        self._last_scan_finished = utc_now()
        logger.info(f"Library scan {scan_id} finished")
        return stats

    # =========================================================================
    # SCHEDULER
    # =========================================================================

    async def start(self) -> None:
        """Start the periodic rescan loop (idempotent)."""
        if self._running:
            logger.warning("Library scan worker is already running")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Library scan worker started "
            f"(interval={self.settings.scanner.rescan_interval_hours}h)"
        )

    async def stop(self) -> None:
        """Stop the loop and cancel any running scan."""
        self._running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None
        await self.stop_scan()
        logger.info("Library scan worker stopped")

    async def _run_loop(self) -> None:
        interval = self.settings.scanner.rescan_interval_hours * 3600
        if not self.settings.scanner.scan_on_startup:
            await asyncio.sleep(interval)

        while self._running:
            if self.is_scanning:
                logger.debug("Scan already in progress, skipping scheduled scan")
            else:
                try:
                    await self.scan()
                except asyncio.CancelledError:
                    current = asyncio.current_task()
                    if current is not None and current.cancelling():
                        raise
                    logger.info("Scheduled scan was superseded by a newer scan")
            await asyncio.sleep(interval)

    def get_status(self) -> dict[str, Any]:
        """Get worker status for monitoring."""
        return {
            "running": self._running,
            "scanning": self.is_scanning,
            "last_stats": self._last_stats.to_dict() if self._last_stats else None,
            "last_scan_started": (
                self._last_scan_started.isoformat() if self._last_scan_started else None
            ),
            "last_scan_finished": (
                self._last_scan_finished.isoformat() if self._last_scan_finished else None
            ),
            "last_error": self._last_error,
            "rescan_interval_hours": self.settings.scanner.rescan_interval_hours,
        }
