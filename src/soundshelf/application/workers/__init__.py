"""Worker system - background library scans."""

from soundshelf.application.workers.library_scan_worker import LibraryScanWorker

__all__ = ["LibraryScanWorker"]
