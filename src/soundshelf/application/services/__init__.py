"""Application services - scanning, reconciliation and library management."""

from soundshelf.application.services.entity_reconciler import (
    EntityReconciler,
    album_year_bucket,
)
from soundshelf.application.services.library_fixup_service import LibraryFixupService
from soundshelf.application.services.library_scanner_service import (
    LibraryScannerService,
    MediaToolError,
    ProbeState,
    ScanStatistics,
)
from soundshelf.application.services.library_service import (
    LibraryInfo,
    LibraryService,
    normalize_library_path,
)

__all__ = [
    "EntityReconciler",
    "LibraryFixupService",
    "LibraryInfo",
    "LibraryScannerService",
    "LibraryService",
    "MediaToolError",
    "ProbeState",
    "ScanStatistics",
    "album_year_bucket",
    "normalize_library_path",
]
