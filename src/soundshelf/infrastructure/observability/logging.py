"""Logging setup for scan runs: one stdout handler, JSON or compact text, scan correlation IDs."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, a scan can be cancelled and superseded by a newer one while its last log
# lines are still coming out. The worker sets a fresh ID per run and contextvars keeps it on
# that run's task only, so `grep scan_id=...` gives you exactly one run.
scan_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("scan_id", default="")


def get_scan_id() -> str:
    return scan_id_var.get()


def set_scan_id(scan_id: str | None = None) -> str:
    """Set the scan ID of the current context, generating a short one when None."""
    if scan_id is None:
        scan_id = uuid.uuid4().hex[:12]
    scan_id_var.set(scan_id)
    return scan_id


class ScanIdFilter(logging.Filter):
    """Copy the current scan ID onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.scan_id = get_scan_id()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Text formatter printing exception chains root cause first, soundshelf frames only.

    A failure deep in the recursive directory walk otherwise drags in one
    _scan_directory frame per nesting level plus SQLAlchemy's internals.

    Example output:
    WARNING │ soundshelf...library_scanner_service:453 │ Failed to scan file /music/a.flac
    ╰─► IntegrityError: UNIQUE constraint failed: tracks.file_id, tracks.stream_index
        File "library_scanner_service.py", line 582, in _build_tracks
          await self.track_repo.add(track)
    """

    def formatException(self, ei: Any) -> str:
        _, exc_value, _ = ei
        if exc_value is None:
            return ""

        chain: list[BaseException] = []
        seen: set[int] = set()
        current: BaseException | None = exc_value
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            chain.append(current)
            current = current.__cause__ or current.__context__
        chain.reverse()

        lines: list[str] = []
        for exc in chain:
            lines.append(f"╰─► {exc.__class__.__name__}: {exc}")
            for frame in traceback.extract_tb(exc.__traceback__):
                if "/site-packages/" in frame.filename or "soundshelf" not in frame.filename:
                    continue
                lines.append(
                    f'    File "{Path(frame.filename).name}", line {frame.lineno}, in {frame.name}'
                )
                if frame.line:
                    lines.append(f"      {frame.line.strip()}")
        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """JSON lines with source location and the scan ID."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        scan_id = getattr(record, "scan_id", "")
        if scan_id:
            log_record["scan_id"] = scan_id
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)


# Listen future me, call this ONCE at startup (lifecycle does). It owns the root logger:
# old handlers go, exactly one stdout handler comes in. sqlalchemy.engine at INFO logs one
# SELECT per file lookup during a scan, so it's pinned to WARNING with aiosqlite and asyncio.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "soundshelf",
) -> None:
    """Configure root logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines instead of compact text
        app_name: Application name for the startup log line
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(ScanIdFilter())

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = CompactExceptionFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
            datefmt="%H:%M:%S",
        )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for noisy in ("sqlalchemy.engine", "aiosqlite", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured for {app_name} (level={log_level}, json={json_format})"
    )
