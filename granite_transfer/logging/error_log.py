from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import ErrorRecord

"""Per-run error journal (JSON Lines).

An ErrorJournal is opened for one import run and knows the run's source file
and entity type, so callers only report the row, the error class and the
message. Records stay in memory until flush(); the journal file
``<logs_dir>/errors-YYYYMMDD-HHMMSS.log`` (UTC) is created on the first
flush that has something to write, never for a clean run.

Error classes:
    PARSE_ERROR       file unreadable / empty (row -1)
    VALIDATION_ERROR  import refused, one record per validation error
    ROW_COMMIT_ERROR  remote create rejected for a row
"""

__all__ = [
    "ERROR_TYPES",
    "PARSE_ERROR",
    "VALIDATION_ERROR",
    "ROW_COMMIT_ERROR",
    "ErrorRecord",
    "ErrorJournal",
]

logger = logging.getLogger(__name__)

PARSE_ERROR = "PARSE_ERROR"
VALIDATION_ERROR = "VALIDATION_ERROR"
ROW_COMMIT_ERROR = "ROW_COMMIT_ERROR"
ERROR_TYPES = frozenset({PARSE_ERROR, VALIDATION_ERROR, ROW_COMMIT_ERROR})

DEFAULT_LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorJournal:
    """Buffered JSON Lines journal bound to one run (file name + entity type)."""

    def __init__(self, file_name: str, entity_type: str, logs_dir: Path | None = None) -> None:
        self.file_name = file_name
        self.entity_type = entity_type
        self._logs_dir = logs_dir if logs_dir is not None else DEFAULT_LOGS_DIR
        self._pending: list[ErrorRecord] = []
        self._written: Counter[str] = Counter()
        self._path: Path | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path | None:
        """Journal file, or None while nothing has been written."""
        return self._path

    def record(self, row: int, error_type: str, message: str) -> ErrorRecord:
        if error_type not in ERROR_TYPES:
            raise ValueError(f"unknown error type: {error_type}")
        rec = ErrorRecord.create(self.file_name, self.entity_type, row, error_type, message)
        with self._lock:
            self._pending.append(rec)
        return rec

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def counts_by_type(self) -> dict[str, int]:
        """Written + pending record counts per error class."""
        with self._lock:
            counts = Counter(self._written)
            counts.update(r.error_type for r in self._pending)
        return dict(counts)

    def _open_path(self) -> Path:
        if self._path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._path = self._logs_dir / f"errors-{stamp}.log"
        return self._path

    def flush(self) -> Path | None:
        """Append pending records; returns the journal path, or None when nothing was ever written."""
        with self._lock:
            if not self._pending:
                return self._path
            fp = self._open_path()
            with fp.open("a", encoding="utf-8") as f:
                for r in self._pending:
                    f.write(r.to_json_line() + "\n")
            self._written.update(r.error_type for r in self._pending)
            self._pending.clear()
        logger.debug(f"error journal flushed path={fp} file={self.file_name} counts={dict(self._written)}")
        return fp
