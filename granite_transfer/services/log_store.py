from __future__ import annotations

import logging
import threading
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

from ..models.config_models import ExportOptions
from ..models.operation_log import LogEntry, OperationLog, OperationStatus
from ..models.processing_result import RunMetrics
from .exporter import ExportBlob, export_to_json

"""Operation log store: append-only audit trail of import/export runs.

Every mutation persists the full log collection under one key of the storage
collaborator, so an interrupted session can still show the last known state
of each run (recovery is observational; runs are never resumed).

Status machine per log:
    pending → processing → (completed | failed | cancelled)
pending may also be cancelled before any work starts. A terminal status is
final and stamps ``end_time``.
"""

__all__ = [
    "STORAGE_KEY",
    "LogStoreError",
    "InvalidTransitionError",
    "KeyValueStorage",
    "OperationLogStore",
]

logger = logging.getLogger(__name__)

STORAGE_KEY = "import_export_logs"

_ALLOWED: dict[OperationStatus, frozenset[OperationStatus]] = {
    OperationStatus.PENDING: frozenset({OperationStatus.PROCESSING, OperationStatus.CANCELLED}),
    OperationStatus.PROCESSING: frozenset(
        {OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED}
    ),
    OperationStatus.COMPLETED: frozenset(),
    OperationStatus.FAILED: frozenset(),
    OperationStatus.CANCELLED: frozenset(),
}


class LogStoreError(Exception):
    pass


class InvalidTransitionError(LogStoreError):
    pass


class KeyValueStorage(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class OperationLogStore:
    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._lock = threading.RLock()
        self._logs: list[OperationLog] = self._load()

    def _load(self) -> list[OperationLog]:
        raw = self._storage.get(STORAGE_KEY, []) or []
        logs = []
        for item in raw:
            try:
                logs.append(OperationLog.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"skipping unreadable stored log entry: {e}")
        return logs

    def _save(self) -> None:
        self._storage.set(STORAGE_KEY, [log.to_dict() for log in self._logs])

    def _find(self, log_id: str) -> OperationLog:
        for log in self._logs:
            if log.id == log_id:
                return log
        raise LogStoreError(f"unknown log id: {log_id}")

    def create_log(
        self,
        operation: str,
        entity_type: str,
        *,
        file_name: str | None = None,
        file_size: int | None = None,
        total_records: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        if operation not in ("import", "export"):
            raise LogStoreError(f"unknown operation: {operation}")
        with self._lock:
            log = OperationLog(
                id=uuid.uuid4().hex,
                operation=operation,
                type=entity_type,
                start_time=datetime.now(UTC),
                total_records=total_records,
                file_name=file_name,
                file_size=file_size,
                metadata=dict(metadata or {}),
            )
            self._logs.append(log)
            self._save()
            return log.id

    def update_log_status(self, log_id: str, status: OperationStatus | str) -> None:
        new_status = OperationStatus(status)
        with self._lock:
            log = self._find(log_id)
            if new_status not in _ALLOWED[log.status]:
                raise InvalidTransitionError(
                    f"log {log_id}: transition {log.status.value} -> {new_status.value} not allowed"
                )
            log.status = new_status
            if new_status.is_terminal:
                log.end_time = datetime.now(UTC)
            self._save()
        logger.info(f"Operation {new_status.value} log_id={log_id}")

    def update_progress(self, log_id: str, processed: int, successful: int, total: int) -> None:
        """Set the run counters; they may only grow and never exceed ``total``."""
        with self._lock:
            log = self._find(log_id)
            failed = processed - successful
            if min(processed, successful, failed, total) < 0:
                raise LogStoreError(f"log {log_id}: negative counters")
            if processed > total:
                raise LogStoreError(f"log {log_id}: processed {processed} exceeds total {total}")
            if (
                processed < log.processed_records
                or successful < log.successful_records
                or failed < log.failed_records
                or total < log.total_records
            ):
                raise LogStoreError(f"log {log_id}: counters must not decrease")
            log.processed_records = processed
            log.successful_records = successful
            log.failed_records = failed
            log.total_records = total
            self._save()

    def add_error(
        self, log_id: str, row: int, message: str, field: str | None = None, data: Any = None
    ) -> None:
        with self._lock:
            self._find(log_id).errors.append(LogEntry(row=row, message=message, field=field, data=data))
            self._save()
        logger.error(f"log_id={log_id} row={row} field={field} {message}")

    def add_warning(
        self, log_id: str, row: int, message: str, field: str | None = None, data: Any = None
    ) -> None:
        with self._lock:
            self._find(log_id).warnings.append(LogEntry(row=row, message=message, field=field, data=data))
            self._save()
        logger.warning(f"log_id={log_id} row={row} field={field} {message}")

    def update_metadata(self, log_id: str, **values: Any) -> None:
        with self._lock:
            self._find(log_id).metadata.update(values)
            self._save()

    def set_metrics(self, log_id: str, metrics: RunMetrics) -> None:
        self.update_metadata(log_id, metrics=metrics.to_dict())

    def get_log(self, log_id: str) -> OperationLog | None:
        with self._lock:
            for log in self._logs:
                if log.id == log_id:
                    return log
        return None

    def get_logs(self) -> list[OperationLog]:
        """All logs, newest first."""
        with self._lock:
            # 同時刻は後から作成されたものを先に
            ordered = sorted(enumerate(self._logs), key=lambda p: (p[1].start_time, p[0]), reverse=True)
            return [log for _, log in ordered]

    def export_logs(self) -> ExportBlob:
        records = [log.to_dict() for log in self.get_logs()]
        return export_to_json(records, ExportOptions(include_metadata=True))

    def clear_logs(self) -> None:
        with self._lock:
            self._logs = []
            self._save()
        logger.info("Operation logs cleared")
