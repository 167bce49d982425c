from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

"""OperationLog domain model and OperationStatus enum.

One OperationLog is kept per import/export run. It is created when the run
starts, mutated while work proceeds and persisted after every mutation by the
log store (services.log_store).
"""

__all__ = [
    "OperationStatus",
    "OperationLog",
    "LogEntry",
    "TERMINAL_STATUSES",
]


class OperationStatus(Enum):
    """Status enum for an import/export run.

    State transitions: pending → processing → (completed | failed | cancelled)
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED}
)


@dataclass(frozen=True)
class LogEntry:
    """One error or warning attached to a run, attributed to a source row."""
    row: int
    message: str
    field: str | None = None
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "field": self.field, "message": self.message, "data": self.data}

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> LogEntry:
        return LogEntry(
            row=int(raw.get("row", -1)),
            message=str(raw.get("message", "")),
            field=raw.get("field"),
            data=raw.get("data"),
        )


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class OperationLog:
    id: str
    operation: str  # import | export
    type: str  # entity kind (variants / specificVariants / products / hierarchy / logs)
    start_time: datetime
    status: OperationStatus = OperationStatus.PENDING
    end_time: datetime | None = None
    total_records: int = 0
    processed_records: int = 0
    successful_records: int = 0
    failed_records: int = 0
    errors: list[LogEntry] = field(default_factory=list)
    warnings: list[LogEntry] = field(default_factory=list)
    file_name: str | None = None
    file_size: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "operation": self.operation,
            "type": self.type,
            "status": self.status.value,
            "startTime": _ts(self.start_time),
            "endTime": _ts(self.end_time),
            "totalRecords": self.total_records,
            "processedRecords": self.processed_records,
            "successfulRecords": self.successful_records,
            "failedRecords": self.failed_records,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "metadata": self.metadata,
        }

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> OperationLog:
        return OperationLog(
            id=str(raw["id"]),
            operation=raw["operation"],
            type=raw["type"],
            start_time=_parse_ts(raw["startTime"]),  # type: ignore[arg-type]
            status=OperationStatus(raw.get("status", "pending")),
            end_time=_parse_ts(raw.get("endTime")),
            total_records=int(raw.get("totalRecords", 0)),
            processed_records=int(raw.get("processedRecords", 0)),
            successful_records=int(raw.get("successfulRecords", 0)),
            failed_records=int(raw.get("failedRecords", 0)),
            errors=[LogEntry.from_dict(e) for e in raw.get("errors", [])],
            warnings=[LogEntry.from_dict(w) for w in raw.get("warnings", [])],
            file_name=raw.get("fileName"),
            file_size=raw.get("fileSize"),
            metadata=dict(raw.get("metadata") or {}),
        )
