"""Domain models for the granite catalogue import / export tool.

Rows, validation records, operation logs, run tallies and configuration are
plain dataclasses; behaviour lives in the services package.
"""

from .config_models import ApiConfig, ExportOptions, ImportOptions, StorageConfig, TransferConfig
from .operation_log import LogEntry, OperationLog, OperationStatus
from .processing_result import ImportResult, RowFailure, RunMetrics
from .row_record import RowRecord
from .schema import EntitySchema, FieldKind, FieldSpec, get_schema
from .validation import ValidationIssue, ValidationOutcome, ValidationStatistics

__all__ = [
    # Configuration models
    "ApiConfig",
    "ExportOptions",
    "ImportOptions",
    "StorageConfig",
    "TransferConfig",
    # Row / schema models
    "RowRecord",
    "EntitySchema",
    "FieldKind",
    "FieldSpec",
    "get_schema",
    # Validation
    "ValidationIssue",
    "ValidationOutcome",
    "ValidationStatistics",
    # Processing / logs
    "ImportResult",
    "RowFailure",
    "RunMetrics",
    "LogEntry",
    "OperationLog",
    "OperationStatus",
]
