from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..api.client import CommitError, GraniteApiClient
from ..logging.error_log import PARSE_ERROR, ROW_COMMIT_ERROR, VALIDATION_ERROR, ErrorJournal
from ..logging.init import log_summary
from ..models.config_models import TransferConfig
from ..models.operation_log import OperationStatus
from ..models.processing_result import ImportResult
from ..models.row_record import RowRecord
from ..models.validation import ValidationOutcome
from ..parsing.csv_parser import ParseError, read_file
from .cancellation import CancellationToken
from .exporter import ExportBlob, ExportError, default_filename, export_to_csv, export_to_json
from .hierarchy import HierarchyContext, import_hierarchy
from .importer import PAYLOAD_BUILDERS, import_entities
from .log_store import OperationLogStore
from .progress import ProgressEvent, ProgressSink, ProgressTracker, fan_out
from .summary import render_summary_line
from .validator import validate

"""Service orchestration for granite catalogue transfers.

TransferService ties the pipeline together and keeps the operation log in
step with every run:

validate_file(): parse → validate → log completed (valid) / failed (invalid)
import_file():   parse → validate → commit rows (flat or hierarchy; log counters
                 persisted after every row) →
                 error journal flush → SUMMARY line → log completed / cancelled
export_*():      serialize records (csv | json) → optional write → log completed

Row failures never abort a run; they are tallied, journaled and logged.
Parse failures and imports requested on invalid data abort the run: the log
is marked failed and the error propagates.
"""

__all__ = [
    "ProcessingError",
    "InvalidDataError",
    "ImportRun",
    "ExportRun",
    "EXPORT_FORMATS",
    "TransferService",
]

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")
HIERARCHY_TYPE = "hierarchy"
FILE_LEVEL_ROW = -1


class ProcessingError(Exception):
    """Fatal run error (nothing was committed by the failing step)."""
    pass


class InvalidDataError(ProcessingError):
    """Import refused because the file has validation errors."""

    def __init__(self, message: str, outcome: ValidationOutcome, log_id: str) -> None:
        super().__init__(message)
        self.outcome = outcome
        self.log_id = log_id


@dataclass
class ImportRun:
    log_id: str
    result: ImportResult
    error_log_path: Path | None = None


@dataclass
class ExportRun:
    log_id: str
    blob: ExportBlob
    output_path: Path | None = None


class TransferService:
    def __init__(
        self,
        config: TransferConfig,
        api: GraniteApiClient,
        log_store: OperationLogStore,
        *,
        show_progress: bool = True,
    ) -> None:
        self.config = config
        self.api = api
        self.log_store = log_store
        self.show_progress = show_progress

    def _open_journal(self, path: Path, entity_type: str) -> ErrorJournal:
        return ErrorJournal(path.name, entity_type, Path(self.config.storage.error_log_dir))

    def _read(self, path: Path, log_id: str, journal: ErrorJournal) -> list[RowRecord]:
        try:
            return read_file(path, self.config.import_options)
        except ParseError as e:
            logger.error(f"parse failed file={path.name}: {e}")
            journal.record(FILE_LEVEL_ROW, PARSE_ERROR, str(e))
            journal.flush()
            self.log_store.add_error(log_id, FILE_LEVEL_ROW, str(e))
            self.log_store.update_log_status(log_id, OperationStatus.FAILED)
            raise

    def _log_progress(self, log_id: str) -> ProgressSink:
        def _persist(event: ProgressEvent) -> None:
            self.log_store.update_progress(log_id, event.processed, event.succeeded, event.total)

        return _persist

    def _record_validation(self, log_id: str, outcome: ValidationOutcome) -> None:
        for issue in outcome.errors:
            self.log_store.add_error(log_id, issue.row, issue.message, issue.field, issue.value)
        for issue in outcome.warnings:
            self.log_store.add_warning(log_id, issue.row, issue.message, issue.field, issue.value)

    # ------------------------------------------------------------------
    # validate
    # ------------------------------------------------------------------
    def validate_file(self, path: Path, entity_type: str) -> tuple[str, ValidationOutcome]:
        """Validate a file without committing anything."""
        log_id = self.log_store.create_log(
            "import",
            entity_type,
            file_name=path.name,
            file_size=path.stat().st_size if path.exists() else None,
            metadata={"validateOnly": True},
        )
        self.log_store.update_log_status(log_id, OperationStatus.PROCESSING)
        rows = self._read(path, log_id, self._open_journal(path, entity_type))
        outcome = validate(rows, entity_type)

        stats = outcome.statistics
        self.log_store.update_progress(log_id, stats.total_rows, stats.valid_rows, stats.total_rows)
        self._record_validation(log_id, outcome)
        self.log_store.update_metadata(log_id, statistics=stats.to_dict())
        final = OperationStatus.COMPLETED if outcome.is_valid else OperationStatus.FAILED
        self.log_store.update_log_status(log_id, final)
        logger.info(
            f"Validation finished file={path.name} type={entity_type} total={stats.total_rows} "
            f"valid={stats.valid_rows} invalid={stats.invalid_rows} duplicates={stats.duplicate_rows}"
        )
        return log_id, outcome

    # ------------------------------------------------------------------
    # import
    # ------------------------------------------------------------------
    def import_file(
        self,
        path: Path,
        entity_type: str,
        *,
        on_progress: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ImportRun:
        if entity_type != HIERARCHY_TYPE and entity_type not in PAYLOAD_BUILDERS:
            raise ProcessingError(f"Unsupported import type: {entity_type}")

        log_id = self.log_store.create_log(
            "import",
            entity_type,
            file_name=path.name,
            file_size=path.stat().st_size if path.exists() else None,
        )
        self.log_store.update_log_status(log_id, OperationStatus.PROCESSING)
        journal = self._open_journal(path, entity_type)
        rows = self._read(path, log_id, journal)
        self.log_store.update_progress(log_id, 0, 0, len(rows))
        return self._import_rows(log_id, rows, entity_type, journal, on_progress, cancel_token)

    def _import_rows(
        self,
        log_id: str,
        rows: Sequence[RowRecord],
        entity_type: str,
        journal: ErrorJournal,
        on_progress: ProgressSink | None,
        cancel_token: CancellationToken | None,
    ) -> ImportRun:
        outcome = validate(rows, entity_type)
        self._record_validation(log_id, outcome)
        if not outcome.is_valid:
            for issue in outcome.errors:
                journal.record(issue.row, VALIDATION_ERROR, issue.message)
            journal.flush()
            self.log_store.update_log_status(log_id, OperationStatus.FAILED)
            raise InvalidDataError(
                f"Please fix validation errors before importing ({len(outcome.errors)} errors)",
                outcome,
                log_id,
            )

        opts = self.config.import_options
        tracker = ProgressTracker(len(rows), description=f"Importing {entity_type}") if self.show_progress else None
        # ログ側を先に更新: on_progress からは永続化済みの件数が見える
        sink = fan_out(self._log_progress(log_id), on_progress, tracker)
        try:
            if entity_type == HIERARCHY_TYPE:
                result = import_hierarchy(
                    rows,
                    self.api,
                    context=HierarchyContext(),
                    mode=opts.hierarchy_mode,
                    on_progress=sink,
                    cancel_token=cancel_token,
                    concurrency=opts.concurrency,
                )
            else:
                result = import_entities(
                    rows,
                    entity_type,
                    self.api,
                    on_progress=sink,
                    cancel_token=cancel_token,
                    concurrency=opts.concurrency,
                )
            if tracker is not None:
                tracker.set_postfix(success=result.success, failed=result.failed)
        finally:
            if tracker is not None:
                tracker.close()

        self.log_store.update_progress(log_id, result.processed, result.success, result.total)
        for failure in result.errors:
            self.log_store.add_error(log_id, failure.row, failure.error, data=failure.data)
            journal.record(failure.row, ROW_COMMIT_ERROR, failure.error)
        journal_path = journal.flush()

        if result.metrics is not None:
            self.log_store.set_metrics(log_id, result.metrics)
        if journal_path is not None:
            self.log_store.update_metadata(
                log_id, errorLogPath=str(journal_path), errorCounts=journal.counts_by_type()
            )

        summary = render_summary_line("import", entity_type, result)
        log_summary(summary[len("SUMMARY "):])  # プレフィックスはフォーマッタが付与

        final = OperationStatus.CANCELLED if result.cancelled else OperationStatus.COMPLETED
        self.log_store.update_log_status(log_id, final)
        return ImportRun(log_id=log_id, result=result, error_log_path=journal_path)

    # ------------------------------------------------------------------
    # export
    # ------------------------------------------------------------------
    def _fetchers(self) -> dict[str, Callable[[], list[dict[str, Any]]]]:
        return {
            "variants": self.api.list_variants,
            "specificVariants": self.api.list_specific_variants,
            "products": self.api.list_products,
        }

    def export_records(
        self,
        records: Sequence[Mapping[str, Any]],
        entity_type: str,
        fmt: str,
        output: Path | None = None,
    ) -> ExportRun:
        """Serialize records and write them to ``output`` when given."""
        if fmt not in EXPORT_FORMATS:
            raise ProcessingError(f"Unsupported export format: {fmt}")

        log_id = self.log_store.create_log(
            "export",
            entity_type,
            total_records=len(records),
            metadata={"format": fmt},
        )
        self.log_store.update_log_status(log_id, OperationStatus.PROCESSING)
        try:
            if fmt == "csv":
                blob = export_to_csv(records, self.config.export_options)
            else:
                blob = export_to_json(records, self.config.export_options)
            written = blob.write_to(output) if output is not None else None
        except (ExportError, OSError) as e:
            self.log_store.add_error(log_id, FILE_LEVEL_ROW, str(e))
            self.log_store.update_log_status(log_id, OperationStatus.FAILED)
            raise

        count = len(records)
        self.log_store.update_progress(log_id, count, count, count)
        self.log_store.update_metadata(
            log_id,
            fileName=(written.name if written is not None else default_filename(entity_type, fmt)),
            fileSize=blob.size,
        )
        self.log_store.update_log_status(log_id, OperationStatus.COMPLETED)
        logger.info(f"Export finished type={entity_type} format={fmt} records={count} size={blob.size}")
        return ExportRun(log_id=log_id, blob=blob, output_path=written)

    def export_entities(self, entity_type: str, fmt: str, output: Path | None = None) -> ExportRun:
        """Fetch the current catalogue of ``entity_type`` and export it."""
        fetch = self._fetchers().get(entity_type)
        if fetch is None:
            raise ProcessingError(f"Unsupported export type: {entity_type}")
        try:
            records = fetch()
        except CommitError as e:
            raise ProcessingError(f"Failed to fetch {entity_type}: {e}") from e
        logger.info(f"Fetched {entity_type} for export count={len(records)}")
        return self.export_records(records, entity_type, fmt, output)

    def export_logs(self, output: Path | None = None) -> ExportBlob:
        blob = self.log_store.export_logs()
        if output is not None:
            blob.write_to(output)
            logger.info(f"Operation logs exported path={output} size={blob.size}")
        return blob
