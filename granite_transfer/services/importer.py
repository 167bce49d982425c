from __future__ import annotations

import concurrent.futures
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from ..api.client import ApiResponse, CommitError, GraniteApiClient
from ..models.processing_result import CallStatsAccumulator, ImportResult, RowFailure
from ..models.row_record import RowRecord
from ..models.schema import get_schema
from .cancellation import CancellationToken
from .progress import ProgressSink, RowCounter
from .validator import coerce

"""Batch commit executor for flat imports (variants / specificVariants / products).

One create call is issued per row. A row succeeds only when the response
carries a created-entity payload; an empty response or an exception is
recorded as a RowFailure and the next row is processed regardless. There is
no automatic retry.

run_rows() is the shared row loop (also used by the hierarchy resolver):
sequential by default, or a small thread pool when concurrency > 1. Either
way every processed row is counted exactly once and progress events are
emitted from the completed-row count.
"""

__all__ = [
    "UNKNOWN_ERROR",
    "PAYLOAD_BUILDERS",
    "build_payload",
    "run_rows",
    "import_entities",
]

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error"
DEFAULT_UNIT = "sq_ft"
DEFAULT_STATUS = "active"
DEFAULT_FINISH = "polished"

RowHandler = Callable[[RowRecord], "RowFailure | None"]

_SKIPPED = object()


def _variant_payload(v: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": v.get("name", ""),
        "description": v.get("description") or "",
        "image": v.get("image") or "",
    }


def _specific_variant_payload(v: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": v.get("name", ""),
        "description": v.get("description") or "",
        "image": v.get("image") or "",
        "variantId": v.get("variantId") or "",
    }


def _product_payload(v: dict[str, Any]) -> dict[str, Any]:
    finish = v.get("finish")
    image = v.get("image")
    return {
        "name": v.get("name", ""),
        "basePrice": float(v.get("basePrice", 0.0)),
        "stock": int(v.get("stock", 0)),
        "unit": v.get("unit") or DEFAULT_UNIT,
        "status": v.get("status") or DEFAULT_STATUS,
        "variantSpecificId": v.get("specificVariantId") or v.get("variantSpecificId") or "",
        "finish": [finish] if finish else [DEFAULT_FINISH],
        "dimensions": [],
        "images": [image] if image else [],
        "applications": [],
    }


PAYLOAD_BUILDERS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "variants": _variant_payload,
    "specificVariants": _specific_variant_payload,
    "products": _product_payload,
}


def build_payload(row: RowRecord, entity_type: str) -> dict[str, Any]:
    """Map a row onto a clean create payload (parser-only fields are not carried)."""
    builder = PAYLOAD_BUILDERS.get(entity_type)
    if builder is None:
        raise ValueError(f"Unsupported import type: {entity_type}")
    return builder(coerce(row, get_schema(entity_type)))


def _create_call(api: GraniteApiClient, entity_type: str) -> Callable[[dict[str, Any]], ApiResponse]:
    return {
        "variants": api.create_variant,
        "specificVariants": api.create_specific_variant,
        "products": api.create_product,
    }[entity_type]


def timed(stats: CallStatsAccumulator | None, call: Callable[[], Any]) -> Any:
    """Run a remote call and record its duration (also when it raises)."""
    start = time.perf_counter()
    try:
        return call()
    finally:
        if stats is not None:
            stats.add_call_time(time.perf_counter() - start)


def run_rows(
    rows: Sequence[RowRecord],
    handle_row: RowHandler,
    *,
    on_progress: ProgressSink | None = None,
    cancel_token: CancellationToken | None = None,
    concurrency: int = 1,
) -> ImportResult:
    """Drive ``handle_row`` over every row and aggregate the tally.

    handle_row returns None on success or a RowFailure. Unexpected exceptions
    are converted into a RowFailure for that row. Results are reported in
    source order whatever the completion order.
    """
    result = ImportResult(total=len(rows))
    counter = RowCounter(len(rows), on_progress)

    def _process(row: RowRecord) -> Any:
        if cancel_token is not None and cancel_token.cancelled:
            return _SKIPPED
        try:
            outcome = handle_row(row)
        except Exception as e:
            logger.error(f"row {row.row_index}: unexpected error: {e}")
            outcome = RowFailure(row=row.row_index, error=str(e), data=row.as_dict())
        counter.complete_row(success=outcome is None)
        return outcome

    if concurrency <= 1:
        outcomes = []
        for row in rows:
            outcome = _process(row)
            if outcome is _SKIPPED:
                break
            outcomes.append(outcome)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=concurrency) as executor:
            futures = [executor.submit(_process, row) for row in rows]
            outcomes = [f.result() for f in futures]  # 入力順で回収

    for outcome in outcomes:
        if outcome is _SKIPPED:
            continue
        result.processed += 1
        if outcome is None:
            result.success += 1
        else:
            result.errors.append(outcome)

    result.cancelled = result.processed < result.total
    return result


def import_entities(
    rows: Sequence[RowRecord],
    entity_type: str,
    api: GraniteApiClient,
    *,
    on_progress: ProgressSink | None = None,
    cancel_token: CancellationToken | None = None,
    concurrency: int = 1,
    stats: CallStatsAccumulator | None = None,
) -> ImportResult:
    """Create one entity per row through the remote API."""
    create = _create_call(api, entity_type)
    started = time.perf_counter()
    stats = stats if stats is not None else CallStatsAccumulator()
    logger.info(f"Starting {entity_type} import count={len(rows)}")

    def _handle(row: RowRecord) -> RowFailure | None:
        payload = build_payload(row, entity_type)
        try:
            response = timed(stats, lambda: create(payload))
        except CommitError as e:
            logger.error(f"row {row.row_index}: {entity_type} import error: {e}")
            return RowFailure(row=row.row_index, error=str(e), data=row.as_dict())

        if response is not None and response.data:
            logger.debug(f"row {row.row_index}: imported name={payload.get('name')} id={response.entity_id}")
            return None
        message = (response.message if response is not None else None) or UNKNOWN_ERROR
        logger.warning(f"row {row.row_index}: {entity_type} import failed: {message}")
        return RowFailure(row=row.row_index, error=message, data=row.as_dict())

    result = run_rows(
        rows,
        _handle,
        on_progress=on_progress,
        cancel_token=cancel_token,
        concurrency=concurrency,
    )
    result.metrics = stats.build_metrics(time.perf_counter() - started, result.processed)
    logger.info(f"{entity_type} import finished success={result.success} errors={result.failed}")
    return result
