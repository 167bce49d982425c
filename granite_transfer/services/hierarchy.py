from __future__ import annotations

import logging
import threading
import time
from collections.abc import Sequence
from typing import Any

from ..api.client import CommitError, CreateStatus, EntityKind, GraniteApiClient
from ..models.processing_result import CallStatsAccumulator, ImportResult, RowFailure
from ..models.row_record import RowRecord
from .cancellation import CancellationToken
from .importer import DEFAULT_FINISH, DEFAULT_STATUS, DEFAULT_UNIT, run_rows, timed
from .progress import ProgressSink
from .validator import parse_integer, parse_number

"""Hierarchy resolver for combined variant → specific variant → product files.

Input columns: variant_name, variant_description, specific_name,
specific_description, product_name, product_price, product_stock, product_unit.

For every row, in source order, the parents are resolved by name before the
product is created:

1. variant id from the run's memo (variant_name), else create the Variant
2. specific variant id from the memo ("variant_name::specific_name"), else
   create the SpecificVariant under the variant id
3. create the Product under the specific variant id

Parent creation uses the tagged Created / AlreadyExists / Failed result of the
API client. AlreadyExists is resolved by looking the entity up by name.
Failed depends on the mode: ``strict`` leaves the parent unresolved so the
row fails, ``lenient`` assumes the parent exists server-side and tries the
same name lookup. Parents created before a product failure are kept; no
rollback is attempted.

Memo writes and parent creation for one name happen under a per-name lock,
so concurrent rows sharing an unresolved parent issue one create call.
"""

__all__ = [
    "HIERARCHY_FAILED_MESSAGE",
    "PRODUCT_FAILED_MESSAGE",
    "HierarchyContext",
    "import_hierarchy",
]

logger = logging.getLogger(__name__)

HIERARCHY_FAILED_MESSAGE = "Failed to create variant/specific variant hierarchy"
PRODUCT_FAILED_MESSAGE = "Product creation failed"
STRICT = "strict"
LENIENT = "lenient"


class HierarchyContext:
    """Run-scoped name → id memo for variants and specific variants.

    Keys are the trimmed, case-sensitive names; specific variants are keyed
    by ``"<variant_name>::<specific_name>"``. Not persisted.
    """

    def __init__(self) -> None:
        self.variants: dict[str, str] = {}
        self.specific_variants: dict[str, str] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}

    @staticmethod
    def specific_key(variant_name: str, specific_name: str) -> str:
        return f"{variant_name}::{specific_name}"

    def key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock


class _Resolver:
    def __init__(
        self,
        api: GraniteApiClient,
        context: HierarchyContext,
        mode: str,
        stats: CallStatsAccumulator,
    ) -> None:
        if mode not in (STRICT, LENIENT):
            raise ValueError(f"unsupported hierarchy mode: {mode!r}")
        self.api = api
        self.ctx = context
        self.mode = mode
        self.stats = stats

    def _lookup(self, label: str, name: str, find: Any) -> str | None:
        try:
            found = timed(self.stats, find)
        except CommitError as e:
            logger.warning(f"{label} lookup failed name={name}: {e}")
            return None
        if found is None:
            logger.warning(f"{label} not found by name={name}")
        return found

    def _ensure(
        self,
        label: str,
        kind: EntityKind,
        memo: dict[str, str],
        key: str,
        name: str,
        payload: dict[str, Any],
        find: Any,
    ) -> str | None:
        with self.ctx.key_lock(f"{kind.value}:{key}"):
            cached = memo.get(key)
            if cached is not None:
                return cached

            created = timed(self.stats, lambda: self.api.create_tagged(kind, payload))
            entity_id: str | None = None
            if created.status is CreateStatus.CREATED:
                entity_id = created.entity_id
                logger.info(f"Created {label} in hierarchy name={name}")
            elif created.status is CreateStatus.ALREADY_EXISTS:
                logger.info(f"{label} already exists name={name}, resolving by name")
                entity_id = self._lookup(label, name, find)
            else:
                logger.warning(f"{label} creation failed name={name}: {created.message}")
                if self.mode == LENIENT:
                    # 既存前提で名前検索 (lenient)
                    entity_id = self._lookup(label, name, find)

            if entity_id is not None:
                memo[key] = entity_id
            return entity_id

    def variant_id(self, row: RowRecord) -> str | None:
        name = row.text("variant_name")
        payload = {
            "name": name,
            "description": row.text("variant_description"),
            "image": "",
        }
        return self._ensure(
            "variant",
            EntityKind.VARIANT,
            self.ctx.variants,
            name,
            name,
            payload,
            lambda: self.api.find_variant_by_name(name),
        )

    def specific_variant_id(self, row: RowRecord, variant_id: str) -> str | None:
        variant_name = row.text("variant_name")
        name = row.text("specific_name")
        payload = {
            "name": name,
            "description": row.text("specific_description"),
            "variantId": variant_id,
            "image": "",
        }
        return self._ensure(
            "specific variant",
            EntityKind.SPECIFIC_VARIANT,
            self.ctx.specific_variants,
            HierarchyContext.specific_key(variant_name, name),
            name,
            payload,
            lambda: self.api.find_specific_variant(variant_id, name),
        )

    def handle(self, row: RowRecord) -> RowFailure | None:
        variant_id = self.variant_id(row)
        specific_id = self.specific_variant_id(row, variant_id) if variant_id else None
        if not specific_id:
            return RowFailure(row=row.row_index, error=HIERARCHY_FAILED_MESSAGE, data=row.as_dict())

        payload = {
            "name": row.text("product_name"),
            "basePrice": parse_number(row.text("product_price")) or 0.0,
            "stock": parse_integer(row.text("product_stock")) or 0,
            "unit": row.text("product_unit") or DEFAULT_UNIT,
            "status": DEFAULT_STATUS,
            "variantSpecificId": specific_id,
            "finish": [DEFAULT_FINISH],
            "dimensions": [],
            "images": [],
            "applications": [],
        }
        try:
            response = timed(self.stats, lambda: self.api.create_product(payload))
        except Exception as e:
            return RowFailure(row=row.row_index, error=f"{PRODUCT_FAILED_MESSAGE}: {e}", data=row.as_dict())
        if response is not None and response.data:
            logger.debug(f"row {row.row_index}: created product name={payload['name']}")
            return None
        message = (response.message if response is not None else None) or PRODUCT_FAILED_MESSAGE
        return RowFailure(row=row.row_index, error=message, data=row.as_dict())


def import_hierarchy(
    rows: Sequence[RowRecord],
    api: GraniteApiClient,
    *,
    context: HierarchyContext | None = None,
    mode: str = STRICT,
    on_progress: ProgressSink | None = None,
    cancel_token: CancellationToken | None = None,
    concurrency: int = 1,
    stats: CallStatsAccumulator | None = None,
) -> ImportResult:
    """Import a combined hierarchy file; every row is processed and tallied."""
    ctx = context if context is not None else HierarchyContext()
    stats = stats if stats is not None else CallStatsAccumulator()
    resolver = _Resolver(api, ctx, mode, stats)
    started = time.perf_counter()
    logger.info(f"Starting granite hierarchy import count={len(rows)} mode={mode}")

    result = run_rows(
        rows,
        resolver.handle,
        on_progress=on_progress,
        cancel_token=cancel_token,
        concurrency=concurrency,
    )
    result.metrics = stats.build_metrics(time.perf_counter() - started, result.processed)
    logger.info(
        f"Granite hierarchy import completed success={result.success} errors={result.failed} "
        f"variants={len(ctx.variants)} specific_variants={len(ctx.specific_variants)}"
    )
    return result
