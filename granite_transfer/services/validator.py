from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Any

from ..models.row_record import RowRecord
from ..models.schema import EntitySchema, FieldKind, FieldSpec, get_schema
from ..models.validation import ValidationIssue, ValidationOutcome

"""Rule-based row validator.

validate() applies the entity schema (models.schema) to each row, collecting
errors (which invalidate the row) and duplicate warnings (which do not), and
counts the aggregate statistics. It is a pure function and may be called any
number of times on the same rows, e.g. a validate-only pass before an import.
"""

__all__ = [
    "DUPLICATE_MESSAGE",
    "validate",
    "coerce",
    "parse_number",
    "parse_integer",
    "natural_key",
]

DUPLICATE_MESSAGE = "Duplicate name found"

_TRUE = {"true", "yes", "y", "1"}
_FALSE = {"false", "no", "n", "0"}


def parse_number(text: str) -> float | None:
    """Parse a numeric cell; None when the text is not a finite number."""
    try:
        value = float(text.strip())
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_integer(text: str) -> int | None:
    """Parse an integer-like cell; fractional parts are truncated ("2.5" -> 2)."""
    value = parse_number(text)
    if value is None:
        return None
    return int(value)


def _parse_boolean(text: str) -> bool | None:
    lowered = text.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return None


_PARSERS = {
    FieldKind.NUMBER: parse_number,
    FieldKind.INTEGER: parse_integer,
    FieldKind.BOOLEAN: _parse_boolean,
}


def _check_field(row: RowRecord, spec: FieldSpec) -> ValidationIssue | None:
    raw = row.get(spec.name)
    text = "" if raw is None else str(raw)
    if text.strip() == "":
        if spec.required:
            return ValidationIssue(row=row.row_index, field=spec.name, message=spec.missing_message, value=raw)
        return None
    parser = _PARSERS.get(spec.kind)
    if parser is not None and parser(text) is None:
        return ValidationIssue(row=row.row_index, field=spec.name, message=spec.type_message, value=raw)
    return None


def natural_key(row: RowRecord, schema: EntitySchema) -> str | None:
    """Normalized (trimmed, lower-cased) duplicate key, or None when any part is blank."""
    parts = []
    for name in schema.key_fields:
        part = row.text(name).lower()
        if not part:
            return None
        parts.append(part)
    return "::".join(parts)


def validate(rows: Sequence[RowRecord], entity_type: str) -> ValidationOutcome:
    schema = get_schema(entity_type)
    outcome = ValidationOutcome()
    stats = outcome.statistics
    stats.total_rows = len(rows)

    seen: set[str] = set()
    for row in rows:
        issues = [_check_field(row, field_spec) for field_spec in schema.fields]
        row_errors = [issue for issue in issues if issue is not None]
        outcome.errors.extend(row_errors)

        key = natural_key(row, schema)
        if key is not None:
            if key in seen:
                key_field = schema.key_fields[-1]
                outcome.warnings.append(
                    ValidationIssue(
                        row=row.row_index,
                        field=key_field,
                        message=DUPLICATE_MESSAGE,
                        value=row.get(key_field),
                    )
                )
                stats.duplicate_rows += 1
            else:
                seen.add(key)

        if row_errors:
            stats.invalid_rows += 1
        else:
            stats.valid_rows += 1

    return outcome


def coerce(row: RowRecord, schema: EntitySchema) -> dict[str, Any]:
    """Typed view of a row: declared numeric / boolean fields are converted.

    Blank cells and cells that fail to parse are left out, so payload builders
    can apply their own defaults. Fields not declared in the schema keep their
    raw text.
    """
    typed: dict[str, Any] = {}
    for name, raw in row.values.items():
        text = "" if raw is None else str(raw)
        spec = schema.field(name)
        if spec is None or spec.kind is FieldKind.STRING:
            typed[name] = text
            continue
        if text.strip() == "":
            continue
        value = _PARSERS[spec.kind](text)
        if value is not None:
            typed[name] = value
    return typed
