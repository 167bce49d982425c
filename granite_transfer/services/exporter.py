from __future__ import annotations

import csv
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.config_models import ExportOptions

"""Serializer / exporter for in-memory record sets.

export_to_csv():
- header line optional (include_headers)
- columns from custom_fields, else the keys of the first record
  (missing keys degrade to empty cells)
- values containing the delimiter, a quote or a newline are quoted with
  internal quotes doubled (pandas to_csv, minimal quoting)
- date / datetime values rendered with options.date_format
- single-column exports leave empty cells empty (no "" placeholder)

export_to_json():
- {"metadata": {...}, "data": [...]} when include_metadata, else {"data": [...]}
- empty record sets are allowed (CSV export of nothing is an error)
"""

__all__ = [
    "ExportError",
    "EmptyExportError",
    "ExportBlob",
    "export_to_csv",
    "export_to_json",
    "default_filename",
    "CSV_CONTENT_TYPE",
    "JSON_CONTENT_TYPE",
]

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv;charset=utf-8"
JSON_CONTENT_TYPE = "application/json;charset=utf-8"
EXPORT_FORMAT_VERSION = "1.0"


class ExportError(Exception):
    pass


class EmptyExportError(ExportError):
    pass


@dataclass(frozen=True)
class ExportBlob:
    """Serialized export payload (the downloadable file)."""
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    def text(self) -> str:
        return self.content.decode("utf-8")

    def write_to(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.content)
        return path


def default_filename(entity_type: str, fmt: str, today: date | None = None) -> str:
    day = (today or datetime.now(UTC).date()).isoformat()
    return f"{entity_type}_export_{day}.{fmt}"


def _csv_cell(value: Any, date_format: str) -> Any:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime(date_format)
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, ensure_ascii=False)
    return value


def _quote_single(value: str, delimiter: str) -> str:
    if any(c in value for c in (delimiter, '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def export_to_csv(records: Sequence[Mapping[str, Any]], options: ExportOptions | None = None) -> ExportBlob:
    opts = options or ExportOptions()
    if len(records) == 0:
        logger.error("No data to export")
        raise EmptyExportError("No data to export")

    fields = list(opts.custom_fields) if opts.custom_fields else list(records[0].keys())
    table = [[_csv_cell(r.get(f), opts.date_format) for f in fields] for r in records]
    if len(fields) == 1:
        # csv モジュールは単一列の空セルを "" と書くため自前で整形
        lines = [_quote_single(fields[0], opts.delimiter)] if opts.include_headers else []
        lines.extend(_quote_single(str(row[0]), opts.delimiter) for row in table)
        text = "".join(line + "\n" for line in lines)
    else:
        frame = pd.DataFrame(table, columns=fields, dtype=object)
        text = frame.to_csv(
            index=False,
            header=opts.include_headers,
            sep=opts.delimiter,
            lineterminator="\n",
            quoting=csv.QUOTE_MINIMAL,
            na_rep="",
        )
    blob = ExportBlob(content=text.encode("utf-8"), content_type=CSV_CONTENT_TYPE)
    logger.info(f"CSV export completed records={len(records)} size={blob.size} headers={len(fields)}")
    return blob


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def export_to_json(records: Sequence[Mapping[str, Any]], options: ExportOptions | None = None) -> ExportBlob:
    opts = options or ExportOptions()
    if opts.custom_fields:
        data = [{f: r.get(f) for f in opts.custom_fields} for r in records]
    else:
        data = [dict(r) for r in records]

    payload: dict[str, Any] = {}
    if opts.include_metadata:
        payload["metadata"] = {
            "exportedAt": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "totalRecords": len(records),
            "format": "json",
            "version": EXPORT_FORMAT_VERSION,
        }
    payload["data"] = data

    text = json.dumps(payload, indent=2, ensure_ascii=False, default=_json_default)
    blob = ExportBlob(content=text.encode("utf-8"), content_type=JSON_CONTENT_TYPE)
    logger.info(
        f"JSON export completed records={len(records)} size={blob.size} "
        f"include_metadata={opts.include_metadata}"
    )
    return blob
