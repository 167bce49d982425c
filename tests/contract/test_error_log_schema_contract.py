from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import jsonschema
import pytest

from conftest import FakeApi
from granite_transfer.logging.error_log import ErrorRecord

"""Error journal (JSON Lines) schema contract test.

row=-1 is the sentinel for file-level errors (unreadable / empty file).
"""

ERROR_LOG_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "required": ["timestamp", "file", "entity_type", "row", "error_type", "message"],
    "properties": {
        "timestamp": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$"},
        "file": {"type": "string"},
        "entity_type": {"type": "string"},
        "row": {"type": "integer", "minimum": -1},
        "error_type": {"type": "string", "pattern": "^[A-Z_]+$"},
        "message": {"type": "string"},
    },
}


def test_error_log_schema_valid_example():
    record = {
        "timestamp": "2025-09-26T10:12:33Z",
        "file": "products.csv",
        "entity_type": "products",
        "row": 6,
        "error_type": "ROW_COMMIT_ERROR",
        "message": "Internal server error",
    }
    jsonschema.validate(record, ERROR_LOG_SCHEMA)


def test_error_log_schema_rejects_extra_key():
    record = json.loads(ErrorRecord.create("p.csv", "products", 2, "VALIDATION_ERROR", "x").to_json_line())
    record["extra"] = "not allowed"
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, ERROR_LOG_SCHEMA)


def test_error_log_schema_accepts_row_minus_one():
    record = json.loads(ErrorRecord.create("empty.csv", "products", -1, "PARSE_ERROR", "File is empty").to_json_line())
    jsonschema.validate(record, ERROR_LOG_SCHEMA)


def test_journal_written_by_run_matches_schema(write_config: Path, products_csv: Path, temp_workdir: Path):
    from granite_transfer.cli.__main__ import main as cli_main

    with patch("granite_transfer.cli.__main__.GraniteApiClient", return_value=FakeApi(raise_names={"Slab 2", "Slab 7"})):
        assert cli_main(["import", str(products_csv), "--type", "products"]) == 2

    (journal,) = (temp_workdir / "logs").glob("errors-*.log")
    lines = journal.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    records = [json.loads(line) for line in lines]
    for record in records:
        jsonschema.validate(record, ERROR_LOG_SCHEMA)
    assert [r["row"] for r in records] == [3, 8]
    assert {r["error_type"] for r in records} == {"ROW_COMMIT_ERROR"}
