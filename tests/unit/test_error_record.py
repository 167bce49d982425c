from __future__ import annotations

import json

from granite_transfer.models.error_record import ErrorRecord

"""Unit tests for ErrorRecord model."""


def test_error_record_row_minus_one_support():
    """File-level errors carry row=-1."""
    rec = ErrorRecord.create(
        file="empty.csv",
        entity_type="products",
        row=-1,
        error_type="PARSE_ERROR",
        message="File is empty",
    )
    assert rec.row == -1

    data = json.loads(rec.to_json_line())
    assert data["row"] == -1
    assert data["entity_type"] == "products"
    assert data["timestamp"].endswith("Z")
    assert set(data.keys()) == {"timestamp", "file", "entity_type", "row", "error_type", "message"}


def test_error_record_keeps_non_ascii_message():
    rec = ErrorRecord.create("variants.csv", "variants", 4, "ROW_COMMIT_ERROR", "名前が重複しています")
    line = rec.to_json_line()
    assert "名前が重複しています" in line
    assert json.loads(line)["row"] == 4
