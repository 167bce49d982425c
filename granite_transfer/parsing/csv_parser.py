from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import pandas as pd

from ..models.config_models import ImportOptions
from ..models.row_record import RowRecord

"""Delimited text parser for import files.

- Line 1 (after optional blank-line removal) is the header row.
- Every following line becomes one RowRecord tagged with its original
  1-based line number, so errors can point back at the source file.
- Splitting is a plain split on the configured delimiter; quoting is only
  honoured to the extent that surrounding quote characters are stripped
  from each cell.
"""

__all__ = [
    "ParseError",
    "EmptyInputError",
    "parse",
    "read_file",
    "rows_to_frame",
]

logger = logging.getLogger(__name__)

QUOTE_CHARS = "\"'"

# Python codec 名 (BOM 付き UTF-8 も受け付ける)
_CODECS = {
    "utf-8": "utf-8-sig",
    "iso-8859-1": "latin-1",
    "windows-1252": "cp1252",
}


class ParseError(Exception):
    """Raised when an import file cannot be read or decoded."""


class EmptyInputError(ParseError):
    """Raised when no lines remain after blank-line removal."""


def _clean_cell(value: str, trim: bool) -> str:
    if trim:
        value = value.strip()
    return value.strip(QUOTE_CHARS)


def _decode(content: bytes | str, encoding: str) -> str:
    if isinstance(content, str):
        return content
    try:
        return content.decode(_CODECS.get(encoding, encoding))
    except (UnicodeDecodeError, LookupError) as e:
        raise ParseError(f"cannot decode input as {encoding}: {e}") from e


def parse(content: bytes | str, options: ImportOptions | None = None) -> list[RowRecord]:
    """Parse delimited text into RowRecords in source order.

    Parameters
    ----------
    content: raw file bytes (decoded with ``options.encoding``) or text
    options: delimiter / encoding / skip_empty_rows / trim_whitespace / custom_mapping

    Raises
    ------
    EmptyInputError: no lines left once blank lines are dropped
    ParseError: the content cannot be decoded
    """
    opts = options or ImportOptions()
    text = _decode(content, opts.encoding)

    raw_lines = text.split("\n")
    # 最終行の改行で生じる空要素は行として扱わない
    if raw_lines and raw_lines[-1] == "":
        raw_lines.pop()

    numbered: list[tuple[int, str]] = []
    for line_no, line in enumerate(raw_lines, start=1):
        line = line.rstrip("\r")
        if opts.skip_empty_rows and line.strip() == "":
            continue
        numbered.append((line_no, line))

    if not numbered:
        raise EmptyInputError("File is empty")

    _, header_line = numbered[0]
    headers = [_clean_cell(h, opts.trim_whitespace) for h in header_line.split(opts.delimiter)]
    fields = [opts.custom_mapping.get(h) or h for h in headers]
    logger.debug(f"headers detected count={len(headers)} headers={headers}")

    rows: list[RowRecord] = []
    for line_no, line in numbered[1:]:
        cells = [_clean_cell(v, opts.trim_whitespace) for v in line.split(opts.delimiter)]
        values: dict[str, str] = {}
        for i, name in enumerate(fields):
            values[name] = cells[i] if i < len(cells) else ""
        row = RowRecord(row_index=line_no, values=values)
        if opts.skip_empty_rows and row.is_empty():
            continue
        rows.append(row)

    logger.debug(f"parsed rows={len(rows)} header_count={len(headers)}")
    return rows


def read_file(path: Path, options: ImportOptions | None = None) -> list[RowRecord]:
    """Read and parse an import file. The file handle is closed before returning."""
    try:
        content = path.read_bytes()
    except OSError as e:
        raise ParseError(f"Failed to read file: {path}: {e}") from e
    return parse(content, options)


def rows_to_frame(rows: Sequence[RowRecord]) -> pd.DataFrame:
    """Tabular preview of parsed rows indexed by source line number."""
    if not rows:
        return pd.DataFrame()
    frame = pd.DataFrame([r.as_dict() for r in rows], dtype=object)
    frame.index = pd.Index([r.row_index for r in rows], name="line")
    return frame
