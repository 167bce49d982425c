from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

"""Validation outcome models.

A ValidationOutcome is produced once per run. ``errors`` invalidate the row
they belong to; ``warnings`` (duplicates, advisories) never block an import.
"""

__all__ = [
    "ValidationIssue",
    "ValidationStatistics",
    "ValidationOutcome",
]


@dataclass(frozen=True)
class ValidationIssue:
    row: int  # 元ファイル行番号
    field: str
    message: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationStatistics:
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    duplicate_rows: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "duplicateRows": self.duplicate_rows,
        }


@dataclass
class ValidationOutcome:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    statistics: ValidationStatistics = field(default_factory=ValidationStatistics)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def invalid_row_numbers(self) -> set[int]:
        return {e.row for e in self.errors}
