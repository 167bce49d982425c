from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

"""RowRecord model for the granite import/export pipeline.

A RowRecord is one parsed data line of an import file. ``row_index`` is the
original 1-based line number in the file (the header is line 1, so the first
data row is line 2) and is used for every error and warning attributed to it.
"""

__all__ = [
    "RowRecord",
]


@dataclass(frozen=True)
class RowRecord:
    """Logical representation of a single parsed line (header name -> raw text)."""
    row_index: int  # 元ファイルの行番号 (ヘッダ=1)
    values: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # 読み取り専用ビューに固定 (生成後は不変)
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def text(self, name: str) -> str:
        """Return the trimmed text of a field ('' when missing)."""
        value = self.values.get(name)
        if value is None:
            return ""
        return str(value).strip()

    def is_empty(self) -> bool:
        return all(v is None or v == "" for v in self.values.values())

    def as_dict(self) -> dict[str, str]:
        return dict(self.values)
