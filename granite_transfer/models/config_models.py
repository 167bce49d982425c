from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the granite import/export tool.

These are the typed, immutable views of config/transfer.yml built by
config.loader. Defaults mirror the values applied when a key is absent.
"""

__all__ = [
    "DELIMITERS",
    "ENCODINGS",
    "HIERARCHY_MODES",
    "ApiConfig",
    "ImportOptions",
    "ExportOptions",
    "StorageConfig",
    "TransferConfig",
]

DELIMITERS = (",", ";", "\t")
ENCODINGS = ("utf-8", "iso-8859-1", "windows-1252")
HIERARCHY_MODES = ("strict", "lenient")
MAX_CONCURRENCY = 3


@dataclass(frozen=True)
class ApiConfig:
    """Remote entity API connection settings.

    GRANITE_API_URL (environment / .env) takes precedence over base_url.
    """
    base_url: str
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class ImportOptions:
    """How an import file is decoded, split and committed."""
    delimiter: str = ","
    encoding: str = "utf-8"
    skip_empty_rows: bool = True
    trim_whitespace: bool = True
    custom_mapping: dict[str, str] = field(default_factory=dict)  # ヘッダ名 -> フィールド名
    hierarchy_mode: str = "strict"  # strict | lenient
    concurrency: int = 1  # 1 = 逐次 (既定)

    def __post_init__(self) -> None:
        if self.delimiter not in DELIMITERS:
            raise ValueError(f"unsupported delimiter: {self.delimiter!r}")
        if self.encoding not in ENCODINGS:
            raise ValueError(f"unsupported encoding: {self.encoding!r}")
        if self.hierarchy_mode not in HIERARCHY_MODES:
            raise ValueError(f"unsupported hierarchy mode: {self.hierarchy_mode!r}")
        if not 1 <= self.concurrency <= MAX_CONCURRENCY:
            raise ValueError(f"concurrency must be between 1 and {MAX_CONCURRENCY}")


@dataclass(frozen=True)
class ExportOptions:
    """How an in-memory record set is rendered to CSV / JSON."""
    include_headers: bool = True
    include_metadata: bool = True
    custom_fields: tuple[str, ...] | None = None
    date_format: str = "%x"  # ロケール日付
    delimiter: str = ","


@dataclass(frozen=True)
class StorageConfig:
    log_path: str = "./logs/import_export_logs.json"
    error_log_dir: str = "./logs"


@dataclass(frozen=True)
class TransferConfig:
    """Root configuration object for the import/export tool."""
    api: ApiConfig
    import_options: ImportOptions = field(default_factory=ImportOptions)
    export_options: ExportOptions = field(default_factory=ExportOptions)
    storage: StorageConfig = field(default_factory=StorageConfig)
