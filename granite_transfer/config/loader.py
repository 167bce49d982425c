from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    ApiConfig,
    ExportOptions,
    ImportOptions,
    StorageConfig,
    TransferConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (default config/transfer.yml)
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults for every optional section
- Let GRANITE_API_URL override api.base_url (environment / .env)
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/transfer.yml")
API_URL_ENV = "GRANITE_API_URL"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or unreadable, or the config
            data fails validation (missing required keys, wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def build_config(data: dict[str, Any]) -> TransferConfig:
    """Build a TransferConfig from already-parsed config data."""
    _validate_config_schema(data)

    api_raw = data["api"]
    base_url = os.getenv(API_URL_ENV) or api_raw["base_url"]  # 環境変数優先
    api = ApiConfig(
        base_url=base_url.rstrip("/"),
        timeout_seconds=float(api_raw.get("timeout_seconds", 30)),
    )

    imp = data.get("import") or {}
    import_options = ImportOptions(
        delimiter=imp.get("delimiter", ","),
        encoding=imp.get("encoding", "utf-8"),
        skip_empty_rows=imp.get("skip_empty_rows", True),
        trim_whitespace=imp.get("trim_whitespace", True),
        custom_mapping=dict(imp.get("custom_mapping") or {}),
        hierarchy_mode=imp.get("hierarchy_mode", "strict"),
        concurrency=imp.get("concurrency", 1),
    )

    exp = data.get("export") or {}
    custom_fields = exp.get("custom_fields")
    export_options = ExportOptions(
        include_headers=exp.get("include_headers", True),
        include_metadata=exp.get("include_metadata", True),
        custom_fields=tuple(custom_fields) if custom_fields else None,
        date_format=exp.get("date_format", "%x"),
        delimiter=exp.get("delimiter", ","),
    )

    st = data.get("storage") or {}
    storage = StorageConfig(
        log_path=st.get("log_path", StorageConfig.log_path),
        error_log_dir=st.get("error_log_dir", StorageConfig.error_log_dir),
    )
    return TransferConfig(
        api=api,
        import_options=import_options,
        export_options=export_options,
        storage=storage,
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> TransferConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top-level value must be a mapping")
    return build_config(data)
