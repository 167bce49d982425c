# Shared pytest fixtures
from __future__ import annotations

import tempfile
import threading
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest

from granite_transfer.api.client import ApiResponse, CommitError, EntityKind, GraniteApiClient
from granite_transfer.logging.init import reset_logging
from granite_transfer.models.config_models import ImportOptions
from granite_transfer.models.row_record import RowRecord
from granite_transfer.parsing.csv_parser import parse


class FakeApi(GraniteApiClient):
    """In-memory stand-in for the granite REST API.

    - names in ``raise_names`` fail with HTTP 500 (CommitError)
    - names in ``conflict_names`` fail with HTTP 409 (already exists)
    - names in ``reject_names`` get a 200 response without data
    Successful creates are stored and visible to the list endpoints.
    """

    def __init__(
        self,
        *,
        raise_names: set[str] | None = None,
        conflict_names: set[str] | None = None,
        reject_names: set[str] | None = None,
    ) -> None:
        super().__init__("http://granite.test/api", session=Mock())
        self.raise_names = set(raise_names or ())
        self.conflict_names = set(conflict_names or ())
        self.reject_names = set(reject_names or ())
        self.calls: list[tuple[EntityKind, dict[str, Any]]] = []
        self.store: dict[EntityKind, list[dict[str, Any]]] = {k: [] for k in EntityKind}
        self._seq = 0
        self._lock = threading.Lock()

    def seed(self, kind: EntityKind, **fields: Any) -> str:
        with self._lock:
            self._seq += 1
            entity = {"_id": f"{kind.value}-{self._seq}", **fields}
            self.store[kind].append(entity)
            return entity["_id"]

    def create(self, kind: EntityKind, payload: dict[str, Any]) -> ApiResponse:
        with self._lock:
            self.calls.append((kind, dict(payload)))
        name = payload.get("name")
        if name in self.raise_names:
            raise CommitError("Internal server error", status_code=500)
        if name in self.conflict_names:
            raise CommitError("Already exists", status_code=409)
        if name in self.reject_names:
            return ApiResponse(data=None, message="Rejected by server", status_code=200)
        entity_id = self.seed(kind, **payload)
        return ApiResponse(data={"_id": entity_id, **payload}, message="Created", status_code=201)

    def _list(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        if path == "variants":
            return list(self.store[EntityKind.VARIANT])
        if path == "specific-variants":
            return list(self.store[EntityKind.SPECIFIC_VARIANT])
        if path.startswith("specific-variants/by-variant/"):
            variant_id = path.rsplit("/", 1)[1]
            return [s for s in self.store[EntityKind.SPECIFIC_VARIANT] if s.get("variantId") == variant_id]
        if path == "products":
            return list(self.store[EntityKind.PRODUCT])
        raise AssertionError(f"unexpected list path: {path}")

    def create_count(self, kind: EntityKind) -> int:
        return sum(1 for k, _ in self.calls if k is kind)


def make_rows(text: str, **options: Any) -> list[RowRecord]:
    return parse(text, ImportOptions(**options))


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("GRANITE_API_URL", raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """api:
  base_url: http://granite.test/api
  timeout_seconds: 5
import:
  delimiter: ","
  encoding: utf-8
  skip_empty_rows: true
  trim_whitespace: true
  hierarchy_mode: strict
  concurrency: 1
export:
  include_headers: true
  include_metadata: true
storage:
  log_path: ./logs/import_export_logs.json
  error_log_dir: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "transfer.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture()
def products_csv(temp_workdir: Path) -> Path:
    f = temp_workdir / "data" / "products.csv"
    f.write_text(
        "name,basePrice,stock,unit,status,specificVariantId\n"
        + "".join(f"Slab {i},{1000 + i},{i},sq_ft,active,sv-1\n" for i in range(1, 11)),
        encoding="utf-8",
    )
    return f


@pytest.fixture()
def hierarchy_csv(temp_workdir: Path) -> Path:
    f = temp_workdir / "data" / "hierarchy.csv"
    f.write_text(
        "variant_name,variant_description,specific_name,specific_description,"
        "product_name,product_price,product_stock,product_unit\n"
        "Black Galaxy,Premium black,Premium Grade,High quality,Slab 60x30,5000,10,sq_ft\n"
        "Black Galaxy,Premium black,Premium Grade,High quality,Slab 90x60,7000,4,sq_ft\n"
        "Kashmir White,White granite,Standard Grade,Standard,Tile 30x30,1200,25,sq_ft\n",
        encoding="utf-8",
    )
    return f
