from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import FakeApi
from granite_transfer.api.client import EntityKind
from granite_transfer.models.config_models import ApiConfig, StorageConfig, TransferConfig
from granite_transfer.models.operation_log import OperationStatus
from granite_transfer.parsing.csv_parser import ParseError
from granite_transfer.services.cancellation import CancellationToken
from granite_transfer.services.exporter import EmptyExportError
from granite_transfer.services.log_store import OperationLogStore
from granite_transfer.services.orchestrator import InvalidDataError, ProcessingError, TransferService
from granite_transfer.storage.json_store import JsonFileStorage, MemoryStorage


@pytest.fixture()
def store() -> OperationLogStore:
    return OperationLogStore(MemoryStorage())


def _service(workdir: Path, api: FakeApi, store: OperationLogStore) -> TransferService:
    config = TransferConfig(
        api=ApiConfig(base_url="http://granite.test/api"),
        storage=StorageConfig(log_path=str(workdir / "logs" / "ops.json"), error_log_dir=str(workdir / "logs")),
    )
    return TransferService(config, api, store, show_progress=False)


class TestValidateFile:
    def test_valid_file_completes_without_commits(self, temp_workdir: Path, products_csv: Path, store):
        api = FakeApi()
        log_id, outcome = _service(temp_workdir, api, store).validate_file(products_csv, "products")
        assert outcome.is_valid
        assert api.calls == []
        log = store.get_log(log_id)
        assert log.status is OperationStatus.COMPLETED
        assert log.metadata["validateOnly"] is True
        assert log.metadata["statistics"]["totalRows"] == 10
        assert (log.total_records, log.successful_records) == (10, 10)

    def test_invalid_file_fails_with_row_errors(self, temp_workdir: Path, store):
        f = temp_workdir / "data" / "variants.csv"
        f.write_text("name,description\nBlack Galaxy,ok\n,missing name\n", encoding="utf-8")
        log_id, outcome = _service(temp_workdir, FakeApi(), store).validate_file(f, "variants")
        assert not outcome.is_valid
        log = store.get_log(log_id)
        assert log.status is OperationStatus.FAILED
        assert [(e.row, e.field, e.message) for e in log.errors] == [(3, "name", "Name is required")]

    def test_empty_file_raises_parse_error_and_fails_log(self, temp_workdir: Path, store):
        f = temp_workdir / "data" / "empty.csv"
        f.write_text("", encoding="utf-8")
        with pytest.raises(ParseError):
            _service(temp_workdir, FakeApi(), store).validate_file(f, "variants")
        (log,) = store.get_logs()
        assert log.status is OperationStatus.FAILED
        assert log.errors[0].row == -1


class TestImportFile:
    def test_unsupported_type(self, temp_workdir: Path, products_csv: Path, store):
        with pytest.raises(ProcessingError, match="Unsupported import type"):
            _service(temp_workdir, FakeApi(), store).import_file(products_csv, "widgets")
        assert store.get_logs() == []

    def test_successful_import_updates_log(self, temp_workdir: Path, products_csv: Path, store):
        api = FakeApi()
        run = _service(temp_workdir, api, store).import_file(products_csv, "products")
        assert (run.result.success, run.result.failed) == (10, 0)
        assert run.error_log_path is None
        assert api.create_count(EntityKind.PRODUCT) == 10
        log = store.get_log(run.log_id)
        assert log.status is OperationStatus.COMPLETED
        assert (log.processed_records, log.successful_records, log.failed_records) == (10, 10, 0)
        assert log.metadata["metrics"]["totalCalls"] == 10
        assert "errorLogPath" not in log.metadata

    def test_row_failures_are_logged_and_journaled(self, temp_workdir: Path, products_csv: Path, store):
        run = _service(temp_workdir, FakeApi(raise_names={"Slab 4"}), store).import_file(products_csv, "products")
        assert (run.result.success, run.result.failed) == (9, 1)
        log = store.get_log(run.log_id)
        assert log.status is OperationStatus.COMPLETED
        assert [(e.row, e.message) for e in log.errors] == [(5, "Internal server error")]
        assert log.errors[0].data["name"] == "Slab 4"
        assert log.metadata["errorLogPath"] == str(run.error_log_path)
        (line,) = run.error_log_path.read_text(encoding="utf-8").splitlines()
        assert json.loads(line)["error_type"] == "ROW_COMMIT_ERROR"
        assert log.metadata["errorCounts"] == {"ROW_COMMIT_ERROR": 1}

    def test_invalid_data_refused_before_any_commit(self, temp_workdir: Path, store):
        f = temp_workdir / "data" / "products.csv"
        f.write_text("name,basePrice\nSlab,abc\n,10\n", encoding="utf-8")
        api = FakeApi()
        with pytest.raises(InvalidDataError) as exc:
            _service(temp_workdir, api, store).import_file(f, "products")
        assert api.calls == []
        assert "2 errors" in str(exc.value)
        log = store.get_log(exc.value.log_id)
        assert log.status is OperationStatus.FAILED
        assert len(log.errors) == 2

    def test_cancellation_stops_remaining_rows(self, temp_workdir: Path, products_csv: Path, store):
        token = CancellationToken()

        def _on_progress(event):
            if event.processed == 3:
                token.cancel()

        api = FakeApi()
        run = _service(temp_workdir, api, store).import_file(
            products_csv, "products", on_progress=_on_progress, cancel_token=token
        )
        assert run.result.cancelled
        assert (run.result.processed, run.result.success) == (3, 3)
        assert api.create_count(EntityKind.PRODUCT) == 3
        log = store.get_log(run.log_id)
        assert log.status is OperationStatus.CANCELLED
        assert (log.processed_records, log.total_records) == (3, 10)

    def test_log_counters_persisted_after_every_row(self, temp_workdir: Path):
        log_path = temp_workdir / "logs" / "ops.json"
        f = temp_workdir / "data" / "variants.csv"
        f.write_text("name\n" + "".join(f"Variant {i}\n" for i in range(1, 6)), encoding="utf-8")
        seen = []

        def _on_progress(event):
            (log,) = OperationLogStore(JsonFileStorage(log_path)).get_logs()
            seen.append((event.processed, log.processed_records, log.successful_records, log.total_records))

        svc = _service(temp_workdir, FakeApi(raise_names={"Variant 2"}), OperationLogStore(JsonFileStorage(log_path)))
        svc.import_file(f, "variants", on_progress=_on_progress)
        assert seen == [(1, 1, 1, 5), (2, 2, 1, 5), (3, 3, 2, 5), (4, 4, 3, 5), (5, 5, 4, 5)]

    def test_total_recorded_before_commits(self, temp_workdir: Path, products_csv: Path, store):
        totals = []

        def _on_progress(event):
            (log,) = store.get_logs()
            totals.append(log.total_records)

        _service(temp_workdir, FakeApi(), store).import_file(products_csv, "products", on_progress=_on_progress)
        assert totals == [10] * 10

    def test_hierarchy_import(self, temp_workdir: Path, hierarchy_csv: Path, store):
        api = FakeApi()
        run = _service(temp_workdir, api, store).import_file(hierarchy_csv, "hierarchy")
        assert run.result.success == 3
        assert api.create_count(EntityKind.VARIANT) == 2
        assert api.create_count(EntityKind.SPECIFIC_VARIANT) == 2
        assert api.create_count(EntityKind.PRODUCT) == 3


class TestExport:
    def test_export_records_csv_writes_file(self, temp_workdir: Path, store):
        out = temp_workdir / "out" / "variants.csv"
        records = [{"name": "Black Galaxy", "description": "Dark, speckled"}]
        run = _service(temp_workdir, FakeApi(), store).export_records(records, "variants", "csv", out)
        assert out.read_text(encoding="utf-8") == 'name,description\nBlack Galaxy,"Dark, speckled"\n'
        log = store.get_log(run.log_id)
        assert log.operation == "export"
        assert log.status is OperationStatus.COMPLETED
        assert log.metadata["fileName"] == "variants.csv"
        assert log.metadata["fileSize"] == out.stat().st_size

    def test_export_unknown_format(self, temp_workdir: Path, store):
        with pytest.raises(ProcessingError, match="Unsupported export format"):
            _service(temp_workdir, FakeApi(), store).export_records([{"a": 1}], "variants", "xml")

    def test_empty_csv_export_fails_log(self, temp_workdir: Path, store):
        with pytest.raises(EmptyExportError):
            _service(temp_workdir, FakeApi(), store).export_records([], "products", "csv")
        (log,) = store.get_logs()
        assert log.status is OperationStatus.FAILED
        assert log.errors[0].message == "No data to export"

    def test_export_entities_fetches_from_api(self, temp_workdir: Path, store):
        api = FakeApi()
        api.seed(EntityKind.VARIANT, name="Black Galaxy", description="d", image="")
        run = _service(temp_workdir, api, store).export_entities("variants", "json")
        payload = json.loads(run.blob.text())
        assert [r["name"] for r in payload["data"]] == ["Black Galaxy"]
        assert payload["metadata"]["totalRecords"] == 1

    def test_export_entities_unknown_type(self, temp_workdir: Path, store):
        with pytest.raises(ProcessingError, match="Unsupported export type"):
            _service(temp_workdir, FakeApi(), store).export_entities("hierarchy", "csv")

    def test_export_logs_writes_json(self, temp_workdir: Path, products_csv: Path, store):
        svc = _service(temp_workdir, FakeApi(), store)
        svc.import_file(products_csv, "products")
        out = temp_workdir / "logs-export.json"
        svc.export_logs(out)
        data = json.loads(out.read_text(encoding="utf-8"))["data"]
        assert [d["operation"] for d in data] == ["import"]
