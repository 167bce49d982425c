from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from conftest import FakeApi
from granite_transfer.cli.__main__ import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL
from granite_transfer.cli.__main__ import main as cli_main

"""Exit code contract: 0 all rows succeeded / 2 partial failure / 1 fatal."""


def _import(path: Path, entity_type: str, api: FakeApi | None = None) -> int:
    with patch("granite_transfer.cli.__main__.GraniteApiClient", return_value=api or FakeApi()):
        return cli_main(["import", str(path), "--type", entity_type])


def test_exit_code_values():
    assert (EXIT_SUCCESS_ALL, EXIT_FATAL, EXIT_PARTIAL_FAILURE) == (0, 1, 2)


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    # config/transfer.yml 無し → exit 1
    code = cli_main(["import", "data/x.csv", "--type", "products"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_fatal_invalid_config(write_config: Path, capsys):
    write_config.write_text("api: {}\n", encoding="utf-8")
    assert cli_main(["logs"]) == 1
    assert "config validation failed" in capsys.readouterr().out


def test_exit_code_all_success(write_config: Path, products_csv: Path, capsys):
    code = _import(products_csv, "products")
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY operation=import type=products rows=10 success=10 failed=0" in out


def test_exit_code_partial_failure(write_config: Path, products_csv: Path, capsys):
    code = _import(products_csv, "products", FakeApi(raise_names={"Slab 5"}))
    out = capsys.readouterr().out
    assert code == 2
    assert "success=9 failed=1" in out


def test_exit_code_invalid_data_is_partial(write_config: Path, temp_workdir: Path, capsys):
    bad = temp_workdir / "data" / "bad.csv"
    bad.write_text("name,basePrice\n,10\n", encoding="utf-8")
    api = FakeApi()
    code = _import(bad, "products", api)
    assert code == 2
    assert api.calls == []
    assert "import refused" in capsys.readouterr().out


def test_exit_code_empty_file_is_fatal(write_config: Path, temp_workdir: Path, capsys):
    empty = temp_workdir / "data" / "empty.csv"
    empty.write_text("", encoding="utf-8")
    assert _import(empty, "products") == 1
    assert "File is empty" in capsys.readouterr().out


def test_exit_code_missing_file_is_fatal(write_config: Path, temp_workdir: Path):
    assert _import(temp_workdir / "data" / "missing.csv", "variants") == 1
