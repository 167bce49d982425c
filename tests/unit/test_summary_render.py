from __future__ import annotations

from granite_transfer.models.processing_result import ImportResult, RowFailure, RunMetrics
from granite_transfer.services.summary import render_summary_line


def _result(**kwargs) -> ImportResult:
    defaults = dict(success=9, errors=[RowFailure(row=6, error="boom")], processed=10, total=10)
    defaults.update(kwargs)
    return ImportResult(**defaults)


def test_render_summary_line_basic():
    result = _result(metrics=RunMetrics(elapsed_seconds=2.0, throughput_rows_per_sec=5.0))
    line = render_summary_line("import", "products", result)
    assert line == (
        "SUMMARY operation=import type=products rows=10 success=9 failed=1 "
        "elapsed_sec=2 throughput_rps=5"
    )


def test_render_summary_line_fractional_numbers():
    result = _result(metrics=RunMetrics(elapsed_seconds=0.8412, throughput_rows_per_sec=11.88777))
    line = render_summary_line("import", "hierarchy", result)
    assert line.endswith("elapsed_sec=0.841 throughput_rps=11.888")


def test_render_summary_line_tiny_values_avoid_exponent():
    result = _result(metrics=RunMetrics(elapsed_seconds=0.000123, throughput_rows_per_sec=0.0))
    line = render_summary_line("import", "variants", result)
    assert "elapsed_sec=0.000123" in line
    assert "e-" not in line
    assert "throughput_rps=0" in line


def test_render_summary_line_without_metrics():
    line = render_summary_line("import", "products", _result())
    assert "elapsed_sec=0 throughput_rps=0" in line


def test_render_summary_line_marks_cancelled_runs():
    result = _result(success=3, errors=[], processed=3, total=10, cancelled=True)
    line = render_summary_line("import", "products", result)
    assert "rows=3 success=3 failed=0" in line
    assert line.endswith("cancelled=1")
