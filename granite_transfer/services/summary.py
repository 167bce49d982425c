from __future__ import annotations

from ..models.processing_result import ImportResult

"""SUMMARY line rendering for import runs.

Format:
SUMMARY operation={op} type={type} rows={processed} success={n}
failed={n} elapsed_sec={elapsed} throughput_rps={throughput}
"""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(operation: str, entity_type: str, result: ImportResult) -> str:
    """Render the SUMMARY line of one run.

    Examples:
        >>> r = ImportResult(success=10, processed=10, total=10)
        >>> render_summary_line("import", "products", r)  # doctest: +ELLIPSIS
        'SUMMARY operation=import type=products rows=10 success=10 failed=0 elapsed_sec=0 ...'
    """
    elapsed = result.metrics.elapsed_seconds if result.metrics else 0.0
    throughput = result.metrics.throughput_rows_per_sec if result.metrics else 0.0
    line = (
        f"SUMMARY operation={operation} "
        f"type={entity_type} "
        f"rows={result.processed} "
        f"success={result.success} "
        f"failed={result.failed} "
        f"elapsed_sec={_format_number(elapsed)} "
        f"throughput_rps={_format_number(throughput)}"
    )
    if result.cancelled:
        line += " cancelled=1"
    return line
