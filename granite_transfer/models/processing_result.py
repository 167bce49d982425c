from __future__ import annotations

import statistics
import threading
from dataclasses import dataclass, field
from typing import Any

"""Processing result models for import runs.

ImportResult is the tally returned by the batch commit executor and the
hierarchy resolver: a success count plus one RowFailure per failed row.
RunMetrics carries the timing figures recorded in the operation log.
"""

__all__ = [
    "RowFailure",
    "RunMetrics",
    "ImportResult",
    "CallStatsAccumulator",
]


@dataclass(frozen=True)
class RowFailure:
    """One failed row: source line number, error message and the raw row data."""
    row: int
    error: str
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "error": self.error, "data": self.data}


@dataclass(frozen=True)
class RunMetrics:
    """Timing figures for one run (elapsed wall time and per-call statistics)."""
    elapsed_seconds: float
    throughput_rows_per_sec: float
    total_calls: int = 0  # リモート API 呼び出し回数
    avg_call_seconds: float = 0.0
    p95_call_seconds: float = 0.0

    def to_dict(self) -> dict[str, float | int]:
        return {
            "elapsedSeconds": self.elapsed_seconds,
            "throughputRowsPerSec": self.throughput_rows_per_sec,
            "totalCalls": self.total_calls,
            "avgCallSeconds": self.avg_call_seconds,
            "p95CallSeconds": self.p95_call_seconds,
        }


@dataclass
class ImportResult:
    """Aggregate tally of one import run.

    ``success + len(errors) == processed`` always holds; ``processed`` is lower
    than the number of input rows only when the run was cancelled.
    """
    success: int = 0
    errors: list[RowFailure] = field(default_factory=list)
    processed: int = 0
    total: int = 0
    cancelled: bool = False
    metrics: RunMetrics | None = None

    @property
    def failed(self) -> int:
        return len(self.errors)


class CallStatsAccumulator:
    """Accumulates remote call timings and reports (calls, avg, p95).

    Thread safe: the executor may record timings from worker threads.
    """

    def __init__(self) -> None:
        self.call_times: list[float] = []
        self._lock = threading.Lock()

    def add_call_time(self, elapsed_seconds: float) -> None:
        with self._lock:
            self.call_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        with self._lock:
            times = list(self.call_times)
        if not times:
            return (0, 0.0, 0.0)

        total_calls = len(times)
        avg_call_seconds = statistics.mean(times)
        if total_calls == 1:
            p95_call_seconds = times[0]
        else:
            # 95 パーセンタイル (20 分位の 19 番目)
            p95_call_seconds = statistics.quantiles(times, n=20, method="inclusive")[18]
        return (total_calls, avg_call_seconds, p95_call_seconds)

    def build_metrics(self, elapsed_seconds: float, rows: int) -> RunMetrics:
        total_calls, avg, p95 = self.get_stats()
        throughput = rows / elapsed_seconds if elapsed_seconds > 0 else 0.0
        return RunMetrics(
            elapsed_seconds=elapsed_seconds,
            throughput_rows_per_sec=throughput,
            total_calls=total_calls,
            avg_call_seconds=avg,
            p95_call_seconds=p95,
        )
