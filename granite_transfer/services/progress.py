from __future__ import annotations

import queue
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress reporting for import runs.

Row-level work publishes ProgressEvent(processed, total, succeeded) after every row.
Events flow to any callable sink:
- ProgressChannel: bounded queue the caller drains (oldest event dropped when full)
- ProgressTracker: tqdm bar, TTY only (disabled in CI to avoid ANSI spam)
RowCounter produces the events from a completed-row count, so the reported
progress never decreases even when rows complete out of order.
"""

__all__ = [
    "ProgressEvent",
    "ProgressSink",
    "ProgressChannel",
    "RowCounter",
    "ProgressTracker",
    "is_tty_enabled",
    "fan_out",
]


@dataclass(frozen=True)
class ProgressEvent:
    processed: int
    total: int
    succeeded: int = 0  # processed のうち成功した行数

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0
        return (self.processed / self.total) * 100


ProgressSink = Callable[[ProgressEvent], None]


def is_tty_enabled() -> bool:
    """Return True if stdout is a TTY and a progress bar should be displayed."""
    return sys.stdout.isatty()


class ProgressChannel:
    """Bounded channel of progress events drained by the caller.

    Can be passed directly as an ``on_progress`` sink.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: queue.Queue[ProgressEvent] = queue.Queue(maxsize=maxsize)
        self._lock = threading.Lock()
        self.latest: ProgressEvent | None = None

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            self.latest = event
            while True:
                try:
                    self._queue.put_nowait(event)
                    return
                except queue.Full:
                    # 満杯: 最古のイベントを捨てる (最新値が重要)
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        pass

    __call__ = publish

    def drain(self) -> list[ProgressEvent]:
        events: list[ProgressEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class RowCounter:
    """Thread-safe completed-row counter that publishes monotonic events."""

    def __init__(self, total: int, sink: ProgressSink | None = None) -> None:
        self.total = total
        self.completed = 0
        self.succeeded = 0
        self._sink = sink
        self._lock = threading.Lock()

    def complete_row(self, success: bool = True) -> ProgressEvent:
        # publish もロック内で行い、イベント順序 = 完了数の順序を保証
        with self._lock:
            self.completed += 1
            if success:
                self.succeeded += 1
            event = ProgressEvent(processed=self.completed, total=self.total, succeeded=self.succeeded)
            if self._sink is not None:
                self._sink(event)
            return event


class ProgressTracker:
    """tqdm progress bar over the rows of one run.

    In non-TTY environments the bar is not created and every method is a no-op.
    Instances are usable as a ProgressSink.
    """

    def __init__(self, total_rows: int, *, description: str = "Importing rows") -> None:
        self.total_rows = total_rows
        self.description = description
        self.current = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, event: ProgressEvent) -> None:
        delta = event.processed - self.current
        if delta <= 0:
            return
        self.current = event.processed
        if self.enabled and self.pbar is not None:
            self.pbar.update(delta)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def fan_out(*sinks: ProgressSink | None) -> ProgressSink:
    """Combine several sinks into one (None entries are ignored)."""
    active = [s for s in sinks if s is not None]

    def _publish(event: ProgressEvent) -> None:
        for sink in active:
            sink(event)

    return _publish
