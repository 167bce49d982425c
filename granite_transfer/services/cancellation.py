from __future__ import annotations

import threading

"""Cooperative cancellation for import runs.

The executor checks the token between rows; a row already in flight always
finishes and is accounted for. Rows not yet started are left unprocessed.
"""

__all__ = [
    "CancellationToken",
]


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
