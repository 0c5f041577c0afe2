"""Cooperative cancellation shared by the orchestrator and its workers."""

from __future__ import annotations

import threading

__all__ = ["CancelToken", "OperationCancelled"]


class OperationCancelled(Exception):
    """Raised inside a stage to unwind an in-flight transfer after cancel().

    Never escapes a stage: the stage converts it to ``CancelledError``.
    """


class CancelToken:
    """Thread-safe cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()

    def sleep(self, seconds: float) -> bool:
        """Wait up to ``seconds``; returns True if cancelled meanwhile."""
        return self._event.wait(seconds)
