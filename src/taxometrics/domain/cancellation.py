"""Cooperative cancellation for sync runs."""

from __future__ import annotations

import threading


class RunCancelledError(RuntimeError):
    """Raised at a cancellation checkpoint once a run has been asked to stop."""


class CancellationToken:
    """Thread-safe flag polled between source fetches and between aggregation levels."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelledError(self._reason or "cancelled")
