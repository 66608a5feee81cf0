"""Cooperative cancellation shared by every step of one preview request."""

from __future__ import annotations

import threading

from linkcard.core.exceptions import RequestCancelled


class Cancellable:
    """Handle returned to callers; once cancelled, no callback fires for the request."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise RequestCancelled()

    def __repr__(self) -> str:
        return f"<Cancellable cancelled={self.is_cancelled}>"


__all__ = ["Cancellable"]
