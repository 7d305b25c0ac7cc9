"""Cooperative cancellation token shared between the registry and engines."""

import threading
from typing import Optional


class CancellationToken:
    """A pollable, one-way cancellation flag.

    The registry owns the token and signals it; engines poll
    ``cancelled`` at every suspension point (next chunk, next sampler tick).
    Signalling is idempotent and safe from any thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "Download cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
