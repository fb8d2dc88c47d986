"""Per-operation request counters shared by a provider and its sub-requests."""

from __future__ import annotations

import threading


class RequestSession:
    """Thread-safe count of live HTTP requests in one logical operation.

    Providers increment the counter each time a live request is run.  Call
    :meth:`reset` (or ``start_session()`` on a provider) at the start of an
    operation to count it in isolation.
    """

    def __init__(self) -> None:
        self._total = 0
        self._lock = threading.Lock()

    def increment(self) -> int:
        with self._lock:
            self._total += 1
            return self._total

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    def reset(self) -> None:
        with self._lock:
            self._total = 0
