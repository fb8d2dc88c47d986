"""Bookkeeping of in-flight requests, used to give errors their context."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class TracedRequest:
    uri: str
    method: str
    options: dict[str, Any] = field(default_factory=dict)


class RequestTrace:
    """Records the URI, method and options of each live request by identifier.

    Entries are added when a live call is issued and cleared once the
    request has been run.
    """

    def __init__(self) -> None:
        self._requests: dict[str, TracedRequest] = {}
        self._lock = threading.Lock()

    def add(self, request_id: str, uri: str, method: str, options: Optional[dict[str, Any]] = None) -> None:
        with self._lock:
            self._requests[request_id] = TracedRequest(uri, method, dict(options or {}))

    def get(self, request_id: str) -> Optional[TracedRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def clear(self, request_id: str) -> None:
        with self._lock:
            self._requests.pop(request_id, None)

    def get_uri(self, request_id: str) -> str:
        traced = self.get(request_id)
        return traced.uri if traced else ""

    def get_method(self, request_id: str) -> str:
        traced = self.get(request_id)
        return traced.method if traced else ""

    def get_options(self, request_id: str) -> dict[str, Any]:
        traced = self.get(request_id)
        return dict(traced.options) if traced else {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)
