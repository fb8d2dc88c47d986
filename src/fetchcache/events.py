"""Request lifecycle events and the subscribers that observe them.

This module provides:

* :class:`RequestEvent` -- the data passed to subscribers: request
  identifier, URL, free-form context and, for failures, the exception.
* :class:`Subscriber` -- base class whose hooks (``on_start``,
  ``on_success``, ``on_failure``, ``on_decode``) default to no-ops, so
  subscribers only override what they need.
* :class:`EventDispatcher` -- calls each hook across all subscribers in
  registration order.
* :class:`LoggerSubscriber` and :class:`StopwatchSubscriber` -- the two
  subscribers shipped with fetchcache.

A subscriber that raises never changes the outcome of the request it
observes: the error is logged and the remaining subscribers still run.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class RequestEvent:
    """State handed to subscriber hooks.

    Attributes:
        request_id: Identifier of the request the event belongs to.
        url: Absolute request URL.
        context: Extra details, e.g. ``code`` and ``message`` for responses.
        exception: The failure, for ``on_failure`` only.
        data: The decoded value, for ``on_decode`` only.
    """

    request_id: str
    url: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = None
    data: Any = None


class Subscriber:
    """Base class for request lifecycle subscribers."""

    def on_start(self, event: RequestEvent) -> None:
        """Called when a live request is issued."""

    def on_success(self, event: RequestEvent) -> None:
        """Called when a request completes with a successful response."""

    def on_failure(self, event: RequestEvent) -> None:
        """Called when a request fails, whether or not the error is raised."""

    def on_decode(self, event: RequestEvent) -> None:
        """Called after a response body is decoded."""


class EventDispatcher:
    """Dispatches lifecycle events to subscribers in registration order."""

    def __init__(self, subscribers: Optional[list[Subscriber]] = None) -> None:
        self._subscribers: list[Subscriber] = list(subscribers or [])

    @property
    def subscribers(self) -> list[Subscriber]:
        return list(self._subscribers)

    def add_subscriber(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    def remove_subscriber(self, subscriber: Subscriber) -> None:
        self._subscribers.remove(subscriber)

    def dispatch(self, hook: str, event: RequestEvent) -> None:
        """Call ``subscriber.<hook>(event)`` on every subscriber.

        Args:
            hook: One of ``on_start``, ``on_success``, ``on_failure``,
                ``on_decode``.
            event: The event to pass along.
        """
        for subscriber in self._subscribers:
            try:
                getattr(subscriber, hook)(event)
            except Exception:
                logger.warning(
                    "Subscriber %s failed in %s for request %s",
                    type(subscriber).__name__, hook, event.request_id,
                    exc_info=True,
                )


class LoggerSubscriber(Subscriber):
    """Logs request lifecycle events.

    Starts are logged at DEBUG, successes at INFO and failures at ERROR.

    Args:
        log: Logger to write to, defaults to this module's logger.
    """

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger

    def on_start(self, event: RequestEvent) -> None:
        self._log.debug(
            "Starting request %s %s",
            event.context.get("method", ""), event.url,
            extra={"request_id": event.request_id},
        )

    def on_success(self, event: RequestEvent) -> None:
        self._log.info(
            "Request succeeded %s (HTTP %s)",
            event.url, event.context.get("code", ""),
            extra={"request_id": event.request_id},
        )

    def on_failure(self, event: RequestEvent) -> None:
        summary = getattr(event.exception, "summary", None) or str(event.exception)
        self._log.error(
            "Request failed %s: %s",
            event.url, summary,
            extra={"request_id": event.request_id},
        )

    def on_decode(self, event: RequestEvent) -> None:
        self._log.debug(
            "Decoded response %s with %s",
            event.url, event.context.get("decoder", ""),
            extra={"request_id": event.request_id},
        )


class StopwatchSubscriber(Subscriber):
    """Times each live request from start to success or failure.

    Durations are kept in seconds by request identifier; a cache hit has
    no start event and so no duration.
    """

    def __init__(self) -> None:
        self._started: dict[str, float] = {}
        self._durations: dict[str, float] = {}
        self._lock = threading.Lock()

    def on_start(self, event: RequestEvent) -> None:
        with self._lock:
            self._started[event.request_id] = time.perf_counter()

    def on_success(self, event: RequestEvent) -> None:
        self._stop(event.request_id)

    def on_failure(self, event: RequestEvent) -> None:
        self._stop(event.request_id)

    def duration(self, request_id: str) -> Optional[float]:
        with self._lock:
            return self._durations.get(request_id)

    @property
    def durations(self) -> dict[str, float]:
        with self._lock:
            return dict(self._durations)

    def _stop(self, request_id: str) -> None:
        with self._lock:
            started = self._started.pop(request_id, None)
            if started is not None:
                self._durations[request_id] = time.perf_counter() - started
