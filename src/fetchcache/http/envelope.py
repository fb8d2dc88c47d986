"""One read interface over live and cache-reconstructed responses.

A :class:`ResponseEnvelope` is returned by ``prepare()`` on the HTTP
providers.  It holds either a response that is already available (a cache
hit) or a *sender* that produces it on demand: a callable for
:class:`~fetchcache.http.Http`, an :class:`asyncio.Task` for
:class:`~fetchcache.http.AsyncHttp`.  Reading the status, headers or body
resolves the sender once and keeps the result.

Behaviour that the response varies on is carried as flags on the one
envelope (``hit``, ``suppress_errors``, ``failed``) rather than as nested
wrapper types.
"""

from __future__ import annotations

import inspect
import json
from typing import Any, Awaitable, Callable, Optional, Union

import httpx

from fetchcache.cache.store import CACHE_AGE_HEADER, CacheItem
from fetchcache.exceptions import (
    DecoderError,
    FailedRequestError,
    HttpError,
    NotFoundError,
    TransportError,
)

Sender = Union[Callable[[], httpx.Response], Awaitable[httpx.Response]]


class ResponseEnvelope:
    """A response plus the cache and error handling state of its request.

    Args:
        request_id: Request identifier, also the cache key.
        method: HTTP method.
        url: Absolute request URL.
        options: Merged request options, used for error context.
        response: An already available response, e.g. from the cache.
        sender: Produces the live response when one is not given.
        hit: Whether *response* was served from the cache.
        suppress_errors: Do not raise on 3xx/4xx/5xx status when reading
            headers or body.  Transport failures are always raised.
    """

    def __init__(
        self,
        request_id: str,
        method: str,
        url: str,
        options: Optional[dict[str, Any]] = None,
        *,
        response: Optional[httpx.Response] = None,
        sender: Optional[Sender] = None,
        hit: bool = False,
        suppress_errors: bool = False,
    ) -> None:
        if response is None and sender is None:
            raise ValueError("ResponseEnvelope needs either a response or a sender")
        self.request_id = request_id
        self.method = method
        self.url = url
        self.options = dict(options or {})
        self._response = response
        self._sender = sender
        self._hit = hit
        self._suppress_errors = suppress_errors
        self._cache_item: Optional[CacheItem] = None
        self._failed = False
        self._transport_error: Optional[TransportError] = None

    def __repr__(self) -> str:
        state = "hit" if self._hit else ("resolved" if self.is_resolved else "pending")
        return f"<ResponseEnvelope {self.method} {self.url} [{state}]>"

    # ------------------------------------------------------------------ #
    # Resolution
    # ------------------------------------------------------------------ #

    @property
    def is_resolved(self) -> bool:
        return self._response is not None

    def resolve(self) -> httpx.Response:
        """Return the response, running the sender on first use.

        Raises:
            TransportError: If no response could be received.
            RuntimeError: If the sender is asynchronous and has not been
                awaited with :meth:`aresolve`.
        """
        if self._response is not None:
            return self._response
        if self._transport_error is not None:
            raise self._transport_error
        if inspect.isawaitable(self._sender):
            raise RuntimeError("Asynchronous response not resolved, await aresolve() first")
        try:
            self._response = self._sender()  # type: ignore[operator]
        except TransportError as exc:
            self._transport_error = exc
            raise
        return self._response

    async def aresolve(self) -> httpx.Response:
        """Asynchronous counterpart of :meth:`resolve`."""
        if self._response is not None:
            return self._response
        if self._transport_error is not None:
            raise self._transport_error
        try:
            if inspect.isawaitable(self._sender):
                self._response = await self._sender
            else:
                self._response = self._sender()  # type: ignore[operator]
        except TransportError as exc:
            self._transport_error = exc
            raise
        return self._response

    @property
    def response(self) -> httpx.Response:
        return self.resolve()

    # ------------------------------------------------------------------ #
    # Flags
    # ------------------------------------------------------------------ #

    @property
    def suppress_errors(self) -> bool:
        return self._suppress_errors

    def set_suppress_errors(self, suppress: bool = True) -> None:
        self._suppress_errors = suppress

    @property
    def is_hit(self) -> bool:
        return self._hit

    def set_hit(self, hit: bool) -> None:
        self._hit = hit

    @property
    def failed(self) -> bool:
        """Whether the request was classified as failed with errors suppressed."""
        return self._failed

    def mark_failed(self) -> None:
        self._failed = True

    @property
    def is_cacheable(self) -> bool:
        """Whether a cache write slot is attached."""
        return self._cache_item is not None

    @property
    def cache_item(self) -> Optional[CacheItem]:
        return self._cache_item

    def set_cache_item(self, item: CacheItem) -> None:
        self._cache_item = item

    def unset_cache_item(self) -> None:
        self._cache_item = None

    @property
    def age(self) -> Optional[int]:
        """Seconds since a hit was cached, ``None`` for live responses."""
        if not self._hit:
            return None
        try:
            return int(self.resolve().headers.get(CACHE_AGE_HEADER, 0))
        except ValueError:
            return 0

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #

    @property
    def status_code(self) -> int:
        return self.resolve().status_code

    @property
    def is_success(self) -> bool:
        """``True`` for a 2xx response not otherwise marked as failed."""
        return not self._failed and 200 <= self.status_code < 300

    def http_error(self) -> Optional[HttpError]:
        """Return the error describing a non-2xx status, or ``None`` on success."""
        status = self.status_code
        if 200 <= status < 300:
            return None
        kwargs: dict[str, Any] = {
            "uri": self.url,
            "method": self.method,
            "options": self.options,
            "envelope": self,
        }
        if 400 <= status < 500:
            return NotFoundError(f"Not Found HTTP error, HTTP status code {status}", **kwargs)
        return FailedRequestError(f"Failed HTTP request, HTTP status code {status}", **kwargs)

    def raise_for_status(self) -> None:
        """Raise the HTTP error for a failed status unless errors are suppressed."""
        if self._suppress_errors:
            return
        error = self.http_error()
        if error is not None:
            raise error

    # ------------------------------------------------------------------ #
    # Content
    # ------------------------------------------------------------------ #

    def get_headers(self, throw: bool = True) -> dict[str, list[str]]:
        """Return response headers keyed by lower-cased name.

        Args:
            throw: Raise on a failed status unless errors are suppressed.
        """
        response = self.resolve()
        if throw:
            self.raise_for_status()
        headers: dict[str, list[str]] = {}
        for name, value in response.headers.multi_items():
            headers.setdefault(name.lower(), []).append(value)
        return headers

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.resolve().headers.get(name, default)

    @property
    def content_type(self) -> Optional[str]:
        return self.get_header("content-type")

    def get_content(self, throw: bool = True) -> str:
        """Return the response body as text.

        Args:
            throw: Raise on a failed status unless errors are suppressed.
        """
        response = self.resolve()
        if throw:
            self.raise_for_status()
        return response.text

    def to_dict(self, throw: bool = True) -> Any:
        """Return the JSON body, or an empty dict for an empty body.

        Raises:
            DecoderError: If the body is not valid JSON.
        """
        content = self.get_content(throw)
        if not content.strip():
            return {}
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise DecoderError(f"Response body from {self.url} is not valid JSON: {exc}") from exc
