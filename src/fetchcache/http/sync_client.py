"""Synchronous HTTP provider on :class:`httpx.Client`.

:class:`Http` separates *preparing* a request from *running* it:

- :meth:`Http.prepare` merges options, resolves the URI and checks the
  cache.  A hit is returned as a complete envelope without network I/O; a
  miss returns an envelope whose live call is made the first time the
  response is read.
- :meth:`Http.run` executes the live call (retrying transient failures
  with exponential backoff when retry is enabled), classifies the result
  and queues successful cacheable responses as deferred cache writes.

:meth:`Http.get_concurrent` prepares many requests up front, runs the
cache misses on a thread pool and commits the cache once at the end.

See Also:
    :class:`~fetchcache.http.async_client.AsyncHttp` for the asyncio
    equivalent.
"""

from __future__ import annotations

import functools
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Iterable, Iterator, Optional

import httpx

from fetchcache.decode import RssDecoder
from fetchcache.exceptions import TransportError
from fetchcache.http.base import RETRYABLE_ERRORS, RETRYABLE_STATUS_CODES, BaseHttp
from fetchcache.http.envelope import ResponseEnvelope

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10


class Http(BaseHttp):
    """Synchronous cache-aware HTTP provider.

    Args:
        base_uri: Base URI relative request URIs are resolved against.
        config: Client configuration.
        client: An :class:`httpx.Client` to send requests with, e.g. one
            on an :class:`httpx.MockTransport`.  It is not closed by
            :meth:`close`.  When omitted a client is built from
            ``config.request``.
        **kwargs: ``cache``, ``dispatcher``, ``session`` and ``decoder``,
            see :class:`~fetchcache.http.base.BaseHttp`.

    Example::

        with Http("https://api.example.com") as http:
            http.set_cache(MemoryBackend())
            response = http.get("posts", query={"page": 1})
            posts = http.decode(response)
    """

    def __init__(
        self,
        base_uri: Optional[str] = None,
        config: Any = None,
        *,
        client: Optional[httpx.Client] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_uri, config, **kwargs)
        if client is None:
            request = self._config.request
            client = httpx.Client(
                timeout=request.timeout,
                verify=request.verify_ssl,
                follow_redirects=request.follow_redirects,
                max_redirects=request.max_redirects,
            )
        else:
            self._owns_client = False
        self._client = client

    @property
    def client(self) -> httpx.Client:
        return self._client

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> Http:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------ #
    # Prepare / run
    # ------------------------------------------------------------------ #

    def prepare(
        self,
        method: str,
        uri: str,
        options: Optional[dict[str, Any]] = None,
        cacheable: Optional[bool] = None,
    ) -> ResponseEnvelope:
        """Prepare a request, serving it from the cache when possible.

        No network I/O happens here: a miss returns an envelope whose live
        call is made when the response is first read or :meth:`run` is
        called.

        Args:
            method: HTTP method.
            uri: Absolute URI, or a path relative to the base URI.
            options: Request options, merged with the provider defaults.
            cacheable: Force caching on or off for this call.  ``None``
                follows the cacheable method set.  Caching still needs an
                enabled cache.

        Returns:
            A hit envelope, or a pending live envelope.

        Raises:
            HttpOptionError: On an unknown option name.
            BaseUriError: On a relative URI without a base URI.
            InvalidHttpMethodError: On an unknown method.
        """
        method, url, options, request_id, hit, item = self._lookup(method, uri, options, cacheable)
        if hit is not None:
            return hit
        sender = functools.partial(self._send, method, url, options, request_id, self._retry_enabled)
        return self._new_envelope(method, url, options, request_id, sender, item)

    def run(self, envelope: ResponseEnvelope) -> ResponseEnvelope:
        """Execute a prepared request and reconcile it with the cache.

        Hits are returned as they are.  A successful cacheable response is
        queued with :meth:`~fetchcache.cache.store.CacheStore.save_deferred`;
        call :meth:`commit_cache` to persist it.

        Raises:
            NotFoundError: On a 4xx status, unless errors are suppressed.
            FailedRequestError: On any other non-2xx status, unless errors
                are suppressed.
            TransportError: When no response was received.
        """
        if envelope.is_hit:
            return self._run_hit(envelope)
        self._session.increment()
        try:
            envelope.resolve()
        except TransportError as exc:
            self._fail_transport(envelope, exc)
            raise
        return self._complete(envelope)

    def request(self, method: str, uri: str, options: Optional[dict[str, Any]] = None) -> ResponseEnvelope:
        """Prepare and run a request, committing the cache if it was cacheable."""
        envelope = self.prepare(method, uri, options)
        cacheable = envelope.is_cacheable
        envelope = self.run(envelope)
        if cacheable:
            self.commit_cache()
        return envelope

    # ------------------------------------------------------------------ #
    # Convenience verbs
    # ------------------------------------------------------------------ #

    def get(
        self,
        uri: str,
        query: Optional[dict[str, Any]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> ResponseEnvelope:
        """Send a GET request; *query* is merged over ``options["query"]``."""
        return self.request("GET", uri, _with_query(options, query))

    def post(
        self,
        uri: str,
        data: Any = None,
        options: Optional[dict[str, Any]] = None,
    ) -> ResponseEnvelope:
        """Send a POST request; a dict *data* is form encoded, a string sent as is."""
        return self.request("POST", uri, _with_body(options, data))

    def head(self, uri: str, options: Optional[dict[str, Any]] = None) -> ResponseEnvelope:
        return self.request("HEAD", uri, options)

    def exists(self, uri: str, options: Optional[dict[str, Any]] = None) -> bool:
        """Return whether *uri* responds with HTTP 200.

        Errors are suppressed, retry is on, the cache is bypassed and
        redirects are followed.  Transport failures still raise.
        """
        with self._existence_check():
            options = {**(options or {}), "follow_redirects": True}
            envelope = self.run(self.prepare("GET", uri, options))
            return envelope.status_code == 200

    def get_rss(self, uri: str, options: Optional[dict[str, Any]] = None) -> Any:
        """GET an RSS or Atom feed and return the parsed feed."""
        return self.decode(self.get(uri, options=options), RssDecoder())

    def get_concurrent(
        self,
        uris: Iterable[str],
        options: Optional[dict[str, Any]] = None,
        max_workers: int = DEFAULT_CONCURRENCY,
    ) -> Iterator[ResponseEnvelope]:
        """GET many URIs concurrently, yielding envelopes in input order.

        Every request is prepared first, so hits never touch the network.
        The misses are sent together on a thread pool and each envelope is
        yielded, after :meth:`run`, as soon as it and those before it are
        complete.  The cache is committed once, when the batch finishes or
        the iterator is closed.
        """
        envelopes = [self.prepare("GET", uri, options) for uri in uris]
        pending = [e for e in envelopes if not e.is_hit]
        try:
            if not pending:
                for envelope in envelopes:
                    yield self.run(envelope)
                return
            with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(pending)))) as pool:
                futures: dict[int, Future] = {id(e): pool.submit(_resolve_quietly, e) for e in pending}
                for envelope in envelopes:
                    future = futures.get(id(envelope))
                    if future is not None:
                        wait([future])
                    yield self.run(envelope)
        finally:
            self.commit_cache()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def _send(
        self,
        method: str,
        url: str,
        options: dict[str, Any],
        request_id: str,
        retry: bool,
    ) -> httpx.Response:
        """Send the live request, retrying transient failures when *retry* is set.

        The delay doubles with each retry: ``retry_delay``, 2x, 4x, ...
        """
        self._dispatch("on_start", request_id, url, context={"method": method})
        attempts = self._attempts(retry)
        kwargs = self._request_kwargs(options)

        for attempt in range(1, attempts + 1):
            try:
                response = self._client.request(method, url, **kwargs)
            except RETRYABLE_ERRORS as exc:
                if attempt < attempts:
                    delay = self._retry_delay(attempt)
                    logger.debug(
                        "Connection error: %s, retrying in %ss (attempt %d/%d)",
                        exc, delay, attempt, attempts,
                    )
                    time.sleep(delay)
                    continue
                raise self._transport_error(exc, request_id, attempts) from exc
            except httpx.RequestError as exc:
                raise self._transport_error(exc, request_id, attempt) from exc

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < attempts:
                delay = self._retry_delay(attempt)
                logger.debug(
                    "HTTP %d from %s, retrying in %ss (attempt %d/%d)",
                    response.status_code, url, delay, attempt, attempts,
                )
                response.close()
                time.sleep(delay)
                continue
            return response

        raise AssertionError("retry loop exited without a response")  # pragma: no cover


def _resolve_quietly(envelope: ResponseEnvelope) -> None:
    # Transport errors are kept on the envelope and raised again by run().
    try:
        envelope.resolve()
    except TransportError:
        pass


def _with_query(options: Optional[dict[str, Any]], query: Optional[dict[str, Any]]) -> dict[str, Any]:
    options = dict(options or {})
    if query:
        options["query"] = {**options.get("query", {}), **query}
    return options


def _with_body(options: Optional[dict[str, Any]], data: Any) -> dict[str, Any]:
    options = dict(options or {})
    if isinstance(data, dict):
        options["data"] = data
    elif data is not None:
        options["body"] = data
    return options
