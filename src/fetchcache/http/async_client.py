"""Asynchronous HTTP provider -- mirrors the :class:`~fetchcache.http.Http` API.

:class:`AsyncHttp` wraps :class:`httpx.AsyncClient`.  ``prepare`` checks
the cache and, on a miss, schedules the live call as an
:class:`asyncio.Task` straight away, so requests prepared together are in
flight together; ``run`` awaits the task and reconciles the result with
the cache.  Because of this, ``prepare`` must be called from a running
event loop.

See Also:
    :class:`~fetchcache.http.sync_client.Http` for the blocking equivalent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, Optional

import httpx

from fetchcache.decode import RssDecoder
from fetchcache.exceptions import TransportError
from fetchcache.http.base import RETRYABLE_ERRORS, RETRYABLE_STATUS_CODES, BaseHttp
from fetchcache.http.envelope import ResponseEnvelope
from fetchcache.http.sync_client import _with_body, _with_query

logger = logging.getLogger(__name__)


class AsyncHttp(BaseHttp):
    """Asynchronous cache-aware HTTP provider.

    Args:
        base_uri: Base URI relative request URIs are resolved against.
        config: Client configuration.
        client: An :class:`httpx.AsyncClient` to send requests with.  It is
            not closed by :meth:`aclose`.
        **kwargs: ``cache``, ``dispatcher``, ``session`` and ``decoder``,
            see :class:`~fetchcache.http.base.BaseHttp`.

    Example::

        async with AsyncHttp("https://api.example.com") as http:
            async for response in http.get_concurrent(["a.json", "b.json"]):
                print(http.decode(response))
    """

    def __init__(
        self,
        base_uri: Optional[str] = None,
        config: Any = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(base_uri, config, **kwargs)
        if client is None:
            request = self._config.request
            client = httpx.AsyncClient(
                timeout=request.timeout,
                verify=request.verify_ssl,
                follow_redirects=request.follow_redirects,
                max_redirects=request.max_redirects,
            )
        else:
            self._owns_client = False
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AsyncHttp:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

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
        """Prepare a request; a miss is scheduled on the running event loop.

        See :meth:`fetchcache.http.sync_client.Http.prepare`.
        """
        method, url, options, request_id, hit, item = self._lookup(method, uri, options, cacheable)
        if hit is not None:
            return hit
        task = asyncio.get_running_loop().create_task(
            self._send(method, url, options, request_id, self._retry_enabled)
        )
        return self._new_envelope(method, url, options, request_id, task, item)

    async def run(self, envelope: ResponseEnvelope) -> ResponseEnvelope:
        """Await a prepared request and reconcile it with the cache.

        See :meth:`fetchcache.http.sync_client.Http.run`.
        """
        if envelope.is_hit:
            return self._run_hit(envelope)
        self._session.increment()
        try:
            await envelope.aresolve()
        except TransportError as exc:
            self._fail_transport(envelope, exc)
            raise
        return self._complete(envelope)

    async def request(self, method: str, uri: str, options: Optional[dict[str, Any]] = None) -> ResponseEnvelope:
        envelope = self.prepare(method, uri, options)
        cacheable = envelope.is_cacheable
        envelope = await self.run(envelope)
        if cacheable:
            self.commit_cache()
        return envelope

    # ------------------------------------------------------------------ #
    # Convenience verbs
    # ------------------------------------------------------------------ #

    async def get(
        self,
        uri: str,
        query: Optional[dict[str, Any]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> ResponseEnvelope:
        return await self.request("GET", uri, _with_query(options, query))

    async def post(
        self,
        uri: str,
        data: Any = None,
        options: Optional[dict[str, Any]] = None,
    ) -> ResponseEnvelope:
        return await self.request("POST", uri, _with_body(options, data))

    async def head(self, uri: str, options: Optional[dict[str, Any]] = None) -> ResponseEnvelope:
        return await self.request("HEAD", uri, options)

    async def exists(self, uri: str, options: Optional[dict[str, Any]] = None) -> bool:
        with self._existence_check():
            options = {**(options or {}), "follow_redirects": True}
            envelope = await self.run(self.prepare("GET", uri, options))
            return envelope.status_code == 200

    async def get_rss(self, uri: str, options: Optional[dict[str, Any]] = None) -> Any:
        return self.decode(await self.get(uri, options=options), RssDecoder())

    async def get_concurrent(
        self,
        uris: Iterable[str],
        options: Optional[dict[str, Any]] = None,
    ) -> AsyncIterator[ResponseEnvelope]:
        """GET many URIs concurrently, yielding envelopes in input order.

        All misses are scheduled by ``prepare`` before the first one is
        awaited.  The cache is committed once at the end.  Closing the
        iterator early awaits the misses not yet yielded, uncached.
        """
        remaining = [self.prepare("GET", uri, options) for uri in uris]
        try:
            while remaining:
                yield await self.run(remaining.pop(0))
        finally:
            pending = [e for e in remaining if not e.is_hit]
            if pending:
                await asyncio.gather(*(e.aresolve() for e in pending), return_exceptions=True)
                for envelope in pending:
                    self._trace.clear(envelope.request_id)
            self.commit_cache()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    async def _send(
        self,
        method: str,
        url: str,
        options: dict[str, Any],
        request_id: str,
        retry: bool,
    ) -> httpx.Response:
        self._dispatch("on_start", request_id, url, context={"method": method})
        attempts = self._attempts(retry)
        kwargs = self._request_kwargs(options)

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
            except RETRYABLE_ERRORS as exc:
                if attempt < attempts:
                    delay = self._retry_delay(attempt)
                    logger.debug(
                        "Connection error: %s, retrying in %ss (attempt %d/%d)",
                        exc, delay, attempt, attempts,
                    )
                    await asyncio.sleep(delay)
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
                await response.aclose()
                await asyncio.sleep(delay)
                continue
            await response.aread()
            return response

        raise AssertionError("retry loop exited without a response")  # pragma: no cover
