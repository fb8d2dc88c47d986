"""Tests for the asyncio AsyncHttp provider."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from conftest import BASE_URI, RecordingTransport, json_response

from fetchcache.cache import CacheStore
from fetchcache.exceptions import FailedRequestError, NotFoundError, TransportError
from fetchcache.http import AsyncHttp
from fetchcache.models import ClientConfig

FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>News</title>
<item><title>First</title><link>https://example.com/1</link></item>
</channel></rss>"""


def _routes(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/posts":
        return json_response([{"id": 1}])
    if path == "/feed":
        return httpx.Response(200, text=FEED, headers={"content-type": "application/rss+xml"})
    if path == "/error":
        return httpx.Response(502)
    return httpx.Response(404)


def _run(fast_config: ClientConfig, body, handler=_routes, **kwargs):
    transport = RecordingTransport(handler)

    async def main():
        async with AsyncHttp(config=fast_config, client=httpx.AsyncClient(transport=transport), **kwargs) as http:
            try:
                return await body(http)
            finally:
                await http.client.aclose()

    return asyncio.run(main()), transport


class TestAsyncRequests:
    def test_get(self, fast_config: ClientConfig) -> None:
        async def body(http: AsyncHttp):
            response = await http.get("posts")
            return response.status_code, http.decode(response)

        (status, data), transport = _run(fast_config, body)
        assert status == 200
        assert data == [{"id": 1}]
        assert str(transport.requests[0].url) == f"{BASE_URI}/posts"

    def test_post_json(self, fast_config: ClientConfig) -> None:
        async def body(http: AsyncHttp):
            return await http.post("posts", options={"json": {"title": "x"}})

        _, transport = _run(fast_config, body)
        request = transport.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {"title": "x"}

    def test_head(self, fast_config: ClientConfig) -> None:
        async def body(http: AsyncHttp):
            return (await http.head("posts")).status_code

        status, transport = _run(fast_config, body)
        assert status == 200
        assert transport.requests[0].method == "HEAD"

    def test_not_found(self, fast_config: ClientConfig) -> None:
        async def body(http: AsyncHttp):
            await http.get("missing")

        with pytest.raises(NotFoundError):
            _run(fast_config, body)

    def test_retry_bound(self, fast_config: ClientConfig) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(502)

        async def body(http: AsyncHttp):
            await http.get("error")

        with pytest.raises(FailedRequestError):
            _run(fast_config, body, handler)
        assert len(calls) == 3

    def test_transport_error(self, fast_config: ClientConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async def body(http: AsyncHttp):
            http.set_suppress_errors()
            await http.get("posts")

        with pytest.raises(TransportError):
            _run(fast_config, body, handler)

    def test_exists(self, fast_config: ClientConfig) -> None:
        async def body(http: AsyncHttp):
            return await http.exists("posts"), await http.exists("missing"), http.suppress_errors

        (found, missing, suppressed), _ = _run(fast_config, body)
        assert found is True
        assert missing is False
        assert suppressed is False

    def test_get_rss(self, fast_config: ClientConfig) -> None:
        async def body(http: AsyncHttp):
            return await http.get_rss("feed")

        feed, _ = _run(fast_config, body)
        assert feed.feed.title == "News"
        assert feed.entries[0].title == "First"

    def test_prepare_requires_running_loop(self, fast_config: ClientConfig) -> None:
        http = AsyncHttp(config=fast_config)
        with pytest.raises(RuntimeError):
            http.prepare("GET", "posts")


class TestAsyncCaching:
    def test_second_request_is_hit(self, fast_config: ClientConfig, memory_store: CacheStore) -> None:
        async def body(http: AsyncHttp):
            first = await http.get("posts")
            second = await http.get("posts")
            return first.is_hit, second.is_hit, http.decode(second), http.total_requests

        (first, second, data, total), transport = _run(fast_config, body, cache=memory_store)
        assert (first, second) == (False, True)
        assert data == [{"id": 1}]
        assert total == 1
        assert transport.calls == 1

    def test_force_cacheable(self, fast_config: ClientConfig, memory_store: CacheStore) -> None:
        async def body(http: AsyncHttp):
            hits = []
            for _ in range(2):
                envelope = await http.run(http.prepare("POST", "posts", {"json": {"q": 1}}, cacheable=True))
                http.commit_cache()
                hits.append(envelope.is_hit)
            return hits

        hits, transport = _run(fast_config, body, cache=memory_store)
        assert hits == [False, True]
        assert transport.calls == 1

    def test_force_not_cacheable(self, fast_config: ClientConfig, memory_store: CacheStore) -> None:
        async def body(http: AsyncHttp):
            await http.get("posts")
            return (await http.run(http.prepare("GET", "posts", cacheable=False))).is_hit

        hit, transport = _run(fast_config, body, cache=memory_store)
        assert hit is False
        assert transport.calls == 2
