"""Tests for the GraphQL provider."""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import RecordingTransport, json_response

from fetchcache.cache import CacheStore
from fetchcache.exceptions import DecoderError, FailedGraphQLError
from fetchcache.http import GraphQL
from fetchcache.models import ClientConfig

ENDPOINT = "https://api.example.com/graphql"

ERRORS = [
    {
        "message": "Cannot query field 'titel' on type 'Post'",
        "locations": [{"line": 1, "column": 9}],
        "path": ["post", "titel"],
    }
]


def _handler(request: httpx.Request) -> httpx.Response:
    payload = json.loads(request.content)
    query = payload["query"]
    if query == "{ping}":
        return json_response({"data": {"ping": "pong"}})
    if "titel" in query:
        return json_response({"errors": ERRORS, "data": {"post": None}})
    if "noData" in query:
        return json_response({"result": 1})
    post_id = (payload.get("variables") or {}).get("id", 0)
    return json_response({"data": {"post": {"id": post_id, "title": f"Post {post_id}"}}})


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport(_handler)


@pytest.fixture
def api(transport: RecordingTransport) -> GraphQL:
    provider = GraphQL(ENDPOINT, client=httpx.Client(transport=transport))
    yield provider
    provider.client.close()


class TestBuildQuery:
    def test_collapses_whitespace(self, api: GraphQL) -> None:
        body = api.build_query("query {\n    post {\n        id\n    }\n}")
        assert json.loads(body) == {"query": "query { post { id } }"}

    def test_variables_and_operation(self, api: GraphQL) -> None:
        body = api.build_query("query Get($id: ID!) { post(id: $id) { id } }", {"id": 3}, "Get")
        assert json.loads(body) == {
            "query": "query Get($id: ID!) { post(id: $id) { id } }",
            "operationName": "Get",
            "variables": {"id": 3},
        }
        assert api.last_query == body

    def test_pretty_printed(self, api: GraphQL) -> None:
        assert '\n    "query"' in api.build_query("{ping}")


class TestQuery:
    def test_posts_json_to_endpoint(self, api: GraphQL, transport: RecordingTransport) -> None:
        api.query("query ($id: ID!) { post(id: $id) { title } }", {"id": 1})
        request = transport.requests[0]
        assert request.method == "POST"
        assert str(request.url) == ENDPOINT
        assert request.headers["content-type"] == "application/json"

    def test_decodes_data(self, api: GraphQL) -> None:
        response = api.query("query ($id: ID!) { post(id: $id) { title } }", {"id": 2})
        assert api.decode(response) == {"post": {"id": 2, "title": "Post 2"}}

    def test_missing_data(self, api: GraphQL) -> None:
        with pytest.raises(DecoderError):
            api.decode(api.query("{ noData }"))

    def test_ping(self, api: GraphQL) -> None:
        assert api.ping() is True

    def test_ping_wrong_answer(self) -> None:
        transport = RecordingTransport(lambda request: json_response({"data": {"ping": "nope"}}))
        with GraphQL(ENDPOINT, client=httpx.Client(transport=transport)) as api:
            assert api.ping() is False


class TestErrors:
    def test_errors_raise(self, api: GraphQL) -> None:
        with pytest.raises(FailedGraphQLError) as exc_info:
            api.query("{ post { titel } }")
        error = exc_info.value
        assert error.summary.startswith("GraphQL query failed: Cannot query field 'titel'")
        assert error.partial_data == {"post": None}
        assert error.error_data == ERRORS
        assert error.last_query == api.last_query
        assert error.status_code == 200

    def test_error_message_expanded(self, api: GraphQL) -> None:
        with pytest.raises(FailedGraphQLError) as exc_info:
            api.query("{ post { titel } }")
        message = str(exc_info.value)
        assert "Last GraphQL query:" in message
        assert "GraphQL error: Cannot query field 'titel' on type 'Post'" in message
        assert "Location: line 1, column 9" in message
        assert "Path: post > titel" in message

    def test_errors_suppressed(self, api: GraphQL) -> None:
        api.set_suppress_errors()
        response = api.query("{ post { titel } }")
        assert response.failed is True
        assert response.to_dict()["errors"] == ERRORS


class TestCaching:
    @pytest.fixture
    def cached_api(self, transport: RecordingTransport, memory_store: CacheStore) -> GraphQL:
        provider = GraphQL(ENDPOINT, client=httpx.Client(transport=transport), cache=memory_store)
        yield provider
        provider.client.close()

    def test_same_query_is_hit(self, cached_api: GraphQL, transport: RecordingTransport) -> None:
        query = "query ($id: ID!) { post(id: $id) { title } }"
        cached_api.query(query, {"id": 1})
        second = cached_api.query(query, {"id": 1})
        assert second.is_hit is True
        assert cached_api.decode(second)["post"]["id"] == 1
        assert transport.calls == 1

    def test_variables_change_key(self, cached_api: GraphQL, transport: RecordingTransport) -> None:
        query = "query ($id: ID!) { post(id: $id) { title } }"
        cached_api.query(query, {"id": 1})
        cached_api.query(query, {"id": 2})
        assert transport.calls == 2

    def test_failed_query_not_cached(self, cached_api: GraphQL, transport: RecordingTransport) -> None:
        cached_api.set_suppress_errors()
        cached_api.query("{ post { titel } }")
        cached_api.query("{ post { titel } }")
        assert transport.calls == 2

    def test_post_cacheable(self, cached_api: GraphQL) -> None:
        assert "POST" in cached_api.cacheable_methods

    def test_uses_config(self, transport: RecordingTransport) -> None:
        config = ClientConfig(base_uri=ENDPOINT)
        with GraphQL(config=config, client=httpx.Client(transport=transport)) as api:
            assert api.ping() is True
