"""GraphQL provider built on :class:`~fetchcache.http.sync_client.Http`."""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from fetchcache.decode import GraphQLDecoder
from fetchcache.exceptions import DecoderError, FailedGraphQLError, HttpError
from fetchcache.http.envelope import ResponseEnvelope
from fetchcache.http.sync_client import Http

_WHITESPACE = re.compile(r"\s+")


class GraphQL(Http):
    """Sends GraphQL queries as JSON ``POST`` requests to the base URI.

    Responses decode to their ``data`` member by default.  A response with
    an ``errors`` member counts as failed and raises
    :class:`~fetchcache.exceptions.FailedGraphQLError` unless errors are
    suppressed.  ``POST`` is cacheable on this provider, and since the
    query is the request body it is part of the request identifier.

    Example::

        api = GraphQL("https://example.com/graphql")
        response = api.query("query ($id: ID!) { post(id: $id) { title } }", {"id": 1})
        title = api.decode(response)["post"]["title"]
    """

    def __init__(self, base_uri: Optional[str] = None, config: Any = None, **kwargs: Any) -> None:
        kwargs.setdefault("decoder", GraphQLDecoder())
        super().__init__(base_uri, config, **kwargs)
        self._cacheable_methods.add("POST")
        self._last_query: Optional[str] = None
        self.set_default_options({"headers": {"Content-Type": "application/json"}})

    @property
    def last_query(self) -> Optional[str]:
        """The JSON body of the last query built."""
        return self._last_query

    def build_query(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> str:
        """Return the JSON request body for *query*.

        Whitespace runs in the query are collapsed to single spaces.
        """
        data: dict[str, Any] = {"query": _WHITESPACE.sub(" ", query).strip()}
        if operation_name:
            data["operationName"] = operation_name
        if variables:
            data["variables"] = variables
        self._last_query = json.dumps(data, indent=4)
        return self._last_query

    def query(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> ResponseEnvelope:
        """Run a GraphQL query against the base URI."""
        return self.post("", self.build_query(query, variables, operation_name))

    def ping(self) -> bool:
        """Return whether the API answers ``{ping}`` with ``pong``."""
        data = self.decode(self.query("{ping}"))
        return isinstance(data, dict) and data.get("ping") == "pong"

    def check_response(self, envelope: ResponseEnvelope) -> Optional[HttpError]:
        try:
            content = envelope.to_dict(throw=False)
        except DecoderError:
            return None
        errors = content.get("errors") if isinstance(content, dict) else None
        if not isinstance(errors, list) or not errors:
            return None

        partial = content.get("data")
        first = errors[0].get("message", "") if isinstance(errors[0], dict) else str(errors[0])
        return FailedGraphQLError(
            f"GraphQL query failed: {first}",
            last_query=self._last_query,
            uri=envelope.url,
            method=envelope.method,
            options=envelope.options,
            envelope=envelope,
            error_data=errors,
            partial_data=partial,
        )
