"""HTTP providers and the response envelope.

* :class:`Http` -- synchronous provider on :class:`httpx.Client`.
* :class:`AsyncHttp` -- asyncio provider on :class:`httpx.AsyncClient`.
* :class:`GraphQL` -- :class:`Http` sending GraphQL queries.
* :class:`Rest` -- :class:`Http` decoding JSON by default.
* :class:`ResponseEnvelope` -- one read interface over live and cached
  responses.
"""

from fetchcache.http.async_client import AsyncHttp
from fetchcache.http.envelope import ResponseEnvelope
from fetchcache.http.graphql import GraphQL
from fetchcache.http.rest import Rest
from fetchcache.http.session import RequestSession
from fetchcache.http.sync_client import Http
from fetchcache.http.trace import RequestTrace

__all__ = ["AsyncHttp", "GraphQL", "Http", "RequestSession", "RequestTrace", "ResponseEnvelope", "Rest"]
