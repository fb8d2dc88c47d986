"""fetchcache -- cache-aware HTTP and GraphQL data client.

Fetches content from remote HTTP or GraphQL endpoints, optionally caches
responses, and exposes a uniform decoded payload to callers.  Requests are
*prepared* (cache checked, live call scheduled) separately from being *run*
(executed, classified, written back to the cache) so that many requests can
be fanned out concurrently while cache writes are committed in one flush.

Typical usage::

    from fetchcache import Http
    from fetchcache.cache import CacheStore, DiskCacheBackend

    http = Http("https://api.example.com")
    http.set_cache(CacheStore(DiskCacheBackend("/tmp/fetchcache")))
    response = http.get("/posts", query={"page": 1})
    data = http.decode(response)

Modules:
    identifier: Stable cache keys for requests.
    cache: Cache store, backends and lifetime presets.
    http: Response envelope and the sync/async request orchestrators.
    decode: Decoders and decoder selection.
    events: Request lifecycle events and subscribers.
    models: Pydantic configuration models.
    config: XDG-aware configuration loading.
    exceptions: Exception hierarchy with exit-code mapping.
"""

__version__ = "0.3.0"

USER_AGENT = f"fetchcache/{__version__}"

from fetchcache.http import AsyncHttp, GraphQL, Http, ResponseEnvelope, Rest  # noqa: E402

__all__ = ["AsyncHttp", "GraphQL", "Http", "ResponseEnvelope", "Rest", "USER_AGENT", "__version__"]
