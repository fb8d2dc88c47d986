"""REST provider: :class:`~fetchcache.http.sync_client.Http` decoding JSON by default."""

from __future__ import annotations

from typing import Any, Optional

from fetchcache.decode import JsonDecoder
from fetchcache.http.sync_client import Http


class Rest(Http):
    """Provider for JSON APIs.

    Responses decode as JSON whatever their content type, unless a decoder
    is passed to :meth:`decode` or the constructor.

    Example::

        api = Rest("https://api.example.com")
        posts = api.decode(api.get("posts", query={"page": 1}))
    """

    def __init__(self, base_uri: Optional[str] = None, config: Any = None, **kwargs: Any) -> None:
        kwargs.setdefault("decoder", JsonDecoder())
        super().__init__(base_uri, config, **kwargs)
