"""RSS and Atom feed decoder."""

from __future__ import annotations

import logging
from typing import Any

import feedparser

from fetchcache.decode.base import Decoder, get_string
from fetchcache.exceptions import DecoderError

logger = logging.getLogger(__name__)


class RssDecoder(Decoder):
    """Parses an RSS or Atom feed with :mod:`feedparser`.

    Returns the :class:`feedparser.FeedParserDict` result, with ``feed``
    and ``entries`` members.  Feeds with recoverable problems are returned
    with a warning; a document with no recognisable feed raises.
    """

    name = "rss"

    def decode(self, data: Any) -> feedparser.FeedParserDict:
        parsed = feedparser.parse(get_string(data))
        if parsed.bozo:
            if not parsed.get("version") and not parsed.entries:
                raise DecoderError(f"Error parsing feed: {parsed.get('bozo_exception')}")
            logger.warning("Feed parsing warning: %s", parsed.get("bozo_exception"))
        return parsed
