"""Response decoders.

Decoder selection for a response follows this order: an explicit decoder,
the provider's default decoder, the response ``Content-Type`` and finally
the extension of the request URI (see :class:`DecoderFactory`).
"""

from fetchcache.decode.base import Decoder, DecoderChain, get_string
from fetchcache.decode.data import GraphQLDecoder, JsonDecoder
from fetchcache.decode.factory import DecoderFactory
from fetchcache.decode.feed import RssDecoder
from fetchcache.decode.text import FrontMatterDecoder, FrontMatterDocument, MarkdownDecoder

__all__ = [
    "Decoder",
    "DecoderChain",
    "DecoderFactory",
    "FrontMatterDecoder",
    "FrontMatterDocument",
    "GraphQLDecoder",
    "JsonDecoder",
    "MarkdownDecoder",
    "RssDecoder",
    "get_string",
]
