"""Decoder selection by content type or file name."""

from __future__ import annotations

import posixpath
from typing import Optional
from urllib.parse import urlsplit

from fetchcache.decode.base import Decoder
from fetchcache.decode.data import JsonDecoder
from fetchcache.decode.feed import RssDecoder
from fetchcache.decode.text import MarkdownDecoder

EXTENSIONS: dict[str, type[Decoder]] = {
    "json": JsonDecoder,
    "md": MarkdownDecoder,
    "mkd": MarkdownDecoder,
    "markdown": MarkdownDecoder,
    "rss": RssDecoder,
    "atom": RssDecoder,
}

MIMETYPES: dict[str, type[Decoder]] = {
    "application/json": JsonDecoder,
    "text/markdown": MarkdownDecoder,
    "text/x-markdown": MarkdownDecoder,
    "application/rss+xml": RssDecoder,
    "text/rss": RssDecoder,
    "application/atom+xml": RssDecoder,
}


class DecoderFactory:
    """Builds a decoder from a response's content type or URI extension."""

    @staticmethod
    def from_content_type(content_type: Optional[str]) -> Optional[Decoder]:
        """Return a decoder for *content_type*, ignoring parameters such as charset."""
        if not content_type:
            return None
        mimetype = content_type.split(";", 1)[0].strip().lower()
        decoder = MIMETYPES.get(mimetype)
        return decoder() if decoder else None

    @staticmethod
    def from_filename(filename: str) -> Optional[Decoder]:
        """Return a decoder for the extension of *filename*, which may be a URL."""
        path = urlsplit(filename).path if "://" in filename else filename.split("?", 1)[0]
        extension = posixpath.splitext(path)[1].lstrip(".").lower()
        decoder = EXTENSIONS.get(extension)
        return decoder() if decoder else None
