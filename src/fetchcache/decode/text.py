"""Markdown and YAML front matter decoders."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import markdown
import yaml

from fetchcache.decode.base import Decoder, get_string
from fetchcache.exceptions import DecoderError

_FENCE = "---"


class MarkdownDecoder(Decoder):
    """Renders Markdown to HTML with the ``extra`` extension set.

    A :class:`FrontMatterDocument` is accepted too, in which case its body
    is rendered and the front matter kept.
    """

    name = "markdown"

    def __init__(self, extensions: tuple[str, ...] = ("extra",)) -> None:
        self._extensions = list(extensions)

    def decode(self, data: Any) -> Any:
        if isinstance(data, FrontMatterDocument):
            return FrontMatterDocument(matter=data.matter, body=self.decode(data.body))
        return markdown.markdown(get_string(data), extensions=self._extensions)


@dataclass
class FrontMatterDocument:
    """A text document split into its YAML front matter and body."""

    matter: dict[str, Any] = field(default_factory=dict)
    body: str = ""

    def get(self, key: str, default: Any = None) -> Any:
        return self.matter.get(key, default)


class FrontMatterDecoder(Decoder):
    """Splits a ``---`` delimited YAML header from the document body.

    Documents without front matter decode to an empty ``matter`` dict and
    the whole text as ``body``.
    """

    name = "frontmatter"

    def decode(self, data: Any) -> FrontMatterDocument:
        content = get_string(data).lstrip("\ufeff")
        lines = content.splitlines(keepends=True)
        if not lines or lines[0].strip() != _FENCE:
            return FrontMatterDocument(body=content)

        for index, line in enumerate(lines[1:], start=1):
            if line.strip() == _FENCE:
                header = "".join(lines[1:index])
                body = "".join(lines[index + 1:])
                break
        else:
            return FrontMatterDocument(body=content)

        try:
            matter = yaml.safe_load(header) or {}
        except yaml.YAMLError as exc:
            raise DecoderError(f"Error parsing YAML front matter: {exc}") from exc
        if not isinstance(matter, dict):
            raise DecoderError("YAML front matter is expected to be a mapping")
        return FrontMatterDocument(matter=matter, body=body.lstrip("\n"))
