"""Decoder interface and the chain that runs decoders in sequence."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from fetchcache.exceptions import DecoderError

if TYPE_CHECKING:
    from fetchcache.http.envelope import ResponseEnvelope


class Decoder(ABC):
    """Turns a response body into a Python value.

    Decoders accept either a string or a
    :class:`~fetchcache.http.envelope.ResponseEnvelope`, whose body is read
    with the envelope's own error handling.
    """

    name: str = ""

    @abstractmethod
    def decode(self, data: Union[str, bytes, ResponseEnvelope]) -> Any:
        """Decode *data*.

        Raises:
            DecoderError: If the body is not well formed for this decoder.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def get_string(data: Any) -> str:
    """Return the text of *data*, reading the body of an envelope."""
    if isinstance(data, str):
        return data
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    if hasattr(data, "get_content"):
        return data.get_content()
    raise DecoderError(f"Content is not a string so cannot be decoded, {type(data).__name__} detected")


class DecoderChain(Decoder):
    """Runs several decoders, feeding each one the output of the previous.

    Example::

        chain = DecoderChain([FrontMatterDecoder()])
        chain.add(MarkdownDecoder())
    """

    name = "chain"

    def __init__(self, decoders: Optional[Iterable[Decoder]] = None) -> None:
        self._decoders: list[Decoder] = list(decoders or [])

    def add(self, decoder: Decoder) -> DecoderChain:
        self._decoders.append(decoder)
        return self

    @property
    def decoders(self) -> list[Decoder]:
        return list(self._decoders)

    def decode(self, data: Any) -> Any:
        if not self._decoders:
            raise DecoderError("No decoders in chain")
        for decoder in self._decoders:
            data = decoder.decode(data)
        return data
