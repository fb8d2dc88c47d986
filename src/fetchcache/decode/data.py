"""JSON and GraphQL response decoders."""

from __future__ import annotations

import json
from typing import Any

from fetchcache.decode.base import Decoder, get_string
from fetchcache.exceptions import DecoderError


class JsonDecoder(Decoder):
    """Decodes a JSON object or array; scalar documents are rejected."""

    name = "json"

    def decode(self, data: Any) -> Any:
        content = get_string(data)
        try:
            decoded = json.loads(content)
        except json.JSONDecodeError as exc:
            raise DecoderError(f"Error parsing JSON response body: {exc}") from exc
        if not isinstance(decoded, (dict, list)):
            raise DecoderError("JSON response body is expected to be an object or array")
        return decoded


class GraphQLDecoder(JsonDecoder):
    """Decodes a GraphQL response and returns its ``data`` member."""

    name = "graphql"

    def decode(self, data: Any) -> Any:
        decoded = super().decode(data)
        if not isinstance(decoded, dict) or "data" not in decoded:
            raise DecoderError("Data property not present in GraphQL response")
        return decoded["data"]
