"""Stable request identifiers used as cache keys and for trace correlation.

An identifier is a SHA-256 hash of ``METHOD URI`` where the URI has its
query parameters merged and sorted, so that two requests differing only in
parameter order resolve to the same cache entry.  For body-bearing methods
the serialised body is appended; GET and HEAD never include a body.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

import httpx

from fetchcache.models import BODY_METHODS


def effective_uri(uri: str, query: Optional[dict[str, Any]] = None) -> str:
    """Return *uri* with *query* merged into its query string.

    Values in *query* override parameters already present on *uri*.
    Parameters are sorted by name so the result is order independent.
    """
    url = httpx.URL(uri)
    if query:
        url = url.copy_merge_params({k: _param(v) for k, v in query.items()})
    if url.query:
        params = sorted(url.params.multi_items())
        url = url.copy_with(params=params)
    return str(url)


def identify(method: str, uri: str, options: Optional[dict[str, Any]] = None) -> str:
    """Return a unique identifier safe to use for caching based on the request.

    Args:
        method: HTTP method, case insensitive.
        uri: Absolute request URI, may already carry a query string.
        options: Request options; ``query`` is merged into the URI and, for
            body-bearing methods, ``json``, ``body`` or ``data`` is hashed.

    Returns:
        A 64 character hex digest.
    """
    options = options or {}
    method = method.upper()
    parts = [method, effective_uri(uri, options.get("query"))]
    if method in BODY_METHODS:
        body = _body_repr(options)
        if body is not None:
            parts.append(body)
    raw = " ".join(parts)
    return hashlib.sha256(raw.encode()).hexdigest()


def _body_repr(options: dict[str, Any]) -> Optional[str]:
    for name in ("json", "data"):
        if options.get(name) is not None:
            return json.dumps(options[name], sort_keys=True, default=str)
    body = options.get("body")
    if body is None:
        return None
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return str(body)


def _param(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value
