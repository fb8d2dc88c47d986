"""Exception hierarchy for fetchcache.

All exceptions inherit from :class:`FetchError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`fetchcache.exit_codes`.
The CLI entry point in :func:`fetchcache.app.main` catches ``FetchError``
and exits with the appropriate code.

Subclass hierarchy::

    FetchError (exit 1)
    +-- ConfigError             (exit 1)
    +-- InvalidUsageError       (exit 2)
    |   +-- BaseUriError
    |   +-- HttpOptionError
    |   +-- InvalidHttpMethodError
    +-- CacheError              (exit 8)
    |   +-- CacheCapabilityError
    +-- HttpError               (exit 5)
    |   +-- NotFoundError       (exit 4)
    |   +-- FailedRequestError  (exit 5)
    |       +-- TransportError      (exit 6)
    |       +-- FailedGraphQLError
    +-- DecoderError            (exit 7)
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Optional

from fetchcache.exit_codes import (
    EXIT_CACHE_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_DECODER_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_REQUEST_FAILED,
)

if TYPE_CHECKING:
    from fetchcache.http.envelope import ResponseEnvelope


class FetchError(Exception):
    """Base exception for all fetchcache errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(FetchError):
    """Raised for configuration problems (invalid JSON, failed validation)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidUsageError(FetchError):
    """Raised when the library or CLI is called with invalid arguments."""

    exit_code = EXIT_INVALID_USAGE


class BaseUriError(InvalidUsageError):
    """Raised when a relative URI is requested but no base URI is set."""


class HttpOptionError(InvalidUsageError):
    """Raised when a request option is not recognised."""


class InvalidHttpMethodError(InvalidUsageError):
    """Raised when an unknown HTTP method name is passed."""


class CacheError(FetchError):
    """Raised for cache misuse, e.g. enabling a cache that was never set."""

    exit_code = EXIT_CACHE_ERROR


class CacheCapabilityError(CacheError):
    """Raised when the cache backend lacks a capability (tags, pruning).

    Always surfaced, never retried.
    """


class DecoderError(FetchError):
    """Raised when a body cannot be decoded or no decoder can be resolved."""

    exit_code = EXIT_DECODER_ERROR


_INDENT = " "


class HttpError(FetchError):
    """Base class for failed HTTP requests.

    The message is extended with a description of the request (method,
    URI, query params, headers) and of the response (status, error data,
    headers) so that a logged exception is enough to reproduce the call.

    Args:
        message: Short description of the failure.
        uri: Request URI.
        method: Request method.
        options: Request options the call was issued with.
        envelope: The response envelope, when a response was received.
        error_data: Error payload returned by the remote, if any.
        partial_data: Any partially returned data.
    """

    exit_code = EXIT_REQUEST_FAILED

    def __init__(
        self,
        message: str,
        uri: str = "",
        method: str = "",
        options: Optional[dict[str, Any]] = None,
        envelope: Optional[ResponseEnvelope] = None,
        error_data: Optional[list[Any]] = None,
        partial_data: Any = None,
    ) -> None:
        self.request_uri = uri
        self.request_method = method
        self.request_options = dict(options or {})
        self.envelope = envelope
        self.error_data = list(error_data or [])
        self.partial_data = partial_data
        self.summary = message
        super().__init__(message + "\n\n" + self._describe())

    @property
    def status_code(self) -> Optional[int]:
        """HTTP status of the failed response, or ``None`` for transport failures."""
        if self.envelope is None or not self.envelope.is_resolved:
            return None
        return self.envelope.status_code

    def _describe(self) -> str:
        lines = [f"Request: {self.request_method} {self.request_uri}".rstrip()]
        for name, value in self.request_options.items():
            if name in ("body", "json", "data"):
                continue
            if isinstance(value, dict):
                if value:
                    lines.append(f"Request {name}: " + _expand(value))
            else:
                lines.append(f"{name}: {value}")
        for name in ("body", "json", "data"):
            if self.request_options.get(name) is not None:
                lines.append(f"Request body: {self.request_options[name]!r}")

        if self.status_code is not None:
            lines.append("")
            lines.append(f"Response status: {self.status_code}")
            if self.error_data:
                lines.append("Response error data: " + self.expand_error_data(self.error_data))
            headers = self.envelope.get_headers(throw=False) if self.envelope else {}
            if headers:
                lines.append("Response headers: " + _expand(headers))
        return "\n".join(lines)

    def expand_error_data(self, errors: list[Any]) -> str:
        """Return *errors* formatted as a string."""
        return json.dumps(errors, indent=2, default=str)


class NotFoundError(HttpError):
    """Raised when the remote returns a 4xx status."""

    exit_code = EXIT_NOT_FOUND


class FailedRequestError(HttpError):
    """Raised when the remote returns a non-2xx, non-4xx status.

    Also the parent of :class:`TransportError`.
    """

    exit_code = EXIT_REQUEST_FAILED


class TransportError(FailedRequestError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Transport failures indicate infrastructure problems rather than expected
    remote-side error responses, so error suppression never applies to them.
    """

    exit_code = EXIT_CONNECTION_ERROR


class FailedGraphQLError(FailedRequestError):
    """Raised when a GraphQL response carries an ``errors`` member.

    Args:
        message: Short description of the failure.
        last_query: The GraphQL query body that was sent.
        **kwargs: Forwarded to :class:`HttpError`.
    """

    def __init__(self, message: str, last_query: Optional[str] = None, **kwargs: Any) -> None:
        self.last_query = last_query
        if last_query is not None:
            message += "\n\nLast GraphQL query: " + last_query
        super().__init__(message, **kwargs)

    def expand_error_data(self, errors: list[Any]) -> str:
        """Return GraphQL errors formatted as an expanded multiline string."""
        lines = [""]
        for error in errors:
            if not isinstance(error, dict) or "message" not in error:
                continue
            lines.append(f"GraphQL error: {error['message']}")
            for location in error.get("locations") or []:
                lines.append(
                    f"{_INDENT}Location: line {location.get('line')}, column {location.get('column')}"
                )
            if isinstance(error.get("path"), list):
                lines.append(_INDENT + "Path: " + " > ".join(str(p) for p in error["path"]))
        return "\n".join(lines) + "\n"


def _expand(values: dict[str, Any]) -> str:
    """Expand a mapping into ``key: value`` lines."""
    parts = []
    for key, value in values.items():
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value)
        parts.append(f"{key}: {value}")
    return ("\n" + _INDENT).join(parts)
