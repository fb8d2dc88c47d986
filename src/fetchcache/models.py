"""Canonical Pydantic models shared across fetchcache modules.

**Configuration models** -- serialised as JSON in the user's config
directory and used to build providers:
    :class:`RequestConfig`, :class:`CacheConfig`, :class:`ClientConfig`.

**Cache models** -- the shape of a response stored in the cache:
    :class:`CacheEntry`.

All models use Pydantic v2.
"""

from __future__ import annotations

import enum
import time
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class HTTPMethod(str, enum.Enum):
    """HTTP methods accepted by the request orchestrator."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    OPTIONS = "OPTIONS"
    PATCH = "PATCH"
    PURGE = "PURGE"
    TRACE = "TRACE"


BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
"""Methods whose request body takes part in the request identifier."""


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every call of a provider."""

    timeout: float = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    retry_enabled: bool = Field(default=False, description="Retry failed requests")
    max_attempts: int = Field(
        default=3, ge=1, description="Total attempts per request when retry is enabled"
    )
    retry_delay: float = Field(
        default=1.0, ge=0, description="Seconds before the first retry, doubled afterwards"
    )
    follow_redirects: bool = Field(default=True, description="Follow 3xx redirects")
    max_redirects: int = Field(default=5, ge=0, description="Max redirects to follow")


class CacheConfig(BaseModel):
    """Response cache settings."""

    enabled: bool = Field(default=False, description="Enable response caching")
    default_lifetime_seconds: int = Field(
        default=3600, ge=0, description="Default cache lifetime in seconds"
    )
    directory: Optional[str] = Field(
        default=None, description="Cache directory, defaults to the XDG cache dir"
    )
    backend: str = Field(default="disk", description="Cache backend: disk or memory")

    @field_validator("backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        if value not in ("disk", "memory"):
            raise ValueError(f"Unknown cache backend '{value}', expected disk or memory")
        return value


class ClientConfig(BaseModel):
    """Everything needed to build an :class:`~fetchcache.http.Http` provider.

    Example::

        ClientConfig(
            base_uri="https://api.example.com",
            default_headers={"Accept": "application/json"},
            cache=CacheConfig(enabled=True, default_lifetime_seconds=600),
        )
    """

    base_uri: Optional[str] = None
    default_headers: dict[str, str] = Field(default_factory=dict)
    cacheable_methods: set[str] = Field(default_factory=lambda: {"GET", "HEAD"})
    user_agent: Optional[str] = None
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    @field_validator("cacheable_methods")
    @classmethod
    def _valid_methods(cls, value: set[str]) -> set[str]:
        methods = {m.upper() for m in value}
        unknown = methods - {m.value for m in HTTPMethod}
        if unknown:
            raise ValueError(f"Invalid HTTP method/s: {', '.join(sorted(unknown))}")
        return methods


class CacheEntry(BaseModel):
    """A response as stored in the cache.

    A cached value is only usable to rebuild a response when all of
    ``http_code``, ``response_headers`` and ``body`` are present; anything
    else is treated as a miss.
    """

    http_code: int
    response_headers: dict[str, list[str]]
    body: str
    cached_at: Optional[float] = Field(default_factory=time.time)

    def age(self, now: Optional[float] = None) -> int:
        """Return whole seconds elapsed since the entry was cached."""
        if self.cached_at is None:
            return 0
        now = time.time() if now is None else now
        return max(0, int(now - self.cached_at))
