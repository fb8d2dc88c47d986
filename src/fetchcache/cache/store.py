"""Response cache store with default lifetime, tags and deferred commits.

:class:`CacheStore` wraps a :class:`~fetchcache.cache.backends.CacheBackend`
and adds the policy the HTTP providers rely on:

- **Defaults at save time** -- an item saved without its own lifetime or
  tags receives the store's current lifetime and active tag set.
- **Deferred writes** -- :meth:`CacheStore.save_deferred` queues an item in
  memory; nothing reaches the backend until :meth:`CacheStore.commit`.
- **Optional capabilities** -- tag invalidation and pruning raise
  :class:`~fetchcache.exceptions.CacheCapabilityError` when the backend does
  not provide them.

The module also converts between live :class:`httpx.Response` objects and
the :class:`~fetchcache.models.CacheEntry` shape stored in the backend.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from fetchcache.cache.backends import BackendEntry, CacheBackend
from fetchcache.cache.lifetime import HOUR
from fetchcache.exceptions import CacheCapabilityError, CacheError
from fetchcache.models import CacheEntry

logger = logging.getLogger(__name__)

CACHE_AGE_HEADER = "x-cache-age"

# Headers describing the wire encoding of the original body, which no
# longer applies once the decoded body is stored.
_STRIP_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


@dataclass
class CacheItem:
    """A single cache slot, found or not.

    Attributes:
        key: Cache key, normally a request identifier.
        value: Stored value; ``None`` on a miss until :meth:`set` is called.
        hit: Whether the value was read from the backend.
        expires_after: Lifetime in seconds, ``None`` for the store default.
        tags: Tags to store the item under, empty for the store's active tags.
    """

    key: str
    value: Any = None
    hit: bool = False
    expires_after: Optional[int] = None
    tags: set[str] = field(default_factory=set)

    def set(self, value: Any) -> CacheItem:
        self.value = value
        return self

    def tag(self, *tags: str) -> CacheItem:
        self.tags.update(tags)
        return self


class CacheStore:
    """Cache store used by the HTTP providers.

    Args:
        backend: Storage backend.  Its ``taggable`` and ``pruneable``
            flags are read once here.
        default_lifetime: Lifetime in seconds applied to items saved
            without their own.

    Example::

        store = CacheStore(DiskCacheBackend("/tmp/fetchcache"), default_lifetime=DAY)
        item = store.get_item(key)
        if not item.hit:
            store.save_deferred(item.set(value))
        store.commit()
    """

    def __init__(self, backend: CacheBackend, default_lifetime: int = HOUR) -> None:
        self._backend = backend
        self._lifetime = default_lifetime
        self._tags: frozenset[str] = frozenset()
        self._taggable = bool(backend.taggable)
        self._pruneable = bool(backend.pruneable)
        self._deferred: dict[str, BackendEntry] = {}
        self._lock = threading.Lock()

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    @property
    def taggable(self) -> bool:
        return self._taggable

    @property
    def pruneable(self) -> bool:
        return self._pruneable

    @property
    def lifetime(self) -> int:
        return self._lifetime

    @property
    def tags(self) -> frozenset[str]:
        return self._tags

    @property
    def pending(self) -> int:
        """Number of deferred items waiting for :meth:`commit`."""
        with self._lock:
            return len(self._deferred)

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    def set_lifetime(self, seconds: int) -> None:
        if seconds < 0:
            raise CacheError(f"Cache lifetime must be zero or more seconds, got {seconds}")
        self._lifetime = seconds

    def set_tags(self, tags: Iterable[str]) -> None:
        """Set the tags applied to every item saved from now on.

        Raises:
            CacheCapabilityError: If the backend is not tag-aware.
        """
        tags = frozenset(tags)
        if tags and not self._taggable:
            raise CacheCapabilityError(
                f"Cannot set tags, the cache backend {type(self._backend).__name__} "
                "does not support tag invalidation"
            )
        self._tags = tags

    # ------------------------------------------------------------------ #
    # Reads and writes
    # ------------------------------------------------------------------ #

    def get_item(self, key: str) -> CacheItem:
        """Return the item for *key*; ``item.hit`` is ``False`` on a miss.

        Deferred items are not visible until committed.
        """
        found, value = self._backend.get(key)
        return CacheItem(key=key, value=value if found else None, hit=found)

    def has_item(self, key: str) -> bool:
        return self.get_item(key).hit

    def save(self, item: CacheItem) -> bool:
        """Persist *item* immediately."""
        return self._backend.set(self._to_backend(item))

    def save_deferred(self, item: CacheItem) -> bool:
        """Queue *item* for the next :meth:`commit`.

        The lifetime and tags in force now are fixed on the queued entry.
        A later deferred save for the same key replaces the earlier one.

        Raises:
            CacheCapabilityError: If *item* carries tags and the backend
                is not tag-aware.
        """
        entry = self._to_backend(item)
        with self._lock:
            self._deferred[item.key] = entry
        return True

    def commit(self) -> bool:
        """Flush deferred items to the backend in one batch."""
        with self._lock:
            items = list(self._deferred.values())
            self._deferred.clear()
        if not items:
            return True
        logger.debug("Committing %d deferred cache item(s)", len(items))
        return self._backend.set_many(items)

    def delete_item(self, key: str) -> bool:
        with self._lock:
            self._deferred.pop(key, None)
        return self._backend.delete(key)

    def clear(self) -> bool:
        with self._lock:
            self._deferred.clear()
        return self._backend.clear()

    # ------------------------------------------------------------------ #
    # Optional capabilities
    # ------------------------------------------------------------------ #

    def invalidate_tags(self, tags: Iterable[str]) -> bool:
        """Remove every entry stored under any of *tags*.

        Raises:
            CacheCapabilityError: If the backend is not tag-aware.
        """
        if not self._taggable:
            raise CacheCapabilityError(
                f"Cannot invalidate tags, the cache backend {type(self._backend).__name__} "
                "does not support tag invalidation"
            )
        return self._backend.invalidate_tags(list(tags))

    def prune(self, probability: float = 1.0) -> bool:
        """Remove expired entries, with the given *probability*.

        Pruning scans the whole backend, so callers on a hot path pass a
        small probability to spread the cost over many calls.

        Returns:
            ``True`` if a prune ran.

        Raises:
            CacheCapabilityError: If the backend cannot be pruned.
            CacheError: If *probability* is not in ``(0, 1]``.
        """
        if not self._pruneable:
            raise CacheCapabilityError(
                f"Cannot prune, the cache backend {type(self._backend).__name__} "
                "does not support pruning"
            )
        if not 0 < probability <= 1:
            raise CacheError(f"Prune probability must be in (0, 1], got {probability}")
        if probability < 1 and random.random() >= probability:
            return False
        self._backend.prune()
        return True

    def stats(self) -> dict[str, Any]:
        """Return entry count, pending writes, lifetime and capabilities."""
        return {
            "backend": type(self._backend).__name__,
            "size": len(self._backend),
            "pending": self.pending,
            "lifetime": self._lifetime,
            "tags": sorted(self._tags),
            "taggable": self._taggable,
            "pruneable": self._pruneable,
        }

    def close(self) -> None:
        self._backend.close()

    def _to_backend(self, item: CacheItem) -> BackendEntry:
        lifetime = item.expires_after if item.expires_after is not None else self._lifetime
        tags = frozenset(item.tags) if item.tags else self._tags
        if tags and not self._taggable:
            raise CacheCapabilityError(
                f"Cannot save tagged item, the cache backend {type(self._backend).__name__} "
                "does not support tag invalidation"
            )
        # A lifetime of 0 means no expiry.
        return BackendEntry(key=item.key, value=item.value, expire=lifetime or None, tags=tags)


# ---------------------------------------------------------------------- #
# Response serialisation
# ---------------------------------------------------------------------- #


def entry_from_response(response: httpx.Response) -> dict[str, Any]:
    """Serialise *response* into the stored cache entry shape."""
    headers: dict[str, list[str]] = {}
    for name, value in response.headers.multi_items():
        name = name.lower()
        if name in _STRIP_HEADERS or name == CACHE_AGE_HEADER:
            continue
        headers.setdefault(name, []).append(value)
    entry = CacheEntry(http_code=response.status_code, response_headers=headers, body=response.text)
    return entry.model_dump()


def load_entry(value: Any) -> Optional[CacheEntry]:
    """Validate a stored value, returning ``None`` if it is not a usable entry."""
    if not isinstance(value, dict):
        return None
    try:
        return CacheEntry.model_validate(value)
    except ValidationError:
        logger.debug("Ignoring malformed cache entry")
        return None


def response_from_entry(entry: CacheEntry, request: httpx.Request) -> httpx.Response:
    """Rebuild a response from a cache entry, adding an ``x-cache-age`` header."""
    headers = [(name, value) for name, values in entry.response_headers.items() for value in values]
    headers.append((CACHE_AGE_HEADER, str(entry.age())))
    return httpx.Response(
        status_code=entry.http_code,
        headers=headers,
        content=entry.body.encode("utf-8"),
        request=request,
    )
