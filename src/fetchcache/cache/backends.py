"""Key/value backends underneath :class:`~fetchcache.cache.store.CacheStore`.

A backend stores opaque values with an optional expiry and set of tags.
Optional capabilities are declared with the class-level ``taggable`` and
``pruneable`` flags, which the store reads once at construction time;
calling :meth:`CacheBackend.invalidate_tags` or :meth:`CacheBackend.prune`
on a backend that does not declare the capability raises
:class:`~fetchcache.exceptions.CacheCapabilityError`.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import diskcache

from fetchcache.exceptions import CacheCapabilityError

logger = logging.getLogger(__name__)

_TAG_PREFIX = "fetchcache-tag:"


@dataclass
class BackendEntry:
    """A value queued for writing to a backend."""

    key: str
    value: Any
    expire: Optional[int] = None
    tags: frozenset[str] = field(default_factory=frozenset)


class CacheBackend(ABC):
    """Base class for cache backends.

    Subclasses implement plain key/value storage and opt in to tag
    invalidation and pruning by setting ``taggable`` / ``pruneable`` and
    overriding the matching methods.
    """

    taggable: bool = False
    pruneable: bool = False

    @abstractmethod
    def get(self, key: str) -> tuple[bool, Any]:
        """Return ``(found, value)`` for *key*; expired entries are not found."""

    @abstractmethod
    def set_many(self, entries: Iterable[BackendEntry]) -> bool:
        """Persist *entries*, returning ``True`` if all were written."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*, returning ``True`` if it existed."""

    @abstractmethod
    def clear(self) -> bool:
        """Remove every entry."""

    @abstractmethod
    def __len__(self) -> int: ...

    def set(self, entry: BackendEntry) -> bool:
        return self.set_many([entry])

    def invalidate_tags(self, tags: Iterable[str]) -> bool:
        raise CacheCapabilityError(
            f"Tags are not supported by the cache backend {type(self).__name__}"
        )

    def prune(self) -> int:
        raise CacheCapabilityError(
            f"Pruning is not supported by the cache backend {type(self).__name__}"
        )

    def close(self) -> None:
        """Release backend resources."""


class DiskCacheBackend(CacheBackend):
    """Persistent backend built on :class:`diskcache.Cache`.

    Tags are kept in index entries (one per tag, listing member keys) and
    each stored value remembers its own tags, so re-saving a key without a
    tag takes it out of that tag's invalidation set.  Pruning removes
    expired entries and drops index members that no longer exist.

    Args:
        directory: Cache directory, created if necessary.
    """

    taggable = True
    pruneable = True

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._cache = diskcache.Cache(str(self._directory))

    @property
    def directory(self) -> Path:
        return self._directory

    def get(self, key: str) -> tuple[bool, Any]:
        stored = self._cache.get(key)
        if not isinstance(stored, dict) or "value" not in stored:
            return False, None
        return True, stored["value"]

    def set_many(self, entries: Iterable[BackendEntry]) -> bool:
        ok = True
        with self._cache.transact():
            for entry in entries:
                stored = {"value": entry.value, "tags": sorted(entry.tags)}
                ok = self._cache.set(entry.key, stored, expire=entry.expire) and ok
                for tag in entry.tags:
                    index_key = _TAG_PREFIX + tag
                    members = set(self._cache.get(index_key) or ())
                    members.add(entry.key)
                    self._cache.set(index_key, members)
        return ok

    def delete(self, key: str) -> bool:
        return bool(self._cache.delete(key))

    def clear(self) -> bool:
        self._cache.clear()
        return True

    def __len__(self) -> int:
        return sum(1 for key in self._cache.iterkeys() if not _is_index_key(key))

    def invalidate_tags(self, tags: Iterable[str]) -> bool:
        with self._cache.transact():
            for tag in tags:
                index_key = _TAG_PREFIX + tag
                for key in self._cache.get(index_key) or ():
                    stored = self._cache.get(key)
                    if isinstance(stored, dict) and tag in stored.get("tags", ()):
                        self._cache.delete(key)
                self._cache.delete(index_key)
        return True

    def prune(self) -> int:
        removed = self._cache.expire()
        with self._cache.transact():
            for index_key in [k for k in self._cache.iterkeys() if _is_index_key(k)]:
                members = {k for k in self._cache.get(index_key) or () if k in self._cache}
                if members:
                    self._cache.set(index_key, members)
                else:
                    self._cache.delete(index_key)
        logger.debug("Pruned %d expired cache entries from %s", removed, self._directory)
        return removed

    def close(self) -> None:
        self._cache.close()


class MemoryBackend(CacheBackend):
    """In-process backend honouring expiry, without tags or pruning.

    Args:
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[bool, Any]:
        with self._lock:
            if key not in self._data:
                return False, None
            value, expires_at = self._data[key]
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return False, None
            return True, value

    def set_many(self, entries: Iterable[BackendEntry]) -> bool:
        with self._lock:
            now = self._clock()
            for entry in entries:
                expires_at = now + entry.expire if entry.expire is not None else None
                self._data[entry.key] = (entry.value, expires_at)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> bool:
        with self._lock:
            self._data.clear()
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def _is_index_key(key: Any) -> bool:
    return isinstance(key, str) and key.startswith(_TAG_PREFIX)
