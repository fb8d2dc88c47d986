"""Response caching for fetchcache.

This package provides :class:`CacheStore`, the policy layer used by the
request orchestrators, on top of a key/value :class:`CacheBackend`:

* :class:`DiskCacheBackend` -- persistent, tag-aware and pruneable, backed
  by :mod:`diskcache`.
* :class:`MemoryBackend` -- in-process dictionary with TTL support only.

Lifetime presets live in :mod:`fetchcache.cache.lifetime`.
"""

from fetchcache.cache.backends import CacheBackend, DiskCacheBackend, MemoryBackend
from fetchcache.cache.store import CacheItem, CacheStore

__all__ = ["CacheBackend", "CacheItem", "CacheStore", "DiskCacheBackend", "MemoryBackend"]
