# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""In-memory cache service with TTL support.

Backs the "recently synced" marker of Config Sync. Instances are created
by the application and injected into the services that use them; the
clock is injectable so tests can move time forward.
For multi-instance deployments, replace with Redis.
"""
import asyncio
import itertools
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Dict
from dataclasses import dataclass


Clock = Callable[[], datetime]


@dataclass
class CacheEntry:
    """Cache entry with value and expiration time."""
    value: Any
    expires_at: datetime


class TTLCache:
    """Async-safe in-memory cache with TTL expiration.

    Suitable for single-instance deployments. For multi-instance
    deployments, use Redis or similar distributed cache.
    """

    def __init__(
        self,
        default_ttl_seconds: int = 10,
        max_size: int = 10000,
        clock: Optional[Clock] = None,
    ):
        self._cache: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl_seconds
        self._max_size = max_size
        self._clock = clock or datetime.utcnow
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache if exists and not expired."""
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            if self._clock() >= entry.expires_at:
                del self._cache[key]
                return None

            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Set value in cache with TTL."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = self._clock() + timedelta(seconds=ttl)

        async with self._lock:
            self._make_room(key)
            self._cache[key] = CacheEntry(value=value, expires_at=expires_at)

    async def set_if_absent(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Set value only when the key is missing or expired. Returns True when set."""
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        async with self._lock:
            now = self._clock()
            entry = self._cache.get(key)
            if entry is not None and now < entry.expires_at:
                return False
            self._make_room(key)
            self._cache[key] = CacheEntry(value=value, expires_at=now + timedelta(seconds=ttl))
            return True

    async def delete(self, key: str) -> bool:
        """Delete a key from cache."""
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def _make_room(self, key: str) -> None:
        """Free a slot for a new key: expired entries first, then the 10% closest to expiry.

        Called with the lock held.
        """
        if key in self._cache or len(self._cache) < self._max_size:
            return
        self._evict_expired()
        if len(self._cache) >= self._max_size:
            oldest_keys = sorted(
                self._cache.keys(),
                key=lambda k: self._cache[k].expires_at
            )[:max(1, len(self._cache) // 10)]
            for k in oldest_keys:
                del self._cache[k]

    def _evict_expired(self) -> int:
        now = self._clock()
        expired_keys = [
            k for k, v in self._cache.items()
            if now >= v.expires_at
        ]
        for k in expired_keys:
            del self._cache[k]
        return len(expired_keys)

    def stats(self) -> Dict[str, Any]:
        """Return cache statistics."""
        return {
            "size": len(self._cache),
            "max_size": self._max_size,
            "default_ttl": self._default_ttl,
        }


class SyncMarker:
    """Per-product "recently synced" marker.

    ``mark`` returns a generation number when the product was not marked
    yet; a background reload carries that generation and ``is_current``
    tells it whether it is still the latest one.
    """

    def __init__(self, cache: TTLCache, ttl_seconds: Optional[int] = None):
        self._cache = cache
        self._ttl = ttl_seconds
        self._generations = itertools.count(1)

    @staticmethod
    def _key(product_id: str) -> str:
        return f"product-sync:{product_id}"

    async def mark(self, product_id: str) -> Optional[int]:
        """Mark the product; returns the new generation, or None when already marked."""
        generation = next(self._generations)
        if await self._cache.set_if_absent(self._key(product_id), generation, self._ttl):
            return generation
        return None

    async def is_current(self, product_id: str, generation: int) -> bool:
        return await self._cache.get(self._key(product_id)) == generation

    async def refresh(self, product_id: str) -> int:
        """Force a new generation (explicit reload)."""
        generation = next(self._generations)
        await self._cache.set(self._key(product_id), generation, self._ttl)
        return generation

    async def clear(self, product_id: str) -> None:
        await self._cache.delete(self._key(product_id))
