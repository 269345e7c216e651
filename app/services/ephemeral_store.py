from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from functools import lru_cache
from typing import Protocol

from redis.asyncio import Redis

from app.core.config import get_settings


class ExpiringStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryExpiringStore:
    """Process-local store.

    Entries are evicted when read after expiry, and writes sweep every expired
    entry at most once per ``sweep_interval_seconds`` so keys that are never
    read again do not accumulate. State is lost on restart and is not shared
    between instances.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float = 30.0,
    ) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval_seconds = sweep_interval_seconds
        self._next_sweep_at = clock() + sweep_interval_seconds

    def _evict_expired(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._next_sweep_at = now + self._sweep_interval_seconds
        return len(expired)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        async with self._lock:
            now = self._clock()
            if now >= self._next_sweep_at:
                self._evict_expired(now)
            self._entries[key] = (value, now + ttl_seconds)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def sweep(self) -> int:
        async with self._lock:
            return self._evict_expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)


class RedisExpiringStore:
    def __init__(self, client: Redis, *, namespace: str = "storefront") -> None:
        self._client = client
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> str | None:
        raw_value = await self._client.get(self._key(key))
        if raw_value is None:
            return None
        if isinstance(raw_value, bytes):
            return raw_value.decode("utf-8")
        return str(raw_value)

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        await self._client.set(self._key(key), value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def aclose(self) -> None:
        await self._client.aclose()


@lru_cache(maxsize=1)
def get_expiring_store() -> ExpiringStore:
    settings = get_settings()
    backend = settings.ephemeral_store_backend.strip().lower()
    if backend == "redis":
        return RedisExpiringStore(Redis.from_url(settings.redis_url))
    if backend == "memory":
        return InMemoryExpiringStore()
    raise ValueError(f"unsupported ephemeral store backend: {backend}")
