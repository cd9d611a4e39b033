"""Key-value stores for metadata snapshots."""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from redis import asyncio as redis


class MetadataCache(Protocol):
    """Minimal get / set-with-expiry store."""

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        ...


class MemoryCache:
    """In-process cache with per-entry expiry.

    Entries are only touched from the event loop thread, so no locking.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive.")
        self._entries[key] = (bytes(value), self._clock() + ttl_seconds)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()


class RedisCache:
    """Cache backed by a shared ``redis.asyncio`` client."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        *,
        password: Optional[str] = None,
    ) -> "RedisCache":
        """Create the long-lived client; connections open lazily."""

        return cls(redis.from_url(redis_url, password=password))

    async def get(self, key: str) -> Optional[bytes]:
        return await self._client.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
