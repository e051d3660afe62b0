"""
Response Cache

Read-through cache for rendered diyp/lovetv documents, keyed by
(date, cleaned channel name, schema). Backends are interchangeable behind
the ResponseCache interface; NullResponseCache is used when caching is off.
Backend failures are logged and behave like a miss.
"""
from __future__ import annotations

import base64
from collections.abc import Callable
from dataclasses import dataclass
import logging
import re
import time
from typing import Protocol

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from epg_server.config import CustomSettings
from epg_server.services.epg_types import Schema


logger = logging.getLogger(__name__)

_ICON_URL = re.compile(r'"(?:[a-zA-Z][a-zA-Z0-9+.-]*://[^"/]*)?(/data/icon/[^"]*)"')


def make_cache_key(date: str, clean_channel_name: str, schema: Schema | str) -> str:
    """Deterministic key for a rendered document"""
    schema_name = schema.value if isinstance(schema, Schema) else schema
    raw = f"{date}_{clean_channel_name}_{schema_name}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def rewrite_icon_host(document: str, server_url: str) -> str:
    """Point every embedded /data/icon/ URL at the current server"""
    base = server_url.rstrip("/")
    return _ICON_URL.sub(lambda m: f'"{base}{m.group(1)}"', document)


class ResponseCache(Protocol):
    name: str

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, document: str, ttl: int) -> None: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


class NullResponseCache:
    """Caching disabled: every lookup misses"""

    name = "none"

    async def get(self, key: str) -> str | None:
        return None

    async def put(self, key: str, document: str, ttl: int) -> None:
        return None

    async def clear(self) -> None:
        return None

    async def close(self) -> None:
        return None


@dataclass(slots=True)
class _MemoryEntry:
    document: str
    expires_at: float


class MemoryResponseCache:
    """In-process cache with per-entry expiry"""

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, _MemoryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return entry.document

    async def put(self, key: str, document: str, ttl: int) -> None:
        self._entries[key] = _MemoryEntry(document=document, expires_at=self._clock() + ttl)

    async def clear(self) -> None:
        self._entries.clear()

    async def close(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed"""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)


class RedisResponseCache:
    """Redis-backed cache; connection problems degrade to misses"""

    name = "redis"
    key_prefix = "epg:"

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> RedisResponseCache:
        return cls(aioredis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(self.key_prefix + key)
        except RedisError as e:
            logger.warning(f"Redis unavailable, cache miss for {key}: {e}")
            return None

    async def put(self, key: str, document: str, ttl: int) -> None:
        try:
            await self.client.set(self.key_prefix + key, document, ex=ttl)
        except RedisError as e:
            logger.warning(f"Redis unavailable, not caching {key}: {e}")

    async def clear(self) -> None:
        try:
            keys = [key async for key in self.client.scan_iter(match=f"{self.key_prefix}*")]
            if keys:
                await self.client.delete(*keys)
            logger.info(f"Cleared {len(keys)} cached EPG responses")
        except RedisError as e:
            logger.warning(f"Redis unavailable, cache not cleared: {e}")

    async def close(self) -> None:
        await self.client.aclose()


def create_response_cache(settings: CustomSettings) -> ResponseCache:
    """Build the configured cache backend"""
    if settings.cache_backend == "memory":
        return MemoryResponseCache()
    if settings.cache_backend == "redis":
        return RedisResponseCache.from_url(settings.redis_url)
    return NullResponseCache()
