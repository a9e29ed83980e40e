"""
Key-value store used for the work queues, cooldown markers and the AI cache.

Production runs against Redis; the in-memory store implements the same
interface for local development and tests.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Dict, List, Optional, Protocol, Tuple

import redis.asyncio as redis_async

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Operations the worker needs from the shared store."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def lpush(self, key: str, value: str) -> int:
        ...

    async def brpop(self, key: str, timeout: int) -> Optional[str]:
        ...

    async def lmove_right(self, source: str, destination: str) -> Optional[str]:
        ...

    async def llen(self, key: str) -> int:
        ...

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class RedisKeyValueStore:
    """KeyValueStore backed by redis.asyncio."""

    def __init__(self, client: "redis_async.Redis"):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        """Create a store from a redis:// URL."""
        return cls(redis_async.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            await self._redis.set(key, value, ex=ttl_seconds)
        else:
            await self._redis.set(key, value)

    async def exists(self, key: str) -> bool:
        return bool(await self._redis.exists(key))

    async def lpush(self, key: str, value: str) -> int:
        return await self._redis.lpush(key, value)

    async def brpop(self, key: str, timeout: int) -> Optional[str]:
        result = await self._redis.brpop([key], timeout=timeout)
        if result is None:
            return None
        _, value = result
        return value

    async def lmove_right(self, source: str, destination: str) -> Optional[str]:
        # Pops the right end of source and pushes it onto the right end of destination.
        return await self._redis.lmove(source, destination, "RIGHT", "RIGHT")

    async def llen(self, key: str) -> int:
        return await self._redis.llen(key)

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        return await self._redis.lrange(key, start, end)

    async def ping(self) -> bool:
        return bool(await self._redis.ping())

    async def close(self) -> None:
        await self._redis.aclose()


class InMemoryKeyValueStore:
    """
    Process-local KeyValueStore with Redis list semantics and key expiry.

    Lists are stored left-to-right; index 0 is the left end.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lists: Dict[str, deque] = {}
        self._changed = asyncio.Condition()

    def _live_value(self, key: str) -> Optional[str]:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._values[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live_value(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._values[key] = (value, expires_at)

    async def exists(self, key: str) -> bool:
        return self._live_value(key) is not None or bool(self._lists.get(key))

    async def lpush(self, key: str, value: str) -> int:
        async with self._changed:
            items = self._lists.setdefault(key, deque())
            items.appendleft(value)
            self._changed.notify_all()
            return len(items)

    async def brpop(self, key: str, timeout: int) -> Optional[str]:
        async with self._changed:
            try:
                await asyncio.wait_for(
                    self._changed.wait_for(lambda: bool(self._lists.get(key))),
                    timeout,
                )
            except asyncio.TimeoutError:
                return None
            return self._lists[key].pop()

    async def lmove_right(self, source: str, destination: str) -> Optional[str]:
        async with self._changed:
            items = self._lists.get(source)
            if not items:
                return None
            value = items.pop()
            self._lists.setdefault(destination, deque()).append(value)
            self._changed.notify_all()
            return value

    async def llen(self, key: str) -> int:
        return len(self._lists.get(key, ()))

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        items = list(self._lists.get(key, ()))
        # Redis treats end as inclusive, -1 meaning the last element
        if end < 0:
            end = len(items) + end
        return items[start:end + 1]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._values.clear()
        self._lists.clear()
