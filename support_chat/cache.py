"""
Ephemeral cache and lock service backed by Redis.

The coordinator and history service only depend on the ``Cache`` protocol;
``RedisCache`` is the production implementation.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from support_chat.errors import ConflictError

logger = logging.getLogger(__name__)


def lock_key(session_id: str) -> str:
    return f"lock:chat:{session_id}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def history_key(session_id: str) -> str:
    return f"chat_history:{session_id}"


class Cache(Protocol):
    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def close(self) -> None: ...


class RedisCache:
    """Cache capability over a redis-py asyncio client."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(redis.from_url(url, decode_responses=True))

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        # SET NX EX returns None when the key already exists
        acquired = await self._client.set(key, value, ex=ttl_seconds, nx=True)
        return bool(acquired)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def close(self) -> None:
        await self._client.aclose()


@asynccontextmanager
async def session_lock(cache: Cache, session_id: str, ttl_seconds: int):
    """Hold the per-session turn lock, failing fast if it is taken.

    Best-effort only: the key expires after *ttl_seconds* even if the holder
    is still running, and the release is an unconditional delete, so a turn
    that outlives its TTL can release a lock acquired by a later turn.
    """
    key = lock_key(session_id)
    if not await cache.set_if_absent(key, "1", ttl_seconds):
        logger.info("Turn already in progress for session %s", session_id[:8])
        raise ConflictError()

    try:
        yield
    finally:
        try:
            await cache.delete(key)
        except RedisError:
            # The key still expires on its own; keep the turn's own outcome
            logger.exception("Failed to release lock for session %s", session_id[:8])
