"""
Redis Client

Web process: one lazily created pooled client (``get_redis``).
Celery tasks: a short-lived client per task (``task_redis``) because every
task runs on its own event loop and a pooled client cannot cross loops.
"""
import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator
from urllib.parse import urlparse

import redis.asyncio as aioredis

from dealer_bot.core.config import settings
from dealer_bot.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None
_init_lock = asyncio.Lock()


def mask_redis_url(url: str) -> str:
    """Hide the password in a redis URL for logs."""
    password = urlparse(url).password
    if password:
        return url.replace(f":{password}@", ":****@")
    return url


async def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    async with _init_lock:
        if _redis_client is None:
            client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
            await client.ping()
            _redis_client = client
            logger.info("Redis client initialized", extra_data={
                "url": mask_redis_url(settings.REDIS_URL),
            })
    return _redis_client


@asynccontextmanager
async def task_redis() -> AsyncIterator[aioredis.Redis]:
    client = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        yield client
    finally:
        await client.aclose()


RELEASE_LOCK_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

EXTEND_LOCK_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('expire', KEYS[1], ARGV[2])
end
return 0
"""

LOCK_POLL_SECONDS = 0.05


class RedisLock:
    """
    Token-owned SET NX EX lock shared by every process on the same Redis.

    Extend and release are compare-and-act Lua scripts, so a holder whose
    lock expired can never touch the lock of the next holder.
    """

    def __init__(self, redis: aioredis.Redis, key: str, ttl_seconds: int):
        self.redis = redis
        self.key = key
        self.ttl_seconds = ttl_seconds

    async def acquire(self, wait_seconds: float = 0) -> str | None:
        """Token when acquired, None when still held elsewhere after ``wait_seconds``."""
        token = uuid.uuid4().hex
        deadline = time.monotonic() + wait_seconds
        while True:
            if await self.redis.set(self.key, token, nx=True, ex=self.ttl_seconds):
                return token
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(LOCK_POLL_SECONDS)

    async def extend(self, token: str, ttl_seconds: int | None = None) -> bool:
        """Reset the expiry; False when the lock no longer belongs to ``token``."""
        ttl = ttl_seconds or self.ttl_seconds
        return bool(await self.redis.eval(EXTEND_LOCK_SCRIPT, 1, self.key, token, ttl))

    async def release(self, token: str) -> bool:
        return bool(await self.redis.eval(RELEASE_LOCK_SCRIPT, 1, self.key, token))


async def close_redis() -> None:
    """Close the pooled client on app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
