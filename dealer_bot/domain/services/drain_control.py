"""
Drain Control - bulk drain flags and re-entrancy lock in Redis

The web process flips the flags, the Celery beat task reads them, so they
live in Redis rather than in process memory.

- paused: soft pause, toggled by pause/resume
- halted: set by emergency stop, cleared only by restart
- lock:   token-owned SET NX EX guard so only one drain pass runs at a time,
          renewed before every job and released with compare-and-delete
"""
import redis.asyncio as aioredis

from dealer_bot.core.config import settings
from dealer_bot.core.logging import get_logger
from dealer_bot.core.redis_client import RedisLock

logger = get_logger(__name__)

PAUSED_KEY = "bulk:drain:paused"
HALTED_KEY = "bulk:drain:halted"
LOCK_KEY = "bulk:drain:lock"


class DrainControl:
    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def is_paused(self) -> bool:
        return bool(await self.redis.exists(PAUSED_KEY))

    async def is_halted(self) -> bool:
        return bool(await self.redis.exists(HALTED_KEY))

    async def pause(self) -> None:
        await self.redis.set(PAUSED_KEY, "1")
        logger.warning("Bulk drain paused")

    async def resume(self) -> None:
        await self.redis.delete(PAUSED_KEY)
        logger.info("Bulk drain resumed")

    async def halt(self) -> None:
        await self.redis.set(HALTED_KEY, "1")
        logger.warning("Bulk drain halted")

    async def restart(self) -> None:
        """Clear both the halt and the pause flag."""
        await self.redis.delete(HALTED_KEY, PAUSED_KEY)
        logger.info("Bulk drain restarted")

    def _lock(self, ttl_seconds: int | None = None) -> RedisLock:
        return RedisLock(self.redis, LOCK_KEY, ttl_seconds or settings.drain_lock_ttl_seconds)

    async def acquire_lock(self, ttl_seconds: int | None = None) -> str | None:
        """Token when acquired, None when another pass holds the lock."""
        return await self._lock(ttl_seconds).acquire()

    async def extend_lock(self, token: str, ttl_seconds: int | None = None) -> bool:
        """Renew before each job; False means the lock expired and another pass may own it."""
        return await self._lock(ttl_seconds).extend(token)

    async def release_lock(self, token: str) -> None:
        if not await self._lock().release(token):
            logger.warning("Bulk drain lock already expired at release")
