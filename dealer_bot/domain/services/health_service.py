"""
Health Service - dependency checks for the readiness probe

Two levels:
- liveness: the process answers (no dependency checks)
- readiness: database, Redis, Celery broker and SMS credentials
"""
from typing import Any

import redis.asyncio as aioredis
from sqlalchemy import text

from dealer_bot.core.config import settings
from dealer_bot.core.logging import get_logger
from dealer_bot.core.redis_client import get_redis
from dealer_bot.db.database import AsyncSessionLocal

logger = get_logger(__name__)

_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"

# Sanitized messages; no infrastructure details in the probe body
_ERROR_DB = "error: db_unavailable"
_ERROR_REDIS = "error: redis_unavailable"
_ERROR_CELERY = "error: celery_unavailable"
_ERROR_TWILIO = "error: twilio_not_configured"


async def _check_db() -> str:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except Exception as e:
        logger.warning("DB health check failed", extra_data={"error": str(e)})
        return _ERROR_DB


async def _check_redis() -> str:
    try:
        client = await get_redis()
        await client.ping()
        return _CHECK_OK
    except Exception as e:
        logger.warning("Redis health check failed", extra_data={"error": str(e)})
        return _ERROR_REDIS


async def _check_celery() -> str:
    """Ping the broker; the bulk drain depends on beat reaching the workers."""
    try:
        client = aioredis.from_url(settings.CELERY_BROKER_URL, decode_responses=True)
        try:
            await client.ping()
            return _CHECK_OK
        finally:
            await client.aclose()
    except Exception as e:
        logger.warning("Celery broker health check failed", extra_data={"error": str(e)})
        return _ERROR_CELERY


def _check_twilio() -> str:
    if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER:
        return _CHECK_OK
    return _ERROR_TWILIO


async def check_readiness() -> dict[str, Any]:
    """
    Returns ``{"status": "healthy" | "degraded", "db": ..., "redis": ...,
    "celery": ..., "twilio": ...}`` with "ok" or "error: ..." per check.
    """
    checks = {
        "db": await _check_db(),
        "redis": await _check_redis(),
        "celery": await _check_celery(),
        "twilio": _check_twilio(),
    }

    all_ok = all(v == _CHECK_OK for v in checks.values())
    if not all_ok:
        logger.warning("Readiness check degraded", extra_data=checks)

    return {"status": _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED, **checks}
