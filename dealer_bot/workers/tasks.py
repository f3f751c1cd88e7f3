"""
Celery Tasks

Bulk campaign drain, voice drops and analytics retention. Every task runs
its coroutine on a fresh event loop with a task-scoped DB session and
Redis client.
"""
import asyncio
from contextlib import contextmanager

from dealer_bot.core.config import settings
from dealer_bot.core.exceptions import AppException
from dealer_bot.core.logging import get_logger, set_correlation_id
from dealer_bot.core.redis_client import task_redis
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.db.database import get_task_session
from dealer_bot.domain.services.analytics_service import AnalyticsService
from dealer_bot.domain.services.bulk_campaign_service import BulkCampaignService
from dealer_bot.domain.services.drain_control import DrainControl
from dealer_bot.domain.services.voice_service import VoiceService
from dealer_bot.workers.celery_app import celery_app

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """New event loop per task; pending tasks are cancelled on exit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Run async code in a sync Celery task"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@celery_app.task(name="dealer_bot.workers.tasks.process_bulk_messages")
def process_bulk_messages():
    """One drain pass over due bulk jobs."""

    async def _process():
        async with task_redis() as redis, get_task_session() as db:
            service = BulkCampaignService(db, DrainControl(redis))
            return await service.drain_once()

    return run_async(_process())


@celery_app.task(name="dealer_bot.workers.tasks.send_voice_drop")
def send_voice_drop(phone: str, message: str):
    """Place one queued voice drop; a failure is logged, not retried."""

    async def _send():
        async with get_task_session() as db:
            try:
                return await VoiceService(db).place_drop(phone, message)
            except AppException as e:
                logger.error(
                    "Voice drop failed",
                    extra_data={"phone": PhoneNumberValidator.mask(phone), "error": e.message}
                )
                return {"error": e.message, "to": phone}

    return run_async(_send())


@celery_app.task(name="dealer_bot.workers.tasks.cleanup_old_analytics")
def cleanup_old_analytics(days: int | None = None):
    """Delete analytics events older than the retention window"""

    async def _cleanup():
        async with get_task_session() as db:
            retention = days or settings.ANALYTICS_RETENTION_DAYS
            deleted = await AnalyticsService(db).cleanup_old_events(retention)
            return {"deleted": deleted}

    return run_async(_cleanup())
