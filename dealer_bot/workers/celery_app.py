"""
Celery Application Configuration
"""
from celery import Celery

from dealer_bot.core.config import settings

celery_app = Celery(
    "dealer_bot",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["dealer_bot.workers.tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/Edmonton",
    enable_utc=True,
    task_track_started=True,
    # Hard kill only after the drain pass budget has run out
    task_time_limit=settings.BULK_DRAIN_PASS_BUDGET_SECONDS + 60,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "process-bulk-messages": {
        "task": "dealer_bot.workers.tasks.process_bulk_messages",
        "schedule": settings.BULK_INTERVAL_SECONDS,
    },
    "cleanup-old-analytics-daily": {
        "task": "dealer_bot.workers.tasks.cleanup_old_analytics",
        "schedule": 86400.0,  # 24 hours
    },
}
