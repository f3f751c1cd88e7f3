"""
Staff Notification Service - tell the sales team about leads and bookings

Telegram staff chat when configured, otherwise an SMS to STAFF_NOTIFY_PHONE.
Notifications are best-effort: callers dispatch them with ``fire_and_forget``
and a failure is only logged.
"""
import asyncio
import html
from typing import Any, Coroutine

import httpx

from dealer_bot.core.circuit_breaker import get_telegram_circuit_breaker
from dealer_bot.core.config import settings
from dealer_bot.core.exceptions import TelegramError
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.domain.services.sms import get_sms_provider

logger = get_logger(__name__)

# Strong references; the loop only keeps weak ones to running tasks
_background_tasks: set[asyncio.Task] = set()


def _log_task_result(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background notification failed",
            extra_data={"task": task.get_name(), "error": str(exc)},
            exc_info=exc,
        )


def fire_and_forget(coro: Coroutine[Any, Any, Any], name: str = "staff-notification") -> asyncio.Task:
    """Run ``coro`` detached from the caller; exceptions are logged."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_log_task_result)
    return task


async def drain_background_tasks() -> None:
    """Wait for detached notifications (shutdown and tests)."""
    if _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


class StaffNotificationService:
    """Formats and delivers staff alerts"""

    @staticmethod
    def format_booking(title: str, booking: dict[str, Any]) -> str:
        lines = [
            f"<b>{html.escape(title)}</b>",
            f"Customer: {html.escape(booking.get('customer_name') or 'Unknown')}",
            f"Phone: {PhoneNumberValidator.pretty(booking.get('customer_phone'))}",
            f"Looking for: {html.escape(booking.get('vehicle_type') or 'Not specified')}"
            f" / {html.escape(booking.get('budget') or 'Budget TBD')}",
            f"When: {html.escape(booking.get('preferred_time') or '-')}",
        ]
        return "\n".join(lines)

    @staticmethod
    def format_inbound(phone: str, text: str, customer_name: str | None = None) -> str:
        return "\n".join([
            "<b>💬 New SMS</b>",
            f"From: {html.escape(customer_name or 'Unknown')} ({PhoneNumberValidator.pretty(phone)})",
            f"Message: {html.escape(text)}",
        ])

    @staticmethod
    async def _send_telegram_message(chat_id: str, text: str) -> bool:
        url = f"https://api.telegram.org/bot{settings.TELEGRAM_BOT_TOKEN}/sendMessage"
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}

        async def _send() -> bool:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, json=payload, timeout=30.0)
                if response.status_code != 200:
                    raise TelegramError.from_response("sendMessage", response)
                return True

        return await get_telegram_circuit_breaker().execute(_send)

    @staticmethod
    async def notify(text: str) -> bool:
        """
        Deliver one staff alert.

        Returns False when no channel is configured. Transport errors
        propagate to the caller (normally ``fire_and_forget``).
        """
        if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_STAFF_CHAT_ID:
            return await StaffNotificationService._send_telegram_message(
                settings.TELEGRAM_STAFF_CHAT_ID, text
            )

        staff_phone = PhoneNumberValidator.normalize(settings.STAFF_NOTIFY_PHONE)
        if staff_phone:
            plain = html.unescape(text.replace("<b>", "").replace("</b>", ""))
            await get_sms_provider().send_message(staff_phone, plain)
            return True

        logger.debug("No staff notification channel configured")
        return False

    @staticmethod
    async def notify_booking(title: str, booking: dict[str, Any]) -> bool:
        return await StaffNotificationService.notify(
            StaffNotificationService.format_booking(title, booking)
        )

    @staticmethod
    async def notify_inbound(phone: str, text: str, customer_name: str | None = None) -> bool:
        return await StaffNotificationService.notify(
            StaffNotificationService.format_inbound(phone, text, customer_name)
        )
