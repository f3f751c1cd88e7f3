"""
Voice Service - pre-recorded voice drops with a press-1 forward
"""
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.core.config import settings
from dealer_bot.core.exceptions import ValidationException
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator, TextSanitizer
from dealer_bot.domain.services.bulk_campaign_service import render_template
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.domain.services.sms import BaseSmsProvider, get_sms_provider

logger = get_logger(__name__)

KEYPRESS_PATH = "/api/sms/voice/keypress"


def keypress_callback_url() -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}{KEYPRESS_PATH}"


class VoiceService:
    def __init__(self, db: AsyncSession, provider: BaseSmsProvider | None = None):
        self.db = db
        self.provider = provider or get_sms_provider()

    async def place_drop(self, phone: str, message: str) -> dict[str, Any]:
        """Place one voice drop now; transport errors propagate."""
        to = PhoneNumberValidator.require(phone)
        speech = TextSanitizer.sanitize(message)
        if not speech:
            raise ValidationException("Message is required", field="message")

        call_sid = await self.provider.place_voice_drop(to, speech, keypress_callback_url())
        await ConversationStore(self.db).log_analytics_event("voice_drop", to, {"call_sid": call_sid})
        return {"call_sid": call_sid, "to": to}

    @staticmethod
    def schedule_campaign(
        contacts: list[dict[str, Any]],
        message: str,
        delay_seconds: int | None = None,
    ) -> dict[str, Any]:
        """
        Queue one ``send_voice_drop`` task per valid contact, staggered by
        ``delay_seconds``. Contacts with an invalid phone are skipped.
        """
        from dealer_bot.workers.tasks import send_voice_drop

        if not contacts or not message:
            raise ValidationException("contacts and message are required")

        delay = delay_seconds or settings.VOICE_CAMPAIGN_DELAY_SECONDS
        scheduled = 0
        skipped = 0
        for contact in contacts:
            phone = PhoneNumberValidator.normalize(str(contact.get("phone") or ""))
            if phone is None:
                skipped += 1
                continue
            send_voice_drop.apply_async(
                args=[phone, render_template(message, contact.get("name"))],
                countdown=scheduled * delay,
            )
            scheduled += 1

        logger.info(
            "Voice campaign queued",
            extra_data={"scheduled": scheduled, "skipped": skipped, "delay_seconds": delay}
        )
        return {"scheduled": scheduled, "skipped": skipped}
