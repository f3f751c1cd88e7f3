"""
Conversation Manager - runs one funnel turn end to end

Loads the conversation, asks the DialogueEngine for the turn, persists the
slot delta and side effects, then sends the reply.
"""
from dataclasses import dataclass

from dealer_bot.core.config import settings
from dealer_bot.core.exceptions import AppException, ConversationAlreadyActiveError
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.db.models.conversation import Conversation, ConversationStatus
from dealer_bot.db.models.message import MessageRole
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.domain.services.outbound_dispatcher import OutboundDispatcher
from dealer_bot.domain.services.staff_notification_service import (
    StaffNotificationService,
    fire_and_forget,
)
from dealer_bot.state_machine.engine import DialogueEngine
from dealer_bot.state_machine.rules import (
    UNSUBSCRIBED_NOTICE,
    ConversationSnapshot,
    DialogueResult,
    EffectKind,
    is_start_command,
    is_stop_command,
)

logger = get_logger(__name__)


def default_opening_message() -> str:
    return (
        f"Hi! 👋 I'm {settings.AGENT_NAME} from the dealership. I wanted to reach out and see if "
        "you're interested in finding your perfect vehicle. What type of car are you looking for? "
        "(Reply STOP to opt out)"
    )


@dataclass
class TurnOutcome:
    conversation_id: int | None
    reply: str
    rule: str
    delivered: bool


class ConversationManager:
    """Applies DialogueEngine results against the store and the transport"""

    def __init__(
        self,
        store: ConversationStore,
        dispatcher: OutboundDispatcher,
        engine: DialogueEngine | None = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.engine = engine or DialogueEngine()

    async def handle_inbound(self, phone: str, text: str) -> TurnOutcome:
        """
        Process one inbound SMS from a canonical phone.

        Persistence errors propagate. A transport failure on the reply is
        logged and reported as ``delivered=False``.
        """
        customer = await self.store.get_or_create_customer(phone)

        latest = await self.store.get_latest_conversation(phone)
        if latest is not None and latest.status == ConversationStatus.STOPPED:
            if not (is_start_command(text) or is_stop_command(text)):
                delivered = await self._send_reply(latest, UNSUBSCRIBED_NOTICE)
                return TurnOutcome(latest.id, UNSUBSCRIBED_NOTICE, "stopped_guard", delivered)
            # START reactivates the stopped conversation in place
            conversation = latest
            await self.store.touch_conversation(conversation)
        else:
            conversation = await self.store.get_or_create_active_conversation(phone)

        await self.store.append_message(conversation, MessageRole.USER, text)
        await self.store.log_analytics_event(
            "message_received", phone, {"conversation_id": conversation.id, "length": len(text)}
        )

        result = self.engine.step(ConversationSnapshot.from_conversation(conversation), text)
        logger.info(
            "Dialogue turn computed",
            extra_data={
                "phone": PhoneNumberValidator.mask(phone),
                "conversation_id": conversation.id,
                "rule": result.rule,
                "stage": conversation.stage,
                "updates": sorted(result.updates),
            }
        )

        await self.apply(conversation, result)
        delivered = await self._send_reply(conversation, result.reply)

        fire_and_forget(
            StaffNotificationService.notify_inbound(phone, text, customer.name),
            name="notify-inbound",
        )
        return TurnOutcome(conversation.id, result.reply, result.rule, delivered)

    async def apply(self, conversation: Conversation, result: DialogueResult) -> None:
        """Persist the slot delta, then run side effects in order."""
        if result.updates:
            await self.store.update_conversation(conversation, result.updates)

        phone = conversation.customer_phone
        for effect in result.effects:
            if effect.kind == EffectKind.UPDATE_CUSTOMER_NAME:
                await self.store.update_customer_name(phone, effect.payload["name"])
            elif effect.kind == EffectKind.SAVE_APPOINTMENT:
                await self.store.save_appointment(**effect.payload)
            elif effect.kind == EffectKind.SAVE_CALLBACK:
                await self.store.save_callback(**effect.payload)
            elif effect.kind == EffectKind.LOG_EVENT:
                await self.store.log_analytics_event(
                    effect.payload["event_type"], phone, effect.payload.get("data", {})
                )
            elif effect.kind == EffectKind.NOTIFY_STAFF:
                payload = dict(effect.payload)
                title = payload.pop("title", "Dealer SMS")
                fire_and_forget(
                    StaffNotificationService.notify_booking(title, payload),
                    name="notify-booking",
                )

    async def _send_reply(self, conversation: Conversation, body: str) -> bool:
        try:
            await self.dispatcher.send_and_record(conversation, body)
        except AppException as e:
            logger.error(
                "Reply not delivered",
                extra_data={
                    "phone": PhoneNumberValidator.mask(conversation.customer_phone),
                    "conversation_id": conversation.id,
                    "error": e.message,
                }
            )
            return False
        return True

    async def start_conversation(self, phone: str, message: str | None = None) -> Conversation:
        """
        Opening outbound SMS to a new lead.

        Raises ConversationAlreadyActiveError when the phone is mid-funnel.
        Transport errors propagate.
        """
        existing = await self.store.get_active_conversation(phone)
        if existing is not None and existing.status == ConversationStatus.ACTIVE:
            raise ConversationAlreadyActiveError(phone)

        body = message or default_opening_message()
        await self.store.get_or_create_customer(phone)
        conversation = await self.store.create_conversation(phone)
        await self.dispatcher.send_and_record(conversation, body)
        await self.store.log_analytics_event("sms_sent", phone, {"conversation_id": conversation.id})
        return conversation

    async def send_manual_reply(self, phone: str, message: str) -> Conversation:
        """Staff-typed reply into the phone's open conversation."""
        await self.store.get_or_create_customer(phone)
        conversation = await self.store.get_or_create_active_conversation(phone)
        await self.dispatcher.send_and_record(conversation, message)
        await self.store.log_analytics_event(
            "manual_reply_sent", phone, {"conversation_id": conversation.id}
        )
        return conversation
