"""
Conversation Store - durable customers, conversations, transcripts, bookings

Every write commits immediately: a funnel turn is a sequence of small
durable writes, and a failure part-way leaves everything written so far.
"""
from datetime import timedelta
from typing import Any

from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.core.config import settings
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.db.database import utcnow
from dealer_bot.db.models.analytics_event import AnalyticsEvent
from dealer_bot.db.models.booking import Appointment, Callback
from dealer_bot.db.models.conversation import Conversation, ConversationStatus, ConversationIntent
from dealer_bot.db.models.customer import Customer
from dealer_bot.db.models.message import Message, MessageRole
from dealer_bot.state_machine.states import Stage

logger = get_logger(__name__)


# Only these conversation columns may be written through update_conversation
ALLOWED_FIELDS = frozenset({
    "status", "stage", "vehicle_type", "budget", "budget_amount",
    "customer_name", "intent", "preferred_time",
})

# Statuses that keep a conversation open for the next inbound message.
# A converted conversation stays open so post-booking replies
# (reschedule, cancel, inventory) reach it.
OPEN_STATUSES = (ConversationStatus.ACTIVE, ConversationStatus.CONVERTED)

# Enum-typed columns; plain strings from the engine are coerced
_ENUM_FIELDS = {"status": ConversationStatus, "intent": ConversationIntent}


class ConversationStore:
    """Persistence operations for the SMS funnel"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ---- customers ----

    async def get_customer(self, phone: str) -> Customer | None:
        result = await self.db.execute(select(Customer).where(Customer.phone == phone))
        return result.scalar_one_or_none()

    async def get_or_create_customer(self, phone: str) -> Customer:
        customer = await self.get_customer(phone)
        if customer is None:
            customer = Customer(phone=phone)
            self.db.add(customer)
            await self.db.commit()
            await self.db.refresh(customer)
            logger.info(
                "New customer created",
                extra_data={"phone": PhoneNumberValidator.mask(phone)}
            )
        return customer

    async def update_customer_name(self, phone: str, name: str) -> None:
        customer = await self.get_or_create_customer(phone)
        customer.name = name
        customer.last_contact = utcnow()
        await self.db.commit()

    # ---- conversations ----

    async def get_latest_conversation(self, phone: str) -> Conversation | None:
        result = await self.db.execute(
            select(Conversation)
            .where(Conversation.customer_phone == phone)
            .order_by(Conversation.started_at.desc(), Conversation.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_active_conversation(self, phone: str) -> Conversation | None:
        result = await self.db.execute(
            select(Conversation)
            .where(
                Conversation.customer_phone == phone,
                Conversation.status.in_(OPEN_STATUSES),
            )
            .order_by(Conversation.started_at.desc(), Conversation.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_or_create_active_conversation(self, phone: str) -> Conversation:
        """Most recent open conversation for the phone, or a new one."""
        conversation = await self.get_active_conversation(phone)
        if conversation is None:
            return await self.create_conversation(phone)
        await self.touch_conversation(conversation)
        return conversation

    async def create_conversation(self, phone: str) -> Conversation:
        conversation = Conversation(
            customer_phone=phone,
            status=ConversationStatus.ACTIVE,
            stage=Stage.GREETING.value,
        )
        self.db.add(conversation)
        await self.db.commit()
        await self.db.refresh(conversation)
        logger.info(
            "New conversation started",
            extra_data={
                "phone": PhoneNumberValidator.mask(phone),
                "conversation_id": conversation.id,
            }
        )
        return conversation

    async def update_conversation(
        self,
        conversation: Conversation,
        updates: dict[str, Any],
    ) -> Conversation:
        """Apply an allow-listed field delta; unknown keys are dropped."""
        for key, value in updates.items():
            if key not in ALLOWED_FIELDS:
                logger.warning(
                    "update_conversation ignored unknown field",
                    extra_data={"field": key, "conversation_id": conversation.id}
                )
                continue
            if value is not None and key in _ENUM_FIELDS:
                value = _ENUM_FIELDS[key](value)
            setattr(conversation, key, value)
        conversation.updated_at = utcnow()
        await self.db.commit()
        return conversation

    async def touch_conversation(self, conversation: Conversation) -> None:
        conversation.updated_at = utcnow()
        await self.db.commit()

    async def list_conversations(self, limit: int = 100) -> list[Conversation]:
        result = await self.db.execute(
            select(Conversation)
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ---- messages ----

    async def message_exists_recently(
        self,
        conversation_id: int,
        role: MessageRole,
        content: str,
        window_seconds: int | None = None,
    ) -> bool:
        role = MessageRole(role)
        window = window_seconds if window_seconds is not None else settings.MESSAGE_DEDUP_WINDOW_SECONDS
        cutoff = utcnow() - timedelta(seconds=window)
        result = await self.db.execute(
            select(Message.id)
            .where(
                Message.conversation_id == conversation_id,
                Message.role == role,
                Message.content == content,
                Message.created_at > cutoff,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def append_message(
        self,
        conversation: Conversation,
        role: MessageRole,
        content: str,
    ) -> Message | None:
        """
        Append to the transcript.

        Returns None when the same (conversation, role, content) was stored
        inside the de-duplication window.
        """
        role = MessageRole(role)
        if await self.message_exists_recently(conversation.id, role, content):
            logger.info(
                "Duplicate message suppressed",
                extra_data={
                    "conversation_id": conversation.id,
                    "role": role.value,
                    "preview": content[:50],
                }
            )
            return None

        message = Message(
            conversation_id=conversation.id,
            customer_phone=conversation.customer_phone,
            role=role,
            content=content,
        )
        self.db.add(message)
        await self.db.commit()
        return message

    async def get_history(self, phone: str) -> list[Message]:
        result = await self.db.execute(
            select(Message)
            .where(Message.customer_phone == phone)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return list(result.scalars().all())

    # ---- bookings & analytics ----

    async def save_appointment(self, **booking: Any) -> Appointment:
        appointment = Appointment(**booking)
        self.db.add(appointment)
        await self.db.commit()
        return appointment

    async def save_callback(self, **booking: Any) -> Callback:
        callback = Callback(**booking)
        self.db.add(callback)
        await self.db.commit()
        return callback

    async def log_analytics_event(
        self,
        event_type: str,
        phone: str | None,
        data: dict[str, Any] | None = None,
    ) -> AnalyticsEvent:
        analytics_event = AnalyticsEvent(event_type=event_type, customer_phone=phone, data=data or {})
        self.db.add(analytics_event)
        await self.db.commit()
        return analytics_event

    # ---- deletion ----

    async def delete_conversation_cascade(self, phone: str) -> dict[str, int]:
        """Remove the phone's conversations, messages, appointments and callbacks."""
        counts = {}
        for label, model, column in (
            ("messages", Message, Message.customer_phone),
            ("appointments", Appointment, Appointment.customer_phone),
            ("callbacks", Callback, Callback.customer_phone),
            ("conversations", Conversation, Conversation.customer_phone),
        ):
            result = await self.db.execute(delete(model).where(column == phone))
            counts[label] = result.rowcount or 0
        await self.db.commit()

        logger.info(
            "Conversation deleted",
            extra_data={"phone": PhoneNumberValidator.mask(phone), **counts}
        )
        return counts

    async def delete_booking(self, model: type[Appointment] | type[Callback], booking_id: int) -> bool:
        result = await self.db.execute(delete(model).where(model.id == booking_id))
        await self.db.commit()
        return bool(result.rowcount)

    async def count_messages(self, conversation_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Message.id)).where(Message.conversation_id == conversation_id)
        )
        return result.scalar_one()
