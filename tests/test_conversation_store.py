"""
Tests for ConversationStore persistence
"""
from datetime import timedelta

import pytest
from sqlalchemy import select, func

from dealer_bot.db.models.booking import Appointment, Callback
from dealer_bot.db.models.conversation import ConversationStatus, ConversationIntent
from dealer_bot.db.models.message import Message, MessageRole

PHONE = "+15873066133"


class TestConversations:
    @pytest.mark.unit
    async def test_get_or_create_reuses_open_conversation(self, store):
        first = await store.get_or_create_active_conversation(PHONE)
        second = await store.get_or_create_active_conversation(PHONE)

        assert first.id == second.id
        assert first.stage == "greeting"
        assert first.status == ConversationStatus.ACTIVE

    @pytest.mark.unit
    async def test_converted_conversation_stays_open(self, store, conversation_factory):
        converted = await conversation_factory(status=ConversationStatus.CONVERTED, stage="confirmed")
        assert (await store.get_or_create_active_conversation(PHONE)).id == converted.id

    @pytest.mark.unit
    async def test_stopped_conversation_is_not_reused(self, store, conversation_factory):
        stopped = await conversation_factory(status=ConversationStatus.STOPPED)

        fresh = await store.get_or_create_active_conversation(PHONE)

        assert fresh.id != stopped.id
        assert (await store.get_latest_conversation(PHONE)).id == fresh.id

    @pytest.mark.unit
    async def test_update_coerces_enums_and_drops_unknown_fields(self, store, conversation_factory):
        conversation = await conversation_factory()

        await store.update_conversation(conversation, {
            "status": "converted",
            "intent": "test_drive",
            "stage": "confirmed",
            "customer_phone": "+19999999999",
        })

        assert conversation.status == ConversationStatus.CONVERTED
        assert conversation.intent == ConversationIntent.TEST_DRIVE
        assert conversation.customer_phone == PHONE

    @pytest.mark.unit
    async def test_preferred_time_round_trips(self, store, conversation_factory, db_session):
        conversation = await conversation_factory()
        await store.update_conversation(conversation, {"preferred_time": "Tomorrow afternoon"})

        db_session.expire_all()
        reloaded = await store.get_latest_conversation(PHONE)
        assert reloaded.preferred_time == "Tomorrow afternoon"


class TestMessages:
    @pytest.mark.unit
    async def test_duplicate_within_window_stored_once(self, store, conversation_factory, db_session):
        conversation = await conversation_factory()

        first = await store.append_message(conversation, MessageRole.USER, "SUV")
        second = await store.append_message(conversation, "user", "SUV")

        assert first is not None
        assert second is None
        assert await store.count_messages(conversation.id) == 1

    @pytest.mark.unit
    async def test_same_text_other_role_is_kept(self, store, conversation_factory):
        conversation = await conversation_factory()

        await store.append_message(conversation, MessageRole.USER, "hi")
        await store.append_message(conversation, MessageRole.ASSISTANT, "hi")

        assert await store.count_messages(conversation.id) == 2

    @pytest.mark.unit
    async def test_duplicate_after_window_is_kept(self, store, conversation_factory, db_session):
        conversation = await conversation_factory()
        message = await store.append_message(conversation, MessageRole.USER, "SUV")
        message.created_at = message.created_at - timedelta(seconds=31)
        await db_session.commit()

        assert await store.append_message(conversation, MessageRole.USER, "SUV") is not None

    @pytest.mark.unit
    async def test_history_in_order(self, store, conversation_factory):
        conversation = await conversation_factory()
        for text in ("one", "two", "three"):
            await store.append_message(conversation, MessageRole.USER, text)

        history = await store.get_history(PHONE)
        assert [m.content for m in history] == ["one", "two", "three"]


class TestBookingsAndDeletion:
    @pytest.mark.unit
    async def test_cascade_delete(self, store, conversation_factory, db_session):
        conversation = await conversation_factory(vehicle_type="SUV")
        await store.append_message(conversation, MessageRole.USER, "SUV")
        await store.save_appointment(customer_phone=PHONE, customer_name="John", preferred_time="Today morning")
        await store.save_callback(customer_phone=PHONE, customer_name="John", preferred_time="Friday")

        counts = await store.delete_conversation_cascade(PHONE)

        assert counts == {"messages": 1, "appointments": 1, "callbacks": 1, "conversations": 1}
        remaining = await db_session.execute(select(func.count(Message.id)))
        assert remaining.scalar_one() == 0

    @pytest.mark.unit
    async def test_delete_booking(self, store):
        appointment = await store.save_appointment(customer_phone=PHONE)

        assert await store.delete_booking(Appointment, appointment.id) is True
        assert await store.delete_booking(Appointment, appointment.id) is False
        assert await store.delete_booking(Callback, 12345) is False

    @pytest.mark.unit
    async def test_update_customer_name(self, store):
        await store.update_customer_name(PHONE, "John Smith")
        customer = await store.get_customer(PHONE)
        assert customer.name == "John Smith"
        assert customer.last_contact is not None
