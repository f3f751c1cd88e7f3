"""
Tests for the DialogueEngine rule table

The engine is pure, so these tests drive it with snapshots only.
"""
from dataclasses import replace

import pytest
from hypothesis import given
from hypothesis.strategies import integers, sampled_from

from dealer_bot.state_machine.engine import DialogueEngine
from dealer_bot.state_machine.rules import (
    EffectKind,
    ConversationSnapshot,
    Rule,
    budget_bucket,
    extract_name,
    normalize_datetime,
    parse_budget_amount,
)
from dealer_bot.state_machine.states import Stage

PHONE = "+15873066133"


@pytest.fixture
def engine() -> DialogueEngine:
    return DialogueEngine(location="Calgary, Alberta", agent_name="Sarah")


def snapshot(**fields) -> ConversationSnapshot:
    return ConversationSnapshot(phone=PHONE, **fields)


def apply(snap: ConversationSnapshot, updates: dict) -> ConversationSnapshot:
    return replace(snap, **updates)


class TestGreeting:
    @pytest.mark.unit
    def test_suv_moves_to_budget(self, engine):
        result = engine.step(snapshot(), "I want an SUV")

        assert result.rule == "greeting"
        assert result.updates == {"vehicle_type": "SUV", "stage": "budget"}
        assert "budget" in result.reply.lower()

    @pytest.mark.unit
    @pytest.mark.parametrize("text,vehicle", [
        ("looking for a truck", "Truck"),
        ("a sedan please", "Sedan"),
        ("something sporty, maybe a coupe", "Sports Car"),
        ("minivan for the kids", "Minivan"),
        ("an EV", "Electric/Hybrid"),
        ("yes", "Vehicle"),
    ])
    def test_vehicle_vocabulary(self, engine, text, vehicle):
        assert engine.step(snapshot(), text).updates["vehicle_type"] == vehicle

    @pytest.mark.unit
    def test_unknown_text_reprompts_without_changes(self, engine):
        result = engine.step(snapshot(), "hmm")

        assert result.updates == {}
        assert "What type of vehicle" in result.reply

    @pytest.mark.unit
    def test_short_words_need_word_boundary(self, engine):
        # "evening" contains "ev", "caravan" contains "car" and "van"
        result = engine.step(snapshot(), "every evening")
        assert result.updates.get("vehicle_type") != "Electric/Hybrid"

    @pytest.mark.unit
    def test_name_after_deflection_not_read_as_vehicle(self, engine):
        result = engine.step(snapshot(stage="name", intent="callback"), "Dave")

        assert result.rule == "name"
        assert result.updates["customer_name"] == "Dave"


class TestBudget:
    @pytest.mark.unit
    def test_25k_with_suv(self, engine):
        result = engine.step(snapshot(stage="budget", vehicle_type="SUV"), "25k")

        assert result.rule == "budget"
        assert result.updates == {"budget": "Under $30k", "budget_amount": 25000, "stage": "appointment"}
        assert "SUVs around $25k" in result.reply

    @pytest.mark.unit
    def test_small_number_asks_for_clarification(self, engine):
        result = engine.step(snapshot(stage="budget", vehicle_type="SUV"), "3000")

        assert result.updates == {}
        assert "down payment" in result.reply

    @pytest.mark.unit
    def test_descriptive_budget(self, engine):
        cheap = engine.step(snapshot(stage="budget", vehicle_type="SUV"), "something cheap")
        luxury = engine.step(snapshot(stage="budget", vehicle_type="SUV"), "luxury")

        assert cheap.updates["budget"] == "Under $30k"
        assert luxury.updates["budget"] == "$50k+"

    @pytest.mark.unit
    @pytest.mark.parametrize("text,amount", [
        ("25k", 25000),
        ("$40,000", 40000),
        ("around 35K", 35000),
        ("1,500k", 1500),  # comma re-extraction wins over the k multiplier
        ("no idea", 0),
    ])
    def test_parse_budget_amount(self, text, amount):
        assert parse_budget_amount(text) == amount

    @pytest.mark.unit
    @pytest.mark.parametrize("amount,bucket", [
        (29999, "Under $30k"),
        (30000, "$30k-$50k"),
        (50000, "$30k-$50k"),
        (50001, "$50k+"),
    ])
    def test_bucket_boundaries(self, amount, bucket):
        assert budget_bucket(amount) == bucket

    @given(integers(min_value=5000, max_value=10_000_000))
    def test_bucketing_is_total(self, amount):
        bucket = budget_bucket(amount)
        assert bucket in ("Under $30k", "$30k-$50k", "$50k+")
        assert (bucket == "Under $30k") == (amount < 30000)
        assert (bucket == "$50k+") == (amount > 50000)


class TestAppointmentNameDatetime:
    @pytest.mark.unit
    def test_option_one_is_test_drive(self, engine):
        snap = snapshot(stage="appointment", vehicle_type="SUV", budget="$30k-$50k")
        result = engine.step(snap, "1")

        assert result.updates == {"intent": "test_drive", "stage": "name"}

    @pytest.mark.unit
    def test_known_name_skips_to_time_prompt(self, engine):
        snap = snapshot(stage="appointment", vehicle_type="SUV", budget="$30k-$50k", customer_name="Dave")
        result = engine.step(snap, "1")

        assert result.updates == {"intent": "test_drive", "stage": "datetime"}
        assert result.reply.startswith("Awesome Dave!")
        assert "name" not in result.reply
        assert "When works best for your test drive?" in result.reply

    @pytest.mark.unit
    def test_option_two_is_callback(self, engine):
        snap = snapshot(stage="appointment", vehicle_type="SUV", budget="$30k-$50k")
        assert engine.step(snap, "2").updates["intent"] == "callback"

    @pytest.mark.unit
    def test_hesitation_keeps_stage(self, engine):
        snap = snapshot(stage="appointment", vehicle_type="SUV", budget="$30k-$50k")
        result = engine.step(snap, "maybe later")

        assert result.updates == {}
        assert "No rush" in result.reply

    @pytest.mark.unit
    @pytest.mark.parametrize("text,name", [
        ("John Smith", "John Smith"),
        ("my name is john smith jr", "John smith"),
        ("I'm Anne-Marie", "Anne-Marie"),
        ("!!!", ""),
    ])
    def test_extract_name(self, text, name):
        assert extract_name(text) == name

    @pytest.mark.unit
    def test_name_captured(self, engine):
        snap = snapshot(stage="name", vehicle_type="SUV", budget="$30k-$50k", intent="test_drive")
        result = engine.step(snap, "John Smith")

        assert result.updates == {"customer_name": "John Smith", "stage": "datetime"}
        assert result.effects[0].kind == EffectKind.UPDATE_CUSTOMER_NAME
        assert "test drive" in result.reply

    @pytest.mark.unit
    @pytest.mark.parametrize("text,label", [
        ("tomorrow afternoon", "Tomorrow afternoon"),
        ("Tomorrow", "Tomorrow afternoon"),
        ("today in the morning", "Today morning"),
        ("tonight", "Today evening"),
        ("next week", "Next week"),
        ("Saturday at 10", "Saturday at 10"),
    ])
    def test_normalize_datetime(self, text, label):
        assert normalize_datetime(text) == label

    @pytest.mark.unit
    def test_datetime_books_test_drive(self, engine):
        snap = snapshot(
            stage="datetime", vehicle_type="SUV", budget="$30k-$50k",
            budget_amount=30000, intent="test_drive", customer_name="John Smith",
        )
        result = engine.step(snap, "tomorrow afternoon")

        assert result.updates == {
            "preferred_time": "Tomorrow afternoon",
            "stage": "confirmed",
            "status": "converted",
        }
        kinds = [e.kind for e in result.effects]
        assert kinds == [EffectKind.SAVE_APPOINTMENT, EffectKind.LOG_EVENT, EffectKind.NOTIFY_STAFF]
        assert result.effects[0].payload["preferred_time"] == "Tomorrow afternoon"

    @pytest.mark.unit
    def test_datetime_callback_saves_callback(self, engine):
        snap = snapshot(
            stage="datetime", vehicle_type="Truck", budget="$50k+",
            intent="callback", customer_name="Jane",
        )
        result = engine.step(snap, "Friday morning")

        assert result.effects[0].kind == EffectKind.SAVE_CALLBACK
        assert "call you Friday morning" in result.reply


class TestSubscription:
    @pytest.mark.unit
    @pytest.mark.parametrize("stage", [s.value for s in Stage])
    @pytest.mark.parametrize("text", ["STOP", "stop.", "Unsubscribe", "please opt out"])
    def test_stop_from_any_stage(self, engine, stage, text):
        result = engine.step(snapshot(stage=stage), text)

        assert result.rule == "unsubscribe"
        assert result.updates["status"] == "stopped"

    @pytest.mark.unit
    def test_not_interested(self, engine):
        result = engine.step(snapshot(stage="budget", vehicle_type="SUV"), "not interested")
        assert result.updates == {"status": "stopped"}

    @pytest.mark.unit
    def test_start_resets_everything(self, engine):
        stopped = snapshot(
            status="stopped", stage="appointment", vehicle_type="SUV",
            budget="Under $30k", budget_amount=25000,
        )
        result = engine.step(stopped, "START")

        assert result.rule == "resubscribe"
        assert result.updates["status"] == "active"
        assert result.updates["stage"] == "greeting"
        assert result.updates["vehicle_type"] is None

        fresh = engine.step(apply(stopped, result.updates), "I want an SUV")
        assert fresh.updates == {"vehicle_type": "SUV", "stage": "budget"}

    @pytest.mark.unit
    def test_stopped_guard_ignores_funnel(self, engine):
        result = engine.step(snapshot(status="stopped"), "I want an SUV")

        assert result.rule == "stopped_guard"
        assert result.updates == {}


class TestDeflections:
    @pytest.mark.unit
    def test_location_goes_to_callback_name(self, engine):
        result = engine.step(snapshot(), "where are you located?")

        assert result.rule == "location"
        assert result.updates == {"intent": "callback", "stage": "name"}
        assert "Calgary, Alberta" in result.reply

    @pytest.mark.unit
    def test_deflection_with_known_name_asks_for_time(self, engine):
        snap = snapshot(stage="appointment", vehicle_type="SUV", budget="$30k-$50k", customer_name="Dave")
        result = engine.step(snap, "where are you located?")

        assert result.rule == "location"
        assert result.updates == {"intent": "callback", "stage": "datetime"}
        assert "name?" not in result.reply
        assert "When's the best time to call you?" in result.reply

    @pytest.mark.unit
    def test_deflection_keeps_existing_test_drive_intent(self, engine):
        snap = snapshot(stage="budget", vehicle_type="SUV", intent="test_drive", customer_name="Dave")
        result = engine.step(snap, "do you do financing?")

        assert result.updates == {"stage": "datetime"}
        assert "name" not in result.reply
        assert result.reply.endswith("When works best for your test drive? (e.g., Tomorrow afternoon, Saturday morning)")

    @pytest.mark.unit
    def test_price_with_known_budget_offers_next_step(self, engine):
        snap = snapshot(stage="appointment", vehicle_type="SUV", budget="$30k-$50k")
        result = engine.step(snap, "how much is it?")

        assert result.updates == {"stage": "appointment"}
        assert "budget" not in result.reply.lower()
        assert "1️⃣ Book a test drive" in result.reply

    @pytest.mark.unit
    def test_financing(self, engine):
        result = engine.step(snapshot(stage="budget", vehicle_type="SUV"), "do you do financing?")
        assert result.rule == "financing"
        assert result.updates["intent"] == "callback"

    @pytest.mark.unit
    def test_price_before_vehicle_then_vehicle(self, engine):
        price = engine.step(snapshot(), "how much are your cars?")
        assert price.rule == "price"
        assert price.updates == {"stage": "budget"}

        vehicle = engine.step(snapshot(stage="budget"), "a truck")
        assert vehicle.rule == "greeting"
        assert vehicle.updates == {"vehicle_type": "Truck", "stage": "budget"}

    @pytest.mark.unit
    def test_make_model(self, engine):
        result = engine.step(snapshot(), "got a silverado?")
        assert result.updates["vehicle_type"] == "Truck"

    @pytest.mark.unit
    def test_deflection_never_moves_backwards(self, engine):
        snap = snapshot(
            stage="datetime", vehicle_type="SUV", budget="$30k-$50k",
            intent="test_drive", customer_name="John",
        )
        result = engine.step(snap, "where is the dealership")

        assert result.updates == {"stage": "datetime"}


class TestConfirmed:
    @pytest.fixture
    def confirmed(self):
        return snapshot(
            status="converted", stage="confirmed", vehicle_type="SUV",
            budget="$30k-$50k", intent="test_drive", customer_name="John",
            preferred_time="Tomorrow afternoon",
        )

    @pytest.mark.unit
    def test_reschedule_clears_time(self, engine, confirmed):
        result = engine.step(confirmed, "can I reschedule?")
        assert result.updates == {"stage": "datetime", "preferred_time": None}

    @pytest.mark.unit
    def test_cancel_reactivates(self, engine, confirmed):
        result = engine.step(confirmed, "I need to cancel")
        assert result.updates["status"] == "active"

    @pytest.mark.unit
    def test_inventory_photos_creates_follow_up(self, engine, confirmed):
        result = engine.step(confirmed, "send me photos")
        assert result.effects[0].kind == EffectKind.SAVE_CALLBACK

    @pytest.mark.unit
    def test_menu(self, engine, confirmed):
        result = engine.step(confirmed, "thanks!")
        assert result.rule == "confirmed_menu"
        assert "Tomorrow afternoon" in result.reply


class TestFallback:
    @pytest.mark.unit
    def test_rule_error_uses_fallback_prompt(self):
        def boom(turn):
            raise RuntimeError("broken rule")

        engine = DialogueEngine(rules=(Rule("broken", lambda t: True, boom),))
        result = engine.step(snapshot(stage="budget", vehicle_type="SUV"), "anything")

        assert result.rule == "fallback"
        assert result.updates == {}
        assert "budget" in result.reply

    @given(sampled_from(["ok", "sure", "hello", "?", "lol"]), sampled_from([s.value for s in Stage]))
    def test_step_never_raises(self, text, stage):
        engine = DialogueEngine(location="Calgary, Alberta", agent_name="Sarah")
        result = engine.step(snapshot(stage=stage), text)
        assert result.reply
