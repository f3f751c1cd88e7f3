"""
Dialogue Rule Table

Each Rule pairs a predicate with an action. The engine walks ``RULES`` in
order and the first matching rule produces the turn's reply, the slot delta
and the side effects. Actions are pure: they never touch the database.

Priority:
    1. unsubscribe, not_interested
    2. resubscribe
    3. stopped_guard
    4. deflections: location, more_details, financing, price, make_model,
       inventory_question
    5. stage rules: greeting, budget, appointment, name, datetime,
       reschedule, cancel, inventory_photos, confirmed_menu
    6. fallback (see engine)
"""
import re
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable

from dealer_bot.state_machine.states import Stage, FUNNEL_ORDER, first_open_stage


class EffectKind(str, Enum):
    SAVE_APPOINTMENT = "save_appointment"
    SAVE_CALLBACK = "save_callback"
    LOG_EVENT = "log_event"
    NOTIFY_STAFF = "notify_staff"
    UPDATE_CUSTOMER_NAME = "update_customer_name"


@dataclass(frozen=True)
class SideEffect:
    kind: EffectKind
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConversationSnapshot:
    """Immutable view of a conversation's persisted state"""

    phone: str = ""
    status: str = "active"
    stage: str = Stage.GREETING.value
    vehicle_type: str | None = None
    budget: str | None = None
    budget_amount: int | None = None
    intent: str | None = None
    customer_name: str | None = None
    preferred_time: str | None = None

    @classmethod
    def from_conversation(cls, conversation) -> "ConversationSnapshot":
        def plain(value):
            return value.value if isinstance(value, Enum) else value

        return cls(
            phone=conversation.customer_phone,
            status=plain(conversation.status) or "active",
            stage=conversation.stage or Stage.GREETING.value,
            vehicle_type=conversation.vehicle_type,
            budget=conversation.budget,
            budget_amount=conversation.budget_amount,
            intent=plain(conversation.intent),
            customer_name=conversation.customer_name,
            preferred_time=conversation.preferred_time,
        )

    def slots(self) -> dict[str, Any]:
        return {
            "vehicle_type": self.vehicle_type,
            "budget": self.budget,
            "budget_amount": self.budget_amount,
            "intent": self.intent,
            "customer_name": self.customer_name,
            "preferred_time": self.preferred_time,
        }


@dataclass(frozen=True)
class DialogueResult:
    reply: str
    updates: dict[str, Any] = field(default_factory=dict)
    effects: tuple[SideEffect, ...] = ()
    rule: str = ""


@dataclass(frozen=True)
class Turn:
    """One inbound message against one snapshot"""

    snapshot: ConversationSnapshot
    text: str
    location: str = "Calgary, Alberta"
    agent_name: str = "Sarah"

    @property
    def lower(self) -> str:
        return self.text.lower()

    def has(self, *needles: str) -> bool:
        lower = self.lower
        return any(needle in lower for needle in needles)

    def has_word(self, *words: str) -> bool:
        pattern = r"\b(?:" + "|".join(re.escape(w) for w in words) + r")s?\b"
        return re.search(pattern, self.lower) is not None

    @property
    def stage(self) -> Stage:
        return Stage(self.snapshot.stage)


@dataclass(frozen=True)
class Rule:
    name: str
    matches: Callable[[Turn], bool]
    action: Callable[[Turn], DialogueResult]


def event(event_type: str, **data: Any) -> SideEffect:
    return SideEffect(EffectKind.LOG_EVENT, {"event_type": event_type, "data": data})


def _advance(turn: Turn, updates: dict[str, Any], start: Stage) -> Stage:
    """Next stage after applying ``updates``; never moves backwards."""
    merged = {**turn.snapshot.slots(), **updates}
    target = first_open_stage(merged, start)
    if FUNNEL_ORDER.index(target) < FUNNEL_ORDER.index(turn.stage):
        return turn.stage
    return target


_SNAPSHOT_FIELDS = frozenset(f.name for f in fields(ConversationSnapshot))


def _merged(snapshot: ConversationSnapshot, updates: dict[str, Any]) -> ConversationSnapshot:
    return replace(snapshot, **{k: v for k, v in updates.items() if k in _SNAPSHOT_FIELDS})


# ---------------------------------------------------------------------------
# Copy
# ---------------------------------------------------------------------------

BOOK_OR_CALL_MENU = "1️⃣ Book a test drive\n2️⃣ Schedule a call back"

UNSUBSCRIBED_NOTICE = "You're currently unsubscribed. Reply START to receive messages again."


def opening_greeting(agent_name: str) -> str:
    return (
        f"Welcome back! 👋 I'm {agent_name} from the dealership. "
        "What type of vehicle are you looking for? (SUV, Truck, Sedan, etc.)"
    )


# ---------------------------------------------------------------------------
# 1-3. Subscription control
# ---------------------------------------------------------------------------

def is_stop_command(text: str) -> bool:
    lower = text.lower().strip()
    return (
        lower == "stop"
        or re.match(r"^stop[^a-z]", lower) is not None
        or any(k in lower for k in ("unsubscribe", "opt out", "opt-out"))
    )


def is_start_command(text: str) -> bool:
    lower = text.lower().strip()
    return lower == "start" or "resubscribe" in lower or "opt in" in lower


NOT_INTERESTED_PHRASES = (
    "not interested", "no thanks", "no thank you", "wrong number",
    "leave me alone", "remove me", "do not contact",
)


def _is_not_interested(turn: Turn) -> bool:
    return turn.lower.strip() == "no" or turn.has(*NOT_INTERESTED_PHRASES)


def _unsubscribe(turn: Turn) -> DialogueResult:
    return DialogueResult(
        reply=(
            "You've been unsubscribed and won't receive further messages. "
            "Reply START anytime to resume."
        ),
        updates={"status": "stopped"},
        effects=(event("conversation_stopped"),),
    )


def _not_interested(turn: Turn) -> DialogueResult:
    return DialogueResult(
        reply=(
            "No problem at all! I've removed you from our list. Have a great day! 😊 "
            "Reply START anytime if you change your mind."
        ),
        updates={"status": "stopped"},
        effects=(event("conversation_stopped", reason="not_interested"),),
    )


def _resubscribe(turn: Turn) -> DialogueResult:
    # A restarted funnel starts from empty slots
    return DialogueResult(
        reply=opening_greeting(turn.agent_name),
        updates={
            "status": "active",
            "stage": Stage.GREETING.value,
            "vehicle_type": None,
            "budget": None,
            "budget_amount": None,
            "intent": None,
            "customer_name": None,
            "preferred_time": None,
        },
        effects=(event("conversation_restarted"),),
    )


def _stopped_guard(turn: Turn) -> DialogueResult:
    return DialogueResult(reply=UNSUBSCRIBED_NOTICE)


# ---------------------------------------------------------------------------
# 4. Deflections
# ---------------------------------------------------------------------------

LOCATION_KEYWORDS = ("location", "where", "address", "dealership", "calgary", "alberta")
DETAIL_KEYWORDS = ("detail", "more info", "tell me more")
FINANCING_KEYWORDS = (
    "financ", "credit", "loan", "payment", "monthly", "down payment",
    "trade", "trade-in", "trade in",
)
PRICE_KEYWORDS = ("how much", "what does it cost", "price", "cheapest", "expensive", "cost", "rates")

TRUCK_MODELS = ("f-150", "f150", "silverado", "tacoma", "tundra", "pickup")
EV_MODELS = ("tesla", "model 3", "model y")
SUV_MODELS = (
    "highlander", "rav4", "cr-v", "pilot", "explorer", "suburban", "tahoe",
    "yukon", "equinox", "escape", "compass", "cherokee", "wrangler", "mustang",
    "civic", "corolla", "camry", "accord", "altima",
)
AVAILABILITY_KEYWORDS = ("do you have", "got any", "available", "in stock", "inventory")


def _callback_deflection(lead: str, name_ask: str) -> Callable[[Turn], DialogueResult]:
    """
    Route high-intent language straight to the callback name capture.

    When the name is already known the funnel lands past NAME, and the
    reply asks for that stage's slot instead of ``name_ask``.
    """
    def action(turn: Turn) -> DialogueResult:
        updates: dict[str, Any] = {}
        if not turn.snapshot.intent:
            updates["intent"] = "callback"
        stage = _advance(turn, updates, Stage.NAME)
        updates["stage"] = stage.value
        ask = name_ask if stage == Stage.NAME else stage_prompt(_merged(turn.snapshot, updates), stage)
        return DialogueResult(reply=f"{lead.format(location=turn.location)} {ask}", updates=updates)
    return action


def _mentions_truck_model(turn: Turn) -> bool:
    return turn.has_word("ram") or turn.has(*TRUCK_MODELS)


def _mentions_model(turn: Turn) -> bool:
    return _mentions_truck_model(turn) or turn.has(*EV_MODELS, *SUV_MODELS)


def _price(turn: Turn) -> DialogueResult:
    vehicle_type = turn.snapshot.vehicle_type
    stage = _advance(turn, {}, Stage.BUDGET)
    if vehicle_type:
        lead = f"Great question! {vehicle_type}s vary by trim and features."
        budget_ask = "What budget are you working with? (e.g., $15k, $25k, $40k, $60k+)"
    else:
        lead = "We have vehicles across a wide range!"
        budget_ask = "To find you the best match, what's your budget in mind? (e.g., $15k, $25k, $40k, $60k+)"
    ask = budget_ask if stage == Stage.BUDGET else stage_prompt(turn.snapshot, stage)
    return DialogueResult(reply=f"{lead} {ask}", updates={"stage": stage.value})


def _make_model(turn: Turn) -> DialogueResult:
    updates: dict[str, Any] = {}
    if not turn.snapshot.vehicle_type:
        if _mentions_truck_model(turn):
            updates["vehicle_type"] = "Truck"
        elif turn.has(*EV_MODELS):
            updates["vehicle_type"] = "Electric/Hybrid"
        else:
            updates["vehicle_type"] = "SUV"
    stage = _advance(turn, updates, Stage.BUDGET)
    updates["stage"] = stage.value
    if stage == Stage.BUDGET:
        ask = "What's your budget range? (e.g., $25k, $40k, $60k+)"
    else:
        ask = stage_prompt(_merged(turn.snapshot, updates), stage)
    return DialogueResult(reply=f"Love it! We have great options in that category. 🚗 {ask}", updates=updates)


# ---------------------------------------------------------------------------
# 5. Stage rules
# ---------------------------------------------------------------------------

# (vehicle_type, reply) in match order; keywords are checked as substrings
# except where a whole-word match is needed to avoid false hits.
_DEFAULT_BUDGET_HINT = "(e.g., $15k, $25k, $40k, $60k+)"

VEHICLE_VOCABULARY: list[tuple[Callable[[Turn], bool], str, str]] = [
    (lambda t: t.has("suv"), "SUV",
     f"Great choice! SUVs are very popular. What's your budget range? {_DEFAULT_BUDGET_HINT}"),
    (lambda t: t.has("truck"), "Truck",
     f"Awesome! Trucks are great. What's your budget range? {_DEFAULT_BUDGET_HINT}"),
    (lambda t: t.has("sedan"), "Sedan",
     f"Perfect! Sedans are reliable. What's your budget range? {_DEFAULT_BUDGET_HINT}"),
    (lambda t: t.has("sports", "coupe", "convertible"), "Sports Car",
     "Exciting! Sports cars are fun. What's your budget range? (e.g., $25k, $40k, $60k+)"),
    (lambda t: t.has("minivan") or t.has_word("van"), "Minivan",
     "Great for families! What's your budget range? (e.g., $20k, $30k, $50k+)"),
    (lambda t: t.has("electric", "hybrid") or t.has_word("ev"), "Electric/Hybrid",
     "Excellent choice! Eco-friendly options. What's your budget range? (e.g., $30k, $50k, $70k+)"),
    (lambda t: t.has_word("car") or t.has("vehicle", "yes", "interested", "want", "looking"), "Vehicle",
     f"Great! What's your budget range? {_DEFAULT_BUDGET_HINT}"),
]


def _in_greeting(turn: Turn) -> bool:
    # Price questions park the funnel at BUDGET before a vehicle is known
    return turn.stage == Stage.GREETING or (
        turn.stage == Stage.BUDGET and not turn.snapshot.vehicle_type
    )


def _greeting(turn: Turn) -> DialogueResult:
    for matches, vehicle_type, reply in VEHICLE_VOCABULARY:
        if matches(turn):
            updates: dict[str, Any] = {"vehicle_type": vehicle_type}
            updates["stage"] = _advance(turn, updates, Stage.BUDGET).value
            return DialogueResult(reply=reply, updates=updates)
    return DialogueResult(
        reply="What type of vehicle interests you? We have SUVs, Trucks, Sedans, Coupes, and more!"
    )


AMBIGUOUS_BUDGET_CEILING = 5000


def parse_budget_amount(text: str) -> int:
    """
    Extract a dollar amount from free text; 0 when there is none.

    "25k" -> 25000, "$30,000" -> 30000. The comma-stripped re-extraction
    runs last and overrides the k multiplier.
    """
    numbers = re.findall(r"\d+", text)
    if not numbers:
        return 0

    amount = int(numbers[0])
    if "k" in text.lower() and amount < 1000:
        amount *= 1000
    if "," in text:
        extracted = re.search(r"\d+", text.replace(",", ""))
        if extracted:
            amount = int(extracted.group())
    return amount


def budget_bucket(amount: int) -> str:
    if amount < 30000:
        return "Under $30k"
    if amount <= 50000:
        return "$30k-$50k"
    return "$50k+"


def _budget(turn: Turn) -> DialogueResult:
    amount = parse_budget_amount(turn.text)

    if 0 < amount < AMBIGUOUS_BUDGET_CEILING:
        return DialogueResult(
            reply=(
                f"Just to clarify - is that ${amount} your total budget or down payment? "
                "Most vehicles start around $15k. Reply with your full budget (e.g., $20k, $30k)."
            )
        )

    if amount > 0:
        updates: dict[str, Any] = {"budget": budget_bucket(amount), "budget_amount": amount}
        updates["stage"] = _advance(turn, updates, Stage.APPOINTMENT).value
        thousands = int(amount / 1000 + 0.5)
        return DialogueResult(
            reply=(
                f"Perfect! I have some great {turn.snapshot.vehicle_type}s around ${thousands}k. "
                f"Would you like to:\n{BOOK_OR_CALL_MENU}\nJust reply 1 or 2!"
            ),
            updates=updates,
        )

    if turn.has("cheap", "budget") or turn.has_word("low"):
        updates = {"budget": "Under $30k"}
        updates["stage"] = _advance(turn, updates, Stage.APPOINTMENT).value
        return DialogueResult(
            reply=f"Got it! I have great budget-friendly options. Would you like to:\n{BOOK_OR_CALL_MENU}\nReply 1 or 2!",
            updates=updates,
        )

    if turn.has("premium", "luxury") or turn.has_word("high"):
        updates = {"budget": "$50k+"}
        updates["stage"] = _advance(turn, updates, Stage.APPOINTMENT).value
        return DialogueResult(
            reply=f"Excellent! I have some premium options. Would you like to:\n{BOOK_OR_CALL_MENU}\nReply 1 or 2!",
            updates=updates,
        )

    return DialogueResult(reply="What's your budget? Just give me a number like $15k, $20k, $40k, etc.")


def _appointment(turn: Turn) -> DialogueResult:
    if turn.has("1", "test", "drive", "appointment", "visit"):
        intent, opener, name_ask = "test_drive", "Awesome", "What's your name so I can get this set up for you? 😊"
    elif turn.has("2", "call", "phone", "talk"):
        intent, opener, name_ask = "callback", "Great", "What's your name so I can set this up? 😊"
    elif turn.has("maybe", "not sure", "think", "later", "busy", "soon"):
        name = turn.snapshot.customer_name
        greeting = f"No rush at all {name}!" if name else "No rush at all!"
        return DialogueResult(
            reply=(
                f"{greeting} A test drive is only 30 mins and we work around your schedule 😊 "
                "Whenever you're ready:\n1️⃣ Book a test drive\n2️⃣ Quick call with our team\nJust reply 1 or 2!"
            )
        )
    else:
        return DialogueResult(reply=f"Would you like to:\n{BOOK_OR_CALL_MENU}\nJust reply 1 or 2!")

    updates: dict[str, Any] = {"intent": intent}
    stage = _advance(turn, updates, Stage.NAME)
    updates["stage"] = stage.value
    if stage == Stage.NAME:
        return DialogueResult(reply=f"{opener}! {name_ask}", updates=updates)
    # Name already on file, e.g. from a bulk campaign contact
    merged = _merged(turn.snapshot, updates)
    return DialogueResult(
        reply=f"{opener} {merged.customer_name}! {stage_prompt(merged, stage)}",
        updates=updates,
    )


_NAME_PREFIXES = ("my name is", "i'm", "i am")


def extract_name(text: str) -> str:
    """
    "my name is john smith jr" -> "John smith".

    Drops a leading introduction phrase, everything but letters, spaces,
    hyphens and apostrophes, and keeps at most two words.
    """
    name = text.strip()
    lower = name.lower()
    for prefix in _NAME_PREFIXES:
        if prefix in lower:
            name = re.split(re.escape(prefix), name, maxsplit=1, flags=re.IGNORECASE)[1]
            break

    name = re.sub(r"[^a-zA-Z\s'-]", "", name).strip()
    name = " ".join(name.split()[:2])
    return name[:1].upper() + name[1:]


def _name(turn: Turn) -> DialogueResult:
    name = extract_name(turn.text)
    if not name:
        return DialogueResult(reply="What's your name so I can get this set up for you? 😊")

    updates: dict[str, Any] = {"customer_name": name}
    updates["stage"] = _advance(turn, updates, Stage.DATETIME).value
    if turn.snapshot.intent == "test_drive":
        reply = (
            f"Nice to meet you, {name}! When works best for your test drive? "
            "(e.g., Tomorrow afternoon, Saturday morning, Next week)"
        )
    else:
        reply = (
            f"Nice to meet you, {name}! When's the best time to call you? "
            "(e.g., Tomorrow at 2pm, Friday morning, This evening)"
        )
    return DialogueResult(
        reply=reply,
        updates=updates,
        effects=(SideEffect(EffectKind.UPDATE_CUSTOMER_NAME, {"name": name}),),
    )


def _part_of_day(lower: str) -> str:
    for part in ("morning", "afternoon", "evening"):
        if part in lower:
            return part
    return "afternoon"


def normalize_datetime(text: str) -> str:
    """Map vague time phrases onto canonical labels; keep anything else verbatim."""
    lower = text.lower().strip()
    if "today" in lower:
        return f"Today {_part_of_day(lower)}"
    if "tomorrow" in lower:
        return f"Tomorrow {_part_of_day(lower)}"
    if "this weekend" in lower or lower == "weekend":
        return "This weekend"
    if "next week" in lower:
        return "Next week"
    if "this morning" in lower:
        return "Today morning"
    if "this afternoon" in lower:
        return "Today afternoon"
    if "this evening" in lower or "tonight" in lower:
        return "Today evening"
    return text.strip()


def _booking_payload(snapshot: ConversationSnapshot, preferred_time: str) -> dict[str, Any]:
    return {
        "customer_phone": snapshot.phone,
        "customer_name": snapshot.customer_name,
        "vehicle_type": snapshot.vehicle_type,
        "budget": snapshot.budget,
        "budget_amount": snapshot.budget_amount,
        "preferred_time": preferred_time,
    }


def _datetime(turn: Turn) -> DialogueResult:
    snapshot = turn.snapshot
    when = normalize_datetime(turn.text)
    if not when:
        return _prompt_for_time(snapshot)

    booking = _booking_payload(snapshot, when)
    updates = {"preferred_time": when, "stage": Stage.CONFIRMED.value, "status": "converted"}
    name = snapshot.customer_name or ""

    if snapshot.intent == "test_drive":
        return DialogueResult(
            reply=(
                f"✅ Perfect {name}! I've booked your test drive for {when}.\n\n"
                f"📍 We're in {turn.location} and we deliver all across Canada!\n"
                "📧 Confirmation sent!\n\n"
                "Looking forward to seeing you! Reply STOP to opt out."
            ),
            updates=updates,
            effects=(
                SideEffect(EffectKind.SAVE_APPOINTMENT, booking),
                event("appointment_booked", **booking),
                SideEffect(EffectKind.NOTIFY_STAFF, {"title": "📅 Test Drive Booked", **booking}),
            ),
        )

    return DialogueResult(
        reply=(
            f"✅ Got it {name}! One of our managers will call you {when} with all the details.\n\n"
            f"We're excited to help you find your perfect {snapshot.vehicle_type or 'vehicle'}!\n\n"
            "Talk soon! Reply STOP to opt out."
        ),
        updates=updates,
        effects=(
            SideEffect(EffectKind.SAVE_CALLBACK, booking),
            event("callback_requested", **booking),
            SideEffect(EffectKind.NOTIFY_STAFF, {"title": "📞 Callback Requested", **booking}),
        ),
    )


def _reschedule(turn: Turn) -> DialogueResult:
    return DialogueResult(
        reply=(
            f"No problem {turn.snapshot.customer_name}! What time works better for you? "
            "(e.g., Friday afternoon, Next Tuesday, This weekend)"
        ),
        updates={"stage": Stage.DATETIME.value, "preferred_time": None},
    )


def _cancel(turn: Turn) -> DialogueResult:
    return DialogueResult(
        reply=(
            f"No worries {turn.snapshot.customer_name}! Would you like to pick a different time instead? "
            "Just tell me when works better and I'll get you rebooked! 😊"
        ),
        updates={"status": "active", "stage": Stage.DATETIME.value, "preferred_time": None},
    )


INVENTORY_FOLLOW_UP_TIME = "ASAP - Customer requested inventory photos"


def _inventory_photos(turn: Turn) -> DialogueResult:
    snapshot = turn.snapshot
    follow_up = _booking_payload(snapshot, INVENTORY_FOLLOW_UP_TIME)
    return DialogueResult(
        reply=(
            f"Great question {snapshot.customer_name}! I've let our team know — a manager will text you "
            f"photos of {snapshot.vehicle_type or 'vehicles'} in your {snapshot.budget or 'budget'} range shortly! 📸"
        ),
        effects=(
            SideEffect(EffectKind.SAVE_CALLBACK, follow_up),
            event("inventory_requested", **follow_up),
            SideEffect(EffectKind.NOTIFY_STAFF, {"title": "📸 Inventory Photos Requested", **follow_up}),
        ),
    )


def _confirmed_menu(turn: Turn) -> DialogueResult:
    snapshot = turn.snapshot
    city = turn.location.split(",")[0]
    return DialogueResult(
        reply=(
            f"Thanks {snapshot.customer_name}! We're all set for {snapshot.preferred_time}. 📅\n\n"
            "Need to:\n"
            "• RESCHEDULE - Change your appointment time\n"
            "• INVENTORY - See photos of available vehicles\n"
            "• Just reply if you have questions!\n\n"
            f"We're in {city} and deliver across Canada! 🚗"
        )
    )


# ---------------------------------------------------------------------------
# 6. Fallback prompts
# ---------------------------------------------------------------------------

def stage_prompt(snapshot: ConversationSnapshot, stage: Stage) -> str:
    """Question that collects ``stage``'s slot."""
    if stage == Stage.GREETING:
        return "What type of vehicle are you looking for? We have SUVs, Trucks, Sedans, EVs and more! 🚗"
    if stage == Stage.BUDGET:
        return (
            f"What budget are you working with for your {snapshot.vehicle_type or 'vehicle'}? "
            "(e.g., $15k, $25k, $40k, $60k+)"
        )
    if stage == Stage.APPOINTMENT:
        return f"Ready to take the next step? Reply:\n{BOOK_OR_CALL_MENU}"
    if stage == Stage.NAME:
        return "What's your name so I can get this set up for you? 😊"
    if stage == Stage.DATETIME:
        if snapshot.intent == "test_drive":
            return "When works best for your test drive? (e.g., Tomorrow afternoon, Saturday morning)"
        return "When's the best time to call you? (e.g., Tomorrow at 2pm, Friday morning)"
    return "Is there anything else I can help you with? 😊"


def _prompt_for_time(snapshot: ConversationSnapshot) -> DialogueResult:
    return DialogueResult(reply=stage_prompt(snapshot, Stage.DATETIME))


def fallback_prompt(snapshot: ConversationSnapshot) -> DialogueResult:
    """Prompt for the first empty slot in funnel order. Never mutates state."""
    stage = first_open_stage(snapshot.slots())
    reply = stage_prompt(snapshot, stage)
    if stage == Stage.CONFIRMED:
        reply = f"Hi {snapshot.customer_name or 'there'}! {reply}"
    return DialogueResult(reply=reply)


RULES: tuple[Rule, ...] = (
    Rule("unsubscribe", lambda t: is_stop_command(t.text), _unsubscribe),
    Rule("not_interested", _is_not_interested, _not_interested),
    Rule("resubscribe", lambda t: is_start_command(t.text), _resubscribe),
    Rule("stopped_guard", lambda t: t.snapshot.status == "stopped", _stopped_guard),
    Rule(
        "location",
        lambda t: t.has(*LOCATION_KEYWORDS),
        _callback_deflection(
            "We're located in {location} and deliver all across Canada! 🇨🇦",
            "I can have a manager call you with directions and details — what's your name?",
        ),
    ),
    Rule(
        "more_details",
        lambda t: t.has(*DETAIL_KEYWORDS) or (t.has("manager") and t.has("call")),
        _callback_deflection(
            "I'd love to have one of our managers reach out with all the details!",
            "First, what's your name?",
        ),
    ),
    Rule(
        "financing",
        lambda t: t.has(*FINANCING_KEYWORDS),
        _callback_deflection(
            "Great news — we work with all credit situations and have flexible financing options! 💳 "
            "Our finance team can walk you through everything.",
            "What's your name so I can set up a quick call?",
        ),
    ),
    Rule("price", lambda t: t.has(*PRICE_KEYWORDS), _price),
    Rule("make_model", _mentions_model, _make_model),
    Rule(
        "inventory_question",
        lambda t: t.stage == Stage.GREETING and t.has(*AVAILABILITY_KEYWORDS),
        _callback_deflection(
            "Yes! We have a great selection across all makes and models. 🚗",
            "I can have a manager send you our current inventory — what's your name?",
        ),
    ),
    Rule("greeting", _in_greeting, _greeting),
    Rule("budget", lambda t: t.stage == Stage.BUDGET and not t.snapshot.budget, _budget),
    Rule("appointment", lambda t: t.stage == Stage.APPOINTMENT and not t.snapshot.intent, _appointment),
    Rule("name", lambda t: t.stage == Stage.NAME and not t.snapshot.customer_name, _name),
    Rule("datetime", lambda t: t.stage == Stage.DATETIME and not t.snapshot.preferred_time, _datetime),
    Rule(
        "reschedule",
        lambda t: t.stage == Stage.CONFIRMED and t.has("reschedule", "change", "different time"),
        _reschedule,
    ),
    Rule("cancel", lambda t: t.stage == Stage.CONFIRMED and t.has("cancel"), _cancel),
    Rule(
        "inventory_photos",
        lambda t: t.stage == Stage.CONFIRMED and t.has("inventory", "photos", "pictures", "see vehicles"),
        _inventory_photos,
    ),
    Rule("confirmed_menu", lambda t: t.stage == Stage.CONFIRMED, _confirmed_menu),
)
