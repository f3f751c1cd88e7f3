"""
Funnel Stage Definitions
"""
from enum import Enum


class Stage(str, Enum):
    """Sales funnel stages, in funnel order"""

    GREETING = "greeting"
    BUDGET = "budget"
    APPOINTMENT = "appointment"
    NAME = "name"
    DATETIME = "datetime"
    CONFIRMED = "confirmed"


# Slot each stage collects. CONFIRMED collects nothing.
STAGE_SLOTS: list[tuple[Stage, str]] = [
    (Stage.GREETING, "vehicle_type"),
    (Stage.BUDGET, "budget"),
    (Stage.APPOINTMENT, "intent"),
    (Stage.NAME, "customer_name"),
    (Stage.DATETIME, "preferred_time"),
]

FUNNEL_ORDER: list[Stage] = list(Stage)


STAGE_TRANSITIONS = {
    # Forward moves; deflection rules may skip intermediate stages
    Stage.GREETING: [Stage.BUDGET, Stage.APPOINTMENT, Stage.NAME, Stage.DATETIME, Stage.CONFIRMED],
    Stage.BUDGET: [Stage.APPOINTMENT, Stage.NAME, Stage.DATETIME, Stage.CONFIRMED],
    Stage.APPOINTMENT: [Stage.NAME, Stage.DATETIME, Stage.CONFIRMED],
    Stage.NAME: [Stage.DATETIME, Stage.CONFIRMED],
    Stage.DATETIME: [Stage.CONFIRMED],
    # Reschedule / cancel reopen the time slot
    Stage.CONFIRMED: [Stage.DATETIME],
}

# Rules allowed to move to any stage (START resets the funnel)
ESCAPE_HATCH_RULES = frozenset({"resubscribe"})


def is_valid_transition(current: Stage, target: Stage, rule: str | None = None) -> bool:
    if current == target or rule in ESCAPE_HATCH_RULES:
        return True
    return target in STAGE_TRANSITIONS.get(current, [])


def first_open_stage(slots: dict, start: Stage = Stage.GREETING) -> Stage:
    """
    First stage at or after ``start`` whose slot is still empty.

    Returns CONFIRMED when every slot from ``start`` on is filled.
    """
    start_index = FUNNEL_ORDER.index(start)
    for stage, slot in STAGE_SLOTS:
        if FUNNEL_ORDER.index(stage) >= start_index and not slots.get(slot):
            return stage
    return Stage.CONFIRMED
