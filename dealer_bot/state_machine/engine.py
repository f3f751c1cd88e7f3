"""
Dialogue Engine - pure step function over the rule table
"""
from dataclasses import replace

from dealer_bot.core.config import settings
from dealer_bot.core.exceptions import InvalidStageTransitionError
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.state_machine.rules import (
    RULES,
    ConversationSnapshot,
    DialogueResult,
    Rule,
    Turn,
    fallback_prompt,
)
from dealer_bot.state_machine.states import Stage, is_valid_transition

logger = get_logger(__name__)


class DialogueEngine:
    """
    Computes one funnel turn: reply text, slot delta and side effects.

    ``step`` is deterministic for a given snapshot and message. Persisting
    the delta and running the effects is ConversationManager's job.
    """

    def __init__(
        self,
        rules: tuple[Rule, ...] = RULES,
        location: str | None = None,
        agent_name: str | None = None,
    ):
        self.rules = rules
        self.location = location or settings.DEALERSHIP_LOCATION
        self.agent_name = agent_name or settings.AGENT_NAME

    def step(self, snapshot: ConversationSnapshot, text: str) -> DialogueResult:
        turn = Turn(
            snapshot=snapshot,
            text=text or "",
            location=self.location,
            agent_name=self.agent_name,
        )

        try:
            for rule in self.rules:
                if rule.matches(turn):
                    result = replace(rule.action(turn), rule=rule.name)
                    self._check_transition(snapshot, result)
                    return result
        except Exception as e:
            logger.exception(
                "Dialogue rule failed, using fallback prompt",
                extra_data={
                    "phone": PhoneNumberValidator.mask(snapshot.phone),
                    "stage": snapshot.stage,
                    "error": str(e),
                }
            )

        return replace(fallback_prompt(snapshot), rule="fallback")

    @staticmethod
    def _check_transition(snapshot: ConversationSnapshot, result: DialogueResult) -> None:
        target = result.updates.get("stage")
        if target is None:
            return
        if not is_valid_transition(Stage(snapshot.stage), Stage(target), result.rule):
            raise InvalidStageTransitionError(snapshot.stage, target, result.rule)
