"""
State Machine Module for the SMS Sales Funnel
"""
from dealer_bot.state_machine.states import Stage
from dealer_bot.state_machine.engine import DialogueEngine
from dealer_bot.state_machine.rules import RULES, ConversationSnapshot, DialogueResult

__all__ = ["Stage", "DialogueEngine", "RULES", "ConversationSnapshot", "DialogueResult"]
