"""
Database Models
"""
from dealer_bot.db.models.customer import Customer
from dealer_bot.db.models.conversation import Conversation, ConversationStatus, ConversationIntent
from dealer_bot.db.models.message import Message, MessageRole
from dealer_bot.db.models.booking import Appointment, Callback
from dealer_bot.db.models.bulk_message import BulkMessage, BulkMessageStatus
from dealer_bot.db.models.analytics_event import AnalyticsEvent

__all__ = [
    "Customer",
    "Conversation",
    "ConversationStatus",
    "ConversationIntent",
    "Message",
    "MessageRole",
    "Appointment",
    "Callback",
    "BulkMessage",
    "BulkMessageStatus",
    "AnalyticsEvent",
]
