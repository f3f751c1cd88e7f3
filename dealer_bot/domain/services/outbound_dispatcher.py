"""
Outbound Dispatcher - send an SMS and record it in the transcript
"""
from dealer_bot.core.logging import get_logger
from dealer_bot.core.validation import PhoneNumberValidator
from dealer_bot.db.models.conversation import Conversation
from dealer_bot.db.models.message import MessageRole
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.domain.services.sms import BaseSmsProvider, get_sms_provider

logger = get_logger(__name__)


class OutboundDispatcher:
    """
    Sends assistant messages through the SMS provider.

    A body already recorded for the conversation inside the de-duplication
    window is neither sent nor recorded again.
    """

    def __init__(self, store: ConversationStore, provider: BaseSmsProvider | None = None):
        self.store = store
        self.provider = provider or get_sms_provider()

    async def send(self, to: str, body: str) -> str:
        """
        Send without touching the transcript; raises SmsTransportError.

        The bulk drain commits the job as sent before it records the message.
        """
        return await self.provider.send_message(to, body)

    async def send_and_record(self, conversation: Conversation, body: str) -> str | None:
        """
        Returns the delivery id, or None when suppressed as a duplicate.

        Transport errors propagate and nothing is recorded.
        """
        if await self.store.message_exists_recently(conversation.id, MessageRole.ASSISTANT, body):
            logger.info(
                "Outbound duplicate suppressed",
                extra_data={
                    "phone": PhoneNumberValidator.mask(conversation.customer_phone),
                    "conversation_id": conversation.id,
                }
            )
            return None

        delivery_id = await self.provider.send_message(conversation.customer_phone, body)
        await self.store.append_message(conversation, MessageRole.ASSISTANT, body)
        return delivery_id
