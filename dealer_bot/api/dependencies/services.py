"""
Service dependencies shared by the admin routers.

Tests replace these through ``app.dependency_overrides``.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_bot.core.redis_client import get_redis
from dealer_bot.db.database import get_db
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.domain.services.drain_control import DrainControl
from dealer_bot.domain.services.outbound_dispatcher import OutboundDispatcher
from dealer_bot.domain.services.sms import BaseSmsProvider, get_sms_provider
from dealer_bot.state_machine.manager import ConversationManager


def get_provider() -> BaseSmsProvider:
    return get_sms_provider()


async def get_drain_control() -> DrainControl:
    return DrainControl(await get_redis())


async def get_conversation_manager(
    db: AsyncSession = Depends(get_db),
    provider: BaseSmsProvider = Depends(get_provider),
) -> ConversationManager:
    store = ConversationStore(db)
    return ConversationManager(store, OutboundDispatcher(store, provider))
