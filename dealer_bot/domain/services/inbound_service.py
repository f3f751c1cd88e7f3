"""
Inbound Service - background processing of one inbound SMS

The webhook acknowledges Twilio first and hands the message to
``process_inbound_sms``, which opens its own DB session and runs the funnel
turn while holding the per-phone lock (in-process and in Redis).
"""
import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from dealer_bot.core.config import settings
from dealer_bot.core.logging import get_logger
from dealer_bot.core.redis_client import RedisLock, get_redis
from dealer_bot.core.validation import PhoneNumberValidator, TextSanitizer
from dealer_bot.db.database import AsyncSessionLocal
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.domain.services.outbound_dispatcher import OutboundDispatcher
from dealer_bot.state_machine.manager import ConversationManager, TurnOutcome

logger = get_logger(__name__)

PHONE_LOCK_PREFIX = "inbound:phone-lock:"


class PhoneLockRegistry:
    """
    Serializes funnel turns per canonical phone.

    An asyncio.Lock orders turns inside this process; a Redis lock keyed by
    phone orders them across workers and instances. Local locks are
    reference counted and dropped once no task holds or waits on them, so
    the registry does not grow with the number of customers.

    When Redis is unreachable the turn runs under the local lock only.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, phone: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(phone, asyncio.Lock())
        self._refs[phone] = self._refs.get(phone, 0) + 1
        try:
            async with lock:
                async with self._hold_shared(phone):
                    yield
        finally:
            self._refs[phone] -= 1
            if self._refs[phone] == 0:
                del self._refs[phone]
                del self._locks[phone]

    @asynccontextmanager
    async def _hold_shared(self, phone: str) -> AsyncIterator[None]:
        phone_masked = PhoneNumberValidator.mask(phone)
        ttl = settings.phone_lock_ttl_seconds
        shared: RedisLock | None = None
        token: str | None = None
        try:
            shared = RedisLock(await get_redis(), f"{PHONE_LOCK_PREFIX}{phone}", ttl)
            # A holder releases within its TTL, so waiting one TTL is enough
            token = await shared.acquire(wait_seconds=ttl)
            if token is None:
                logger.warning("Phone lock wait timed out", extra_data={"phone": phone_masked})
        except RedisError as e:
            logger.warning(
                "Phone lock unavailable, serializing in-process only",
                extra_data={"phone": phone_masked, "error": str(e)}
            )

        try:
            yield
        finally:
            if token is not None:
                try:
                    await shared.release(token)
                except RedisError as e:
                    logger.warning(
                        "Phone lock release failed",
                        extra_data={"phone": phone_masked, "error": str(e)}
                    )


phone_locks = PhoneLockRegistry()


async def process_inbound_sms(raw_phone: str, body: str) -> TurnOutcome | None:
    """
    Run one funnel turn for an inbound SMS.

    Returns None when the sender is not a valid phone or the body is empty.
    Persistence errors are logged and the reply is dropped.
    """
    phone = PhoneNumberValidator.normalize(raw_phone)
    if phone is None:
        logger.warning("Inbound SMS from invalid phone ignored", extra_data={"raw_phone": raw_phone})
        return None

    text = TextSanitizer.sanitize(body or "")
    if not text:
        logger.info("Empty inbound SMS ignored", extra_data={"phone": PhoneNumberValidator.mask(phone)})
        return None

    async with phone_locks.hold(phone):
        async with AsyncSessionLocal() as db:
            store = ConversationStore(db)
            manager = ConversationManager(store, OutboundDispatcher(store))
            try:
                return await manager.handle_inbound(phone, text)
            except SQLAlchemyError:
                await db.rollback()
                logger.error(
                    "Inbound SMS not processed: database error",
                    extra_data={"phone": PhoneNumberValidator.mask(phone)},
                    exc_info=True,
                )
                return None
