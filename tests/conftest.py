"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- HTTP client with dependency overrides
- Mock SMS provider and in-memory Redis
- Test data factories
"""
import os
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")

import pytest
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select
from sqlalchemy.pool import StaticPool

from dealer_bot.api.dependencies.services import get_drain_control, get_provider
from dealer_bot.core.config import settings
from dealer_bot.core.redis_client import EXTEND_LOCK_SCRIPT, RELEASE_LOCK_SCRIPT
from dealer_bot.db.database import Base, get_db
from dealer_bot.db.models.conversation import Conversation, ConversationStatus
from dealer_bot.db.models.customer import Customer
from dealer_bot.domain.services.conversation_store import ConversationStore
from dealer_bot.domain.services.drain_control import DrainControl
from dealer_bot.domain.services.outbound_dispatcher import OutboundDispatcher
from dealer_bot.domain.services.sms import BaseSmsProvider
from dealer_bot.main import app
from dealer_bot.state_machine.manager import ConversationManager


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


# ============================================================================
# Mock External Services
# ============================================================================

class FakeRedis:
    """In-memory stand-in for the few Redis commands the app uses"""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def exists(self, *keys: str) -> int:
        return sum(1 for key in keys if key in self._store)

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        if ex is not None:
            self._ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
            self._ttls.pop(key, None)
        return removed

    async def eval(self, script: str, numkeys: int, *keys_and_args) -> int:
        """Only the lock scripts: compare the token, then expire or delete."""
        key, token = keys_and_args[0], keys_and_args[1]
        if self._store.get(key) != token:
            return 0
        if script == RELEASE_LOCK_SCRIPT:
            return await self.delete(key)
        if script == EXTEND_LOCK_SCRIPT:
            self._ttls[key] = int(keys_and_args[2])
            return 1
        raise NotImplementedError("FakeRedis.eval supports the lock scripts only")

    async def aclose(self) -> None:
        self._store.clear()
        self._ttls.clear()


@pytest.fixture(autouse=True)
def fake_redis():
    """Replace get_redis with FakeRedis for every test."""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    with patch("dealer_bot.core.redis_client.get_redis", _get_fake_redis), \
         patch("dealer_bot.api.dependencies.services.get_redis", _get_fake_redis), \
         patch("dealer_bot.domain.services.health_service.get_redis", _get_fake_redis), \
         patch("dealer_bot.domain.services.inbound_service.get_redis", _get_fake_redis):
        yield _fake


@pytest.fixture
def drain_control(fake_redis) -> DrainControl:
    return DrainControl(fake_redis)


@pytest.fixture
def mock_sms_provider():
    """SMS provider double; send_message returns a fake message sid."""
    provider = MagicMock(spec=BaseSmsProvider)
    provider.provider_name = "mock"
    provider.send_message = AsyncMock(return_value="SM_TEST")
    provider.place_voice_drop = AsyncMock(return_value="CA_TEST")
    return provider


@pytest.fixture
async def test_client(db_session: AsyncSession, mock_sms_provider, drain_control):
    """HTTP client with the DB session, SMS provider and drain control overridden"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider] = lambda: mock_sms_provider
    app.dependency_overrides[get_drain_control] = lambda: drain_control

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Token": ADMIN_TOKEN}


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def store(db_session: AsyncSession) -> ConversationStore:
    return ConversationStore(db_session)


@pytest.fixture
def manager(store: ConversationStore, mock_sms_provider) -> ConversationManager:
    return ConversationManager(store, OutboundDispatcher(store, mock_sms_provider))


async def _customer_exists(db_session: AsyncSession, phone: str) -> bool:
    result = await db_session.execute(select(Customer.id).where(Customer.phone == phone))
    return result.scalar_one_or_none() is not None


@pytest.fixture
def conversation_factory(db_session: AsyncSession):
    """Factory for creating conversations at a given stage with given slots"""
    async def _create_conversation(
        phone: str = "+15873066133",
        status: ConversationStatus = ConversationStatus.ACTIVE,
        stage: str = "greeting",
        **slots,
    ) -> Conversation:
        if not await _customer_exists(db_session, phone):
            db_session.add(Customer(phone=phone))
        conversation = Conversation(customer_phone=phone, status=status, stage=stage, **slots)
        db_session.add(conversation)
        await db_session.commit()
        await db_session.refresh(conversation)
        return conversation

    return _create_conversation


# ============================================================================
# Global state resets
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from dealer_bot.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


@pytest.fixture(autouse=True)
def reset_sms_provider():
    from dealer_bot.domain.services.sms import reset_providers
    reset_providers()
    yield
    reset_providers()


@pytest.fixture(autouse=True)
def no_staff_channels():
    """Staff notifications stay off unless a test turns a channel on."""
    with patch.object(settings, "TELEGRAM_BOT_TOKEN", None), \
         patch.object(settings, "TELEGRAM_STAFF_CHAT_ID", None), \
         patch.object(settings, "STAFF_NOTIFY_PHONE", ""), \
         patch.object(settings, "ADMIN_API_TOKEN", ADMIN_TOKEN):
        yield
