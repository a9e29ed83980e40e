"""
Pytest configuration and fixtures for the auto-reply worker tests.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from autoreply.ai.responder import AIResponder
from autoreply.domain.account import User, Channel
from autoreply.domain.event import IncomingEvent
from autoreply.domain.message_log import MessageLog  # noqa: F401 - needed for table creation
from autoreply.domain.rule import Base, AutoRule
from autoreply.infrastructure.kv_store import InMemoryKeyValueStore
from autoreply.infrastructure.work_queue import WorkQueue
from autoreply.usecases.cooldown_store import CooldownStore
from autoreply.usecases.message_processor import MessageProcessor


# Use a separate in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_QUEUE = "test:message_queue"


class FakeClock:
    """Manually advanced monotonic clock for expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def test_session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(clock) -> InMemoryKeyValueStore:
    """In-memory key-value store driven by the fake clock."""
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def work_queue(kv_store) -> WorkQueue:
    return WorkQueue(kv_store, TEST_QUEUE)


@pytest.fixture
def mock_sender():
    """Outbound sender that always delivers."""
    sender = MagicMock()
    sender.send = AsyncMock(return_value=True)
    return sender


@pytest.fixture
def processor(work_queue, kv_store, test_session_factory, mock_sender) -> MessageProcessor:
    """Processor wired to in-memory stores, with AI in fallback mode."""
    return MessageProcessor(
        queue=work_queue,
        cooldowns=CooldownStore(kv_store),
        ai_responder=AIResponder(kv_store, api_key=None),
        senders={"instagram": mock_sender, "naver": mock_sender},
        session_factory=test_session_factory,
        worker_count=2,
        poll_timeout=1,
        max_retries=3,
        public_base_url="https://autoreplyx.com",
    )


@pytest_asyncio.fixture
async def sample_user(test_session) -> User:
    """A business user with AI replies disabled."""
    user = User(
        id=1,
        email="owner@example.com",
        brand_name="카페 모카",
        business_hours="10:00-21:00",
        address="서울시 마포구",
        ai_enabled=False,
        ai_tone="friendly",
        reservation_slug="cafe-mocha",
    )
    test_session.add(user)
    await test_session.commit()
    return user


@pytest_asyncio.fixture
async def sample_channel(test_session, sample_user) -> Channel:
    """An active Instagram channel of the sample user."""
    channel = Channel(
        id=10,
        user_id=sample_user.id,
        channel_type="instagram",
        account_id="17841400000000",
        access_token="ig-token",
        is_active=True,
    )
    test_session.add(channel)
    await test_session.commit()
    return channel


@pytest_asyncio.fixture
async def price_rule(test_session, sample_user) -> AutoRule:
    """CONTAINS rule on "가격" with a five minute cooldown."""
    rule = AutoRule(
        user_id=sample_user.id,
        name="가격 문의",
        match_type="CONTAINS",
        keywords="가격, 얼마",
        response_template="메뉴 가격은 프로필 링크에서 확인하실 수 있어요!",
        priority=1,
        channel="ALL",
        cooldown_seconds=300,
        is_active=True,
        trigger_count=0,
    )
    test_session.add(rule)
    await test_session.commit()
    return rule


def make_event(**overrides) -> IncomingEvent:
    """Build an incoming message event for the sample user and channel."""
    fields = {
        "id": "evt-1",
        "type": "message",
        "channel": "instagram",
        "userId": 1,
        "channelId": 10,
        "senderId": "S1",
        "senderName": "민수",
        "recipientId": "17841400000000",
        "messageId": "mid.1",
        "text": "가격이 얼마에요",
        "timestamp": 1760000000000,
        "isTest": False,
        "retryCount": 0,
        "retryAt": None,
    }
    fields.update(overrides)
    return IncomingEvent.model_validate(fields)


@pytest.fixture
def event_factory():
    """Factory for incoming message events."""
    return make_event
