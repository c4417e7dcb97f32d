import os

# Must be set before app.core.config is imported anywhere
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")
os.environ.setdefault("ENV", "test")

import uuid
from datetime import timedelta
import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from app.db.base import Base
import app.models  # noqa: F401  registers every table on Base.metadata
from app.models import User, VipTier, WalletAccount, DateOrder
from app.services.date_order_service import DateOrderService
from app.services.pricing_service import PricingQuote
from app.utils.clock import utcnow


# ========================
# Mocked persistence (unit tests)
# ========================

@pytest.fixture
def mock_session():
    session = AsyncMock()

    # Setup execute result
    mock_result = MagicMock()
    # Ensure scalar_one_or_none returns a value, not a coroutine
    mock_result.scalar_one_or_none.return_value = None
    mock_result.scalars.return_value.all.return_value = []
    mock_result.scalars.return_value.first.return_value = None
    mock_result.rowcount = 1

    session.execute.side_effect = None
    session.execute.return_value = mock_result

    # Configure session.get to return None by default
    session.get.return_value = None

    # Standard methods
    session.add = MagicMock()
    session.refresh = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()

    return session


@pytest.fixture
def mock_async_session_local(mock_session, monkeypatch):
    """Mock AsyncSessionLocal to return a mock session context manager."""
    mock_factory = MagicMock()
    mock_factory.return_value.__aenter__.return_value = mock_session

    # Patch in all modules that open their own sessions
    targets = [
        "app.core.scheduler.AsyncSessionLocal",
        "app.api.admin.AsyncSessionLocal",
    ]
    for target in targets:
        try:
            monkeypatch.setattr(target, mock_factory)
        except (AttributeError, ImportError):
            pass

    return mock_factory


@pytest.fixture(autouse=True)
def auto_mock_db(mock_async_session_local):
    """Automatically use mock_async_session_local for all tests."""
    return mock_async_session_local


@pytest.fixture
def mock_scheduler(monkeypatch):
    """Mock the global scheduler object in app.core.scheduler"""
    scheduler_mock = MagicMock()
    scheduler_mock.add_job = MagicMock()
    scheduler_mock.running = False
    monkeypatch.setattr("app.core.scheduler.scheduler", scheduler_mock)
    return scheduler_mock


@pytest.fixture
def notifier():
    """Records notifications instead of writing them."""
    dispatcher = MagicMock()
    dispatcher.notify = AsyncMock(return_value=True)
    dispatcher.notify_many = AsyncMock(return_value=0)
    return dispatcher


# ========================
# Real database (service tests)
# ========================

@pytest.fixture
async def test_engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dinedate.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(session):
    """Factory: a user with a funded wallet."""
    async def _make(balance=500_000, tier=VipTier.FREE, referred_by=None, name=None, escrow=0):
        user = User(
            id=uuid.uuid4(),
            name=name or "Member",
            vip_tier=tier,
            referred_by=referred_by,
            avatar_url="https://cdn.example.com/real.jpg",
            public_avatar_url="https://cdn.example.com/public.png",
        )
        session.add(user)
        await session.flush()
        session.add(WalletAccount(user_id=user.id, balance=balance, escrow=escrow))
        await session.commit()
        return user
    return _make


@pytest.fixture
def quote():
    return PricingQuote(
        creator_charge=100_000,
        applicant_charge=100_000,
        restaurant_payout=170_000,
        combo_price=200_000,
    )


@pytest.fixture
def order_service(session, notifier):
    return DateOrderService(session, notifier=notifier)


@pytest.fixture
def create_order(order_service, quote):
    """Factory: an active order for `creator` taking place in `hours` from now."""
    async def _create(creator, hours=48, **kwargs):
        kwargs.setdefault("quote", quote)
        return await order_service.create_order(
            creator_id=creator.id,
            restaurant_id=uuid.uuid4(),
            combo_id=uuid.uuid4(),
            date_time=utcnow() + timedelta(hours=hours),
            **kwargs,
        )
    return _create


@pytest.fixture
def matched_order(order_service, create_order):
    """Factory: an order created by `creator` and matched with `applicant`."""
    async def _match(creator, applicant, **kwargs):
        order = await create_order(creator, **kwargs)
        application = await order_service.applications.apply(order.id, applicant.id, "Hi!")
        return await order_service.accept_application(order.id, application.id, creator.id)
    return _match


@pytest.fixture
def move_date(session):
    """Shift an order's date (and match window) relative to now, bypassing validation."""
    async def _move(order_id, hours):
        when = utcnow() + timedelta(hours=hours)
        await session.execute(
            update(DateOrder)
            .where(DateOrder.id == order_id)
            .values(date_time=when, expires_at=when)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return when
    return _move


@pytest.fixture
def wallet_of(session):
    """Fresh read of a user's wallet (ledger updates bypass the identity map)."""
    async def _get(user_id):
        return await session.get(WalletAccount, user_id, populate_existing=True)
    return _get
