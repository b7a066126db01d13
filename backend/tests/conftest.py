"""Shared test configuration and fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite) with the full
schema, and a session bound to one outer transaction that is rolled back at
the end. Set ``TEST_DATABASE_URL`` to run against PostgreSQL instead.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-the-billing-engine-suite")

import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402
from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

import billing_engine.models  # noqa: E402,F401
from billing_engine.api.deps import get_billing_scheduler  # noqa: E402
from billing_engine.billing.scheduler import BillingScheduler  # noqa: E402
from billing_engine.database import Base, build_engine, get_db  # noqa: E402
from billing_engine.main import app  # noqa: E402
from billing_engine.models.enums import PlanTier  # noqa: E402
from billing_engine.models.plan import Plan  # noqa: E402
from billing_engine.models.subscription import Subscription  # noqa: E402
from billing_engine.models.user import User  # noqa: E402
from billing_engine.services import plan_service, subscription_service, user_service  # noqa: E402

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

START = date(2025, 1, 1)


# ---------------------------------------------------------------------------
# Per-test engine and transactional session
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    engine = build_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session whose commits only release savepoints of an outer transaction."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(
            bind=connection,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest_asyncio.fixture
async def scheduler(test_engine) -> BillingScheduler:
    """A scheduler private to the test's event loop."""
    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    return BillingScheduler(factory, interval_seconds=3600, timeout_seconds=30)


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, scheduler: BillingScheduler) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB session and scheduler."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_scheduler] = lambda: scheduler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience fixtures: users, plans, subscriptions
# ---------------------------------------------------------------------------


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@test.com"


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Active user without a country, taxed at the default 21%."""
    return await user_service.create_user(
        db_session, email=unique_email(), password="testpass123", name="Test User"
    )


@pytest_asyncio.fixture
async def basic_plan(db_session: AsyncSession) -> Plan:
    """10.00 per 30-day cycle, no trial."""
    return await plan_service.create_plan(
        db_session, name="Basic", tier=PlanTier.BASIC, monthly_price=Decimal("10.00"), user_limit=5
    )


@pytest_asyncio.fixture
async def premium_plan(db_session: AsyncSession) -> Plan:
    """30.00 per 30-day cycle, no trial."""
    return await plan_service.create_plan(
        db_session, name="Premium", tier=PlanTier.PREMIUM, monthly_price=Decimal("30.00"), user_limit=25
    )


@pytest_asyncio.fixture
async def trial_plan(db_session: AsyncSession) -> Plan:
    """10.00 per 30-day cycle with a 14-day trial."""
    return await plan_service.create_plan(
        db_session,
        name="Starter",
        tier=PlanTier.BASIC,
        monthly_price=Decimal("10.00"),
        trial_days=14,
    )


@pytest_asyncio.fixture
async def active_subscription(db_session: AsyncSession, test_user: User, basic_plan: Plan) -> Subscription:
    """ACTIVA on the basic plan since 2025-01-01, next billing 2025-01-31."""
    return await subscription_service.create_subscription(
        db_session, test_user.id, basic_plan.id, start_date=START
    )


@pytest_asyncio.fixture
async def trial_subscription(db_session: AsyncSession, test_user: User, trial_plan: Plan) -> Subscription:
    """TRIAL since 2025-01-01, first billing 2025-01-15."""
    return await subscription_service.create_subscription(
        db_session, test_user.id, trial_plan.id, start_date=START
    )
