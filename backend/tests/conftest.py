"""
Test fixtures for the EOD report backend tests.

Provides:
- File-backed SQLite database (aiosqlite) recreated for every test
- Session factory shared by services that open one session per query
- Async test client with dependency overrides
- Test data factories for orders and cancellations
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os
import tempfile

os.environ.setdefault("ADMIN_SECRET", "test_admin_secret")
# DB settings required by Settings validation (tests use SQLite, these are not actually used)
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
# Development mode for tests (disables ALLOWED_ORIGINS requirement)
os.environ.setdefault("ENVIRONMENT", "development")
# Hourly buckets and presets are computed in UTC so assertions do not depend on the host
os.environ.setdefault("REPORT_TIMEZONE", "UTC")
os.environ.setdefault("EOD_RATE_LIMIT", "1000/minute")

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import NullPool

from backend.app.core.base import Base
from backend.app.main import app
from backend.app.api.deps import get_session, get_session_factory, get_read_session_factory
from backend.app.models.order import Order, CanceledOrder
from backend.app.models.eod_report import EODReport  # noqa: F401 - register with Base.metadata
from backend.app.models.daily_serial import DailySerialCounter  # noqa: F401


ADMIN_HEADERS = {"X-Admin-Token": "test_admin_secret"}

# Report fetches run on two sessions at once, so the database must be a real
# file that several connections can open.
TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"eod_reports_test_{os.getpid()}.db")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    poolclass=NullPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
async def test_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.
    Creates all tables before and drops after each test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(test_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the per-test database (tables already created)."""
    return TestSessionLocal


@pytest.fixture
async def client(test_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.
    Overrides the database session and session factories.
    """
    async def override_get_session():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal
    app.dependency_overrides[get_read_session_factory] = lambda: TestSessionLocal

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

_order_counter = {"value": 0}


def build_order(
    total_amount: str = "100.00",
    payment_method: str = "cash",
    created_at: Optional[datetime] = None,
    status: str = "completed",
    items: Optional[list] = None,
    delivery_platform: Optional[str] = None,
    cash_amount: Optional[str] = None,
    card_amount: Optional[str] = None,
    cash_received: Optional[str] = None,
    change_amount: Optional[str] = None,
    order_number: Optional[str] = None,
) -> Order:
    _order_counter["value"] += 1
    return Order(
        order_number=order_number or f"TEST-{_order_counter['value']:05d}",
        items=items if items is not None else [
            {"id": 1, "name": "Pizza", "type": "pizza", "quantity": 1,
             "unitPrice": float(total_amount), "totalPrice": float(total_amount)},
        ],
        total_amount=Decimal(total_amount),
        payment_method=payment_method,
        delivery_platform=delivery_platform,
        status=status,
        cash_amount=Decimal(cash_amount) if cash_amount is not None else None,
        card_amount=Decimal(card_amount) if card_amount is not None else None,
        cash_received=Decimal(cash_received) if cash_received is not None else None,
        change_amount=Decimal(change_amount) if change_amount is not None else None,
        created_at=created_at or utc(2024, 1, 15, 12),
        created_by="cashier",
    )


@pytest.fixture
async def create_order(test_session: AsyncSession):
    """Insert an order and commit; keyword arguments as for build_order."""
    async def _create(**kwargs) -> Order:
        order = build_order(**kwargs)
        test_session.add(order)
        await test_session.commit()
        return order
    return _create


@pytest.fixture
async def create_cancellation(test_session: AsyncSession):
    """Insert a canceled_orders row and commit."""
    async def _create(canceled_at: Optional[datetime] = None, original_order_id: str = "gone") -> CanceledOrder:
        canceled = CanceledOrder(
            original_order_id=original_order_id,
            canceled_at=canceled_at or utc(2024, 1, 15, 13),
            canceled_by="manager",
            reason="customer left",
            order_data={"orderNumber": "ORD-0099"},
        )
        test_session.add(canceled)
        await test_session.commit()
        return canceled
    return _create
