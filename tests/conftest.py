"""Pytest configuration and fixtures for the fulfillment API test suite.

Provides:
- A throwaway SQLite database (aiosqlite) per test, tables created from metadata
- Fake Redis (fakeredis)
- Disabled rate limiting
- Configured Razorpay secrets
- Order factory and gateway signing helpers
- Mocked carrier client and notification senders
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import settings
from app.core.database import get_async_session
from app.core.deps import get_db, get_redis
from app.core.rate_limit import limiter
from app.integrations.notifications.result import ChannelResult
from app.integrations.razorpay.signature import compute_payment_signature
from app.main import app
from app.models.base import Base
from app.models.order import Order, OrderStatus
from app.services.fulfillment_service import FulfillmentService
from app.services.notification_service import NotificationService
from app.services.order_store import OrderStore
from app.services.shipment_provisioner import ShipmentProvisioner

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_KEY_SECRET = "rzp_test_key_secret"
TEST_WEBHOOK_SECRET = "rzp_test_webhook_secret"
TEST_ADMIN_EMAIL = "ops@example.com"

SAMPLE_ADDRESS: dict[str, Any] = {
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}

SAMPLE_ITEMS: list[dict[str, Any]] = [
    {"id": "bar-choc", "name": "Protein Bar", "price": 120.0, "quantity": 2},
    {"id": "mix-trail", "name": "Trail Mix", "price": 210.0, "quantity": 1},
]

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _gateway_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    """Configure gateway secrets and blank out every outbound credential."""
    monkeypatch.setattr(settings, "razorpay_key_secret", TEST_KEY_SECRET)
    monkeypatch.setattr(settings, "razorpay_webhook_secret", TEST_WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "admin_email", TEST_ADMIN_EMAIL)
    monkeypatch.setattr(settings, "resend_api_key", "")
    monkeypatch.setattr(settings, "twilio_account_sid", "")
    monkeypatch.setattr(settings, "shiprocket_email", "")


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a fresh SQLite file with all tables created.

    Uses NullPool so each session gets its own connection, which lets tests
    run two pipelines against the same database concurrently.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'fulfillment.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup and assertions."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with the DB and Redis dependencies overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_redis] = _override_redis

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


@pytest.fixture
def order_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Order instances in the test database."""
    counter = {"n": 0}

    async def _create(
        *,
        gateway_order_ref: str | None = None,
        status: OrderStatus = OrderStatus.PENDING,
        payment_ref: str | None = None,
        customer_email: str = "asha@example.com",
        subtotal: float = 450.0,
        shipping: float = 50.0,
        total: float = 500.0,
        address: dict[str, Any] | None = None,
        items: list[dict[str, Any]] | None = None,
        tracking_id: str | None = None,
        tracking_url: str | None = None,
        courier_name: str | None = None,
        shipment_error: str | None = None,
    ) -> Order:
        counter["n"] += 1
        order = Order(
            gateway_order_ref=gateway_order_ref or f"order_test_{counter['n']:03d}",
            status=status,
            payment_ref=payment_ref,
            customer_email=customer_email,
            subtotal=subtotal,
            shipping=shipping,
            total=total,
            address=address if address is not None else dict(SAMPLE_ADDRESS),
            items=items if items is not None else list(SAMPLE_ITEMS),
            tracking_id=tracking_id,
            tracking_url=tracking_url,
            courier_name=courier_name,
            shipment_error=shipment_error,
        )
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order

    return _create


# ---------------------------------------------------------------------------
# Gateway helpers
# ---------------------------------------------------------------------------


def sign_payment(gateway_order_ref: str, payment_ref: str) -> str:
    """Signature Razorpay Checkout would return for this payment."""
    return compute_payment_signature(gateway_order_ref, payment_ref, TEST_KEY_SECRET)


# ---------------------------------------------------------------------------
# Carrier and notification mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_shiprocket() -> AsyncMock:
    """Carrier client that allocates AWB ``AWB123`` through the two-step flow."""
    carrier = AsyncMock()
    carrier.create_shipment.return_value = {"order_id": 9001, "shipment_id": 7001}
    carrier.generate_awb.return_value = {
        "awb_assign_status": 1,
        "response": {"data": {"awb_code": "AWB123", "courier_name": "Delhivery"}},
    }
    carrier.schedule_pickup.return_value = {"pickup_status": 1}
    return carrier


@pytest.fixture
def mock_notifier() -> AsyncMock:
    """Notification service recording every dispatch."""
    notifier = AsyncMock(spec=NotificationService)
    notifier.dispatch.return_value = [ChannelResult.sent("customer_email", "email_1")]
    return notifier


@pytest_asyncio.fixture
async def fulfillment_service_factory(
    session_factory: async_sessionmaker[AsyncSession],
    mock_shiprocket: AsyncMock,
    mock_notifier: AsyncMock,
) -> AsyncGenerator[Callable[..., Any], None]:
    """Build a FulfillmentService on its own session, like one request would."""
    sessions: list[AsyncSession] = []

    def _create(
        *,
        carrier: AsyncMock | None = None,
        notifier: Any = None,
        payment_secret: str | None = None,
    ) -> FulfillmentService:
        session = session_factory()
        sessions.append(session)
        return FulfillmentService(
            OrderStore(session),
            ShipmentProvisioner(carrier or mock_shiprocket),
            notifier or mock_notifier,
            payment_secret=payment_secret,
        )

    yield _create

    for session in sessions:
        await session.close()


@pytest_asyncio.fixture
async def fulfillment_service(
    fulfillment_service_factory: Callable[..., Any],
) -> FulfillmentService:
    """A FulfillmentService wired to the mocked carrier and notifier."""
    service: FulfillmentService = fulfillment_service_factory()
    return service
