"""Shared test fixtures."""

import hashlib
import hmac
import time
import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from checkout_engine.catalog.methods import MethodCatalog
from checkout_engine.config import Settings
from checkout_engine.database import get_session
from checkout_engine.engine.validator import PaymentValidator
from checkout_engine.main import create_app
from checkout_engine.models.order import Base, Order
from checkout_engine.notifications import Notifier
from checkout_engine.providers.mock_gateway import MockCardGateway
from checkout_engine.services import build_services

JAZZCASH_SALT = "jc-integrity-salt"
EASYPAISA_SECRET = "ep-secret-key"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"


def stripe_signature(body, secret=STRIPE_WEBHOOK_SECRET, timestamp=None):
    """A Stripe-Signature header value for ``body``, as Stripe would send it."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.sent = []
        self._fail = fail

    async def send(self, event, order_number, context):
        if self._fail:
            raise RuntimeError("messaging service down")
        self.sent.append((event, order_number, context))


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        site_url="https://shop.example.pk",
        jazzcash_password="jc-password",
        jazzcash_integrity_salt=JAZZCASH_SALT,
        easypaisa_password="ep-password",
        easypaisa_secret_key=EASYPAISA_SECRET,
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
    )


@pytest.fixture
def catalog(settings):
    return MethodCatalog(settings)


@pytest.fixture
def validator(settings, catalog):
    return PaymentValidator(settings, catalog)


@pytest.fixture
def card_gateway():
    return MockCardGateway(failure_rate=0.0, latency_ms=0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A fresh file-backed database per test; several sessions can share it."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'checkout.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_order(db_session):
    """Insert an order and return it."""

    async def _make(**overrides) -> Order:
        values = {
            "id": str(uuid.uuid4()),
            "order_number": f"ORD-{uuid.uuid4().hex[:8].upper()}",
            "user_id": "user-1",
            "status": "pending",
            "payment_status": "pending",
            "total_amount": Decimal("2000"),
        }
        values.update(overrides)
        order = Order(**values)
        db_session.add(order)
        await db_session.commit()
        return order

    return _make


@pytest_asyncio.fixture
async def client(settings, card_gateway, notifier, session_factory):
    services = build_services(settings, card_gateway=card_gateway, notifier=notifier)
    app = create_app(settings, services=services)

    async def _session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
