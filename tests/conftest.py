"""
Pytest configuration and fixtures for testing
"""
import hashlib
import hmac
import json
import os
import time

os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config.settings import Settings, get_settings
from database import Base, get_db
from dependencies import get_email_service, get_payment_gateway
from services.email_service import SENT, EmailResult, EmailService
from services.payment_gateway import CheckoutSession, PaymentGateway

get_settings.cache_clear()

# In-memory SQLite shared by every session of a test through a single connection
TEST_DATABASE_URL = "sqlite+aiosqlite://"

WEBHOOK_SECRET = "whsec_test_secret"

PRICES = {
    "STRIPE_PRICE_BASIC_MONTHLY": "price_basic_m",
    "STRIPE_PRICE_BASIC_YEARLY": "price_basic_y",
    "STRIPE_PRICE_ADVANCED_MONTHLY": "price_adv_m",
    "STRIPE_PRICE_ADVANCED_YEARLY": "price_adv_y",
    "STRIPE_PRICE_ONE_TIME": "price_once",
}


def make_settings(**overrides) -> Settings:
    values = {
        "STRIPE_SECRET_KEY": "sk_test_123",
        "STRIPE_PUBLISHABLE_KEY": "pk_test_123",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "RESEND_API_KEY": "re_test_123",
        "JWT_SECRET_KEY": os.environ["JWT_SECRET_KEY"],
        "APP_URL": "https://app.test",
        "DATABASE_URL": TEST_DATABASE_URL,
        **PRICES,
    }
    values.update(overrides)
    return Settings(**values)


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a stripe-signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    })


class FakeGateway(PaymentGateway):
    """Real signature verification; Stripe API calls are recorded instead of sent."""

    def __init__(self, secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET):
        super().__init__(secret_key, webhook_secret)
        self.sessions = []
        self.customers = {}
        self.error = None

    async def create_checkout_session(self, params):
        if self.error is not None:
            raise self.error
        self.sessions.append(params)
        number = len(self.sessions)
        return CheckoutSession(id=f"cs_test_{number}", url=f"https://checkout.stripe.com/c/cs_test_{number}")

    async def get_customer_email(self, customer_id):
        return self.customers.get(customer_id)


class RecordingMailer(EmailService):
    """Records every send and reports it as delivered."""

    def __init__(self):
        super().__init__("re_test_123", "YieldCanary HQ <hello@yieldcanary.com>")
        self.sent = []

    async def send(self, to, template_id, data=None):
        self.sent.append((to, template_id, dict(data or {})))
        return EmailResult(SENT, template_id, to, message_id=f"msg_{len(self.sent)}")


@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        # Import models to ensure they're registered with Base
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """Isolated session for repository and service tests."""
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
async def client(session_factory, settings, gateway, mailer):
    """HTTP client against the app with the store, Stripe and Resend swapped out."""
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_email_service] = lambda: mailer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()
