import os

# settings are read at import time, keep the suite away from postgres/redis
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import storefront.data.models  # noqa: F401
from storefront.data.database import Base
from storefront.data.models import UserModel
from storefront.domain.enums import Category, Currency
from storefront.domain.errors import ExternalServiceError, StateConflictError
from storefront.domain.schemas import AddressIn, ProductCreate
from storefront.services.currency_service import CurrencyService
from storefront.services.order_service import OrderService
from storefront.services.payment_clients import PolarClient, RazorpayClient
from storefront.services.payment_service import PaymentService
from storefront.services.product_service import ProductService
from storefront.services.token_store import MemoryTokenStore
from storefront.services.user_service import UserService


class FakeClock:
    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class FakeRateSource:
    """Stands in for ExchangeRateClient, rates keyed by (from, to)."""

    is_configured = True

    def __init__(self, rates=None):
        self.rates = {
            ("inr", "usd"): Decimal("0.012"),
            ("usd", "inr"): Decimal("83.33"),
        }
        if rates:
            self.rates.update(rates)
        self.fail = False
        self.rate_calls = 0
        self.convert_calls = 0

    def fetch_rate(self, from_currency, to_currency):
        self.rate_calls += 1
        if self.fail or (from_currency, to_currency) not in self.rates:
            raise ExternalServiceError("rate source down", code="EXCHANGE_RATE_FAILED")
        return self.rates[(from_currency, to_currency)]

    def fetch_converted_amount(self, amount, from_currency, to_currency):
        self.convert_calls += 1
        if self.fail or (from_currency, to_currency) not in self.rates:
            raise ExternalServiceError("rate source down", code="EXCHANGE_RATE_FAILED")
        return Decimal(amount) * self.rates[(from_currency, to_currency)]


class InMemoryLockService:
    def __init__(self):
        self.held = set()
        self.acquired = []

    @contextmanager
    def order_lock(self, order_id: int):
        if order_id in self.held:
            raise StateConflictError(f"Order {order_id} is being modified by another request")
        self.held.add(order_id)
        self.acquired.append(order_id)
        try:
            yield
        finally:
            self.held.discard(order_id)


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    def send_order_notification(self, user_id: int, order_id: int, total_amount: int, currency: str):
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.calls.append((user_id, order_id, total_amount, currency))


class FakeRazorpay(RazorpayClient):
    def __init__(self):
        super().__init__(
            key_id="rzp_test_key",
            key_secret="rzp_test_secret",
            webhook_secret="rzp_webhook_secret",
            base_url="http://razorpay.invalid/v1",
        )
        self.fail = False
        self.created = []

    def create_order(self, amount, currency, receipt, notes=None):
        if self.fail:
            raise ExternalServiceError("Razorpay order creation failed", code="RAZORPAY_ERROR")
        self.created.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        return {"id": f"order_rzp_{len(self.created)}", "amount": amount, "currency": currency.upper()}


class FakePolar(PolarClient):
    def __init__(self, clock=None):
        super().__init__(
            access_token="polar_test_token",
            webhook_secret="polar_webhook_secret",
            product_id="prod_123",
            base_url="http://polar.invalid/v1",
            clock=clock or (lambda: 1_700_000_000),
        )
        self.fail = False
        self.created = []

    def create_checkout(self, **kwargs):
        if self.fail:
            raise ExternalServiceError("Polar checkout creation failed", code="POLAR_ERROR")
        self.created.append(kwargs)
        n = len(self.created)
        return {
            "checkout_id": f"chk_{n}",
            "checkout_url": f"https://polar.test/checkout/chk_{n}",
            "status": "open",
        }


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_fks(dbapi_conn, _):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_source():
    return FakeRateSource()


@pytest.fixture
def currency_service(rate_source, clock):
    return CurrencyService(source=rate_source, clock=clock)


@pytest.fixture
def lock_service():
    return InMemoryLockService()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def token_store():
    return MemoryTokenStore()


@pytest.fixture
def razorpay():
    return FakeRazorpay()


@pytest.fixture
def polar():
    return FakePolar()


@pytest.fixture
def product_service(db, currency_service):
    return ProductService(db, currency_service)


@pytest.fixture
def order_service(db, currency_service, lock_service, notifier):
    return OrderService(db, currency_service, lock_service=lock_service, notifier=notifier)


@pytest.fixture
def user_service(db, token_store):
    return UserService(db, token_store=token_store)


@pytest.fixture
def payment_service(db, razorpay, polar):
    return PaymentService(db, razorpay=razorpay, polar=polar)


@pytest.fixture
def user(db):
    u = UserModel(name="Asha", email="asha@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def make_product(product_service):
    counter = {"n": 0}

    def _make(amount=12900, currency=Currency.INR, name=None, category=Category.ELECTRONICS):
        counter["n"] += 1
        return product_service.create_product(
            ProductCreate(
                name=name or f"Product {counter['n']}",
                description="test product",
                category=category,
                amount=amount,
                currency=currency,
            )
        )

    return _make


@pytest.fixture
def address():
    return AddressIn(
        street_address1="12 MG Road",
        city="Bengaluru",
        state="KA",
        postal_code="560001",
        country="IN",
    )
