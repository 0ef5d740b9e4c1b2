import json
import os
from datetime import datetime, timedelta

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

import app.models  # noqa: E402,F401
from app.config import settings  # noqa: E402
from app.constants import order_status  # noqa: E402
from app.database import get_session  # noqa: E402
from app.dependencies.services import get_object_storage, get_payment_adapters  # noqa: E402
from app.main import app as api  # noqa: E402
from app.models.discount import Discount, DiscountType  # noqa: E402
from app.models.order import Order  # noqa: E402
from app.models.plugin import Plugin  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.payments.base import (  # noqa: E402
    ConfirmationReceipt,
    PaymentAdapter,
    PaymentSession,
    ReceiptStatus,
)
from app.services.storage import ObjectNotFound  # noqa: E402


# ---------------------------------------------------------
# Fakes
# ---------------------------------------------------------

class FakeAdapter(PaymentAdapter):
    """In-memory provider. ``outcomes`` maps a session id to a status or an exception."""

    def __init__(self, provider: str):
        self.provider = provider
        self.sessions = {}
        self.outcomes = {}
        self.create_error = None

    def create_payment_session(self, amount, items, coupon=None, metadata=None):
        if self.create_error:
            raise self.create_error

        session_id = f"{self.provider}_sess_{len(self.sessions) + 1}"
        self.sessions[session_id] = amount
        return PaymentSession(
            provider=self.provider,
            session_id=session_id,
            amount=amount,
            currency="USD",
            client_secret=f"{session_id}_secret",
        )

    def confirm(self, session_id):
        outcome = self.outcomes.get(session_id, ReceiptStatus.succeeded)
        if isinstance(outcome, Exception):
            raise outcome

        return ConfirmationReceipt(
            provider=self.provider,
            session_id=session_id,
            status=outcome,
            transaction_id=f"txn_{session_id}",
            amount=self.sessions.get(session_id),
            currency="USD",
        )

    def parse_webhook(self, payload, headers):
        if headers.get("x-test-signature") != "valid":
            raise ValueError("Invalid webhook signature")
        body = json.loads(payload)
        if not body:
            return None
        return ConfirmationReceipt(provider=self.provider, **body)


class FakeStorage:
    def __init__(self):
        self.objects = {}

    def open(self, key):
        if key not in self.objects:
            raise ObjectNotFound(key)
        data = self.objects[key]
        return iter([data[:4], data[4:]])


# ---------------------------------------------------------
# Database
# ---------------------------------------------------------

@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


# ---------------------------------------------------------
# App
# ---------------------------------------------------------

@pytest.fixture
def adapters():
    return {"stripe": FakeAdapter("stripe"), "paypal": FakeAdapter("paypal")}


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture(name="client")
def client_fixture(session, adapters, storage):
    api.dependency_overrides[get_session] = lambda: session
    api.dependency_overrides[get_payment_adapters] = lambda: adapters
    api.dependency_overrides[get_object_storage] = lambda: storage

    yield TestClient(api)

    api.dependency_overrides.clear()


def make_token(user_id: int, email: str = "buyer@example.com", minutes: int = 30) -> str:
    payload = {
        "sub": str(user_id),
        "email": email,
        "exp": datetime.utcnow() + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


@pytest.fixture
def user(session):
    user = User(id=1, email="buyer@example.com", full_name="Test Buyer")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {make_token(user.id, user.email)}"}


# ---------------------------------------------------------
# Factories
# ---------------------------------------------------------

@pytest.fixture
def make_plugin(session):
    def _make(title="Reverb Pro", price=49.99, **kwargs):
        plugin = Plugin(
            title=title,
            slug=title.lower().replace(" ", "-"),
            price=price,
            category=kwargs.pop("category", "effects"),
            file_path=kwargs.pop("file_path", f"plugins/{title.lower().replace(' ', '_')}.zip"),
            **kwargs,
        )
        session.add(plugin)
        session.commit()
        session.refresh(plugin)
        return plugin

    return _make


@pytest.fixture
def make_coupon(session):
    def _make(code="SAVE20", discount_value=20.0, discount_type=DiscountType.percentage, **kwargs):
        coupon = Discount(
            code=code,
            name=kwargs.pop("name", f"{code} promo"),
            discount_type=discount_type,
            discount_value=discount_value,
            valid_from=kwargs.pop("valid_from", datetime.utcnow() - timedelta(days=1)),
            **kwargs,
        )
        session.add(coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    return _make


@pytest.fixture
def make_order(session, user):
    def _make(plugins, provider="stripe", session_id="pi_test_1", status=order_status.PENDING,
              coupon=None, discount=0.0, cart_owner_key=None, **kwargs):
        subtotal = round(sum(p.price for p in plugins), 2)
        applied = None
        if coupon:
            applied = {
                "discount_id": coupon.id,
                "code": coupon.code,
                "name": coupon.name,
                "discount_amount": discount,
            }

        order = Order(
            customer_id=user.id,
            items=[
                {"plugin_id": p.id, "title": p.title, "price": p.price, "category": p.category}
                for p in plugins
            ],
            subtotal_amount=subtotal,
            discount_amount=discount,
            total_amount=round(subtotal - discount, 2),
            status=status,
            payment_provider=provider,
            payment_session_id=session_id,
            customer_info={"email": user.email, "applied_coupon": applied},
            cart_owner_key=cart_owner_key,
            paid_at=datetime.utcnow() if status == order_status.PAID else None,
            **kwargs,
        )
        session.add(order)
        session.commit()
        session.refresh(order)
        return order

    return _make
