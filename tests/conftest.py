"""
Shared fixtures for the rental lifecycle tests.

Each test gets a fresh in-memory SQLite database, a seeded set of users,
franchises and products, and a gateway double that signs callbacks with the
same HMAC scheme Razorpay uses.
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-jwt-signing"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["SCHEDULER_ENABLED"] = "false"

import hashlib
import hmac
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from aquarent.api.deps import get_payment_gateway
from aquarent.core.permissions import Actor
from aquarent.core.security import create_access_token
from aquarent.database import Base, get_db
from aquarent.main import app
from aquarent.models import (
    User, UserRole, Franchise, Product, OrderStatus, Subscription,
)
from aquarent.schemas.order import OrderCreate
from aquarent.services.order_service import OrderService
from aquarent.services.payment_gateway import RazorpayGateway, to_paise


class FakeGateway(RazorpayGateway):
    """Razorpay double: gateway orders are minted locally, signatures are real HMACs."""

    def __init__(self):
        super().__init__(key_id="rzp_test_key", key_secret="rzp_test_secret")
        self.orders = []

    def create_order(self, amount, receipt, notes, currency=None):
        gateway_order = {
            "id": f"order_test_{len(self.orders) + 1}",
            "amount": to_paise(amount),
            "currency": currency or "INR",
            "receipt": receipt,
            "notes": notes,
        }
        self.orders.append(gateway_order)
        return gateway_order

    def sign(self, razorpay_order_id: str, razorpay_payment_id: str) -> str:
        payload = f"{razorpay_order_id}|{razorpay_payment_id}"
        return hmac.new(self.key_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


# ==================== DATABASE ====================

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fetch(session_factory):
    """Read a row through a fresh session, bypassing the test session's identity map."""
    async def _fetch(model, row_id):
        async with session_factory() as session:
            return await session.get(model, row_id)
    return _fetch


@pytest.fixture
def count(session_factory):
    async def _count(model, *criteria):
        async with session_factory() as session:
            return await session.scalar(select(func.count()).select_from(model).where(*criteria))
    return _count


# ==================== SEED DATA ====================

@pytest_asyncio.fixture
async def world(session_factory):
    """
    Two franchises with one owner and one agent each, two customers,
    an admin and a rentable product priced 50/month + 20 deposit + 10 install.

    Rows are committed from their own session so the objects stay readable
    after a service call rolls the test session back.
    """
    async with session_factory() as session:
        admin = User(name="Asha Admin", email="admin@aquarent.test", role=UserRole.ADMIN.value)
        owner_a = User(name="Omar Owner", email="owner.a@aquarent.test", role=UserRole.FRANCHISE_OWNER.value)
        owner_b = User(name="Olga Owner", email="owner.b@aquarent.test", role=UserRole.FRANCHISE_OWNER.value)
        customer = User(
            name="Chitra Customer", email="chitra@example.test", role=UserRole.CUSTOMER.value,
            address="12 Lake Road", city="Pune",
        )
        other_customer = User(name="Dev Customer", email="dev@example.test", role=UserRole.CUSTOMER.value)
        session.add_all([admin, owner_a, owner_b, customer, other_customer])
        await session.flush()

        franchise_a = Franchise(owner_id=owner_a.id, name="Pune North", city="Pune")
        franchise_b = Franchise(owner_id=owner_b.id, name="Mumbai West", city="Mumbai")
        session.add_all([franchise_a, franchise_b])
        await session.flush()

        agent_a = User(
            name="Arjun Agent", email="agent.a@aquarent.test",
            role=UserRole.SERVICE_AGENT.value, franchise_id=franchise_a.id,
        )
        agent_b = User(
            name="Bela Agent", email="agent.b@aquarent.test",
            role=UserRole.SERVICE_AGENT.value, franchise_id=franchise_b.id,
        )
        product = Product(
            name="AquaPure RO 7L",
            monthly_rent=Decimal("50.00"),
            security_deposit=Decimal("20.00"),
            installation_fee=Decimal("10.00"),
            available_stock=10,
            franchise_id=franchise_a.id,
        )
        retired_product = Product(
            name="AquaPure UV (discontinued)",
            monthly_rent=Decimal("35.00"),
            is_active=False,
        )
        session.add_all([agent_a, agent_b, product, retired_product])
        await session.commit()

    users = dict(
        admin=admin, owner_a=owner_a, owner_b=owner_b, agent_a=agent_a, agent_b=agent_b,
        customer=customer, other_customer=other_customer,
    )
    return SimpleNamespace(
        franchise_a=franchise_a,
        franchise_b=franchise_b,
        product=product,
        retired_product=retired_product,
        actors=SimpleNamespace(**{name: Actor.from_user(user) for name, user in users.items()}),
        **users,
    )


def order_request(world, **overrides) -> OrderCreate:
    data = dict(
        product_id=world.product.id,
        franchise_id=world.franchise_a.id,
        shipping_address="12 Lake Road, Pune",
        rental_duration=12,
    )
    data.update(overrides)
    return OrderCreate(**data)


@pytest.fixture
def new_order(db, world):
    async def _new_order(**overrides):
        return await OrderService(db).create_order(world.actors.customer, order_request(world, **overrides))
    return _new_order


@pytest_asyncio.fixture
async def pending_order(db, new_order):
    """
    A freshly placed order and its pending initial payment.

    Detached from the test session, so a later rollback leaves them readable.
    """
    order, payment = await new_order()
    db.expunge_all()
    return order, payment


@pytest_asyncio.fixture
async def active_subscription(db, world, pending_order) -> Subscription:
    """Subscription created by approving ``pending_order``."""
    order, _ = pending_order
    await OrderService(db).update_status(order.id, world.actors.owner_a, OrderStatus.APPROVED)
    subscription = await db.scalar(select(Subscription).where(Subscription.order_id == order.id))
    db.expunge_all()
    return subscription


# ==================== GATEWAY / API ====================

@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_factory, gateway):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _headers

