"""Fixtures compartidos: base de datos en memoria, cliente de Razorpay simulado y datos de ejemplo."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from razorpay_bridge.core.config import Settings
from razorpay_bridge.db.models import Base, Customer, Order, OrderTransaction, Subscription
from razorpay_bridge.db.razorpay_client import RazorpayClient
from razorpay_bridge.db.repositories import Repositories
from razorpay_bridge.domain.status import OrderType

TEST_KEY_ID = "rzp_test_1234567890"
TEST_KEY_SECRET = "test_key_secret"
TEST_WEBHOOK_SECRET = "test_webhook_secret"

CLIENT_METHODS = [
    "create_order",
    "get_payment",
    "capture_payment",
    "create_payment_link",
    "create_refund",
    "create_customer",
    "get_plan",
    "create_plan",
    "create_subscription",
    "get_subscription",
    "cancel_subscription",
    "pause_subscription",
    "resume_subscription",
    "list_invoices",
    "get_update_card_url",
]


@pytest.fixture
def settings():
    """Configuración de test con llaves del modo test."""
    return Settings(
        ENVIRONMENT="testing",
        DEBUG=True,
        RAZORPAY_PAYMENT_MODE="test",
        RAZORPAY_TEST_KEY_ID=TEST_KEY_ID,
        RAZORPAY_TEST_KEY_SECRET=TEST_KEY_SECRET,
        RAZORPAY_TEST_WEBHOOK_SECRET=TEST_WEBHOOK_SECRET,
        RAZORPAY_CHECKOUT_TYPE="modal",
        RECEIPT_PAGE_URL="https://shop.test/receipt",
        STORE_NAME="Test Store",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
    )


@pytest.fixture
def client():
    """Cliente de Razorpay con todas las operaciones simuladas."""
    mock_client = MagicMock(spec=RazorpayClient)
    for method in CLIENT_METHODS:
        setattr(mock_client, method, AsyncMock())
    return mock_client


@pytest_asyncio.fixture
async def session():
    """Sesión sobre una base SQLite en memoria con todas las tablas."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as db_session:
        yield db_session

    await engine.dispose()


@pytest.fixture
def repos(session):
    return Repositories(session)


@pytest_asyncio.fixture
async def customer(repos):
    return await repos.customers.add(
        Customer(first_name="Asha", last_name="Rao", email="asha@example.com", phone="+919999999999")
    )


@pytest_asyncio.fixture
async def order(repos, customer):
    return await repos.orders.add(
        Order(
            type=OrderType.PAYMENT,
            customer_id=customer.id,
            total_amount=50000,
            currency="INR",
            items=["T-Shirt", "Mug"],
        )
    )


@pytest_asyncio.fixture
async def transaction(repos, order):
    return await repos.transactions.add(
        OrderTransaction(order_id=order.id, total=50000, currency="INR", meta={})
    )


@pytest_asyncio.fixture
async def subscription_order(repos, customer):
    return await repos.orders.add(
        Order(
            type=OrderType.SUBSCRIPTION,
            customer_id=customer.id,
            total_amount=100000,
            currency="INR",
            items=["Pro Plan"],
        )
    )


@pytest_asyncio.fixture
async def subscription(repos, subscription_order, customer):
    return await repos.subscriptions.add(
        Subscription(
            parent_order_id=subscription_order.id,
            customer_id=customer.id,
            item_name="Pro Plan",
            variation_id=7,
            recurring_total=100000,
            billing_interval="monthly",
            bill_times=12,
            meta={},
        )
    )


@pytest_asyncio.fixture
async def subscription_transaction(repos, subscription_order, subscription):
    return await repos.transactions.add(
        OrderTransaction(
            order_id=subscription_order.id,
            subscription_id=subscription.id,
            total=100000,
            currency="INR",
            meta={},
        )
    )
