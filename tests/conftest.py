"""
Pytest configuration and fixtures.
"""
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Iterable, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from order_settlement.config import Settings
from order_settlement.core.orders import RequestContext
from order_settlement.database.connection import build_engine, create_session_factory, init_db
from order_settlement.database.models import Order, PriceTier, Product
from order_settlement.domain.statuses import OrderStatus, PaymentStatus

TEST_SECRET = "comgate-test-secret"


def pytest_configure(config: Any) -> None:
    config.addinivalue_line("markers", "unit: fast tests without I/O")
    config.addinivalue_line("markers", "race: concurrent access tests")
    config.addinivalue_line("markers", "integration: HTTP API tests")


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        comgate_base_url="https://payments.comgate.test/v2.0",
        comgate_merchant_id="123456",
        comgate_secret=TEST_SECRET,
        comgate_test_mode=True,
        verify_webhook_signatures=True,
        database_url="sqlite+aiosqlite:///:memory:",
        app_name="order-settlement-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, Any]:
    """File-backed SQLite so that concurrent sessions get separate connections."""
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, Any]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_product(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[int]]:
    """Persist a product (with optional price tiers) and return its id."""

    async def _make(
        name: str = "Gel pen",
        price_cents: int = 25000,
        quantity: int = 100,
        currency: str = "CZK",
        available: bool = True,
        low_stock_threshold: int = 10,
        tiers: Iterable[Dict[str, Any]] = (),
    ) -> int:
        async with session_factory() as session:
            product = Product(
                name=name,
                price_cents=price_cents,
                quantity=quantity,
                currency=currency,
                available=available,
                low_stock_threshold=low_stock_threshold,
                price_tiers=[PriceTier(**tier) for tier in tiers],
            )
            session.add(product)
            await session.commit()
            return product.id

    return _make


@pytest.fixture
def stock_of(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[int], Awaitable[int]]:
    """Read the committed stock level of a product."""

    async def _stock(product_id: int) -> int:
        async with session_factory() as session:
            product = await session.get(Product, product_id)
            return product.quantity

    return _stock


@pytest.fixture
def load_order(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[int], Awaitable[Optional[Order]]]:
    """Read an order as committed, from a fresh session."""

    async def _load(order_id: int) -> Optional[Order]:
        async with session_factory() as session:
            return await session.get(Order, order_id)

    return _load


@pytest.fixture
def count_orders(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[], Awaitable[int]]:
    async def _count() -> int:
        async with session_factory() as session:
            result = await session.execute(select(Order))
            return len(result.scalars().all())

    return _count


@pytest.fixture
def make_order(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[int]]:
    """Persist an order directly, bypassing stock reservation."""

    async def _make(
        user_id: int = 1,
        total_cents: int = 50000,
        currency: str = "CZK",
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.NO_PAYMENT,
        payment_id: Optional[str] = None,
    ) -> int:
        async with session_factory() as session:
            order = Order(
                user_id=user_id,
                total_cents=total_cents,
                currency=currency,
                status=status,
                payment_status=payment_status,
                payment_id=payment_id,
            )
            session.add(order)
            await session.commit()
            return order.id

    return _make


@pytest.fixture
def ctx() -> RequestContext:
    """Authenticated caller."""
    return RequestContext(user_id=1, email="jana.novakova@example.com", full_name="Jana Nováková")


@pytest.fixture
def other_ctx() -> RequestContext:
    return RequestContext(user_id=2, email="petr.svoboda@example.com")


@pytest.fixture
def bulk_tiers() -> list[Dict[str, Any]]:
    """12-119 pieces at 220 CZK, 120+ at 200 CZK (base price 250 CZK)."""
    return [
        {"tier_name": "1bal", "min_quantity": 12, "max_quantity": 119, "price_cents": 22000, "priority": 10},
        {"tier_name": "10bal", "min_quantity": 120, "max_quantity": None, "price_cents": 20000, "priority": 20},
    ]
