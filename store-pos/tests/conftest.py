"""Shared pytest fixtures for checkout tests.

SQL-backed tests run against an in-memory SQLite database shared by every
session of a test through a ``StaticPool``.
"""

import os

os.environ.setdefault("DB_URL", "sqlite+aiosqlite://")

from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pos.db.base import Base
from pos.db.models.customers import Customer
from pos.db.models.loyalty_ledger import LoyaltyLedgerEntry  # noqa: F401
from pos.db.models.products import Product
from pos.db.models.transaction_items import TransactionItem  # noqa: F401
from pos.db.models.transactions import Transaction  # noqa: F401
from pos.domain.billing.engine import CartLine
from pos.domain.billing.tax import tax_treatment


def make_line(
    unit_price: str,
    quantity: int = 1,
    rate: str = "18",
    inclusive: bool = True,
    product_id: UUID = None,
    name: str = "Item",
) -> CartLine:
    """Build a cart line from string amounts."""
    return CartLine(
        product_id=product_id or uuid4(),
        name=name,
        unit_price=Decimal(unit_price),
        quantity=quantity,
        tax=tax_treatment(Decimal(rate), inclusive),
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def catalog(session_factory):
    """Two products (GST inclusive soap, GST exclusive rice) and a customer."""
    soap = Product(
        id=uuid4(),
        name="Neem Soap",
        price=Decimal("100.00"),
        gst_rate=Decimal("18.00"),
        price_includes_gst=True,
        stock_quantity=10,
        min_stock_level=2,
    )
    rice = Product(
        id=uuid4(),
        name="Basmati Rice 1kg",
        price=Decimal("250.00"),
        gst_rate=Decimal("5.00"),
        price_includes_gst=False,
        stock_quantity=3,
        min_stock_level=1,
    )
    customer = Customer(
        id=uuid4(),
        name="Asha Rao",
        phone="9876543210",
        loyalty_points=250,
        total_spent=Decimal("0.00"),
    )
    async with session_factory() as session:
        session.add_all([soap, rice, customer])
        await session.commit()
    return {"soap": soap, "rice": rice, "customer": customer}
