from decimal import Decimal
from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select, update

from pos.db.models.customers import Customer

async def get_customer_by_id(
    db: AsyncSession,
    customer_id: UUID
) -> Optional[Customer]:
    result = await db.execute(select(Customer).where(Customer.id == customer_id))
    return result.scalar_one_or_none()

async def get_customer_balances(
    db: AsyncSession,
    customer_id: UUID
):
    # column query, not the identity map, so values reflect the latest update
    result = await db.execute(
        select(
            Customer.id,
            Customer.name,
            Customer.phone,
            Customer.loyalty_points,
            Customer.total_spent,
        ).where(Customer.id == customer_id)
    )
    return result.one_or_none()

async def apply_loyalty_delta(
    db: AsyncSession,
    customer_id: UUID,
    points_delta: int,
    spent_delta: Decimal
) -> bool:
    """Add ``points_delta`` points and ``spent_delta`` spend in one statement.

    The update is skipped (False) if it would drive the balance below zero,
    e.g. when another till redeemed the same points first.
    """
    result = await db.execute(
        update(Customer)
        .where(Customer.id == customer_id, Customer.loyalty_points + points_delta >= 0)
        .values(
            loyalty_points=Customer.loyalty_points + points_delta,
            total_spent=Customer.total_spent + spent_delta,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
