from typing import Dict, Iterable
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select, update

from pos.db.models.products import Product

async def get_products_by_ids(
    db: AsyncSession,
    product_ids: Iterable[UUID]
) -> Dict[UUID, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    result = await db.execute(select(Product).where(Product.id.in_(ids)))
    return {product.id: product for product in result.scalars().all()}

async def get_stock_quantity(
    db: AsyncSession,
    product_id: UUID
) -> int:
    result = await db.execute(
        select(Product.stock_quantity).where(Product.id == product_id)
    )
    return result.scalar_one()

async def decrement_stock(
    db: AsyncSession,
    product_id: UUID,
    quantity: int
) -> bool:
    """Atomically take ``quantity`` off stock, only if that much is on hand.

    Returns False when the guard fails (unknown product or not enough stock);
    the row is left untouched in that case.
    """
    result = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
