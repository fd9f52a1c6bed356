from typing import List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import select

from pos.db.models.loyalty_ledger import LoyaltyLedgerEntry

async def append_ledger_entry(
    db: AsyncSession,
    entry: LoyaltyLedgerEntry
) -> LoyaltyLedgerEntry:
    db.add(entry)
    await db.flush()
    return entry

async def get_ledger_for_customer(
    db: AsyncSession,
    customer_id: UUID
) -> List[LoyaltyLedgerEntry]:
    result = await db.execute(
        select(LoyaltyLedgerEntry)
        .where(LoyaltyLedgerEntry.customer_id == customer_id)
        .order_by(LoyaltyLedgerEntry.id)
    )
    return list(result.scalars().all())
