from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import and_, func, or_, select, update

from pos.db.models.transactions import Transaction, TransactionStatus
from pos.db.models.transaction_items import TransactionItem

async def get_transaction_by_id(
    db: AsyncSession,
    transaction_id: UUID
) -> Optional[Transaction]:
    result = await db.execute(
        select(Transaction).where(Transaction.id == transaction_id)
    )
    txn = result.scalar_one_or_none()
    return txn

async def get_transaction_by_idempotency_key(
    db: AsyncSession,
    idempotency_key: str
) -> Optional[Transaction]:
    result = await db.execute(
        select(Transaction).where(Transaction.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none()

async def get_items_for_transaction(
    db: AsyncSession,
    transaction_id: UUID
) -> List[TransactionItem]:
    result = await db.execute(
        select(TransactionItem)
        .where(TransactionItem.transaction_id == transaction_id)
        .order_by(TransactionItem.line_number)
    )
    items = result.scalars().all()
    return list(items)

async def get_last_invoice_sequence(
    db: AsyncSession,
    prefix: str
) -> Optional[int]:
    result = await db.execute(
        select(func.max(Transaction.invoice_sequence)).where(Transaction.invoice_prefix == prefix)
    )
    return result.scalar()

async def list_transactions_by_status(
    db: AsyncSession,
    status: TransactionStatus,
    limit: int = 100
) -> List[Transaction]:
    result = await db.execute(
        select(Transaction)
        .where(Transaction.status == status)
        .order_by(Transaction.created_at)
        .limit(limit)
    )
    return list(result.scalars().all())

async def set_transaction_status(
    db: AsyncSession,
    transaction_id: UUID,
    status: TransactionStatus
) -> bool:
    values = {"status": status}
    now = datetime.now(timezone.utc)
    if status == TransactionStatus.COMPLETED:
        values["completed_at"] = now
    elif status == TransactionStatus.CANCELLED:
        values["cancelled_at"] = now
        # a cancelled checkout may be retried under the same key
        values["idempotency_key"] = None

    result = await db.execute(
        update(Transaction)
        .where(Transaction.id == transaction_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1

async def invoice_number_exists(
    db: AsyncSession,
    prefix: str,
    invoice_sequence: int,
    invoice_number: str
) -> bool:
    result = await db.execute(
        select(Transaction.id).where(
            or_(
                Transaction.invoice_number == invoice_number,
                and_(
                    Transaction.invoice_prefix == prefix,
                    Transaction.invoice_sequence == invoice_sequence,
                ),
            )
        )
    )
    return result.first() is not None
