from sqlalchemy import BigInteger, Column, ForeignKey, Integer, Numeric, DateTime, Uuid
from sqlalchemy.sql import func

from pos.db.base import Base


class LoyaltyLedgerEntry(Base):
    __tablename__ = "loyalty_ledger"

    """Append-only record of points earned and redeemed on a transaction.

    Rows are never updated; a customer's balance history can be replayed by
    reading the ledger ordered by id.
    """

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    transaction_id = Column(Uuid(as_uuid=True), ForeignKey("transactions.id"), nullable=False, index=True)

    points_earned = Column(Integer, nullable=False, default=0)
    points_redeemed = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Numeric(18, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
