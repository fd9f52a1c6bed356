from sqlalchemy import Boolean, Column, Index, String, DateTime, Numeric, Integer, ForeignKey, Uuid
from sqlalchemy.sql import func
import uuid

from pos.db.base import Base


class TransactionItem(Base):
    __tablename__ = "transaction_items"

    """Represents a single product line within a transaction.

    An item captures the product name, pricing and GST configuration and
    quantity at the time of sale so that reprinted invoices and reports do
    not depend on the mutable product row.
    """

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    transaction_id = Column(Uuid(as_uuid=True), ForeignKey("transactions.id"), nullable=False)
    line_number = Column(Integer, nullable=False)

    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=True, index=True)
    product_name = Column(String, nullable=False)

    unit_price = Column(Numeric(18, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    gst_rate = Column(Numeric(5, 2), nullable=False, default=0)
    price_includes_gst = Column(Boolean, nullable=False, default=False)
    gst_amount = Column(Numeric(18, 2), nullable=False, default=0)
    total_price = Column(Numeric(18, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_transaction_items_transaction_line", "transaction_id", "line_number", unique=True),
    )
