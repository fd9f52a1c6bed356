import enum
from sqlalchemy import Column, Enum, ForeignKey, Index, Integer, String, DateTime, Numeric, UniqueConstraint, Uuid
from sqlalchemy.sql import func
import uuid

from pos.db.base import Base
from pos.domain.billing.engine import PaymentMethod


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Transaction(Base):
    __tablename__ = "transactions"

    """Represents a single invoice issued at the till.

    The header stores the billing engine's figures as they were at the moment
    of sale (subtotal, GST, loyalty discount, rounding, payment) together with
    the customer's name and phone, so the invoice does not change when the
    customer or catalog is edited later.

    ``invoice_sequence`` holds the numeric part of ``invoice_number`` so the
    highest issued number is found numerically ("NM 10000" sorts after
    "NM 9999"). Checkout writes the header as PENDING and flips it to
    COMPLETED once items, stock and loyalty are in place.
    """

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    invoice_number = Column(String, nullable=False, unique=True)
    invoice_prefix = Column(String, nullable=False)
    invoice_sequence = Column(Integer, nullable=False)
    idempotency_key = Column(String, nullable=True, unique=True)

    cashier_id = Column(String, nullable=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customers.id"), nullable=True)
    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)

    status = Column(Enum(TransactionStatus, name="transaction_status_enum"), nullable=False, default=TransactionStatus.PENDING)

    subtotal = Column(Numeric(18, 2), nullable=False, default=0)
    gst_amount = Column(Numeric(18, 2), nullable=False, default=0)
    loyalty_points_earned = Column(Integer, nullable=False, default=0)
    loyalty_points_redeemed = Column(Integer, nullable=False, default=0)
    loyalty_discount_amount = Column(Numeric(18, 2), nullable=False, default=0)
    rounding_adjustment = Column(Numeric(18, 2), nullable=False, default=0)
    total_amount = Column(Numeric(18, 2), nullable=False, default=0)

    payment_method = Column(Enum(PaymentMethod, name="payment_method_enum"), nullable=False)
    cash_received = Column(Numeric(18, 2), nullable=True)
    change_amount = Column(Numeric(18, 2), nullable=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("invoice_prefix", "invoice_sequence", name="uq_transactions_prefix_sequence"),
        Index("ix_transactions_status_created", "status", "created_at"),
    )
