from sqlalchemy import CheckConstraint, Column, Integer, Numeric, String, DateTime, Uuid
from sqlalchemy.sql import func
import uuid

from pos.db.base import Base


class Customer(Base):
    __tablename__ = "customers"

    """A registered customer with a loyalty points balance.

    ``loyalty_points`` and ``total_spent`` are only changed by checkout, after
    the sale's header has been written, and never for anonymous sales.
    """

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=True)

    loyalty_points = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(18, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("loyalty_points >= 0", name="ck_customers_points_non_negative"),
    )
