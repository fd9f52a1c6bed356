from sqlalchemy import Boolean, CheckConstraint, Column, Integer, Numeric, String, DateTime, Uuid
from sqlalchemy.sql import func
import uuid

from pos.db.base import Base


class Product(Base):
    __tablename__ = "products"

    """A sellable product with its price, GST configuration and stock on hand.

    ``price_includes_gst`` tells the billing engine whether ``price`` already
    contains GST at ``gst_rate`` percent or whether GST is added on top.
    ``stock_quantity`` is only ever decremented through a floor-checked update
    so it cannot go negative as the result of a sale.
    """

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    barcode = Column(String, nullable=True, index=True)

    price = Column(Numeric(18, 2), nullable=False)
    gst_rate = Column(Numeric(5, 2), nullable=False, default=0)
    price_includes_gst = Column(Boolean, nullable=False, default=False)

    stock_quantity = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )
