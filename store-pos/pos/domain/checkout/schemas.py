# pos/domain/checkout/schemas.py
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from uuid import UUID
from typing import List, Optional

from pos.db.models.transactions import TransactionStatus
from pos.domain.billing.engine import PaymentMethod

class CartLineIn(BaseModel):
    product_id: UUID
    unit_price: Decimal = Field(gt=0, decimal_places=2)
    quantity: int = Field(ge=1)
    tax_rate_percent: Decimal = Field(ge=0, decimal_places=2)
    tax_inclusive: bool

class CartIn(BaseModel):
    lines: List[CartLineIn]
    payment_method: PaymentMethod
    cash_received: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    loyalty_redeem_points: int = Field(default=0, ge=0)

class QuoteRequest(CartIn):
    # absent when no customer is attached to the sale
    customer_loyalty_balance: Optional[int] = Field(default=None, ge=0)

class CheckoutRequest(CartIn):
    customer_id: Optional[UUID] = None
    idempotency_key: Optional[str] = Field(default=None, max_length=128)

class LineBreakdownOut(BaseModel):
    line_total: Decimal
    base_amount: Decimal
    tax_amount: Decimal

    class Config:
        from_attributes = True

class BillingResultOut(BaseModel):
    subtotal: Optional[Decimal] = None
    tax_amount: Optional[Decimal] = None
    pre_discount_total: Optional[Decimal] = None
    loyalty_points_redeemed: int = 0
    loyalty_discount_amount: Optional[Decimal] = None
    total_after_loyalty: Optional[Decimal] = None
    rounded_total: Optional[Decimal] = None
    rounding_adjustment: Optional[Decimal] = None
    change_due: Optional[Decimal] = None
    loyalty_points_earned: int = 0
    lines: List[LineBreakdownOut] = []
    rejection_reason: Optional[str] = None
    rejection_message: Optional[str] = None

    class Config:
        from_attributes = True

class ItemOut(BaseModel):
    line_number: int
    product_id: Optional[UUID]
    product_name: str
    unit_price: Decimal
    quantity: int
    gst_rate: Decimal
    price_includes_gst: bool
    gst_amount: Decimal
    total_price: Decimal

    class Config:
        from_attributes = True

class CustomerOut(BaseModel):
    id: UUID
    name: str
    phone: Optional[str]
    loyalty_points: int
    total_spent: Decimal

    class Config:
        from_attributes = True

class ReceiptOut(BaseModel):
    transaction_id: UUID
    invoice_number: str
    status: TransactionStatus
    cashier_id: Optional[str]
    payment_method: PaymentMethod
    subtotal: Decimal
    gst_amount: Decimal
    loyalty_discount_amount: Decimal
    rounding_adjustment: Decimal
    total_amount: Decimal
    cash_received: Optional[Decimal]
    change_amount: Optional[Decimal]
    loyalty_points_earned: int
    loyalty_points_redeemed: int
    items: List[ItemOut]
    customer: Optional[CustomerOut]

    class Config:
        from_attributes = True

class TransactionOut(BaseModel):
    id: UUID
    invoice_number: str
    status: TransactionStatus
    cashier_id: Optional[str]
    customer_id: Optional[UUID]
    payment_method: PaymentMethod
    total_amount: Decimal
    created_at: datetime

    class Config:
        from_attributes = True
