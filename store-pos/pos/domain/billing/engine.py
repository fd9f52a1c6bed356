"""Billing engine: turns cart lines into a rounded, loyalty-adjusted invoice.

``compute_bill`` is a pure function. It performs no I/O and returns the same
``BillingResult`` for the same inputs, so it is safe to call for live previews
as well as for the final checkout.

Order of computation:

1. split every line into base and GST with its own tax treatment
2. ``pre_discount_total = subtotal + tax_amount``
3. validate the loyalty redemption and subtract its discount
4. round to the nearest rupee (half up) and keep the signed adjustment
5. points earned on the rounded total, only with a customer attached
6. change due for cash payments
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional, Sequence, Tuple
from uuid import UUID

from pos.core.errors import BillingRejectedError, RejectionReason

from .loyalty import LoyaltyPolicy, points_earned, validate_redemption
from .tax import TaxTreatment, to_paise

RUPEE = Decimal("1")
ZERO = Decimal("0.00")


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"


@dataclass(frozen=True)
class CartLine:
    product_id: UUID
    name: str
    unit_price: Decimal
    quantity: int
    tax: TaxTreatment

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class LineBreakdown:
    line_total: Decimal
    base_amount: Decimal
    tax_amount: Decimal


@dataclass(frozen=True)
class BillingResult:
    payment_method: PaymentMethod
    subtotal: Decimal
    tax_amount: Decimal
    pre_discount_total: Decimal
    loyalty_points_redeemed: int
    loyalty_discount_amount: Decimal
    total_after_loyalty: Decimal
    rounded_total: Decimal
    rounding_adjustment: Decimal
    loyalty_points_earned: int
    cash_received: Optional[Decimal]
    change_due: Optional[Decimal]
    lines: Tuple[LineBreakdown, ...]


def _check_line(line: CartLine) -> None:
    if line.quantity < 1:
        raise BillingRejectedError(
            RejectionReason.INVALID_LINE,
            f"Quantity for {line.name} must be at least 1",
        )
    if line.unit_price <= 0:
        raise BillingRejectedError(
            RejectionReason.INVALID_LINE,
            f"Unit price for {line.name} must be positive",
        )
    if line.tax.rate_percent < 0:
        raise BillingRejectedError(
            RejectionReason.INVALID_LINE,
            f"Tax rate for {line.name} cannot be negative",
        )


def split_lines(lines: Sequence[CartLine]) -> Tuple[LineBreakdown, ...]:
    breakdown = []
    for line in lines:
        _check_line(line)
        base, tax = line.tax.split(line.line_total)
        breakdown.append(LineBreakdown(line_total=line.line_total, base_amount=base, tax_amount=tax))
    return tuple(breakdown)


def compute_bill(
    lines: Sequence[CartLine],
    payment_method: PaymentMethod,
    policy: LoyaltyPolicy,
    *,
    loyalty_redeem_points: int = 0,
    customer_loyalty_balance: Optional[int] = None,
    cash_received: Optional[Decimal] = None,
) -> BillingResult:
    """Compute the invoice for ``lines``.

    ``customer_loyalty_balance`` is ``None`` when no customer is attached;
    points are then neither redeemed nor earned. Raises
    ``BillingRejectedError`` for an empty cart, an invalid line, an invalid
    redemption or insufficient cash.
    """
    if not lines:
        raise BillingRejectedError(RejectionReason.EMPTY_CART, "Cart is empty")

    breakdown = split_lines(lines)
    subtotal = sum((b.base_amount for b in breakdown), ZERO)
    tax_amount = sum((b.tax_amount for b in breakdown), ZERO)
    pre_discount_total = subtotal + tax_amount

    redemption = validate_redemption(
        loyalty_redeem_points, customer_loyalty_balance, pre_discount_total, policy
    )
    discount = to_paise(redemption.discount)
    total_after_loyalty = pre_discount_total - discount

    rounded_total = total_after_loyalty.quantize(RUPEE, rounding=ROUND_HALF_UP)
    rounding_adjustment = rounded_total - total_after_loyalty

    earned = 0
    if customer_loyalty_balance is not None:
        earned = points_earned(rounded_total, policy)

    change_due = None
    received = None
    if payment_method is PaymentMethod.CASH:
        received = to_paise(Decimal(cash_received or 0))
        if received < rounded_total:
            raise BillingRejectedError(
                RejectionReason.INSUFFICIENT_CASH,
                f"Insufficient cash received: {received} < {rounded_total}",
            )
        change_due = received - rounded_total

    return BillingResult(
        payment_method=payment_method,
        subtotal=subtotal,
        tax_amount=tax_amount,
        pre_discount_total=pre_discount_total,
        loyalty_points_redeemed=redemption.points,
        loyalty_discount_amount=discount,
        total_after_loyalty=total_after_loyalty,
        rounded_total=rounded_total,
        rounding_adjustment=rounding_adjustment,
        loyalty_points_earned=earned,
        cash_received=received,
        change_due=change_due,
        lines=breakdown,
    )
