"""Loyalty points: redemption validation and points earned on a sale."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from pos.core.errors import BillingRejectedError, RejectionReason


class OverTotalPolicy(str, Enum):
    REJECT = "reject"
    CAP = "cap"


@dataclass(frozen=True)
class LoyaltyPolicy:
    block_size: int = 100
    point_value: Decimal = Decimal("5")
    earn_divisor: int = 100
    over_total: OverTotalPolicy = OverTotalPolicy.REJECT

    @classmethod
    def from_settings(cls, settings) -> "LoyaltyPolicy":
        return cls(
            block_size=settings.LOYALTY_BLOCK_SIZE,
            point_value=Decimal(settings.LOYALTY_POINT_VALUE),
            earn_divisor=settings.LOYALTY_EARN_DIVISOR,
            over_total=OverTotalPolicy(settings.LOYALTY_OVER_TOTAL_POLICY),
        )

    @property
    def block_value(self) -> Decimal:
        return self.block_size * self.point_value

    def max_redeemable(self, balance: int) -> int:
        return (balance // self.block_size) * self.block_size

    def discount_for(self, points: int) -> Decimal:
        return points * self.point_value


@dataclass(frozen=True)
class Redemption:
    points: int
    discount: Decimal


NO_REDEMPTION = Redemption(points=0, discount=Decimal("0.00"))


def validate_redemption(
    points: int,
    balance: Optional[int],
    pre_discount_total: Decimal,
    policy: LoyaltyPolicy,
) -> Redemption:
    """Check a redemption request and return the points/discount to apply.

    ``balance`` is ``None`` when no customer is attached to the sale. Any
    violation raises ``BillingRejectedError``; nothing is rounded silently.
    Under the ``cap`` policy a discount larger than the pre-discount total is
    reduced to the largest whole number of blocks that fits.
    """
    if not points:
        return NO_REDEMPTION
    if balance is None:
        raise BillingRejectedError(
            RejectionReason.REDEMPTION_REQUIRES_CUSTOMER,
            "Loyalty points can only be redeemed for a selected customer",
        )

    max_points = policy.max_redeemable(balance)
    if points > balance or points > max_points:
        raise BillingRejectedError(
            RejectionReason.REDEMPTION_EXCEEDS_BALANCE,
            f"You can only redeem up to {max_points} points",
        )
    if points < policy.block_size:
        raise BillingRejectedError(
            RejectionReason.REDEMPTION_BELOW_MINIMUM,
            f"Minimum {policy.block_size} points required for redemption",
        )
    if points % policy.block_size:
        raise BillingRejectedError(
            RejectionReason.REDEMPTION_NOT_MULTIPLE_OF_BLOCK,
            f"Points must be redeemed in multiples of {policy.block_size}",
        )

    discount = policy.discount_for(points)
    if discount > pre_discount_total:
        blocks = int(pre_discount_total // policy.block_value)
        if policy.over_total is OverTotalPolicy.REJECT or blocks == 0:
            raise BillingRejectedError(
                RejectionReason.REDEMPTION_EXCEEDS_TOTAL,
                "Discount amount cannot exceed total amount",
            )
        points = blocks * policy.block_size
        discount = policy.discount_for(points)

    return Redemption(points=points, discount=discount)


def points_earned(rounded_total: Decimal, policy: LoyaltyPolicy) -> int:
    if rounded_total <= 0:
        return 0
    return int(rounded_total // policy.earn_divisor)
