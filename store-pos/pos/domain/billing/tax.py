"""GST treatment of a single cart line.

A product's price either already contains GST (inclusive) or has GST added on
top (exclusive). The two cases use different formulas, so each is its own
type with a ``split`` that returns ``(base, tax)`` for a line total.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Tuple, Union

PAISE = Decimal("0.01")
HUNDRED = Decimal("100")


def to_paise(amount: Decimal) -> Decimal:
    return amount.quantize(PAISE, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class InclusiveTax:
    rate_percent: Decimal

    def split(self, line_total: Decimal) -> Tuple[Decimal, Decimal]:
        base = to_paise(line_total / (1 + self.rate_percent / HUNDRED))
        # derived, so base + tax always gives back the line total
        return base, line_total - base


@dataclass(frozen=True)
class ExclusiveTax:
    rate_percent: Decimal

    def split(self, line_total: Decimal) -> Tuple[Decimal, Decimal]:
        return line_total, to_paise(line_total * self.rate_percent / HUNDRED)


TaxTreatment = Union[InclusiveTax, ExclusiveTax]


def tax_treatment(rate_percent: Decimal, price_includes_tax: bool) -> TaxTreatment:
    """Build the treatment matching a product's ``price_includes_gst`` flag."""
    rate = Decimal(rate_percent)
    if price_includes_tax:
        return InclusiveTax(rate)
    return ExclusiveTax(rate)
