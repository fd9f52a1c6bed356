"""Domain errors raised by the billing and checkout layers.

The API layer maps each family to an HTTP status: ``NotFoundError`` -> 404,
``BusinessError`` -> 422, ``ConflictError`` -> 409 and
``InconsistentTransactionError`` -> 500. Every error carries a stable
``reason`` code for the caller.
"""

from enum import Enum
from typing import Optional
from uuid import UUID


class RejectionReason(str, Enum):
    EMPTY_CART = "empty_cart"
    INVALID_LINE = "invalid_line"
    REDEMPTION_REQUIRES_CUSTOMER = "redemption_requires_customer"
    REDEMPTION_EXCEEDS_BALANCE = "redemption_exceeds_balance"
    REDEMPTION_BELOW_MINIMUM = "redemption_below_minimum"
    REDEMPTION_NOT_MULTIPLE_OF_BLOCK = "redemption_not_multiple_of_block"
    REDEMPTION_EXCEEDS_TOTAL = "redemption_exceeds_total"
    INSUFFICIENT_CASH = "insufficient_cash"


class PosError(Exception):
    reason = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PosError):
    reason = "not_found"


class BusinessError(PosError):
    reason = "business_rule"


class BillingRejectedError(BusinessError):
    """The cart was rejected before anything was persisted."""

    def __init__(self, reason: RejectionReason, message: str):
        super().__init__(message)
        self.reason = reason.value
        self.rejection = reason


class ConflictError(PosError):
    reason = "conflict"


class InsufficientStockError(ConflictError):
    reason = "insufficient_stock"

    def __init__(self, product_id: UUID, requested: int, available: Optional[int] = None):
        if available is None:
            message = f"Insufficient stock for product {product_id}: requested {requested}"
        else:
            message = (
                f"Insufficient stock for product {product_id}: "
                f"requested {requested}, available {available}"
            )
        super().__init__(message)
        self.product_id = product_id
        self.requested = requested
        self.available = available


class LoyaltyBalanceConflictError(ConflictError):
    reason = "loyalty_balance_conflict"


class DuplicateInvoiceNumberError(ConflictError):
    reason = "duplicate_invoice_number"

    def __init__(self, invoice_number: str):
        super().__init__(f"Invoice number {invoice_number} is already issued")
        self.invoice_number = invoice_number


class DuplicateCheckoutError(ConflictError):
    reason = "duplicate_checkout"

    def __init__(self, idempotency_key: str, transaction_id: Optional[UUID] = None):
        super().__init__(f"Checkout {idempotency_key} was already submitted")
        self.idempotency_key = idempotency_key
        self.transaction_id = transaction_id


class InconsistentTransactionError(PosError):
    """A step after the header was persisted failed.

    The header is left ``pending`` and needs manual reconciliation; the
    checkout must not be retried as a whole.
    """

    reason = "inconsistent_transaction"

    def __init__(self, transaction_id: UUID, invoice_number: str, step: str, cause: BaseException):
        super().__init__(
            f"Transaction {invoice_number} ({transaction_id}) failed at {step}: {cause!r}"
        )
        self.transaction_id = transaction_id
        self.invoice_number = invoice_number
        self.step = step
        self.cause = cause
