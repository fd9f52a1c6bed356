"""Realizes an accepted bill as a stored sale.

Steps, each depending on the previous one:

1. allocate the next invoice number for the prefix
2. write the transaction header as PENDING (retrying 1-2 on a duplicate
   number)
3. write the item snapshots
4. take the sold quantities off stock
5. apply the customer's loyalty delta and append a ledger entry
6. flip the header to COMPLETED

Steps 3-6 run in one ``store.atomic()`` unit. A stock or loyalty conflict
rolls that unit back, cancels the header and is re-raised. Any other failure
after step 2 raises ``InconsistentTransactionError`` and leaves the header
PENDING for reconciliation. A checkout is never retried as a whole.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Optional, Sequence, Tuple, TypeVar
from uuid import UUID

import structlog

from pos.core.errors import (
    ConflictError,
    DuplicateCheckoutError,
    DuplicateInvoiceNumberError,
    InconsistentTransactionError,
    InsufficientStockError,
    LoyaltyBalanceConflictError,
)
from pos.db.models.transactions import TransactionStatus
from pos.domain.billing.engine import BillingResult, CartLine, PaymentMethod
from pos.domain.billing.tax import InclusiveTax

from .store import CheckoutStore, CustomerSnapshot, ItemSnapshot, LedgerEntry, TransactionHeader

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CheckoutOrder:
    lines: Sequence[CartLine]
    customer: Optional[CustomerSnapshot] = None
    cashier_id: Optional[str] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class Receipt:
    """Everything the receipt printer needs, passed through as computed."""

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
    items: Tuple[ItemSnapshot, ...]
    customer: Optional[CustomerSnapshot]


def item_snapshots(lines: Sequence[CartLine], bill: BillingResult) -> Tuple[ItemSnapshot, ...]:
    return tuple(
        ItemSnapshot(
            line_number=number,
            product_id=line.product_id,
            product_name=line.name,
            unit_price=line.unit_price,
            quantity=line.quantity,
            gst_rate=line.tax.rate_percent,
            price_includes_gst=isinstance(line.tax, InclusiveTax),
            gst_amount=breakdown.tax_amount,
            total_price=breakdown.line_total,
        )
        for number, (line, breakdown) in enumerate(zip(lines, bill.lines), start=1)
    )


class CheckoutSequencer:
    def __init__(
        self,
        store: CheckoutStore,
        *,
        invoice_prefix: str = "NM",
        invoice_width: int = 4,
        allocation_attempts: int = 3,
        step_timeout: Optional[float] = 10.0,
    ):
        self.store = store
        self.invoice_prefix = invoice_prefix
        self.invoice_width = invoice_width
        self.allocation_attempts = allocation_attempts
        self.step_timeout = step_timeout

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.step_timeout)

    async def run(self, order: CheckoutOrder, bill: BillingResult) -> Receipt:
        if order.idempotency_key:
            existing = await self._call(
                self.store.find_transaction_by_idempotency_key(order.idempotency_key)
            )
            if existing is not None:
                raise DuplicateCheckoutError(order.idempotency_key, existing)

        transaction_id, invoice_number = await self._persist_header(order, bill)
        txn_log = log.bind(transaction_id=str(transaction_id), invoice_number=invoice_number)
        items = item_snapshots(order.lines, bill)

        step = "items"
        try:
            async with self.store.atomic(timeout=self.step_timeout):
                await self._call(self.store.insert_transaction_items(transaction_id, items))

                step = "stock"
                for line in order.lines:
                    if not await self._call(self.store.decrement_stock(line.product_id, line.quantity)):
                        raise InsufficientStockError(line.product_id, line.quantity)

                if order.customer is not None:
                    step = "loyalty"
                    await self._apply_loyalty(order.customer, transaction_id, bill)

                step = "complete"
                await self._call(self.store.set_transaction_status(transaction_id, TransactionStatus.COMPLETED))
        except ConflictError as exc:
            txn_log.warning("checkout_conflict", step=step, reason=exc.reason, error=exc.message)
            await self._cancel(transaction_id, invoice_number, step)
            raise
        except Exception as exc:
            txn_log.error("checkout_inconsistent", step=step, error=repr(exc))
            raise InconsistentTransactionError(transaction_id, invoice_number, step, exc) from exc

        customer = None
        if order.customer is not None:
            try:
                customer = await self._call(self.store.get_customer_snapshot(order.customer.id))
            except Exception as exc:
                # the sale is complete; fall back to the pre-sale snapshot
                txn_log.warning("customer_snapshot_failed", error=repr(exc))
                customer = order.customer

        txn_log.info(
            "checkout_completed",
            total=str(bill.rounded_total),
            points_earned=bill.loyalty_points_earned,
            points_redeemed=bill.loyalty_points_redeemed,
        )
        return Receipt(
            transaction_id=transaction_id,
            invoice_number=invoice_number,
            status=TransactionStatus.COMPLETED,
            cashier_id=order.cashier_id,
            payment_method=bill.payment_method,
            subtotal=bill.subtotal,
            gst_amount=bill.tax_amount,
            loyalty_discount_amount=bill.loyalty_discount_amount,
            rounding_adjustment=bill.rounding_adjustment,
            total_amount=bill.rounded_total,
            cash_received=bill.cash_received,
            change_amount=bill.change_due,
            loyalty_points_earned=bill.loyalty_points_earned,
            loyalty_points_redeemed=bill.loyalty_points_redeemed,
            items=items,
            customer=customer,
        )

    async def _persist_header(self, order: CheckoutOrder, bill: BillingResult) -> Tuple[UUID, str]:
        for attempt in range(1, self.allocation_attempts + 1):
            invoice_number = await self._call(
                self.store.allocate_next_invoice_number(self.invoice_prefix, self.invoice_width)
            )
            header = TransactionHeader(
                invoice_number=invoice_number,
                invoice_prefix=self.invoice_prefix,
                bill=bill,
                cashier_id=order.cashier_id,
                customer=order.customer,
                idempotency_key=order.idempotency_key,
            )
            try:
                transaction_id = await self._call(self.store.insert_transaction(header))
            except DuplicateInvoiceNumberError:
                log.warning("invoice_number_conflict", invoice_number=invoice_number, attempt=attempt)
                if attempt == self.allocation_attempts:
                    raise
                continue
            return transaction_id, invoice_number
        raise DuplicateInvoiceNumberError(self.invoice_prefix)

    async def _apply_loyalty(self, customer: CustomerSnapshot, transaction_id: UUID, bill: BillingResult) -> None:
        earned = bill.loyalty_points_earned
        redeemed = bill.loyalty_points_redeemed
        updated = await self._call(
            self.store.update_customer_loyalty(customer.id, earned - redeemed, bill.rounded_total)
        )
        if not updated:
            raise LoyaltyBalanceConflictError(
                f"Customer {customer.id} no longer has {redeemed} points to redeem"
            )
        if earned > 0 or redeemed > 0:
            await self._call(
                self.store.append_loyalty_ledger(
                    LedgerEntry(
                        customer_id=customer.id,
                        transaction_id=transaction_id,
                        points_earned=earned,
                        points_redeemed=redeemed,
                        discount_amount=bill.loyalty_discount_amount,
                    )
                )
            )

    async def _cancel(self, transaction_id: UUID, invoice_number: str, step: str) -> None:
        try:
            async with self.store.atomic(timeout=self.step_timeout):
                await self._call(self.store.set_transaction_status(transaction_id, TransactionStatus.CANCELLED))
        except Exception as exc:
            raise InconsistentTransactionError(transaction_id, invoice_number, step, exc) from exc
