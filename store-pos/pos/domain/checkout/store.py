"""Persistence collaborator used by the checkout sequencer.

``CheckoutStore`` is the narrow set of reads and writes the sequencer needs.
``SqlCheckoutStore`` implements it on an ``AsyncSession``: the header insert
commits on its own so the unique invoice number is enforced immediately, and
``atomic()`` groups the remaining writes into a single database transaction.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncIterator, Optional, Protocol, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pos.core.errors import DuplicateCheckoutError, DuplicateInvoiceNumberError
from pos.db.models.loyalty_ledger import LoyaltyLedgerEntry
from pos.db.models.transaction_items import TransactionItem
from pos.db.models.transactions import Transaction, TransactionStatus
from pos.db.repositories import customers as customer_repo
from pos.db.repositories import loyalty as loyalty_repo
from pos.db.repositories import products as product_repo
from pos.db.repositories import transactions as transaction_repo
from pos.domain.billing.engine import BillingResult

from .invoice_numbers import next_invoice_number, parse_invoice_number


@dataclass(frozen=True)
class CustomerSnapshot:
    id: UUID
    name: str
    phone: Optional[str]
    loyalty_points: int
    total_spent: Decimal


@dataclass(frozen=True)
class TransactionHeader:
    invoice_number: str
    invoice_prefix: str
    bill: BillingResult
    cashier_id: Optional[str] = None
    customer: Optional[CustomerSnapshot] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class ItemSnapshot:
    line_number: int
    product_id: UUID
    product_name: str
    unit_price: Decimal
    quantity: int
    gst_rate: Decimal
    price_includes_gst: bool
    gst_amount: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class LedgerEntry:
    customer_id: UUID
    transaction_id: UUID
    points_earned: int
    points_redeemed: int
    discount_amount: Decimal


class CheckoutStore(Protocol):
    async def find_transaction_by_idempotency_key(self, idempotency_key: str) -> Optional[UUID]:
        ...

    async def allocate_next_invoice_number(self, prefix: str, width: int = 4) -> str:
        ...

    async def insert_transaction(self, header: TransactionHeader) -> UUID:
        ...

    def atomic(self, timeout: Optional[float] = None):
        ...

    async def insert_transaction_items(self, transaction_id: UUID, items: Sequence[ItemSnapshot]) -> None:
        ...

    async def decrement_stock(self, product_id: UUID, quantity: int) -> bool:
        ...

    async def update_customer_loyalty(self, customer_id: UUID, points_delta: int, spent_delta: Decimal) -> bool:
        ...

    async def append_loyalty_ledger(self, entry: LedgerEntry) -> None:
        ...

    async def set_transaction_status(self, transaction_id: UUID, status: TransactionStatus) -> None:
        ...

    async def get_customer_snapshot(self, customer_id: UUID) -> Optional[CustomerSnapshot]:
        ...


class SqlCheckoutStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_transaction_by_idempotency_key(self, idempotency_key: str) -> Optional[UUID]:
        txn = await transaction_repo.get_transaction_by_idempotency_key(self.db, idempotency_key)
        return txn.id if txn is not None else None

    async def allocate_next_invoice_number(self, prefix: str, width: int = 4) -> str:
        last = await transaction_repo.get_last_invoice_sequence(self.db, prefix)
        return next_invoice_number(last, prefix, width)

    async def insert_transaction(self, header: TransactionHeader) -> UUID:
        bill = header.bill
        customer = header.customer
        sequence = parse_invoice_number(header.invoice_number, header.invoice_prefix)
        txn = Transaction(
            invoice_number=header.invoice_number,
            invoice_prefix=header.invoice_prefix,
            invoice_sequence=sequence,
            idempotency_key=header.idempotency_key,
            cashier_id=header.cashier_id,
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else None,
            customer_phone=customer.phone if customer else None,
            status=TransactionStatus.PENDING,
            subtotal=bill.subtotal,
            gst_amount=bill.tax_amount,
            loyalty_points_earned=bill.loyalty_points_earned,
            loyalty_points_redeemed=bill.loyalty_points_redeemed,
            loyalty_discount_amount=bill.loyalty_discount_amount,
            rounding_adjustment=bill.rounding_adjustment,
            total_amount=bill.rounded_total,
            payment_method=bill.payment_method,
            cash_received=bill.cash_received,
            change_amount=bill.change_due,
        )
        self.db.add(txn)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if header.idempotency_key:
                existing = await self.find_transaction_by_idempotency_key(header.idempotency_key)
                if existing is not None:
                    raise DuplicateCheckoutError(header.idempotency_key, existing)
            if await transaction_repo.invoice_number_exists(
                self.db, header.invoice_prefix, sequence, header.invoice_number
            ):
                raise DuplicateInvoiceNumberError(header.invoice_number)
            raise
        return txn.id

    @asynccontextmanager
    async def atomic(self, timeout: Optional[float] = None) -> AsyncIterator[None]:
        """Commit the enclosed writes together, rolling back on any error.

        ``timeout`` bounds the commit the same way the sequencer bounds each
        step.
        """
        try:
            yield
            await asyncio.wait_for(self.commit(), timeout=timeout)
        except BaseException:
            await self.db.rollback()
            raise

    async def commit(self) -> None:
        await self.db.commit()

    async def insert_transaction_items(self, transaction_id: UUID, items: Sequence[ItemSnapshot]) -> None:
        self.db.add_all(
            [
                TransactionItem(
                    transaction_id=transaction_id,
                    line_number=item.line_number,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    gst_rate=item.gst_rate,
                    price_includes_gst=item.price_includes_gst,
                    gst_amount=item.gst_amount,
                    total_price=item.total_price,
                )
                for item in items
            ]
        )
        await self.db.flush()

    async def decrement_stock(self, product_id: UUID, quantity: int) -> bool:
        return await product_repo.decrement_stock(self.db, product_id, quantity)

    async def update_customer_loyalty(self, customer_id: UUID, points_delta: int, spent_delta: Decimal) -> bool:
        return await customer_repo.apply_loyalty_delta(self.db, customer_id, points_delta, spent_delta)

    async def append_loyalty_ledger(self, entry: LedgerEntry) -> None:
        await loyalty_repo.append_ledger_entry(
            self.db,
            LoyaltyLedgerEntry(
                customer_id=entry.customer_id,
                transaction_id=entry.transaction_id,
                points_earned=entry.points_earned,
                points_redeemed=entry.points_redeemed,
                discount_amount=entry.discount_amount,
            ),
        )

    async def set_transaction_status(self, transaction_id: UUID, status: TransactionStatus) -> None:
        await transaction_repo.set_transaction_status(self.db, transaction_id, status)

    async def get_customer_snapshot(self, customer_id: UUID) -> Optional[CustomerSnapshot]:
        row = await customer_repo.get_customer_balances(self.db, customer_id)
        if row is None:
            return None
        return CustomerSnapshot(
            id=row.id,
            name=row.name,
            phone=row.phone,
            loyalty_points=row.loyalty_points,
            total_spent=row.total_spent,
        )
