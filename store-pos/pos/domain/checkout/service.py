# pos/domain/checkout/service.py
from collections import Counter
from typing import List, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pos.core.config import settings
from pos.core.errors import BillingRejectedError, BusinessError, InsufficientStockError, NotFoundError
from pos.db.models.transactions import Transaction, TransactionStatus
from pos.db.repositories import customers as customer_repo
from pos.db.repositories import products as product_repo
from pos.db.repositories import transactions as transaction_repo
from pos.domain.billing.engine import CartLine, compute_bill
from pos.domain.billing.loyalty import LoyaltyPolicy
from pos.domain.billing.tax import tax_treatment

from .schemas import BillingResultOut, CartLineIn, CheckoutRequest, QuoteRequest
from .sequencer import CheckoutOrder, CheckoutSequencer, Receipt
from .store import CustomerSnapshot, ItemSnapshot, SqlCheckoutStore

log = structlog.get_logger(__name__)


def loyalty_policy() -> LoyaltyPolicy:
    return LoyaltyPolicy.from_settings(settings)


def build_sequencer(db: AsyncSession) -> CheckoutSequencer:
    return CheckoutSequencer(
        SqlCheckoutStore(db),
        invoice_prefix=settings.INVOICE_PREFIX,
        invoice_width=settings.INVOICE_NUMBER_WIDTH,
        allocation_attempts=settings.INVOICE_ALLOCATION_ATTEMPTS,
        step_timeout=settings.DB_STEP_TIMEOUT_SECONDS,
    )


def to_cart_line(line: CartLineIn, name: str) -> CartLine:
    return CartLine(
        product_id=line.product_id,
        name=name,
        unit_price=line.unit_price,
        quantity=line.quantity,
        tax=tax_treatment(line.tax_rate_percent, line.tax_inclusive),
    )


def quote_bill(data: QuoteRequest) -> BillingResultOut:
    """Preview the bill; a rejection is reported instead of raised."""
    lines = [to_cart_line(line, str(line.product_id)) for line in data.lines]
    try:
        bill = compute_bill(
            lines,
            data.payment_method,
            loyalty_policy(),
            loyalty_redeem_points=data.loyalty_redeem_points,
            customer_loyalty_balance=data.customer_loyalty_balance,
            cash_received=data.cash_received,
        )
    except BillingRejectedError as exc:
        return BillingResultOut(rejection_reason=exc.reason, rejection_message=exc.message)
    return BillingResultOut.model_validate(bill)


async def checkout(
    db: AsyncSession,
    data: CheckoutRequest,
    cashier_id: Optional[str] = None,
) -> Receipt:
    """Bill the cart and record the sale.

    Unknown products, insufficient stock and every billing rejection are
    raised before anything is written.
    """
    products = await product_repo.get_products_by_ids(db, (line.product_id for line in data.lines))
    missing = [line.product_id for line in data.lines if line.product_id not in products]
    if missing:
        raise NotFoundError(f"Product {missing[0]} not found")

    requested = Counter()
    for line in data.lines:
        requested[line.product_id] += line.quantity
    for product_id, quantity in requested.items():
        available = products[product_id].stock_quantity
        if quantity > available:
            raise InsufficientStockError(product_id, quantity, available)

    customer = None
    if data.customer_id is not None:
        row = await customer_repo.get_customer_by_id(db, data.customer_id)
        if row is None:
            raise NotFoundError(f"Customer {data.customer_id} not found")
        customer = CustomerSnapshot(
            id=row.id,
            name=row.name,
            phone=row.phone,
            loyalty_points=row.loyalty_points,
            total_spent=row.total_spent,
        )

    lines = [to_cart_line(line, products[line.product_id].name) for line in data.lines]
    bill = compute_bill(
        lines,
        data.payment_method,
        loyalty_policy(),
        loyalty_redeem_points=data.loyalty_redeem_points,
        customer_loyalty_balance=customer.loyalty_points if customer else None,
        cash_received=data.cash_received,
    )

    order = CheckoutOrder(
        lines=lines,
        customer=customer,
        cashier_id=cashier_id,
        idempotency_key=data.idempotency_key,
    )
    return await build_sequencer(db).run(order, bill)


async def get_receipt(
    db: AsyncSession,
    transaction_id: UUID
) -> Receipt:
    txn = await transaction_repo.get_transaction_by_id(db, transaction_id)
    if txn is None:
        raise NotFoundError("Transaction not found")

    items = await transaction_repo.get_items_for_transaction(db, transaction_id)
    customer = None
    if txn.customer_id is not None:
        customer = await SqlCheckoutStore(db).get_customer_snapshot(txn.customer_id)

    return Receipt(
        transaction_id=txn.id,
        invoice_number=txn.invoice_number,
        status=txn.status,
        cashier_id=txn.cashier_id,
        payment_method=txn.payment_method,
        subtotal=txn.subtotal,
        gst_amount=txn.gst_amount,
        loyalty_discount_amount=txn.loyalty_discount_amount,
        rounding_adjustment=txn.rounding_adjustment,
        total_amount=txn.total_amount,
        cash_received=txn.cash_received,
        change_amount=txn.change_amount,
        loyalty_points_earned=txn.loyalty_points_earned,
        loyalty_points_redeemed=txn.loyalty_points_redeemed,
        items=tuple(
            ItemSnapshot(
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
        ),
        customer=customer,
    )


async def list_pending_transactions(
    db: AsyncSession,
    limit: int = 100
) -> List[Transaction]:
    return await transaction_repo.list_transactions_by_status(db, TransactionStatus.PENDING, limit)


async def cancel_pending_transaction(
    db: AsyncSession,
    transaction_id: UUID
) -> Transaction:
    """Mark a header stuck in PENDING as cancelled.

    Stock and loyalty points are left as they are: a pending header's side
    effects were rolled back together with the failed step.
    """
    txn = await transaction_repo.get_transaction_by_id(db, transaction_id)

    if txn is None:
        raise NotFoundError("Transaction not found")

    if txn.status != TransactionStatus.PENDING:
        raise BusinessError("Only PENDING transactions can be cancelled")

    await transaction_repo.set_transaction_status(db, transaction_id, TransactionStatus.CANCELLED)
    await db.commit()
    await db.refresh(txn)

    log.info("pending_transaction_cancelled", transaction_id=str(txn.id), invoice_number=txn.invoice_number)
    return txn
