"""Tests for the checkout sequencer against an in-memory store."""

import asyncio
import copy
from contextlib import asynccontextmanager
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import make_line
from pos.core.errors import (
    DuplicateCheckoutError,
    DuplicateInvoiceNumberError,
    InconsistentTransactionError,
    InsufficientStockError,
    LoyaltyBalanceConflictError,
)
from pos.db.models.transactions import TransactionStatus
from pos.domain.billing.engine import PaymentMethod, compute_bill
from pos.domain.billing.loyalty import LoyaltyPolicy
from pos.domain.checkout.invoice_numbers import format_invoice_number, parse_invoice_number
from pos.domain.checkout.sequencer import CheckoutOrder, CheckoutSequencer
from pos.domain.checkout.store import CustomerSnapshot


class FakeStore:
    """In-memory CheckoutStore.

    ``raced_numbers`` are invoice numbers another till takes just before this
    one inserts; ``fail_on`` names a method that raises ``RuntimeError``.
    """

    def __init__(self, stock, customers=(), last_sequence=0, raced_numbers=(), fail_on=None):
        self.state = {
            "stock": dict(stock),
            "customers": {c.id: c for c in customers},
            "transactions": {},
            "items": {},
            "ledger": [],
        }
        self.last_sequence = last_sequence
        self.raced_numbers = set(raced_numbers)
        self.fail_on = fail_on
        self.calls = []

    def _record(self, name):
        self.calls.append(name)
        if self.fail_on == name:
            raise RuntimeError(f"{name} failed")

    async def find_transaction_by_idempotency_key(self, idempotency_key):
        for txn_id, txn in self.state["transactions"].items():
            if txn["status"] != TransactionStatus.CANCELLED and txn["header"].idempotency_key == idempotency_key:
                return txn_id
        return None

    async def allocate_next_invoice_number(self, prefix, width=4):
        self._record("allocate_next_invoice_number")
        return format_invoice_number(prefix, self.last_sequence + 1, width)

    async def insert_transaction(self, header):
        self._record("insert_transaction")
        if header.invoice_number in self.raced_numbers:
            self.raced_numbers.discard(header.invoice_number)
            self.last_sequence = parse_invoice_number(header.invoice_number, header.invoice_prefix)
            raise DuplicateInvoiceNumberError(header.invoice_number)
        self.last_sequence = parse_invoice_number(header.invoice_number, header.invoice_prefix)
        txn_id = uuid4()
        self.state["transactions"][txn_id] = {"header": header, "status": TransactionStatus.PENDING}
        return txn_id

    @asynccontextmanager
    async def atomic(self, timeout=None):
        saved = copy.deepcopy(self.state)
        try:
            yield
        except BaseException:
            self.state = saved
            raise

    async def insert_transaction_items(self, transaction_id, items):
        self._record("insert_transaction_items")
        self.state["items"][transaction_id] = list(items)

    async def decrement_stock(self, product_id, quantity):
        self._record("decrement_stock")
        if self.state["stock"].get(product_id, 0) < quantity:
            return False
        self.state["stock"][product_id] -= quantity
        return True

    async def update_customer_loyalty(self, customer_id, points_delta, spent_delta):
        self._record("update_customer_loyalty")
        customer = self.state["customers"][customer_id]
        if customer.loyalty_points + points_delta < 0:
            return False
        self.state["customers"][customer_id] = CustomerSnapshot(
            id=customer.id,
            name=customer.name,
            phone=customer.phone,
            loyalty_points=customer.loyalty_points + points_delta,
            total_spent=customer.total_spent + spent_delta,
        )
        return True

    async def append_loyalty_ledger(self, entry):
        self._record("append_loyalty_ledger")
        self.state["ledger"].append(entry)

    async def set_transaction_status(self, transaction_id, status):
        self._record(f"set_status_{status.value}")
        self.state["transactions"][transaction_id]["status"] = status

    async def get_customer_snapshot(self, customer_id):
        return self.state["customers"].get(customer_id)

    def status_of(self, transaction_id):
        return self.state["transactions"][transaction_id]["status"]


POLICY = LoyaltyPolicy()


@pytest.fixture
def soap():
    return make_line("100", 2, "18", inclusive=True, name="Neem Soap")


@pytest.fixture
def customer():
    return CustomerSnapshot(
        id=uuid4(), name="Asha Rao", phone="9876543210", loyalty_points=250, total_spent=Decimal("0")
    )


def bill_of(lines, customer=None, redeem=0):
    return compute_bill(
        lines,
        PaymentMethod.CARD,
        POLICY,
        loyalty_redeem_points=redeem,
        customer_loyalty_balance=customer.loyalty_points if customer else None,
    )


class TestHappyPath:
    """A sale runs every step in order."""

    async def test_records_sale(self, soap) -> None:
        store = FakeStore({soap.product_id: 10}, last_sequence=42)
        receipt = await CheckoutSequencer(store).run(CheckoutOrder(lines=[soap], cashier_id="c-1"), bill_of([soap]))

        assert receipt.invoice_number == "NM 0043"
        assert receipt.status is TransactionStatus.COMPLETED
        assert receipt.total_amount == Decimal("200")
        assert receipt.cashier_id == "c-1"
        assert receipt.customer is None
        assert store.status_of(receipt.transaction_id) is TransactionStatus.COMPLETED
        assert store.state["stock"][soap.product_id] == 8
        assert store.calls == [
            "allocate_next_invoice_number",
            "insert_transaction",
            "insert_transaction_items",
            "decrement_stock",
            "set_status_completed",
        ]

    async def test_item_snapshots(self, soap) -> None:
        store = FakeStore({soap.product_id: 10})
        receipt = await CheckoutSequencer(store).run(CheckoutOrder(lines=[soap]), bill_of([soap]))

        (item,) = receipt.items
        assert item.line_number == 1
        assert item.product_name == "Neem Soap"
        assert item.quantity == 2
        assert item.unit_price == Decimal("100")
        assert item.gst_rate == Decimal("18")
        assert item.price_includes_gst is True
        assert item.gst_amount == Decimal("30.51")
        assert item.total_price == Decimal("200")
        assert store.state["items"][receipt.transaction_id] == [item]

    async def test_customer_loyalty(self, soap, customer) -> None:
        store = FakeStore({soap.product_id: 10}, customers=[customer])
        bill = bill_of([soap], customer)
        receipt = await CheckoutSequencer(store).run(CheckoutOrder(lines=[soap], customer=customer), bill)

        assert receipt.loyalty_points_earned == 2
        assert receipt.customer.loyalty_points == 252
        assert receipt.customer.total_spent == Decimal("200")
        (entry,) = store.state["ledger"]
        assert entry.points_earned == 2
        assert entry.points_redeemed == 0
        assert entry.transaction_id == receipt.transaction_id

    async def test_redemption(self, customer) -> None:
        line = make_line("1236", 1, "0", inclusive=False)
        store = FakeStore({line.product_id: 5}, customers=[customer])
        bill = bill_of([line], customer, redeem=100)
        receipt = await CheckoutSequencer(store).run(CheckoutOrder(lines=[line], customer=customer), bill)

        assert receipt.total_amount == Decimal("736")
        assert receipt.loyalty_points_redeemed == 100
        # 250 - 100 redeemed + 7 earned
        assert receipt.customer.loyalty_points == 157
        assert store.state["ledger"][0].discount_amount == Decimal("500")

    async def test_no_ledger_entry_without_points(self, customer) -> None:
        line = make_line("50", 1, "0", inclusive=False)
        store = FakeStore({line.product_id: 5}, customers=[customer])
        bill = bill_of([line], customer)
        receipt = await CheckoutSequencer(store).run(CheckoutOrder(lines=[line], customer=customer), bill)

        assert receipt.loyalty_points_earned == 0
        assert store.state["ledger"] == []
        assert receipt.customer.total_spent == Decimal("50")


class TestInvoiceAllocation:
    """Duplicate invoice numbers are re-allocated."""

    async def test_retries_after_race(self, soap) -> None:
        store = FakeStore({soap.product_id: 10}, last_sequence=9998, raced_numbers={"NM 9999"})
        receipt = await CheckoutSequencer(store).run(CheckoutOrder(lines=[soap]), bill_of([soap]))

        assert receipt.invoice_number == "NM 10000"
        assert store.calls.count("allocate_next_invoice_number") == 2

    async def test_gives_up_after_attempts(self, soap) -> None:
        store = FakeStore(
            {soap.product_id: 10}, raced_numbers={"NM 0001", "NM 0002"}
        )
        sequencer = CheckoutSequencer(store, allocation_attempts=2)
        with pytest.raises(DuplicateInvoiceNumberError):
            await sequencer.run(CheckoutOrder(lines=[soap]), bill_of([soap]))
        assert store.state["transactions"] == {}
        assert store.state["stock"][soap.product_id] == 10

    async def test_custom_prefix(self, soap) -> None:
        store = FakeStore({soap.product_id: 10})
        sequencer = CheckoutSequencer(store, invoice_prefix="BR2", invoice_width=6)
        receipt = await sequencer.run(CheckoutOrder(lines=[soap]), bill_of([soap]))
        assert receipt.invoice_number == "BR2 000001"


class TestConflicts:
    """Races detected after the header is written cancel the sale."""

    async def test_stock_conflict_rolls_back(self, soap) -> None:
        rice = make_line("250", 1, "5", inclusive=False)
        store = FakeStore({soap.product_id: 10, rice.product_id: 0})
        lines = [soap, rice]
        with pytest.raises(InsufficientStockError):
            await CheckoutSequencer(store).run(CheckoutOrder(lines=lines), bill_of(lines))

        (txn_id,) = store.state["transactions"]
        assert store.status_of(txn_id) is TransactionStatus.CANCELLED
        assert store.state["stock"] == {soap.product_id: 10, rice.product_id: 0}
        assert store.state["items"] == {}

    async def test_loyalty_conflict_rolls_back(self, customer) -> None:
        line = make_line("1236", 1, "0", inclusive=False)
        bill = bill_of([line], customer, redeem=200)
        # another till spent the points after the bill was computed
        drained = CustomerSnapshot(
            id=customer.id, name=customer.name, phone=customer.phone, loyalty_points=50, total_spent=Decimal("0")
        )
        store = FakeStore({line.product_id: 5}, customers=[drained])
        with pytest.raises(LoyaltyBalanceConflictError):
            await CheckoutSequencer(store).run(CheckoutOrder(lines=[line], customer=customer), bill)

        (txn_id,) = store.state["transactions"]
        assert store.status_of(txn_id) is TransactionStatus.CANCELLED
        assert store.state["stock"][line.product_id] == 5
        assert store.state["customers"][customer.id].loyalty_points == 50


class TestPartialFailure:
    """Failures after the header is written are reported as inconsistent."""

    @pytest.mark.parametrize("step", ["insert_transaction_items", "decrement_stock", "append_loyalty_ledger"])
    async def test_leaves_pending_header(self, soap, customer, step) -> None:
        store = FakeStore({soap.product_id: 10}, customers=[customer], fail_on=step)
        with pytest.raises(InconsistentTransactionError) as exc_info:
            await CheckoutSequencer(store).run(
                CheckoutOrder(lines=[soap], customer=customer), bill_of([soap], customer)
            )

        err = exc_info.value
        assert err.invoice_number == "NM 0001"
        assert store.status_of(err.transaction_id) is TransactionStatus.PENDING
        assert isinstance(err.cause, RuntimeError)
        assert store.state["stock"][soap.product_id] == 10

    async def test_header_failure_is_not_inconsistent(self, soap) -> None:
        store = FakeStore({soap.product_id: 10}, fail_on="insert_transaction")
        with pytest.raises(RuntimeError):
            await CheckoutSequencer(store).run(CheckoutOrder(lines=[soap]), bill_of([soap]))
        assert store.state["transactions"] == {}

    async def test_step_timeout(self, soap) -> None:
        store = FakeStore({soap.product_id: 10})

        async def slow_decrement(product_id, quantity):
            await asyncio.sleep(1)
            return True

        store.decrement_stock = slow_decrement
        with pytest.raises(InconsistentTransactionError) as exc_info:
            await CheckoutSequencer(store, step_timeout=0.01).run(CheckoutOrder(lines=[soap]), bill_of([soap]))
        assert exc_info.value.step == "stock"


class TestIdempotency:
    """A checkout key can only be completed once."""

    async def test_rejects_repeated_key(self, soap) -> None:
        store = FakeStore({soap.product_id: 10})
        sequencer = CheckoutSequencer(store)
        order = CheckoutOrder(lines=[soap], idempotency_key="till-1-0007")
        first = await sequencer.run(order, bill_of([soap]))

        with pytest.raises(DuplicateCheckoutError) as exc_info:
            await sequencer.run(order, bill_of([soap]))
        assert exc_info.value.transaction_id == first.transaction_id
        assert store.state["stock"][soap.product_id] == 8

    async def test_key_reusable_after_conflict(self, soap) -> None:
        store = FakeStore({soap.product_id: 1})
        sequencer = CheckoutSequencer(store)
        order = CheckoutOrder(lines=[soap], idempotency_key="till-1-0008")
        with pytest.raises(InsufficientStockError):
            await sequencer.run(order, bill_of([soap]))

        store.state["stock"][soap.product_id] = 10
        receipt = await sequencer.run(order, bill_of([soap]))
        assert receipt.invoice_number == "NM 0002"
        assert store.status_of(receipt.transaction_id) is TransactionStatus.COMPLETED
        assert store.state["stock"][soap.product_id] == 8
