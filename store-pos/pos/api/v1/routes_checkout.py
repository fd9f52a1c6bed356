# pos/api/v1/routes_checkout.py
from typing import List, Optional
from fastapi import APIRouter, Depends, Header
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession


from pos.db.base import get_db
from pos.domain.checkout.schemas import BillingResultOut, CheckoutRequest, QuoteRequest, ReceiptOut, TransactionOut
from pos.domain.checkout.service import (
    cancel_pending_transaction,
    checkout,
    get_receipt,
    list_pending_transactions,
    quote_bill,
)


router = APIRouter(prefix="/api/v1", tags=["checkout"])


@router.post("/checkout/quote", response_model=BillingResultOut)
async def quote_endpoint(payload: QuoteRequest):
    return quote_bill(payload)

@router.post("/checkout", response_model=ReceiptOut, status_code=201)
async def checkout_endpoint(
    payload: CheckoutRequest,
    x_cashier_id: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
):
    receipt = await checkout(db, payload, cashier_id=x_cashier_id)
    return ReceiptOut.model_validate(receipt)

@router.get("/transactions/pending", response_model=List[TransactionOut])
async def pending_transactions_endpoint(
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    return await list_pending_transactions(db, limit)

@router.get("/transactions/{transaction_id}", response_model=ReceiptOut)
async def receipt_endpoint(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    receipt = await get_receipt(db, transaction_id)
    return ReceiptOut.model_validate(receipt)

@router.post("/transactions/{transaction_id}/cancel", response_model=TransactionOut)
async def cancel_transaction_endpoint(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    return await cancel_pending_transaction(db, transaction_id)
