from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from pos.api.v1.routes_checkout import router as checkout_router
from pos.core.config import settings
from pos.core.errors import (
    BusinessError,
    ConflictError,
    DuplicateCheckoutError,
    InconsistentTransactionError,
    InsufficientStockError,
    NotFoundError,
    PosError,
)
from pos.core.logging import configure_logging

configure_logging(settings.LOG_LEVEL)
log = structlog.get_logger(__name__)

app = FastAPI(title="store-pos")

app.include_router(checkout_router)


def _error_body(exc: PosError, **extra) -> dict:
    return {"reason": exc.reason, "detail": exc.message, **extra}


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content=_error_body(exc))


@app.exception_handler(BusinessError)
async def business_error_handler(request: Request, exc: BusinessError):
    log.info("checkout_rejected", path=request.url.path, reason=exc.reason)
    return JSONResponse(status_code=422, content=_error_body(exc))


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    extra = {}
    if isinstance(exc, InsufficientStockError):
        extra = {"product_id": str(exc.product_id), "requested": exc.requested, "available": exc.available}
    elif isinstance(exc, DuplicateCheckoutError) and exc.transaction_id is not None:
        extra = {"transaction_id": str(exc.transaction_id)}
    return JSONResponse(status_code=409, content=_error_body(exc, **extra))


@app.exception_handler(InconsistentTransactionError)
async def inconsistent_handler(request: Request, exc: InconsistentTransactionError):
    log.error(
        "transaction_needs_reconciliation",
        transaction_id=str(exc.transaction_id),
        invoice_number=exc.invoice_number,
        step=exc.step,
    )
    return JSONResponse(
        status_code=500,
        content=_error_body(
            exc,
            transaction_id=str(exc.transaction_id),
            invoice_number=exc.invoice_number,
            step=exc.step,
        ),
    )


@app.get("/health")
async def health():
    return {"status": "ok"}
