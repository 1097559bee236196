"""FastAPI application factory for the ledger's administrative and account API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tradeledger.api.routes import accounts, operations, rules, schedule
from tradeledger.exceptions import (
    ConflictError,
    LedgerError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from tradeledger.logging import get_logger

logger = get_logger(__name__)

_STATUS_BY_ERROR: list[tuple[type[LedgerError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StoreError, 503),
]


async def _ledger_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status = code
            break
    log = logger.warning if status < 500 else logger.error
    log("api_request_failed", path=request.url.path, status=status, error=str(exc))
    return JSONResponse(status_code=status, content={"success": False, "message": str(exc)})


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Route handlers read components from app.state: account_store,
    rule_table, scheduler, schedule_service.
    """
    app = FastAPI(
        title="Trade Ledger Settlement API",
        lifespan=lifespan,
    )

    app.add_exception_handler(LedgerError, _ledger_error_handler)

    app.include_router(schedule.router, prefix="/api")
    app.include_router(rules.router, prefix="/api")
    app.include_router(operations.router, prefix="/api")
    app.include_router(accounts.router, prefix="/api")

    return app
