"""Account endpoints used by the surrounding deposit / withdrawal / profile flows."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tradeledger.api.routes.serialize import account_to_json, transaction_to_json
from tradeledger.exceptions import ValidationError
from tradeledger.rules.table import to_decimal

log = structlog.get_logger(__name__)

router = APIRouter()


class AdjustmentBody(BaseModel):
    amount: Any = None
    description: str | None = None


class ParticipationBody(BaseModel):
    participating: bool


@router.post("/accounts")
async def create_account(request: Request) -> JSONResponse:
    account = await request.app.state.account_store.create_account(datetime.now(timezone.utc))
    return JSONResponse(status_code=201, content=account_to_json(account))


@router.get("/accounts/{account_id}")
async def get_account(request: Request, account_id: str) -> JSONResponse:
    account = await request.app.state.account_store.get_account(account_id)
    return JSONResponse(content=account_to_json(account))


@router.get("/accounts/{account_id}/ledger")
async def get_ledger(request: Request, account_id: str, limit: int | None = None) -> JSONResponse:
    entries = await request.app.state.account_store.list_ledger(account_id, limit=limit)
    return JSONResponse(content=[transaction_to_json(entry) for entry in entries])


@router.patch("/accounts/{account_id}/toggle-participation")
async def toggle_participation(request: Request, account_id: str) -> JSONResponse:
    account = await request.app.state.account_store.toggle_participation(account_id)
    state = "activated" if account.participating else "deactivated"
    return JSONResponse(
        content={
            "message": f"AI trading {state} successfully",
            "participating": account.participating,
        }
    )


@router.put("/accounts/{account_id}/participation")
async def set_participation(
    request: Request, account_id: str, body: ParticipationBody
) -> JSONResponse:
    account = await request.app.state.account_store.set_participating(
        account_id, body.participating
    )
    return JSONResponse(content=account_to_json(account))


@router.post("/accounts/{account_id}/adjustments")
async def apply_adjustment(
    request: Request, account_id: str, body: AdjustmentBody
) -> JSONResponse:
    """Signed balance adjustment: deposit approval, withdrawal, refund, commission."""
    if body.amount is None or not body.description:
        raise ValidationError("amount and description are required")
    amount = to_decimal(body.amount, "amount")
    account = await request.app.state.account_store.apply_adjustment(
        account_id, amount, body.description, datetime.now(timezone.utc)
    )
    log.info("balance_adjusted_via_api", account_id=account_id, amount=str(amount))
    return JSONResponse(content=account_to_json(account))
