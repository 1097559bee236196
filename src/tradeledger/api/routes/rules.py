"""Profit rule CRUD endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tradeledger.api.routes.serialize import rule_to_json
from tradeledger.exceptions import ValidationError
from tradeledger.rules.table import to_decimal

log = structlog.get_logger(__name__)

router = APIRouter()


class RuleBody(BaseModel):
    min_balance: Any = Field(default=None, alias="minBalance")
    max_balance: Any = Field(default=None, alias="maxBalance")
    profit: Any = None
    is_active: bool | None = Field(default=None, alias="isActive")


def _optional_decimal(value: Any, field: str) -> Decimal | None:
    return None if value is None else to_decimal(value, field)


@router.get("/rules")
async def list_rules(request: Request) -> JSONResponse:
    rule_table = request.app.state.rule_table
    rules = await rule_table.list_rules()
    return JSONResponse(content=[rule_to_json(rule) for rule in rules])


@router.post("/rules")
async def create_rule(request: Request, body: RuleBody) -> JSONResponse:
    if body.min_balance is None or body.max_balance is None or body.profit is None:
        raise ValidationError("minBalance, maxBalance, and profit are required")

    rule_table = request.app.state.rule_table
    rule = await rule_table.create_rule(
        to_decimal(body.min_balance, "minBalance"),
        to_decimal(body.max_balance, "maxBalance"),
        to_decimal(body.profit, "profit"),
        is_active=True if body.is_active is None else body.is_active,
    )
    log.info("profit_rule_created_via_api", rule_id=rule.id)
    return JSONResponse(
        status_code=201,
        content={"message": "Profit rule created successfully", "rule": rule_to_json(rule)},
    )


@router.put("/rules/{rule_id}")
async def update_rule(request: Request, rule_id: int, body: RuleBody) -> JSONResponse:
    rule_table = request.app.state.rule_table
    rule = await rule_table.update_rule(
        rule_id,
        min_balance=_optional_decimal(body.min_balance, "minBalance"),
        max_balance=_optional_decimal(body.max_balance, "maxBalance"),
        profit=_optional_decimal(body.profit, "profit"),
        is_active=body.is_active,
    )
    return JSONResponse(
        content={"message": "Profit rule updated successfully", "rule": rule_to_json(rule)}
    )


@router.delete("/rules/{rule_id}")
async def delete_rule(request: Request, rule_id: int) -> JSONResponse:
    await request.app.state.rule_table.delete_rule(rule_id)
    return JSONResponse(content={"message": "Profit rule deleted successfully"})


@router.patch("/rules/{rule_id}/toggle-status")
async def toggle_rule(request: Request, rule_id: int) -> JSONResponse:
    rule = await request.app.state.rule_table.toggle_rule(rule_id)
    state = "activated" if rule.is_active else "deactivated"
    return JSONResponse(
        content={
            "message": f"Profit rule {state} successfully",
            "rule": {"id": rule.id, "isActive": rule.is_active},
        }
    )
