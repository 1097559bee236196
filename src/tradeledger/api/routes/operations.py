"""Operational hooks: manual settlement / deactivation and scheduler status."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tradeledger.api.routes.serialize import to_json

log = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/operations/settlement")
async def trigger_settlement(request: Request) -> JSONResponse:
    """Run a settlement cycle now. Same effects as a scheduled firing."""
    result = await request.app.state.scheduler.trigger_settlement_manually()
    log.info("settlement_triggered_via_api", cycle_id=result.cycle_id)
    return JSONResponse(content=to_json(result))


@router.post("/operations/deactivation")
async def trigger_deactivation(request: Request) -> JSONResponse:
    result = await request.app.state.scheduler.trigger_deactivation_manually()
    log.info("deactivation_triggered_via_api", cycle_id=result.cycle_id)
    return JSONResponse(content=to_json(result))


@router.get("/operations/status")
async def scheduler_status(request: Request) -> JSONResponse:
    return JSONResponse(content=request.app.state.scheduler.get_status())
