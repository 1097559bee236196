"""Settlement schedule endpoints (GetSchedule / UpdateSchedule)."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

log = structlog.get_logger(__name__)

router = APIRouter()


class ScheduleUpdateBody(BaseModel):
    time: str | None = None
    time_zone: str | None = Field(default=None, alias="timeZone")
    market_off_days: list[Any] | None = Field(default=None, alias="marketOffDays")
    updated_by: str | None = Field(default=None, alias="updatedBy")


@router.get("/schedule")
async def get_schedule(request: Request) -> JSONResponse:
    service = request.app.state.schedule_service
    return JSONResponse(content=await service.get_schedule())


@router.put("/schedule")
async def update_schedule(request: Request, body: ScheduleUpdateBody) -> JSONResponse:
    """Validate and persist a new schedule, re-arming the scheduler before returning."""
    if not body.time or not body.time_zone:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Time and timeZone are required"},
        )

    service = request.app.state.schedule_service
    result = await service.update(
        body.time,
        body.time_zone,
        body.market_off_days,
        updated_by=body.updated_by,
    )
    content: dict[str, Any] = {"success": result.success, "message": result.message}
    if result.market_off_days is not None:
        content["marketOffDays"] = result.market_off_days
    log.info("schedule_update_via_api", success=result.success)
    return JSONResponse(status_code=200 if result.success else 400, content=content)
