"""
Time Simulation Router — /v1/simulate-time

Per-organization virtual clock for demos and what-if reviews.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from app.routers.dependencies import get_base_clock, get_engine_config, get_organization_id
from app.schemas.requests import SimulateTimeRequest
from app.schemas.responses import BatchReportResponse, SimulatedTimeResponse
from app.services import time_simulation_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1",
    tags=["time-simulation"],
)


def _response(simulated, report=None) -> SimulatedTimeResponse:
    return SimulatedTimeResponse(
        organization_id=simulated.organization_id,
        offset_days=simulated.offset_days,
        simulated_now=simulated.simulated_now,
        real_now=simulated.real_now,
        reevaluation=BatchReportResponse.from_report(report) if report is not None else None,
    )


@router.get("/simulate-time", response_model=SimulatedTimeResponse)
async def get_simulated_time(request: Request, organization_id: Optional[str] = Depends(get_organization_id)):
    return _response(time_simulation_service.current_time(organization_id, get_base_clock(request)))


@router.post("/simulate-time", response_model=SimulatedTimeResponse)
async def advance_time(
    body: SimulateTimeRequest,
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """Advance the clock by `days` and re-evaluate every non-retired decision."""
    simulated, report = time_simulation_service.advance_time(
        organization_id, body.days, get_base_clock(request), get_engine_config(request)
    )
    return _response(simulated, report)


@router.delete("/simulate-time", response_model=SimulatedTimeResponse)
async def reset_time(request: Request, organization_id: Optional[str] = Depends(get_organization_id)):
    """Return to real time. Lifecycle changes made under simulation stay."""
    return _response(time_simulation_service.reset_time(organization_id, get_base_clock(request)))
