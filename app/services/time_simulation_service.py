"""
Time Simulation Service - per-organization virtual clock.

Advancing time stores a larger offset for the organization and re-runs the
engine over all of its non-retired decisions using an OffsetClock. The
engine itself never knows time is simulated.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.clock import Clock, OffsetClock
from app.config import EngineConfig
from app.errors import InputValidationError
from app.repositories import clock_store, decision_store
from app.schemas import DecisionLifecycle
from app.services.evaluation_service import BatchReport, reevaluate_decisions

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class SimulatedTime:
    organization_id: Optional[str]
    offset_days: float
    simulated_now: datetime
    real_now: datetime


def clock_for(organization_id: Optional[str], base: Clock) -> Clock:
    """The organization's view of "now": base clock shifted by its stored offset."""
    offset = clock_store.get_offset(organization_id)
    if not offset:
        return base
    return OffsetClock(base, offset)


def current_time(organization_id: Optional[str], base: Clock) -> SimulatedTime:
    offset = clock_store.get_offset(organization_id)
    real_now = base.now()
    return SimulatedTime(
        organization_id=organization_id,
        offset_days=offset.total_seconds() / SECONDS_PER_DAY,
        simulated_now=real_now + offset,
        real_now=real_now,
    )


def advance_time(organization_id: Optional[str], days: float, base: Clock,
                 config: EngineConfig) -> tuple[SimulatedTime, BatchReport]:
    """
    Move the organization's clock forward and re-evaluate its decisions.

    Raises:
        InputValidationError: days is not positive
    """
    if days <= 0:
        raise InputValidationError(f"days must be positive, got {days}")

    offset = clock_store.advance(organization_id, days)
    logger.info(f"[{organization_id}] simulated time advanced by {days:g} day(s), offset now {offset}")

    candidates = [
        d.id for d in decision_store.list_decisions(organization_id)
        if d.lifecycle != DecisionLifecycle.RETIRED
    ]
    report = reevaluate_decisions(candidates, clock_for(organization_id, base), config)
    return current_time(organization_id, base), report


def reset_time(organization_id: Optional[str], base: Clock) -> SimulatedTime:
    """Back to real time. Decision state computed under simulation is kept."""
    clock_store.clear(organization_id)
    logger.info(f"[{organization_id}] simulated time reset")
    return current_time(organization_id, base)
