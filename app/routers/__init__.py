"""
app/routers — v1 API routers.

All routers use prefix="/v1" so routes resolve to:
  /v1/decisions
  /v1/assumptions, /v1/constraints
  /v1/assumption-conflicts, /v1/decision-conflicts
  /v1/simulate-time
  /v1/notifications
"""

from app.routers.assumptions import router as assumptions_router
from app.routers.conflicts import router as conflicts_router
from app.routers.decisions import router as decisions_router
from app.routers.notifications import router as notifications_router
from app.routers.time_simulation import router as time_simulation_router

__all__ = [
    "assumptions_router",
    "conflicts_router",
    "decisions_router",
    "notifications_router",
    "time_simulation_router",
]
