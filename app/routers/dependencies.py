"""
Shared FastAPI dependencies for the v1 routers.

Engine config, base clock and the optional LLM client live on app.state
(set in app.main lifespan). Tests may replace app.state.clock with a
FixedClock.
"""

from typing import Optional

from fastapi import Header, Request

from app.clock import Clock, SystemClock
from app.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from app.services.time_simulation_service import clock_for


def get_organization_id(x_organization_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Organization scope. Authentication is handled upstream of this service."""
    return x_organization_id


def get_base_clock(request: Request) -> Clock:
    return getattr(request.app.state, "clock", None) or SystemClock()


def get_engine_config(request: Request) -> EngineConfig:
    return getattr(request.app.state, "engine_config", None) or DEFAULT_ENGINE_CONFIG


def get_llm_client(request: Request):
    return getattr(request.app.state, "llm_client", None)


def organization_clock(request: Request, organization_id: Optional[str]) -> Clock:
    """The organization's "now", honoring simulated time."""
    return clock_for(organization_id, get_base_clock(request))
