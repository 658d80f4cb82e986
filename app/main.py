"""
Decision Health Monitor - FastAPI Application

Tracks the health of organizational decisions as their assumptions,
constraints, dependencies and review schedule drift, and flags conflicting
assumptions and decisions.
"""

import logging
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from app.clock import SystemClock
from app.config import load_engine_config
from app.errors import ConflictStateError, EntityNotFoundError, InputValidationError
from app.llm_client import LLMClient
from app.routers import (
    assumptions_router,
    conflicts_router,
    decisions_router,
    notifications_router,
    time_simulation_router,
)

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _ai_explanations_enabled() -> bool:
    return os.getenv("ENABLE_AI_EXPLANATIONS", "false").strip().lower() in ("1", "true", "yes")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown.
    """
    # Startup
    logger.info("Initializing Decision Health Monitor...")

    app.state.engine_config = load_engine_config()
    app.state.clock = SystemClock()
    app.state.llm_client = None

    if _ai_explanations_enabled() and os.getenv("OPENAI_API_KEY"):
        try:
            app.state.llm_client = LLMClient(model=os.getenv("OPENAI_MODEL", "gpt-4o"))
        except Exception as e:
            # Explanations fall back to deterministic text
            logger.error(f"Failed to initialize LLM client: {e}", exc_info=True)

    logger.info(
        f"Application initialized (ai_explanations="
        f"{'on' if app.state.llm_client else 'off'})"
    )

    yield

    # Shutdown
    logger.info("Shutting down Decision Health Monitor...")


# Initialize FastAPI app
app = FastAPI(
    title="Decision Health Monitor",
    description="Deterministic health evaluation and conflict detection for organizational decisions",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(decisions_router)
app.include_router(assumptions_router)
app.include_router(conflicts_router)
app.include_router(time_simulation_router)
app.include_router(notifications_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "Decision Health Monitor",
        "status": "operational",
        "version": "0.1.0",
        "endpoints": {
            "decisions": "/v1/decisions",
            "assumptions": "/v1/assumptions",
            "constraints": "/v1/constraints",
            "assumption_conflicts": "/v1/assumption-conflicts",
            "decision_conflicts": "/v1/decision-conflicts",
            "simulate_time": "/v1/simulate-time",
            "notifications": "/v1/notifications",
        }
    }


@app.get("/health")
async def health(request: Request):
    """Detailed health check."""
    return {
        "status": "healthy",
        "engine_config": "loaded" if getattr(request.app.state, "engine_config", None) else "default",
        "llm_client": "initialized" if getattr(request.app.state, "llm_client", None) else "disabled",
    }


@app.exception_handler(EntityNotFoundError)
async def not_found_handler(request: Request, exc: EntityNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError):
    logger.warning(f"Rejected input on {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc), "errors": exc.errors})


@app.exception_handler(ConflictStateError)
async def conflict_state_handler(request: Request, exc: ConflictStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler to prevent crashes."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc),
            "detail": "The service encountered an unexpected error but remains operational"
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
