"""
Engine configuration.

Penalty magnitudes and lifecycle thresholds are organization-tunable, so they
live here instead of inside the engine. Values load from ENGINE_* environment
variables (populated from .env by app.main via python-dotenv).

Ordering invariant enforced on load:
    constraint violations > broken assumptions > max staleness > shaky assumptions
"""

import logging
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


class EngineConfig(BaseModel):
    """Tunable constants for app.evaluation_engine.evaluate."""

    # Assumptions
    broken_assumption_penalty: float = Field(30, ge=0, le=100)
    shaky_assumption_penalty: float = Field(10, ge=0, le=100)
    valid_assumption_recovery: float = Field(0, ge=0, le=100)
    invalidate_on_broken_universal_assumption: bool = False

    # Constraints
    immutable_constraint_penalty: float = Field(50, ge=0, le=100)
    constraint_penalty: float = Field(35, ge=0, le=100)
    invalidate_on_immutable_violation: bool = Field(
        False,
        description="Treat every violated immutable constraint as invalidating, not only flagged ones",
    )

    # Dependencies
    dependency_aggregation: Literal["min", "average"] = "min"
    propagation_damping: float = Field(0.5, ge=0.0, le=1.0)
    cascade_invalidation: bool = True

    # Time
    staleness_bands: list[tuple[int, float]] = Field(
        default_factory=lambda: [(30, 5), (60, 10), (90, 15)],
        description="(days since last review, penalty) pairs; highest band crossed applies",
    )
    expiry_penalty: float = Field(30, ge=0, le=100)
    expiry_grace_days: int = Field(30, ge=0)

    # Lifecycle thresholds
    stable_threshold: int = Field(70, ge=0, le=100)
    at_risk_threshold: int = Field(40, ge=0, le=100)

    @field_validator("staleness_bands")
    @classmethod
    def sort_bands(cls, v):
        return sorted((int(days), float(penalty)) for days, penalty in v)

    @model_validator(mode="after")
    def check_ordering(self):
        max_staleness = max((p for _, p in self.staleness_bands), default=0)
        weakest_constraint = min(self.constraint_penalty, self.immutable_constraint_penalty)
        if not (weakest_constraint > self.broken_assumption_penalty
                > max_staleness > self.shaky_assumption_penalty):
            raise ValueError(
                "penalties must satisfy constraint > broken assumption > max staleness > shaky assumption "
                f"(got {weakest_constraint} / {self.broken_assumption_penalty} / "
                f"{max_staleness} / {self.shaky_assumption_penalty})"
            )
        if self.immutable_constraint_penalty < self.constraint_penalty:
            raise ValueError("immutable constraint penalty must not be weaker than mutable constraint penalty")
        if self.at_risk_threshold > self.stable_threshold:
            raise ValueError("at_risk_threshold must not exceed stable_threshold")
        return self


DEFAULT_ENGINE_CONFIG = EngineConfig()


_ENV_FIELDS = {
    "ENGINE_BROKEN_ASSUMPTION_PENALTY": "broken_assumption_penalty",
    "ENGINE_SHAKY_ASSUMPTION_PENALTY": "shaky_assumption_penalty",
    "ENGINE_VALID_ASSUMPTION_RECOVERY": "valid_assumption_recovery",
    "ENGINE_INVALIDATE_ON_BROKEN_UNIVERSAL_ASSUMPTION": "invalidate_on_broken_universal_assumption",
    "ENGINE_IMMUTABLE_CONSTRAINT_PENALTY": "immutable_constraint_penalty",
    "ENGINE_CONSTRAINT_PENALTY": "constraint_penalty",
    "ENGINE_INVALIDATE_ON_IMMUTABLE_VIOLATION": "invalidate_on_immutable_violation",
    "ENGINE_DEPENDENCY_AGGREGATION": "dependency_aggregation",
    "ENGINE_PROPAGATION_DAMPING": "propagation_damping",
    "ENGINE_CASCADE_INVALIDATION": "cascade_invalidation",
    "ENGINE_EXPIRY_PENALTY": "expiry_penalty",
    "ENGINE_EXPIRY_GRACE_DAYS": "expiry_grace_days",
    "ENGINE_STABLE_THRESHOLD": "stable_threshold",
    "ENGINE_AT_RISK_THRESHOLD": "at_risk_threshold",
}


def _parse_bands(raw: str) -> list[tuple[int, float]]:
    """Parse "30:5,60:10,90:15" into [(30, 5.0), (60, 10.0), (90, 15.0)]."""
    bands = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        days, penalty = chunk.split(":")
        bands.append((int(days), float(penalty)))
    return bands


def load_engine_config(environ: Optional[dict] = None) -> EngineConfig:
    """
    Build EngineConfig from ENGINE_* environment variables.

    Unset variables keep their defaults. An invalid configuration is logged
    and replaced by the defaults so the service stays available.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        EngineConfig
    """
    env = os.environ if environ is None else environ
    values: dict = {}
    for var, field_name in _ENV_FIELDS.items():
        raw = env.get(var)
        if raw is not None and raw != "":
            values[field_name] = raw

    raw_bands = env.get("ENGINE_STALENESS_BANDS")
    try:
        if raw_bands:
            values["staleness_bands"] = _parse_bands(raw_bands)
        config = EngineConfig(**values)
    except (ValidationError, ValueError) as e:
        logger.error(f"Invalid engine configuration, falling back to defaults: {e}")
        return EngineConfig()

    if values:
        logger.info(f"Engine configuration overrides loaded: {sorted(values)}")
    return config
