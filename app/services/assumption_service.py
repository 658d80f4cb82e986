"""
Assumption Service - status changes and their ripple effects.

An assumption is global and may back many decisions. Changing its status
re-evaluates every linked decision through the evaluation service.
"""

import logging
from typing import Union

from app.clock import Clock
from app.config import EngineConfig
from app.errors import EntityNotFoundError
from app.repositories import decision_store
from app.schemas import Assumption, AssumptionStatus
from app.services.evaluation_service import BatchReport, reevaluate_linked_to_assumptions

logger = logging.getLogger(__name__)


def update_status(
    assumption_id: str,
    status: Union[AssumptionStatus, str],
    clock: Clock,
    config: EngineConfig,
) -> tuple[Assumption, BatchReport]:
    """
    Set an assumption's status and re-evaluate linked decisions.

    Raises:
        EntityNotFoundError: assumption does not exist
    """
    current = decision_store.get_assumption(assumption_id)
    if current is None:
        raise EntityNotFoundError("Assumption", assumption_id)

    status = AssumptionStatus(status)
    if current.status == status:
        logger.info(f"[{assumption_id}] status already {status.value}; nothing to re-evaluate")
        return current, BatchReport()

    updated = decision_store.update_assumption(assumption_id, status=status, validated_at=clock.now())
    logger.info(f"[{assumption_id}] status {getattr(current.status, 'value', current.status)} → {status.value}")

    report = reevaluate_linked_to_assumptions([assumption_id], clock, config)
    return updated, report


def apply_statuses(changes: dict[str, AssumptionStatus], clock: Clock, config: EngineConfig) -> BatchReport:
    """
    Apply several status changes, then re-evaluate the union of linked decisions once.

    Unknown assumption ids are skipped with a warning.
    """
    changed = []
    now = clock.now()
    for assumption_id, status in sorted(changes.items()):
        current = decision_store.get_assumption(assumption_id)
        if current is None:
            logger.warning(f"[{assumption_id}] assumption not found; status change skipped")
            continue
        if current.status == status:
            continue
        decision_store.update_assumption(assumption_id, status=status, validated_at=now)
        logger.info(f"[{assumption_id}] status {getattr(current.status, 'value', current.status)} → {status.value}")
        changed.append(assumption_id)

    if not changed:
        return BatchReport()
    return reevaluate_linked_to_assumptions(changed, clock, config)
