"""
Conflicts Router — /v1/assumption-conflicts and /v1/decision-conflicts

Detection runs, listing, resolution and false-positive deletion.
Service errors (not found, invalid action, already resolved) are mapped to
HTTP status codes by the exception handlers in app.main.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from app.repositories import conflict_store
from app.routers.dependencies import (
    get_engine_config,
    get_llm_client,
    get_organization_id,
    organization_clock,
)
from app.schemas.requests import ResolveConflictRequest
from app.schemas.responses import (
    BatchReportResponse,
    ConflictListResponse,
    ConflictResponse,
    DeleteConflictResponse,
    DetectionResponse,
    ResolutionResponse,
)
from app.services import conflict_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1",
    tags=["conflicts"],
)


def _detection_response(report) -> DetectionResponse:
    return DetectionResponse(
        **report.to_dict(),
        new_conflicts=[ConflictResponse.from_record(r) for r in report.created],
    )


def _list_response(kind: str, organization_id: Optional[str], unresolved_only: bool) -> ConflictListResponse:
    records = conflict_store.list_conflicts(kind, organization_id, unresolved_only=unresolved_only)
    return ConflictListResponse(
        conflicts=[ConflictResponse.from_record(r) for r in records],
        count=len(records),
    )


# ── Assumption conflicts ─────────────────────────────────────────────────────

@router.post("/assumption-conflicts/detect", response_model=DetectionResponse)
async def detect_assumption_conflicts(
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """Scan every assumption of the organization for contradicting pairs."""
    report = conflict_service.detect_assumption_conflicts(
        organization_id, organization_clock(request, organization_id)
    )
    return _detection_response(report)


@router.get("/assumption-conflicts", response_model=ConflictListResponse)
async def list_assumption_conflicts(
    unresolved_only: bool = False,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    return _list_response(conflict_store.ASSUMPTION, organization_id, unresolved_only)


@router.put("/assumption-conflicts/{conflict_id}/resolve", response_model=ResolutionResponse)
async def resolve_assumption_conflict(
    conflict_id: str,
    body: ResolveConflictRequest,
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """VALIDATE_A | VALIDATE_B | DEPRECATE_BOTH | MERGE | KEEP_BOTH"""
    record, report = conflict_service.resolve_assumption_conflict(
        conflict_id,
        body.resolution_action,
        body.resolution_notes,
        organization_id,
        organization_clock(request, organization_id),
        get_engine_config(request),
    )
    return ResolutionResponse(
        conflict=ConflictResponse.from_record(record),
        reevaluation=BatchReportResponse.from_report(report),
    )


@router.delete("/assumption-conflicts/{conflict_id}", response_model=DeleteConflictResponse)
async def delete_assumption_conflict(
    conflict_id: str,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    record = conflict_service.delete_conflict(conflict_id, conflict_store.ASSUMPTION, organization_id)
    return DeleteConflictResponse(id=record.id)


# ── Decision conflicts ───────────────────────────────────────────────────────

@router.post("/decision-conflicts/detect", response_model=DetectionResponse)
async def detect_decision_conflicts(
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """
    Scan active decisions pairwise. New conflicts get an AI-written
    explanation when the LLM client is configured.
    """
    clock = organization_clock(request, organization_id)
    llm_client = get_llm_client(request)

    # The OpenAI client is synchronous; keep the event loop free while it runs.
    loop = asyncio.get_event_loop()
    report = await loop.run_in_executor(
        None,
        lambda: conflict_service.detect_decision_conflicts(organization_id, clock, llm_client=llm_client),
    )
    return _detection_response(report)


@router.get("/decision-conflicts", response_model=ConflictListResponse)
async def list_decision_conflicts(
    unresolved_only: bool = False,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    return _list_response(conflict_store.DECISION, organization_id, unresolved_only)


@router.put("/decision-conflicts/{conflict_id}/resolve", response_model=ResolutionResponse)
async def resolve_decision_conflict(
    conflict_id: str,
    body: ResolveConflictRequest,
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """PRIORITIZE_A | PRIORITIZE_B | MODIFY_BOTH | DEPRECATE_BOTH | KEEP_BOTH"""
    record, report = conflict_service.resolve_decision_conflict(
        conflict_id,
        body.resolution_action,
        body.resolution_notes,
        organization_id,
        organization_clock(request, organization_id),
        get_engine_config(request),
    )
    return ResolutionResponse(
        conflict=ConflictResponse.from_record(record),
        reevaluation=BatchReportResponse.from_report(report),
    )


@router.delete("/decision-conflicts/{conflict_id}", response_model=DeleteConflictResponse)
async def delete_decision_conflict(
    conflict_id: str,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    record = conflict_service.delete_conflict(conflict_id, conflict_store.DECISION, organization_id)
    return DeleteConflictResponse(id=record.id)
