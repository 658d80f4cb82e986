"""
Decisions Router — /v1/decisions

Registration, linking and evaluation of monitored decisions.
All routes are mounted under /v1 via APIRouter prefix and scoped to the
X-Organization-Id header.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from app.repositories import decision_store
from app.routers.dependencies import get_engine_config, get_organization_id, organization_clock
from app.schemas import Decision, DecisionLifecycle, TERMINAL_LIFECYCLES
from app.schemas.requests import (
    AddDependenciesRequest,
    CreateDecisionRequest,
    LinkAssumptionsRequest,
    LinkConstraintsRequest,
)
from app.schemas.responses import DecisionDetailResponse, DecisionListResponse, EvaluationResponse
from app.services import evaluation_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1",
    tags=["decisions"],
)


def _owned_decision(decision_id: str, organization_id: Optional[str]) -> Decision:
    decision = decision_store.get_decision(decision_id)
    if not decision or (organization_id is not None and decision.organization_id != organization_id):
        raise HTTPException(status_code=404, detail=f"Decision '{decision_id}' not found")
    return decision


def _detail(decision_id: str) -> DecisionDetailResponse:
    last = decision_store.last_evaluation(decision_id)
    return DecisionDetailResponse(
        decision=decision_store.get_decision(decision_id),
        assumption_ids=[a.id for a in decision_store.assumptions_for(decision_id)],
        constraint_ids=[c.id for c in decision_store.constraints_for(decision_id)],
        depends_on=[d.target_decision_id for d in decision_store.dependencies_of(decision_id)],
        last_evaluation=EvaluationResponse(evaluated_at=last[0], result=last[1]) if last else None,
    )


@router.post("/decisions", status_code=201, response_model=Decision)
async def create_decision(
    body: CreateDecisionRequest,
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """POST /v1/decisions: register a decision. It starts STABLE until its first evaluation."""
    decision_id = body.id or decision_store.new_id()
    if decision_store.get_decision(decision_id):
        raise HTTPException(status_code=409, detail=f"Decision '{decision_id}' already exists")

    now = organization_clock(request, organization_id).now()
    created_at = body.created_at or now
    decision = Decision(
        id=decision_id,
        title=body.title,
        description=body.description,
        category=body.category,
        parameters=body.parameters,
        health_signal=body.health_signal,
        created_at=created_at,
        last_reviewed_at=body.last_reviewed_at or created_at,
        expiry_date=body.expiry_date,
        metadata=body.metadata,
        organization_id=organization_id,
    )
    decision_store.save_decision(decision)
    logger.info(f"[{decision_id}] Decision registered (organization={organization_id})")
    return decision


@router.get("/decisions", response_model=DecisionListResponse)
async def list_decisions(
    lifecycle: Optional[DecisionLifecycle] = None,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """GET /v1/decisions: optionally filtered by ?lifecycle=AT_RISK."""
    decisions = decision_store.list_decisions(organization_id, [lifecycle] if lifecycle else None)
    return DecisionListResponse(decisions=decisions, count=len(decisions))


@router.get("/decisions/{decision_id}", response_model=DecisionDetailResponse)
async def get_decision(decision_id: str, organization_id: Optional[str] = Depends(get_organization_id)):
    """GET /v1/decisions/{decision_id}: decision, links and last evaluation trace."""
    _owned_decision(decision_id, organization_id)
    return _detail(decision_id)


@router.post("/decisions/{decision_id}/assumptions", response_model=DecisionDetailResponse)
async def link_assumptions(
    decision_id: str,
    body: LinkAssumptionsRequest,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    _owned_decision(decision_id, organization_id)
    for assumption_id in body.assumption_ids:
        assumption = decision_store.get_assumption(assumption_id)
        if not assumption or (organization_id is not None and assumption.organization_id != organization_id):
            raise HTTPException(status_code=404, detail=f"Assumption '{assumption_id}' not found")
    for assumption_id in body.assumption_ids:
        decision_store.link_assumption(decision_id, assumption_id)
    return _detail(decision_id)


@router.post("/decisions/{decision_id}/constraints", response_model=DecisionDetailResponse)
async def link_constraints(
    decision_id: str,
    body: LinkConstraintsRequest,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    _owned_decision(decision_id, organization_id)
    for constraint_id in body.constraint_ids:
        constraint = decision_store.get_constraint(constraint_id)
        if not constraint or (organization_id is not None and constraint.organization_id != organization_id):
            raise HTTPException(status_code=404, detail=f"Constraint '{constraint_id}' not found")
    for constraint_id in body.constraint_ids:
        decision_store.link_constraint(decision_id, constraint_id)
    return _detail(decision_id)


@router.post("/decisions/{decision_id}/dependencies", response_model=DecisionDetailResponse)
async def add_dependencies(
    decision_id: str,
    body: AddDependenciesRequest,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """The decision in the path depends on every decision in depends_on."""
    _owned_decision(decision_id, organization_id)
    for target_id in body.depends_on:
        if target_id == decision_id:
            raise HTTPException(status_code=422, detail="A decision cannot depend on itself")
        _owned_decision(target_id, organization_id)
    for target_id in body.depends_on:
        decision_store.add_dependency(decision_id, target_id)
    return _detail(decision_id)


@router.post("/decisions/{decision_id}/evaluate", response_model=EvaluationResponse)
async def evaluate_decision(
    decision_id: str,
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """POST /v1/decisions/{decision_id}/evaluate: run the engine now and persist any change."""
    _owned_decision(decision_id, organization_id)
    clock = organization_clock(request, organization_id)
    result = evaluation_service.evaluate_decision(decision_id, clock, get_engine_config(request))
    evaluated_at, _ = decision_store.last_evaluation(decision_id)
    return EvaluationResponse(evaluated_at=evaluated_at, result=result)


@router.post("/decisions/{decision_id}/review", response_model=DecisionDetailResponse)
async def review_decision(
    decision_id: str,
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """Explicit human review: resets review staleness. Terminal decisions cannot be reviewed."""
    decision = _owned_decision(decision_id, organization_id)
    if decision.lifecycle in TERMINAL_LIFECYCLES:
        raise HTTPException(status_code=409, detail=f"Decision '{decision_id}' is {decision.lifecycle.value}")
    now = organization_clock(request, organization_id).now()
    decision_store.update_decision(decision_id, last_reviewed_at=now)
    logger.info(f"[{decision_id}] Reviewed at {now.isoformat()}")
    return _detail(decision_id)


@router.post("/decisions/{decision_id}/retire", response_model=DecisionDetailResponse)
async def retire_decision(decision_id: str, organization_id: Optional[str] = Depends(get_organization_id)):
    """RETIRED is only ever entered by explicit user action."""
    decision = _owned_decision(decision_id, organization_id)
    if decision.lifecycle in TERMINAL_LIFECYCLES:
        raise HTTPException(status_code=409, detail=f"Decision '{decision_id}' is {decision.lifecycle.value}")
    decision_store.update_decision(decision_id, lifecycle=DecisionLifecycle.RETIRED)
    logger.info(f"[{decision_id}] Retired")
    return _detail(decision_id)
