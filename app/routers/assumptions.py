"""
Assumptions Router — /v1/assumptions and /v1/constraints

Assumptions and constraints are global records of an organization; they
are attached to decisions through /v1/decisions/{id}/assumptions and
/v1/decisions/{id}/constraints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from app.repositories import decision_store
from app.routers.dependencies import get_engine_config, get_organization_id, organization_clock
from app.schemas import Assumption, Constraint
from app.schemas.requests import (
    CreateAssumptionRequest,
    CreateConstraintRequest,
    UpdateAssumptionStatusRequest,
)
from app.schemas.responses import (
    AssumptionListResponse,
    AssumptionStatusResponse,
    BatchReportResponse,
    ConstraintListResponse,
)
from app.services import assumption_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1",
    tags=["assumptions"],
)


@router.post("/assumptions", status_code=201, response_model=Assumption)
async def create_assumption(
    body: CreateAssumptionRequest,
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    assumption_id = body.id or decision_store.new_id()
    if decision_store.get_assumption(assumption_id):
        raise HTTPException(status_code=409, detail=f"Assumption '{assumption_id}' already exists")

    assumption = Assumption(
        id=assumption_id,
        description=body.description,
        status=body.status,
        scope=body.scope,
        category=body.category,
        parameters=body.parameters,
        created_at=organization_clock(request, organization_id).now(),
        metadata=body.metadata,
        organization_id=organization_id,
    )
    decision_store.save_assumption(assumption)
    logger.info(f"[{assumption_id}] Assumption created (organization={organization_id})")
    return assumption


@router.get("/assumptions", response_model=AssumptionListResponse)
async def list_assumptions(organization_id: Optional[str] = Depends(get_organization_id)):
    assumptions = decision_store.list_assumptions(organization_id)
    return AssumptionListResponse(assumptions=assumptions, count=len(assumptions))


@router.put("/assumptions/{assumption_id}/status", response_model=AssumptionStatusResponse)
async def update_assumption_status(
    assumption_id: str,
    body: UpdateAssumptionStatusRequest,
    request: Request,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    """Change status; every linked decision is re-evaluated."""
    current = decision_store.get_assumption(assumption_id)
    if not current or (organization_id is not None and current.organization_id != organization_id):
        raise HTTPException(status_code=404, detail=f"Assumption '{assumption_id}' not found")

    assumption, report = assumption_service.update_status(
        assumption_id,
        body.status,
        organization_clock(request, organization_id),
        get_engine_config(request),
    )
    return AssumptionStatusResponse(assumption=assumption, reevaluation=BatchReportResponse.from_report(report))


@router.post("/constraints", status_code=201, response_model=Constraint)
async def create_constraint(
    body: CreateConstraintRequest,
    organization_id: Optional[str] = Depends(get_organization_id),
):
    constraint_id = body.id or decision_store.new_id()
    if decision_store.get_constraint(constraint_id):
        raise HTTPException(status_code=409, detail=f"Constraint '{constraint_id}' already exists")

    constraint = Constraint(
        id=constraint_id,
        name=body.name,
        constraint_type=body.constraint_type,
        rule_expression=body.rule_expression,
        is_immutable=body.is_immutable,
        invalidating=body.invalidating,
        organization_id=organization_id,
    )
    decision_store.save_constraint(constraint)
    logger.info(f"[{constraint_id}] Constraint created (immutable={constraint.is_immutable})")
    return constraint


@router.get("/constraints", response_model=ConstraintListResponse)
async def list_constraints(organization_id: Optional[str] = Depends(get_organization_id)):
    constraints = decision_store.list_constraints(organization_id)
    return ConstraintListResponse(constraints=constraints, count=len(constraints))
