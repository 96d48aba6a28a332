"""
KPI definition management API routes.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session, select

from infosight.api.dependencies import Caller, get_caller, get_db_session, require_admin
from infosight.api.models import KPIDefinition, Submission, utcnow
from infosight.api.schemas import (
    KPIDefinitionCreate, KPIDefinitionResponse, KPIDefinitionUpdate, KPIPromoteRequest,
)
from infosight.worker.kpis import guess_unit, parse_kpi

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/kpis", tags=["KPIs"])


def _get_definition(session: Session, kpi_id: str) -> KPIDefinition:
    definition = session.get(KPIDefinition, kpi_id)
    if not definition:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"KPI definition {kpi_id} not found")
    return definition


def _ensure_unique_name(session: Session, name: str, exclude_id: str | None = None) -> None:
    existing = session.exec(select(KPIDefinition).where(KPIDefinition.name == name)).first()
    if existing and existing.id != exclude_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"KPI definition '{name}' already exists"
        )


@router.get("", response_model=List[KPIDefinitionResponse])
def list_kpi_definitions(
    include_inactive: bool = Query(False, description="Include deactivated definitions (admins only)"),
    caller: Caller = Depends(get_caller),
    session: Session = Depends(get_db_session),
):
    """List KPI definitions. Non-admins only ever see active ones."""
    statement = select(KPIDefinition)
    if not (include_inactive and caller.is_admin):
        statement = statement.where(KPIDefinition.is_active == True)  # noqa: E712
    statement = statement.order_by(KPIDefinition.category, KPIDefinition.name)
    return [KPIDefinitionResponse.model_validate(d) for d in session.exec(statement).all()]


@router.post("", response_model=KPIDefinitionResponse, status_code=status.HTTP_201_CREATED)
def create_kpi_definition(
    request: KPIDefinitionCreate,
    admin: Caller = Depends(require_admin),
    session: Session = Depends(get_db_session),
):
    """Create a KPI definition (admin only)."""
    name = request.name.strip()
    _ensure_unique_name(session, name)

    definition = KPIDefinition(**request.model_dump(exclude={"name"}), name=name, created_by=admin.user_id)
    session.add(definition)
    session.commit()
    session.refresh(definition)
    logger.info(f"KPI definition created: {definition.name}")
    return KPIDefinitionResponse.model_validate(definition)


@router.patch("/{kpi_id}", response_model=KPIDefinitionResponse)
def update_kpi_definition(
    kpi_id: str,
    request: KPIDefinitionUpdate,
    _: Caller = Depends(require_admin),
    session: Session = Depends(get_db_session),
):
    """Edit a KPI definition (admin only)."""
    definition = _get_definition(session, kpi_id)
    changes = request.model_dump(exclude_unset=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()
        _ensure_unique_name(session, changes["name"], exclude_id=kpi_id)

    for key, value in changes.items():
        setattr(definition, key, value)
    definition.updated_at = utcnow()
    session.add(definition)
    session.commit()
    session.refresh(definition)
    return KPIDefinitionResponse.model_validate(definition)


@router.delete("/{kpi_id}", response_model=KPIDefinitionResponse)
def deactivate_kpi_definition(
    kpi_id: str,
    _: Caller = Depends(require_admin),
    session: Session = Depends(get_db_session),
):
    """Deactivate a KPI definition (admin only). Definitions are never hard-deleted."""
    definition = _get_definition(session, kpi_id)
    definition.is_active = False
    definition.updated_at = utcnow()
    session.add(definition)
    session.commit()
    session.refresh(definition)
    logger.info(f"KPI definition deactivated: {definition.name}")
    return KPIDefinitionResponse.model_validate(definition)


@router.post("/promote", response_model=KPIDefinitionResponse, status_code=status.HTTP_201_CREATED)
def promote_kpi(
    request: KPIPromoteRequest,
    admin: Caller = Depends(require_admin),
    session: Session = Depends(get_db_session),
):
    """
    Promote an extracted "Metric Name: Value" string to a KPI definition.

    When ``submission_id`` is given the string must be one of that
    submission's extracted KPIs.
    """
    parsed = parse_kpi(request.kpi)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="KPI must look like 'Metric Name: Value'"
        )

    if request.submission_id:
        submission = session.get(Submission, request.submission_id)
        if not submission:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
        if request.kpi not in (submission.extracted_kpis or []):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="KPI is not among the submission's extracted KPIs"
            )

    _ensure_unique_name(session, parsed.name)
    target = request.target_value if request.target_value is not None else parsed.numeric_value
    definition = KPIDefinition(
        name=parsed.name,
        description=request.description or f'Promoted from extracted KPI "{request.kpi}"',
        category=request.category,
        target_value=target,
        unit=guess_unit(parsed.value),
        created_by=admin.user_id,
    )
    session.add(definition)
    session.commit()
    session.refresh(definition)
    logger.info(f"KPI promoted: {request.kpi!r} -> {definition.name}")
    return KPIDefinitionResponse.model_validate(definition)
