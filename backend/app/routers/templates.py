"""Template assignment routes: assign, supersede, expire, remove, list."""

import uuid as uuid_mod

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user, require_role
from app.core.errors import NotFound
from app.dependencies import get_db
from app.models.template_assignment import AssignmentType, TemplateAssignment
from app.models.user import User, UserRole
from app.schemas.template_assignment import (
    ActiveAssignment,
    AssignmentCreate,
    AssignmentRead,
    EndAssignmentRequest,
    SupersedeRequest,
)
from app.services import template_assignment_service

router = APIRouter(prefix="/template-assignments", tags=["template-assignments"])

trainer_only = require_role(UserRole.trainer)
trainer_or_admin = require_role(UserRole.trainer, UserRole.admin)


def _parse_uuid(value: str, name: str) -> uuid_mod.UUID:
    try:
        return uuid_mod.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


def _parse_assignment_type(value: str) -> AssignmentType:
    try:
        return AssignmentType(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid assignment_type: {value}")


def _ensure_can_view(user: User, client_id: uuid_mod.UUID) -> None:
    if user.role == UserRole.client and user.id != client_id:
        raise HTTPException(status_code=403, detail="Not your assignments")


async def _owned_assignment(db: AsyncSession, user: User, assignment_id: str) -> TemplateAssignment:
    assignment = await template_assignment_service.get_assignment(
        db, _parse_uuid(assignment_id, "assignment_id")
    )
    if user.role == UserRole.trainer and assignment.trainer_id != user.id:
        raise NotFound("Template assignment not found")
    return assignment


@router.post("", status_code=201, response_model=AssignmentRead)
async def assign_template(
    body: AssignmentCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(trainer_only),
):
    ip = request.client.host if request.client else None
    return await template_assignment_service.assign(
        db,
        client_id=body.client_id,
        trainer_id=current_user.id,
        template_id=body.template_id,
        template_name=body.template_name,
        assigned_by=current_user.id,
        assignment_type=_parse_assignment_type(body.assignment_type),
        assignment_notes=body.assignment_notes,
        ip_address=ip,
    )


@router.post("/supersede", status_code=201, response_model=AssignmentRead)
async def supersede_template(
    body: SupersedeRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(trainer_only),
):
    ip = request.client.host if request.client else None
    return await template_assignment_service.supersede(
        db,
        client_id=body.client_id,
        trainer_id=current_user.id,
        template_id=body.template_id,
        template_name=body.template_name,
        reason=body.reason,
        assigned_by=current_user.id,
        assignment_type=_parse_assignment_type(body.assignment_type),
        assignment_notes=body.assignment_notes,
        ip_address=ip,
    )


@router.post("/{assignment_id}/expire", response_model=AssignmentRead)
async def expire_assignment(
    assignment_id: str,
    body: EndAssignmentRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(trainer_or_admin),
):
    ip = request.client.host if request.client else None
    assignment = await _owned_assignment(db, current_user, assignment_id)
    return await template_assignment_service.expire(
        db,
        assignment_id=assignment.id,
        reason=body.reason,
        actor_id=current_user.id,
        ip_address=ip,
    )


@router.post("/{assignment_id}/remove", response_model=AssignmentRead)
async def remove_assignment(
    assignment_id: str,
    body: EndAssignmentRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(trainer_or_admin),
):
    ip = request.client.host if request.client else None
    assignment = await _owned_assignment(db, current_user, assignment_id)
    return await template_assignment_service.remove(
        db,
        assignment_id=assignment.id,
        reason=body.reason,
        actor_id=current_user.id,
        ip_address=ip,
    )


@router.get("/clients/{client_id}", response_model=list[AssignmentRead])
async def list_client_assignments(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    cid = _parse_uuid(client_id, "client_id")
    _ensure_can_view(current_user, cid)
    return await template_assignment_service.list_for_client(db, cid)


@router.get("/clients/{client_id}/active", response_model=ActiveAssignment)
async def active_assignment(
    client_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    cid = _parse_uuid(client_id, "client_id")
    _ensure_can_view(current_user, cid)
    assignment = await template_assignment_service.get_active(db, cid)
    return ActiveAssignment(
        has_active=assignment is not None,
        assignment=AssignmentRead.model_validate(assignment) if assignment else None,
    )
