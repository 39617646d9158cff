"""Engagement routes: list, current stage, raise events, notes, history."""

import uuid as uuid_mod

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_role
from app.dependencies import get_db
from app.engine.stage_machine import EngagementEvent, Stage, allowed_events
from app.models.user import User, UserRole
from app.schemas.audit import AuditLogEventRead
from app.schemas.engagement import (
    EngagementEventRequest,
    EngagementNotesUpdate,
    EngagementRead,
    EngagementStatus,
)
from app.services import audit_service, engagement_service

router = APIRouter(prefix="/engagements", tags=["engagements"])

participant = require_role(UserRole.client, UserRole.trainer)


def _parse_uuid(value: str, name: str) -> uuid_mod.UUID:
    try:
        return uuid_mod.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


def _parse_event(value: str) -> EngagementEvent:
    try:
        return EngagementEvent(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid event: {value}")


def _parse_stages(values: list[str] | None) -> list[Stage] | None:
    if not values:
        return None
    try:
        return [Stage(v) for v in values]
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid stage filter")


@router.get("", response_model=list[EngagementRead])
async def list_engagements(
    stage: list[str] | None = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    stages = _parse_stages(stage)
    if current_user.role == UserRole.client:
        return await engagement_service.list_for_client(db, current_user.id, stages=stages)
    return await engagement_service.list_for_trainer(db, current_user.id, stages=stages)


@router.get("/{other_id}", response_model=EngagementStatus)
async def get_engagement_status(
    other_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    client_id, trainer_id = await engagement_service.resolve_pair(
        db, actor=current_user, other_id=_parse_uuid(other_id, "user id")
    )
    stage = await engagement_service.get_stage(db, client_id=client_id, trainer_id=trainer_id)
    return EngagementStatus(
        client_id=client_id,
        trainer_id=trainer_id,
        stage=stage,
        allowed_events=[
            e for e in allowed_events(stage) if engagement_service.can_raise(current_user.role, e)
        ],
    )


@router.post("/{other_id}/events", response_model=EngagementRead)
async def raise_event(
    other_id: str,
    body: EngagementEventRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    ip = request.client.host if request.client else None
    event = _parse_event(body.event)
    if not engagement_service.can_raise(current_user.role, event):
        raise HTTPException(
            status_code=403,
            detail=f"A {current_user.role.value} cannot raise '{event.value}'",
        )
    client_id, trainer_id = await engagement_service.resolve_pair(
        db, actor=current_user, other_id=_parse_uuid(other_id, "user id")
    )
    return await engagement_service.apply_event(
        db,
        client_id=client_id,
        trainer_id=trainer_id,
        event=event,
        actor_id=current_user.id,
        ip_address=ip,
    )


@router.patch("/{other_id}/notes", response_model=EngagementRead)
async def update_notes(
    other_id: str,
    body: EngagementNotesUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    ip = request.client.host if request.client else None
    client_id, trainer_id = await engagement_service.resolve_pair(
        db, actor=current_user, other_id=_parse_uuid(other_id, "user id")
    )
    return await engagement_service.update_notes(
        db,
        client_id=client_id,
        trainer_id=trainer_id,
        notes=body.notes,
        actor_id=current_user.id,
        ip_address=ip,
    )


@router.get("/{other_id}/history", response_model=list[AuditLogEventRead])
async def engagement_history(
    other_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    client_id, trainer_id = await engagement_service.resolve_pair(
        db, actor=current_user, other_id=_parse_uuid(other_id, "user id")
    )
    engagement = await engagement_service.get_engagement(
        db, client_id=client_id, trainer_id=trainer_id
    )
    return await audit_service.get_entity_history(db, "Engagement", engagement.id)
