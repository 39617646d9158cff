"""Trainer profile routes: edit own profile, disclosed view, stage preview
and per-trainer visibility overrides.
"""

import uuid as uuid_mod

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user, get_optional_user, require_role
from app.dependencies import get_db
from app.engine.disclosure import ContentCategory
from app.engine.stage_machine import Stage
from app.models.user import User, UserRole
from app.schemas.profile import (
    DisclosedProfile,
    TrainerProfileUpdate,
    VisibilityOverrideUpdate,
    VisibilityRuleRead,
)
from app.services import profile_service, visibility_service

router = APIRouter(prefix="/trainers", tags=["profiles"])


def _parse_trainer_id(value: str) -> uuid_mod.UUID:
    try:
        return uuid_mod.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid trainer_id")


def _parse_stage(value: str) -> Stage:
    try:
        return Stage(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid stage: {value}")


def _parse_category(value: str) -> ContentCategory:
    try:
        return ContentCategory(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid category: {value}")


@router.put("/me/profile", response_model=DisclosedProfile)
async def update_my_profile(
    body: TrainerProfileUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.trainer)),
):
    ip = request.client.host if request.client else None
    await profile_service.upsert_profile(
        db,
        trainer_id=current_user.id,
        fields=body.model_dump(exclude_unset=True),
        ip_address=ip,
    )
    return await profile_service.get_disclosed_profile(
        db, trainer_id=current_user.id, viewer=current_user
    )


@router.get("/{trainer_id}/profile", response_model=DisclosedProfile)
async def view_profile(
    trainer_id: str,
    db: AsyncSession = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
):
    return await profile_service.get_disclosed_profile(
        db, trainer_id=_parse_trainer_id(trainer_id), viewer=viewer
    )


@router.get("/{trainer_id}/profile/preview", response_model=DisclosedProfile)
async def preview_profile(
    trainer_id: str,
    stage: str,
    guest: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Render the profile as a client at ``stage`` would see it.

    Open to admins and to the trainer previewing their own profile.
    """
    tid = _parse_trainer_id(trainer_id)
    if current_user.role != UserRole.admin and current_user.id != tid:
        raise HTTPException(status_code=403, detail="Only admins or the trainer can preview")
    return await profile_service.preview_profile(
        db, trainer_id=tid, stage=_parse_stage(stage), is_guest=guest
    )


async def _set_visibility(
    db: AsyncSession,
    request: Request,
    *,
    trainer_id: uuid_mod.UUID,
    category: str,
    body: VisibilityOverrideUpdate,
    actor: User,
) -> list[dict]:
    ip = request.client.host if request.client else None
    await visibility_service.set_override(
        db,
        trainer_id=trainer_id,
        category=_parse_category(category),
        visible_from=body.visible_from,
        teaser_from=body.teaser_from,
        guest_visible=body.guest_visible,
        actor_id=actor.id,
        ip_address=ip,
    )
    return await visibility_service.get_matrix(db, trainer_id)


async def _clear_visibility(
    db: AsyncSession,
    request: Request,
    *,
    trainer_id: uuid_mod.UUID,
    category: str,
    actor: User,
) -> list[dict]:
    ip = request.client.host if request.client else None
    await visibility_service.clear_override(
        db,
        trainer_id=trainer_id,
        category=_parse_category(category),
        actor_id=actor.id,
        ip_address=ip,
    )
    return await visibility_service.get_matrix(db, trainer_id)


@router.get("/me/visibility", response_model=list[VisibilityRuleRead])
async def my_visibility(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.trainer)),
):
    return await visibility_service.get_matrix(db, current_user.id)


@router.put("/me/visibility/{category}", response_model=list[VisibilityRuleRead])
async def set_my_visibility(
    category: str,
    body: VisibilityOverrideUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.trainer)),
):
    return await _set_visibility(
        db, request, trainer_id=current_user.id, category=category, body=body, actor=current_user
    )


@router.delete("/me/visibility/{category}", response_model=list[VisibilityRuleRead])
async def clear_my_visibility(
    category: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.trainer)),
):
    return await _clear_visibility(
        db, request, trainer_id=current_user.id, category=category, actor=current_user
    )


@router.get("/{trainer_id}/visibility", response_model=list[VisibilityRuleRead])
async def trainer_visibility(
    trainer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.admin)),
):
    return await visibility_service.get_matrix(db, _parse_trainer_id(trainer_id))


@router.put("/{trainer_id}/visibility/{category}", response_model=list[VisibilityRuleRead])
async def set_trainer_visibility(
    trainer_id: str,
    category: str,
    body: VisibilityOverrideUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.admin)),
):
    return await _set_visibility(
        db,
        request,
        trainer_id=_parse_trainer_id(trainer_id),
        category=category,
        body=body,
        actor=current_user,
    )


@router.delete("/{trainer_id}/visibility/{category}", response_model=list[VisibilityRuleRead])
async def clear_trainer_visibility(
    trainer_id: str,
    category: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.admin)),
):
    return await _clear_visibility(
        db,
        request,
        trainer_id=_parse_trainer_id(trainer_id),
        category=category,
        actor=current_user,
    )
