"""Coaching style routes: catalogs and mappings (admin), declared styles, match scores."""

import uuid as uuid_mod

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user, require_role
from app.dependencies import get_db
from app.engine.matching import MappingType, MatchResult
from app.models.user import User, UserRole
from app.schemas.coaching_style import (
    ContributionRead,
    MappingCreate,
    MappingRead,
    MappingUpdate,
    MappingWarnings,
    MatchRead,
    StyleCreate,
    StyleRead,
    StyleSelection,
    StyleUpdate,
)
from app.services import coaching_style_service
from app.services.coaching_style_service import StyleCatalog

router = APIRouter(prefix="/coaching-styles", tags=["coaching-styles"])

admin_only = require_role(UserRole.admin)


def _parse_catalog(value: str) -> StyleCatalog:
    try:
        return StyleCatalog(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid catalog: {value}")


def _parse_mapping_type(value: str) -> MappingType:
    try:
        return MappingType(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid mapping_type: {value}")


def _parse_uuid(value: str, name: str) -> uuid_mod.UUID:
    try:
        return uuid_mod.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


def _match_read(trainer_id: uuid_mod.UUID, result: MatchResult) -> MatchRead:
    return MatchRead(
        trainer_id=trainer_id,
        score=result.score,
        contributions=[
            ContributionRead(
                client_style_id=c.client_style_id,
                weight=c.weight,
                trainer_style_id=c.edge.trainer_style_id if c.edge else None,
                mapping_type=c.edge.mapping_type if c.edge else None,
            )
            for c in result.contributions
        ],
        unmapped_client_styles=result.unmapped_client_styles,
    )


# ── Mappings (admin) ──


@router.get("/mappings", response_model=list[MappingRead])
async def list_mappings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    return await coaching_style_service.list_mappings(db)


@router.get("/mappings/warnings", response_model=MappingWarnings)
async def mapping_warnings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    return await coaching_style_service.mapping_warnings(db)


@router.post("/mappings", status_code=201, response_model=MappingRead)
async def create_mapping(
    body: MappingCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    ip = request.client.host if request.client else None
    return await coaching_style_service.create_mapping(
        db,
        client_style_id=body.client_style_id,
        trainer_style_id=body.trainer_style_id,
        actor_id=current_user.id,
        mapping_type=_parse_mapping_type(body.mapping_type),
        weight=body.weight,
        ip_address=ip,
    )


@router.patch("/mappings/{mapping_id}", response_model=MappingRead)
async def update_mapping(
    mapping_id: str,
    body: MappingUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    ip = request.client.host if request.client else None
    mapping_type = _parse_mapping_type(body.mapping_type) if body.mapping_type else None
    return await coaching_style_service.update_mapping(
        db,
        mapping_id=_parse_uuid(mapping_id, "mapping_id"),
        actor_id=current_user.id,
        weight=body.weight,
        mapping_type=mapping_type,
        ip_address=ip,
    )


@router.delete("/mappings/{mapping_id}", status_code=204)
async def delete_mapping(
    mapping_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    ip = request.client.host if request.client else None
    await coaching_style_service.delete_mapping(
        db,
        mapping_id=_parse_uuid(mapping_id, "mapping_id"),
        actor_id=current_user.id,
        ip_address=ip,
    )


# ── Declared styles & matching ──


@router.put("/me", response_model=list[uuid_mod.UUID])
async def set_my_styles(
    body: StyleSelection,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.client, UserRole.trainer)),
):
    ip = request.client.host if request.client else None
    if current_user.role == UserRole.client:
        return await coaching_style_service.set_client_styles(
            db, client_id=current_user.id, style_ids=body.style_ids, ip_address=ip
        )
    return await coaching_style_service.set_trainer_styles(
        db, trainer_id=current_user.id, style_ids=body.style_ids, ip_address=ip
    )


@router.get("/matches", response_model=list[MatchRead])
async def rank_trainers(
    trainer_id: list[uuid_mod.UUID] = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.client)),
):
    ranked = await coaching_style_service.rank_trainers_for_client(
        db, client_id=current_user.id, trainer_ids=trainer_id
    )
    return [_match_read(tid, result) for tid, result in ranked]


@router.get("/matches/{trainer_id}", response_model=MatchRead)
async def score_trainer(
    trainer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.client)),
):
    tid = _parse_uuid(trainer_id, "trainer_id")
    result = await coaching_style_service.score_trainer_for_client(
        db, client_id=current_user.id, trainer_id=tid
    )
    return _match_read(tid, result)


# ── Catalogs ──


@router.get("/catalogs/{catalog}", response_model=list[StyleRead])
async def list_styles(
    catalog: str,
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if include_inactive and current_user.role != UserRole.admin:
        raise HTTPException(status_code=403, detail="Only admins can list inactive styles")
    return await coaching_style_service.list_styles(
        db, catalog=_parse_catalog(catalog), include_inactive=include_inactive
    )


@router.post("/catalogs/{catalog}", status_code=201, response_model=StyleRead)
async def create_style(
    catalog: str,
    body: StyleCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    ip = request.client.host if request.client else None
    return await coaching_style_service.create_style(
        db,
        catalog=_parse_catalog(catalog),
        style_key=body.style_key,
        label=body.label,
        actor_id=current_user.id,
        description=body.description,
        emoji=body.emoji,
        display_order=body.display_order,
        ip_address=ip,
    )


@router.patch("/catalogs/{catalog}/{style_id}", response_model=StyleRead)
async def update_style(
    catalog: str,
    style_id: str,
    body: StyleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    ip = request.client.host if request.client else None
    return await coaching_style_service.update_style(
        db,
        catalog=_parse_catalog(catalog),
        style_id=_parse_uuid(style_id, "style_id"),
        actor_id=current_user.id,
        style_key=body.style_key,
        label=body.label,
        description=body.description,
        emoji=body.emoji,
        display_order=body.display_order,
        is_active=body.is_active,
        ip_address=ip,
    )


@router.delete("/catalogs/{catalog}/{style_id}", response_model=StyleRead)
async def deactivate_style(
    catalog: str,
    style_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(admin_only),
):
    ip = request.client.host if request.client else None
    return await coaching_style_service.deactivate_style(
        db,
        catalog=_parse_catalog(catalog),
        style_id=_parse_uuid(style_id, "style_id"),
        actor_id=current_user.id,
        ip_address=ip,
    )
