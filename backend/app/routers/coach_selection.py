"""Coach selection routes: client requests a package, trainer responds, payment closes it."""

import uuid as uuid_mod

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_role
from app.core.errors import NotFound
from app.dependencies import get_db
from app.models.user import User, UserRole
from app.schemas.coach_selection import (
    AlternativeSuggestion,
    PackageChoice,
    PaymentCompleted,
    SelectionRequestCreate,
    SelectionRequestRead,
    TrainerResponse,
)
from app.services import coach_selection_service

router = APIRouter(prefix="/coach-selection", tags=["coach-selection"])

client_only = require_role(UserRole.client)
trainer_only = require_role(UserRole.trainer)


def _parse_request_id(value: str) -> uuid_mod.UUID:
    try:
        return uuid_mod.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid request_id")


@router.post("/requests", status_code=201, response_model=SelectionRequestRead)
async def create_request(
    body: SelectionRequestCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(client_only),
):
    ip = request.client.host if request.client else None
    return await coach_selection_service.create_request(
        db,
        client_id=current_user.id,
        trainer_id=body.trainer_id,
        package_id=body.package_id,
        package_name=body.package_name,
        package_price=body.package_price,
        package_duration=body.package_duration,
        client_message=body.client_message,
        ip_address=ip,
    )


@router.get("/requests", response_model=list[SelectionRequestRead])
async def list_requests(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.client, UserRole.trainer)),
):
    """Clients see their own history; trainers see what awaits their answer."""
    if current_user.role == UserRole.client:
        return await coach_selection_service.list_for_client(db, current_user.id)
    return await coach_selection_service.list_pending_for_trainer(db, current_user.id)


@router.get("/requests/latest/{trainer_id}", response_model=SelectionRequestRead)
async def latest_request(
    trainer_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(client_only),
):
    try:
        tid = uuid_mod.UUID(trainer_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid trainer_id")
    latest = await coach_selection_service.get_latest_request(
        db, client_id=current_user.id, trainer_id=tid
    )
    if latest is None:
        raise NotFound("No coach selection request for this trainer")
    return latest


# ── Trainer actions ──


@router.post("/requests/{request_id}/accept", response_model=SelectionRequestRead)
async def accept_request(
    request_id: str,
    body: TrainerResponse,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(trainer_only),
):
    ip = request.client.host if request.client else None
    return await coach_selection_service.trainer_accept(
        db,
        request_id=_parse_request_id(request_id),
        trainer_id=current_user.id,
        trainer_response=body.trainer_response,
        ip_address=ip,
    )


@router.post("/requests/{request_id}/decline", response_model=SelectionRequestRead)
async def decline_request(
    request_id: str,
    body: TrainerResponse,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(trainer_only),
):
    ip = request.client.host if request.client else None
    return await coach_selection_service.trainer_decline(
        db,
        request_id=_parse_request_id(request_id),
        trainer_id=current_user.id,
        trainer_response=body.trainer_response,
        ip_address=ip,
    )


@router.post("/requests/{request_id}/suggest-alternative", response_model=SelectionRequestRead)
async def suggest_alternative(
    request_id: str,
    body: AlternativeSuggestion,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(trainer_only),
):
    ip = request.client.host if request.client else None
    return await coach_selection_service.trainer_suggest_alternative(
        db,
        request_id=_parse_request_id(request_id),
        trainer_id=current_user.id,
        alternative_package_id=body.package_id,
        alternative_package_name=body.package_name,
        alternative_package_price=body.package_price,
        alternative_package_duration=body.package_duration,
        trainer_response=body.trainer_response,
        ip_address=ip,
    )


# ── Client actions ──


@router.post("/requests/{request_id}/accept-alternative", response_model=SelectionRequestRead)
async def accept_alternative(
    request_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(client_only),
):
    ip = request.client.host if request.client else None
    return await coach_selection_service.client_accept_alternative(
        db,
        request_id=_parse_request_id(request_id),
        client_id=current_user.id,
        ip_address=ip,
    )


@router.post("/requests/{request_id}/start-over", status_code=201, response_model=SelectionRequestRead)
async def start_over(
    request_id: str,
    body: PackageChoice,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(client_only),
):
    ip = request.client.host if request.client else None
    return await coach_selection_service.client_start_over(
        db,
        request_id=_parse_request_id(request_id),
        client_id=current_user.id,
        package_id=body.package_id,
        package_name=body.package_name,
        package_price=body.package_price,
        package_duration=body.package_duration,
        client_message=body.client_message,
        ip_address=ip,
    )


@router.post("/requests/{request_id}/proceed-to-payment", response_model=SelectionRequestRead)
async def proceed_to_payment(
    request_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(client_only),
):
    ip = request.client.host if request.client else None
    return await coach_selection_service.client_proceed_to_payment(
        db,
        request_id=_parse_request_id(request_id),
        client_id=current_user.id,
        ip_address=ip,
    )


# ── Payment confirmation (payment provider callback, relayed by an admin) ──


@router.post("/requests/{request_id}/payment-completed", response_model=SelectionRequestRead)
async def payment_completed(
    request_id: str,
    body: PaymentCompleted,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.admin)),
):
    ip = request.client.host if request.client else None
    return await coach_selection_service.record_payment_completed(
        db,
        request_id=_parse_request_id(request_id),
        actor_id=current_user.id,
        payment_reference=body.payment_reference,
        ip_address=ip,
    )
