"""Coach selection service: package requests from client to trainer.

Lifecycle: create (pending) → trainer accepts / declines / suggests an
alternative → client accepts the alternative or starts over → client
proceeds to payment → payment recorded (completed).

Only the most recent request of a pair is actionable, and a pair never has
two live requests. Transitions that also move the engagement stage check
both moves before writing either, so they land together or not at all.
All state transitions audit-logged.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvalidTransition, NotFound, ValidationError
from app.engine import stage_machine
from app.engine.selection_machine import (
    LIVE_STATUSES,
    RequestAction,
    RequestStatus,
    next_status,
)
from app.engine.stage_machine import EngagementEvent, Stage
from app.models.coach_selection import CoachSelectionRequest
from app.services import audit_service, engagement_service, notification_service

logger = logging.getLogger("trainermatch.coach_selection")


def _validate_package(
    package_id: str,
    package_name: str,
    package_price: Decimal,
    package_duration: str | None,
) -> None:
    if not package_id or not package_id.strip():
        raise ValidationError("package_id must not be empty")
    if not package_name or not package_name.strip():
        raise ValidationError("package_name must not be empty")
    if package_price is None or Decimal(package_price) < 0:
        raise ValidationError("package_price must be zero or more")
    if package_duration is not None and not package_duration.strip():
        raise ValidationError("package_duration must not be blank")


async def get_request(db: AsyncSession, request_id: uuid.UUID) -> CoachSelectionRequest:
    result = await db.execute(
        select(CoachSelectionRequest).where(CoachSelectionRequest.id == request_id)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFound("Coach selection request not found")
    return request


async def get_latest_request(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
) -> CoachSelectionRequest | None:
    """Most recent request for the pair, the only one that can still change."""
    result = await db.execute(
        select(CoachSelectionRequest)
        .where(
            CoachSelectionRequest.client_id == client_id,
            CoachSelectionRequest.trainer_id == trainer_id,
        )
        .order_by(CoachSelectionRequest.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _get_live_request(
    db: AsyncSession,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
) -> CoachSelectionRequest | None:
    result = await db.execute(
        select(CoachSelectionRequest).where(
            CoachSelectionRequest.client_id == client_id,
            CoachSelectionRequest.trainer_id == trainer_id,
            CoachSelectionRequest.status.in_(LIVE_STATUSES),
        )
    )
    return result.scalars().first()


async def _load_actionable(
    db: AsyncSession,
    request_id: uuid.UUID,
    *,
    client_id: uuid.UUID | None = None,
    trainer_id: uuid.UUID | None = None,
) -> CoachSelectionRequest:
    """Load a request owned by the given party, refusing superseded ones."""
    request = await get_request(db, request_id)
    if client_id is not None and request.client_id != client_id:
        raise NotFound("Coach selection request not found")
    if trainer_id is not None and request.trainer_id != trainer_id:
        raise NotFound("Coach selection request not found")

    latest = await get_latest_request(
        db, client_id=request.client_id, trainer_id=request.trainer_id
    )
    if latest is not None and latest.id != request.id:
        raise InvalidTransition(
            "A newer request replaced this one",
            current=request.status.value,
        )
    return request


def _plan_stage(current: Stage, *, until: Stage) -> bool:
    """Validate selection_accepted from ``current``; True if it should be applied.

    Nothing happens once the engagement already sits at ``until`` or later.
    """
    if stage_machine.is_at_or_beyond(current, until):
        return False
    stage_machine.transition(current, EngagementEvent.selection_accepted)
    return True


async def _set_status(
    db: AsyncSession,
    request: CoachSelectionRequest,
    action: RequestAction,
    *,
    actor_id: uuid.UUID,
    new_status: RequestStatus,
    detail: dict | None = None,
    correlation_id: uuid.UUID | None = None,
    ip_address: str | None = None,
) -> None:
    previous = request.status
    request.status = new_status
    await db.flush()

    logger.info(
        "Selection request %s moved %s -> %s on %s",
        request.id,
        previous.value,
        new_status.value,
        action.value,
    )
    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="coach_selection.status_changed",
        entity_type="CoachSelectionRequest",
        entity_id=request.id,
        action=action.value,
        detail={"from_status": previous.value, "to_status": new_status.value, **(detail or {})},
        correlation_id=correlation_id,
        ip_address=ip_address,
    )


async def create_request(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
    package_id: str,
    package_name: str,
    package_price: Decimal,
    package_duration: str,
    client_message: str | None = None,
    ip_address: str | None = None,
) -> CoachSelectionRequest:
    """Open a new pending request.

    Rejected with Conflict while another request for the pair is still live,
    and with InvalidTransition if the engagement cannot reach agreement
    from its current stage.
    """
    _validate_package(package_id, package_name, package_price, package_duration)

    live = await _get_live_request(db, client_id, trainer_id)
    if live is not None:
        raise Conflict(
            f"You already have a {live.status.value.replace('_', ' ')} request with this coach",
            request_id=live.id,
        )

    stage = await engagement_service.get_stage(db, client_id=client_id, trainer_id=trainer_id)
    if not stage_machine.can_apply(stage, EngagementEvent.selection_accepted):
        raise InvalidTransition(
            "Like or message this coach before choosing them",
            current=stage.value,
            attempted="create_request",
        )

    request = CoachSelectionRequest(
        client_id=client_id,
        trainer_id=trainer_id,
        package_id=package_id,
        package_name=package_name.strip(),
        package_price=Decimal(package_price),
        package_duration=package_duration,
        client_message=client_message,
        status=RequestStatus.pending,
    )
    db.add(request)
    try:
        await db.flush()
    except IntegrityError:
        # A live request for the pair committed between check and insert.
        logger.warning(
            "Concurrent selection request client=%s trainer=%s rejected", client_id, trainer_id
        )
        raise Conflict("You already have a live request with this coach") from None

    await audit_service.log_event(
        db,
        user_id=client_id,
        event_type="coach_selection.created",
        entity_type="CoachSelectionRequest",
        entity_id=request.id,
        action="create",
        detail={
            "trainer_id": str(trainer_id),
            "package_id": package_id,
            "package_price": str(package_price),
        },
        ip_address=ip_address,
    )
    await notification_service.notify(
        trainer_id,
        "coach_selection.created",
        "A client has chosen you as their coach",
        {"request_id": str(request.id), "package_name": request.package_name},
    )
    return request


async def trainer_accept(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    trainer_id: uuid.UUID,
    trainer_response: str | None = None,
    ip_address: str | None = None,
) -> CoachSelectionRequest:
    """pending → accepted; the engagement moves to agreed."""
    request = await _load_actionable(db, request_id, trainer_id=trainer_id)
    new_status = next_status(request.status, RequestAction.trainer_accept)
    stage = await engagement_service.get_stage(
        db, client_id=request.client_id, trainer_id=request.trainer_id
    )
    advance = _plan_stage(stage, until=Stage.agreed)

    correlation_id = uuid.uuid4()
    request.trainer_response = trainer_response
    request.responded_at = datetime.now(timezone.utc)
    await _set_status(
        db, request, RequestAction.trainer_accept,
        actor_id=trainer_id, new_status=new_status,
        correlation_id=correlation_id, ip_address=ip_address,
    )
    if advance:
        await engagement_service.apply_event(
            db,
            client_id=request.client_id,
            trainer_id=request.trainer_id,
            event=EngagementEvent.selection_accepted,
            actor_id=trainer_id,
            correlation_id=correlation_id,
            ip_address=ip_address,
        )

    await notification_service.notify(
        request.client_id,
        "coach_selection.accepted",
        "Your coach accepted your request",
        {"request_id": str(request.id)},
    )
    return request


async def trainer_decline(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    trainer_id: uuid.UUID,
    trainer_response: str | None = None,
    ip_address: str | None = None,
) -> CoachSelectionRequest:
    """pending | accepted → declined. The client may open a new request at once."""
    request = await _load_actionable(db, request_id, trainer_id=trainer_id)
    new_status = next_status(request.status, RequestAction.trainer_decline)

    request.trainer_response = trainer_response
    request.responded_at = datetime.now(timezone.utc)
    await _set_status(
        db, request, RequestAction.trainer_decline,
        actor_id=trainer_id, new_status=new_status, ip_address=ip_address,
    )
    await notification_service.notify(
        request.client_id,
        "coach_selection.declined",
        "Your coach declined your request",
        {"request_id": str(request.id)},
    )
    return request


async def trainer_suggest_alternative(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    trainer_id: uuid.UUID,
    alternative_package_id: str,
    alternative_package_name: str,
    alternative_package_price: Decimal,
    alternative_package_duration: str | None = None,
    trainer_response: str | None = None,
    ip_address: str | None = None,
) -> CoachSelectionRequest:
    """pending | accepted → alternative_suggested."""
    _validate_package(
        alternative_package_id,
        alternative_package_name,
        alternative_package_price,
        alternative_package_duration,
    )
    request = await _load_actionable(db, request_id, trainer_id=trainer_id)
    new_status = next_status(request.status, RequestAction.trainer_suggest_alternative)

    request.suggested_alternative_package_id = alternative_package_id
    request.suggested_alternative_package_name = alternative_package_name.strip()
    request.suggested_alternative_package_price = Decimal(alternative_package_price)
    request.suggested_alternative_package_duration = alternative_package_duration
    request.trainer_response = trainer_response
    request.responded_at = datetime.now(timezone.utc)
    await _set_status(
        db, request, RequestAction.trainer_suggest_alternative,
        actor_id=trainer_id,
        new_status=new_status,
        detail={
            "alternative_package_id": alternative_package_id,
            "alternative_package_price": str(alternative_package_price),
        },
        ip_address=ip_address,
    )
    await notification_service.notify(
        request.client_id,
        "coach_selection.alternative_suggested",
        "Your coach suggested a different package",
        {"request_id": str(request.id), "package_name": alternative_package_name},
    )
    return request


async def client_accept_alternative(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    client_id: uuid.UUID,
    ip_address: str | None = None,
) -> CoachSelectionRequest:
    """alternative_suggested → accepted, adopting the alternative package.

    The package columns are overwritten, so the request always describes a
    single current package.
    """
    request = await _load_actionable(db, request_id, client_id=client_id)
    new_status = next_status(request.status, RequestAction.client_accept_alternative)
    stage = await engagement_service.get_stage(
        db, client_id=request.client_id, trainer_id=request.trainer_id
    )
    advance = _plan_stage(stage, until=Stage.agreed)

    correlation_id = uuid.uuid4()
    previous_package = request.package_id
    request.package_id = request.suggested_alternative_package_id
    request.package_name = request.suggested_alternative_package_name
    request.package_price = request.suggested_alternative_package_price
    if request.suggested_alternative_package_duration:
        request.package_duration = request.suggested_alternative_package_duration
    request.suggested_alternative_package_id = None
    request.suggested_alternative_package_name = None
    request.suggested_alternative_package_price = None
    request.suggested_alternative_package_duration = None

    await _set_status(
        db, request, RequestAction.client_accept_alternative,
        actor_id=client_id,
        new_status=new_status,
        detail={"replaced_package_id": previous_package, "package_id": request.package_id},
        correlation_id=correlation_id,
        ip_address=ip_address,
    )
    if advance:
        await engagement_service.apply_event(
            db,
            client_id=request.client_id,
            trainer_id=request.trainer_id,
            event=EngagementEvent.selection_accepted,
            actor_id=client_id,
            correlation_id=correlation_id,
            ip_address=ip_address,
        )

    await notification_service.notify(
        request.trainer_id,
        "coach_selection.alternative_accepted",
        "Your client accepted the package you suggested",
        {"request_id": str(request.id)},
    )
    return request


async def client_start_over(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    client_id: uuid.UUID,
    package_id: str,
    package_name: str,
    package_price: Decimal,
    package_duration: str,
    client_message: str | None = None,
    ip_address: str | None = None,
) -> CoachSelectionRequest:
    """Turn down a suggested alternative and open a fresh pending request."""
    _validate_package(package_id, package_name, package_price, package_duration)
    request = await _load_actionable(db, request_id, client_id=client_id)
    new_status = next_status(request.status, RequestAction.client_start_over)

    await _set_status(
        db, request, RequestAction.client_start_over,
        actor_id=client_id, new_status=new_status, ip_address=ip_address,
    )
    return await create_request(
        db,
        client_id=request.client_id,
        trainer_id=request.trainer_id,
        package_id=package_id,
        package_name=package_name,
        package_price=package_price,
        package_duration=package_duration,
        client_message=client_message,
        ip_address=ip_address,
    )


async def client_proceed_to_payment(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    client_id: uuid.UUID,
    ip_address: str | None = None,
) -> CoachSelectionRequest:
    """accepted → awaiting_payment; the engagement moves to getting_to_know_your_coach."""
    request = await _load_actionable(db, request_id, client_id=client_id)
    new_status = next_status(request.status, RequestAction.client_proceed_to_payment)
    stage = await engagement_service.get_stage(
        db, client_id=request.client_id, trainer_id=request.trainer_id
    )
    advance = _plan_stage(stage, until=Stage.getting_to_know_your_coach)

    correlation_id = uuid.uuid4()
    await _set_status(
        db, request, RequestAction.client_proceed_to_payment,
        actor_id=client_id, new_status=new_status,
        correlation_id=correlation_id, ip_address=ip_address,
    )
    if advance:
        await engagement_service.apply_event(
            db,
            client_id=request.client_id,
            trainer_id=request.trainer_id,
            event=EngagementEvent.selection_accepted,
            actor_id=client_id,
            correlation_id=correlation_id,
            ip_address=ip_address,
        )
    return request


async def record_payment_completed(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    actor_id: uuid.UUID,
    payment_reference: str | None = None,
    ip_address: str | None = None,
) -> CoachSelectionRequest:
    """accepted | awaiting_payment → completed, and the client becomes active.

    Both the request and the engagement transition are validated before
    either is written.
    """
    request = await _load_actionable(db, request_id)
    new_status = next_status(request.status, RequestAction.record_payment_completed)
    stage = await engagement_service.get_stage(
        db, client_id=request.client_id, trainer_id=request.trainer_id
    )
    stage_machine.transition(stage, EngagementEvent.payment_completed)

    correlation_id = uuid.uuid4()
    request.completed_at = datetime.now(timezone.utc)
    await _set_status(
        db, request, RequestAction.record_payment_completed,
        actor_id=actor_id,
        new_status=new_status,
        detail={"payment_reference": payment_reference},
        correlation_id=correlation_id,
        ip_address=ip_address,
    )
    await engagement_service.apply_event(
        db,
        client_id=request.client_id,
        trainer_id=request.trainer_id,
        event=EngagementEvent.payment_completed,
        actor_id=actor_id,
        correlation_id=correlation_id,
        ip_address=ip_address,
    )

    for recipient in (request.client_id, request.trainer_id):
        await notification_service.notify(
            recipient,
            "coach_selection.completed",
            "Payment received, coaching starts now",
            {"request_id": str(request.id)},
        )
    return request


async def list_pending_for_trainer(
    db: AsyncSession,
    trainer_id: uuid.UUID,
) -> list[CoachSelectionRequest]:
    result = await db.execute(
        select(CoachSelectionRequest)
        .where(
            CoachSelectionRequest.trainer_id == trainer_id,
            CoachSelectionRequest.status == RequestStatus.pending,
        )
        .order_by(CoachSelectionRequest.created_at.desc())
    )
    return list(result.scalars().all())


async def list_for_client(
    db: AsyncSession,
    client_id: uuid.UUID,
) -> list[CoachSelectionRequest]:
    result = await db.execute(
        select(CoachSelectionRequest)
        .where(CoachSelectionRequest.client_id == client_id)
        .order_by(CoachSelectionRequest.created_at.desc())
    )
    return list(result.scalars().all())
