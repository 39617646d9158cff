"""Template assignment register: one active onboarding template per client.

Assigning follows check → expire → create. ``assign`` never overwrites: if
the client already has an active assignment the caller gets a Conflict
naming it and must expire it with a reason first, or call ``supersede``
which does both steps under one correlation id.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvalidTransition, NotFound, ValidationError
from app.models.template_assignment import (
    AssignmentStatus,
    AssignmentType,
    TemplateAssignment,
)
from app.services import audit_service, notification_service

logger = logging.getLogger("trainermatch.templates")

# Only active assignments move, and only to a terminal status.
_ALLOWED_MOVES: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.active: frozenset({AssignmentStatus.expired, AssignmentStatus.removed}),
}


def _require_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("A reason is required to end an assignment")
    return reason.strip()


def _validate_template(template_id: str, template_name: str) -> None:
    if not template_id or not template_id.strip():
        raise ValidationError("template_id must not be empty")
    if not template_name or not template_name.strip():
        raise ValidationError("template_name must not be empty")


def _move(assignment: TemplateAssignment, target: AssignmentStatus) -> None:
    if target not in _ALLOWED_MOVES.get(assignment.status, frozenset()):
        raise InvalidTransition(
            f"Assignment is already {assignment.status.value}",
            current=assignment.status.value,
            attempted=target.value,
        )
    assignment.status = target
    assignment.expired_at = datetime.now(timezone.utc)


async def has_active(db: AsyncSession, client_id: uuid.UUID) -> bool:
    stmt = select(
        exists().where(
            TemplateAssignment.client_id == client_id,
            TemplateAssignment.status == AssignmentStatus.active,
        )
    )
    return bool((await db.execute(stmt)).scalar())


async def get_active(db: AsyncSession, client_id: uuid.UUID) -> TemplateAssignment | None:
    result = await db.execute(
        select(TemplateAssignment)
        .where(
            TemplateAssignment.client_id == client_id,
            TemplateAssignment.status == AssignmentStatus.active,
        )
        .order_by(TemplateAssignment.assigned_at.desc())
    )
    return result.scalars().first()


async def get_assignment(db: AsyncSession, assignment_id: uuid.UUID) -> TemplateAssignment:
    result = await db.execute(
        select(TemplateAssignment).where(TemplateAssignment.id == assignment_id)
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise NotFound("Template assignment not found")
    return assignment


async def assign(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
    template_id: str,
    template_name: str,
    assigned_by: uuid.UUID,
    assignment_type: AssignmentType = AssignmentType.direct,
    assignment_notes: str | None = None,
    correlation_id: uuid.UUID | None = None,
    ip_address: str | None = None,
) -> TemplateAssignment:
    """Create the client's active assignment.

    Raises Conflict, carrying the existing assignment id, when one is
    already active.
    """
    _validate_template(template_id, template_name)

    existing = await get_active(db, client_id)
    if existing is not None:
        logger.warning(
            "Rejected assignment of %s to client=%s: %s already active",
            template_id,
            client_id,
            existing.id,
        )
        raise Conflict(
            f"Client already has '{existing.template_name}' assigned. "
            "Expire it with a reason before assigning another template.",
            assignment_id=existing.id,
            template_name=existing.template_name,
        )

    assignment = TemplateAssignment(
        client_id=client_id,
        trainer_id=trainer_id,
        template_id=template_id.strip(),
        template_name=template_name.strip(),
        assignment_type=assignment_type,
        assignment_notes=assignment_notes,
        status=AssignmentStatus.active,
        assigned_at=datetime.now(timezone.utc),
        assigned_by=assigned_by,
    )
    if correlation_id is not None:
        assignment.correlation_id = correlation_id
    db.add(assignment)
    try:
        await db.flush()
    except IntegrityError:
        # Another assignment for this client committed between check and insert.
        logger.warning("Concurrent assignment for client=%s rejected", client_id)
        raise Conflict(
            "Client already has an active template assignment. "
            "Expire it with a reason before assigning another template.",
            client_id=client_id,
        ) from None

    logger.info("Assigned template %s to client=%s", assignment.template_id, client_id)
    await audit_service.log_event(
        db,
        user_id=assigned_by,
        event_type="template_assignment.assigned",
        entity_type="TemplateAssignment",
        entity_id=assignment.id,
        action="assign",
        detail={
            "client_id": str(client_id),
            "template_id": assignment.template_id,
            "assignment_type": assignment_type.value,
        },
        correlation_id=assignment.correlation_id,
        ip_address=ip_address,
    )
    await notification_service.notify(
        client_id,
        "template_assignment.assigned",
        f"Your coach assigned you '{assignment.template_name}'",
        {"assignment_id": str(assignment.id)},
    )
    return assignment


async def _end(
    db: AsyncSession,
    *,
    assignment_id: uuid.UUID,
    target: AssignmentStatus,
    reason: str,
    actor_id: uuid.UUID,
    correlation_id: uuid.UUID | None,
    ip_address: str | None,
) -> TemplateAssignment:
    reason = _require_reason(reason)
    assignment = await get_assignment(db, assignment_id)
    previous = assignment.status
    _move(assignment, target)
    assignment.expiry_reason = reason
    await db.flush()

    logger.info(
        "Template assignment %s moved %s -> %s (%s)",
        assignment.id,
        previous.value,
        target.value,
        reason,
    )
    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type=f"template_assignment.{target.value}",
        entity_type="TemplateAssignment",
        entity_id=assignment.id,
        action="expire" if target == AssignmentStatus.expired else "remove",
        detail={"reason": reason, "client_id": str(assignment.client_id)},
        correlation_id=correlation_id or assignment.correlation_id,
        ip_address=ip_address,
    )
    return assignment


async def expire(
    db: AsyncSession,
    *,
    assignment_id: uuid.UUID,
    reason: str,
    actor_id: uuid.UUID,
    correlation_id: uuid.UUID | None = None,
    ip_address: str | None = None,
) -> TemplateAssignment:
    return await _end(
        db,
        assignment_id=assignment_id,
        target=AssignmentStatus.expired,
        reason=reason,
        actor_id=actor_id,
        correlation_id=correlation_id,
        ip_address=ip_address,
    )


async def remove(
    db: AsyncSession,
    *,
    assignment_id: uuid.UUID,
    reason: str,
    actor_id: uuid.UUID,
    ip_address: str | None = None,
) -> TemplateAssignment:
    """Retract an assignment the trainer made by mistake."""
    return await _end(
        db,
        assignment_id=assignment_id,
        target=AssignmentStatus.removed,
        reason=reason,
        actor_id=actor_id,
        correlation_id=None,
        ip_address=ip_address,
    )


async def supersede(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
    template_id: str,
    template_name: str,
    reason: str,
    assigned_by: uuid.UUID,
    assignment_type: AssignmentType = AssignmentType.direct,
    assignment_notes: str | None = None,
    ip_address: str | None = None,
) -> TemplateAssignment:
    """Expire the client's active assignment and assign a new one.

    Both writes share one correlation id. If the client had nothing active
    this is a plain ``assign``. Only the trainer who made the active
    assignment may supersede it; anyone else gets the same Conflict a plain
    ``assign`` would raise.
    """
    _validate_template(template_id, template_name)
    reason = _require_reason(reason)
    correlation_id = uuid.uuid4()
    current = await get_active(db, client_id)
    if current is not None and current.trainer_id != trainer_id:
        logger.warning(
            "Trainer %s tried to supersede assignment %s owned by %s",
            trainer_id,
            current.id,
            current.trainer_id,
        )
        raise Conflict(
            f"Client already has '{current.template_name}' assigned by another coach",
            assignment_id=current.id,
            template_name=current.template_name,
        )
    if current is not None:
        await expire(
            db,
            assignment_id=current.id,
            reason=reason,
            actor_id=assigned_by,
            correlation_id=correlation_id,
            ip_address=ip_address,
        )
    return await assign(
        db,
        client_id=client_id,
        trainer_id=trainer_id,
        template_id=template_id,
        template_name=template_name,
        assigned_by=assigned_by,
        assignment_type=assignment_type,
        assignment_notes=assignment_notes,
        correlation_id=correlation_id,
        ip_address=ip_address,
    )


async def list_for_client(
    db: AsyncSession,
    client_id: uuid.UUID,
    *,
    status: AssignmentStatus | None = None,
) -> list[TemplateAssignment]:
    stmt = select(TemplateAssignment).where(TemplateAssignment.client_id == client_id)
    if status is not None:
        stmt = stmt.where(TemplateAssignment.status == status)
    stmt = stmt.order_by(TemplateAssignment.assigned_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())
