"""Engagement service: the single writer of an engagement's stage.

An engagement is created at browsing the first time a client views a
trainer. Every later change goes through ``apply_event``, which asks the
stage machine for the next stage, stamps milestone timestamps and writes an
audit event. Rejected events raise InvalidTransition and write nothing.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidTransition, NotFound, ValidationError
from app.engine.selection_machine import RequestStatus
from app.engine.stage_machine import EngagementEvent, Stage, transition
from app.models.coach_selection import CoachSelectionRequest
from app.models.engagement import Engagement
from app.models.user import User, UserRole
from app.services import audit_service

logger = logging.getLogger("trainermatch.engagement")

# Milestone stage -> timestamp column stamped the first time it is reached
STAGE_TIMESTAMP_FIELDS = {
    Stage.liked: "liked_at",
    Stage.matched: "matched_at",
    Stage.discovery_completed: "discovery_completed_at",
    Stage.active_client: "became_client_at",
}

# Who may raise each event directly. selection_accepted and payment_completed
# are driven only by the coach selection workflow; first_message_sent only by
# messaging.
EVENT_ROLES: dict[EngagementEvent, frozenset[UserRole]] = {
    EngagementEvent.like: frozenset({UserRole.client}),
    EngagementEvent.discovery_call_booked: frozenset({UserRole.client, UserRole.trainer}),
    EngagementEvent.discovery_call_started: frozenset({UserRole.client, UserRole.trainer}),
    EngagementEvent.discovery_call_completed: frozenset({UserRole.client, UserRole.trainer}),
    EngagementEvent.decline: frozenset({UserRole.trainer, UserRole.client}),
    EngagementEvent.unmatch: frozenset({UserRole.client, UserRole.trainer}),
}


def can_raise(role: UserRole, event: EngagementEvent) -> bool:
    return role in EVENT_ROLES.get(event, frozenset())


async def resolve_pair(
    db: AsyncSession,
    *,
    actor: User,
    other_id: uuid.UUID,
) -> tuple[uuid.UUID, uuid.UUID]:
    """Return (client_id, trainer_id) for the actor and the other party."""
    result = await db.execute(select(User).where(User.id == other_id))
    other = result.scalar_one_or_none()
    if other is None:
        raise NotFound("User not found")
    if actor.role == UserRole.client and other.role == UserRole.trainer:
        return actor.id, other.id
    if actor.role == UserRole.trainer and other.role == UserRole.client:
        return other.id, actor.id
    raise ValidationError("An engagement links one client with one trainer")


async def get_or_create_engagement(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
) -> Engagement:
    """Get the engagement for a pair, creating it at browsing if missing."""
    if client_id == trainer_id:
        raise ValidationError("A user cannot engage with themselves")

    result = await db.execute(
        select(Engagement).where(
            Engagement.client_id == client_id,
            Engagement.trainer_id == trainer_id,
        )
    )
    engagement = result.scalar_one_or_none()
    if engagement is None:
        engagement = Engagement(
            client_id=client_id,
            trainer_id=trainer_id,
            stage=Stage.browsing,
        )
        db.add(engagement)
        await db.flush()
    return engagement


async def get_engagement(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
) -> Engagement:
    result = await db.execute(
        select(Engagement).where(
            Engagement.client_id == client_id,
            Engagement.trainer_id == trainer_id,
        )
    )
    engagement = result.scalar_one_or_none()
    if engagement is None:
        raise NotFound("No engagement exists between this client and trainer")
    return engagement


async def get_stage(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
) -> Stage:
    """Current stage for a pair; browsing if they have never interacted."""
    result = await db.execute(
        select(Engagement.stage).where(
            Engagement.client_id == client_id,
            Engagement.trainer_id == trainer_id,
        )
    )
    stage = result.scalar_one_or_none()
    return stage if stage is not None else Stage.browsing


async def _has_completed_selection(
    db: AsyncSession,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
) -> bool:
    stmt = select(
        exists().where(
            CoachSelectionRequest.client_id == client_id,
            CoachSelectionRequest.trainer_id == trainer_id,
            CoachSelectionRequest.status == RequestStatus.completed,
        )
    )
    return bool((await db.execute(stmt)).scalar())


async def apply_event(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
    event: EngagementEvent,
    actor_id: uuid.UUID,
    correlation_id: uuid.UUID | None = None,
    ip_address: str | None = None,
) -> Engagement:
    """Apply ``event`` to the pair's engagement and persist the new stage.

    Raises InvalidTransition if the event is illegal for the current stage;
    nothing is written in that case. An event whose effect already holds is
    a no-op and writes nothing either.
    """
    result = await db.execute(
        select(Engagement).where(
            Engagement.client_id == client_id,
            Engagement.trainer_id == trainer_id,
        )
    )
    engagement = result.scalar_one_or_none()
    previous = engagement.stage if engagement is not None else Stage.browsing

    try:
        new_stage = transition(previous, event)
        if (
            event == EngagementEvent.payment_completed
            and new_stage != previous
            and not await _has_completed_selection(db, client_id, trainer_id)
        ):
            raise InvalidTransition(
                "Payment can only complete once a coach selection request is completed",
                current=previous.value,
                attempted=event.value,
            )
    except InvalidTransition:
        logger.warning(
            "Rejected engagement event client=%s trainer=%s stage=%s event=%s",
            client_id,
            trainer_id,
            previous.value,
            event.value,
        )
        raise

    if engagement is None:
        engagement = await get_or_create_engagement(
            db, client_id=client_id, trainer_id=trainer_id
        )

    if new_stage == previous:
        return engagement

    now = datetime.now(timezone.utc)
    engagement.stage = new_stage
    engagement.updated_at = now
    timestamp_field = STAGE_TIMESTAMP_FIELDS.get(new_stage)
    if timestamp_field and getattr(engagement, timestamp_field) is None:
        setattr(engagement, timestamp_field, now)
    await db.flush()

    logger.info(
        "Engagement %s moved %s -> %s on %s",
        engagement.id,
        previous.value,
        new_stage.value,
        event.value,
    )
    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="engagement.stage_changed",
        entity_type="Engagement",
        entity_id=engagement.id,
        action=event.value,
        detail={
            "from_stage": previous.value,
            "to_stage": new_stage.value,
            "client_id": str(client_id),
            "trainer_id": str(trainer_id),
        },
        correlation_id=correlation_id,
        ip_address=ip_address,
    )
    return engagement


async def update_notes(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
    notes: str | None,
    actor_id: uuid.UUID,
    ip_address: str | None = None,
) -> Engagement:
    engagement = await get_engagement(db, client_id=client_id, trainer_id=trainer_id)
    engagement.notes = notes
    await db.flush()

    await audit_service.log_event(
        db,
        user_id=actor_id,
        event_type="engagement.notes_updated",
        entity_type="Engagement",
        entity_id=engagement.id,
        action="update_notes",
        ip_address=ip_address,
    )
    return engagement


async def list_for_client(
    db: AsyncSession,
    client_id: uuid.UUID,
    *,
    stages: list[Stage] | None = None,
) -> list[Engagement]:
    stmt = select(Engagement).where(Engagement.client_id == client_id)
    if stages:
        stmt = stmt.where(Engagement.stage.in_(stages))
    stmt = stmt.order_by(Engagement.updated_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_for_trainer(
    db: AsyncSession,
    trainer_id: uuid.UUID,
    *,
    stages: list[Stage] | None = None,
) -> list[Engagement]:
    stmt = select(Engagement).where(Engagement.trainer_id == trainer_id)
    if stages:
        stmt = stmt.where(Engagement.stage.in_(stages))
    stmt = stmt.order_by(Engagement.updated_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())
