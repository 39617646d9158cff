"""Audit trail for engagement, selection, assignment and messaging writes.

Rows are only ever inserted. Reads come in three shapes: by actor, by entity
(the stage history of one engagement, say) and by correlation id (the
events one operation wrote together).
"""

import uuid

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLogEvent


async def log_event(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    event_type: str,
    entity_type: str,
    entity_id: uuid.UUID,
    action: str,
    detail: dict | None = None,
    correlation_id: uuid.UUID | None = None,
    ip_address: str | None = None,
) -> AuditLogEvent:
    event = AuditLogEvent(
        user_id=user_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        detail=detail,
        correlation_id=correlation_id,
        ip_address=ip_address,
    )
    db.add(event)
    await db.flush()
    return event


def _chronological(*criteria) -> Select:
    return select(AuditLogEvent).where(*criteria).order_by(AuditLogEvent.timestamp.asc())


async def _all(db: AsyncSession, stmt: Select) -> list[AuditLogEvent]:
    return list((await db.execute(stmt)).scalars().all())


async def get_events_by_actor(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    event_type: str | None = None,
    entity_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AuditLogEvent]:
    """Events written by one user, optionally narrowed by event or entity type."""
    criteria = [AuditLogEvent.user_id == user_id]
    if event_type is not None:
        criteria.append(AuditLogEvent.event_type == event_type)
    if entity_type is not None:
        criteria.append(AuditLogEvent.entity_type == entity_type)
    return await _all(db, _chronological(*criteria).offset(offset).limit(limit))


async def get_entity_history(
    db: AsyncSession,
    entity_type: str,
    entity_id: uuid.UUID,
) -> list[AuditLogEvent]:
    """Every event recorded against one engagement, request or assignment, oldest first."""
    return await _all(
        db,
        _chronological(
            AuditLogEvent.entity_type == entity_type,
            AuditLogEvent.entity_id == entity_id,
        ),
    )


async def get_correlated_events(
    db: AsyncSession,
    correlation_id: uuid.UUID,
) -> list[AuditLogEvent]:
    """Events written as one logical operation (e.g. expire-then-assign)."""
    return await _all(db, _chronological(AuditLogEvent.correlation_id == correlation_id))
