import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLogEvent
from app.models.user import User


async def _create_user(db_session: AsyncSession) -> User:
    user = User(email="audit@example.com", password_hash="fakehash")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.mark.asyncio
async def test_create_and_read_audit_event(db_session: AsyncSession):
    """Insert audit event -> read -> fields match."""
    user = await _create_user(db_session)

    event = AuditLogEvent(
        user_id=user.id,
        event_type="engagement.stage_changed",
        entity_type="Engagement",
        entity_id=uuid.uuid4(),
        action="like",
        detail={"from_stage": "browsing", "to_stage": "liked"},
        ip_address="127.0.0.1",
    )
    db_session.add(event)
    await db_session.commit()

    result = await db_session.execute(
        select(AuditLogEvent).where(AuditLogEvent.user_id == user.id)
    )
    fetched = result.scalar_one()

    assert fetched.id is not None
    assert fetched.event_type == "engagement.stage_changed"
    assert fetched.entity_type == "Engagement"
    assert fetched.action == "like"
    assert fetched.detail == {"from_stage": "browsing", "to_stage": "liked"}
    assert fetched.timestamp is not None
    assert fetched.ip_address == "127.0.0.1"
    assert fetched.correlation_id is None


@pytest.mark.asyncio
async def test_correlation_id_groups_events(db_session: AsyncSession):
    """Events of one logical operation share a correlation id."""
    user = await _create_user(db_session)
    correlation_id = uuid.uuid4()

    db_session.add_all([
        AuditLogEvent(
            user_id=user.id,
            event_type="template_assignment.expired",
            entity_type="TemplateAssignment",
            entity_id=uuid.uuid4(),
            action="expire",
            correlation_id=correlation_id,
        ),
        AuditLogEvent(
            user_id=user.id,
            event_type="template_assignment.assigned",
            entity_type="TemplateAssignment",
            entity_id=uuid.uuid4(),
            action="assign",
            correlation_id=correlation_id,
        ),
        AuditLogEvent(
            user_id=user.id,
            event_type="auth.login",
            entity_type="User",
            entity_id=user.id,
            action="login",
        ),
    ])
    await db_session.commit()

    result = await db_session.execute(
        select(AuditLogEvent).where(AuditLogEvent.correlation_id == correlation_id)
    )
    assert {e.action for e in result.scalars().all()} == {"expire", "assign"}
