"""Messaging service: client/trainer conversations.

A conversation is opened by the client. The trainer may reply only once the
client has written at least one message; this is checked against stored
messages on every send. A client's message moves the engagement to matched
through the ``first_message_sent`` event.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidTransition, NotFound, ValidationError
from app.engine import stage_machine
from app.engine.messaging_gate import ConversationSummary, ParticipantRole, can_send
from app.engine.stage_machine import EngagementEvent
from app.models.messaging import Conversation, Message
from app.services import audit_service, engagement_service, notification_service

logger = logging.getLogger("trainermatch.messaging")

MAX_MESSAGE_LENGTH = 5000


async def get_or_create_conversation(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    trainer_id: uuid.UUID,
) -> Conversation:
    """Open (or reopen) the client's conversation with a trainer.

    Only clients start conversations; callers resolve the role first.
    """
    await engagement_service.get_or_create_engagement(
        db, client_id=client_id, trainer_id=trainer_id
    )
    result = await db.execute(
        select(Conversation).where(
            Conversation.client_id == client_id,
            Conversation.trainer_id == trainer_id,
        )
    )
    conversation = result.scalar_one_or_none()
    if conversation is None:
        conversation = Conversation(client_id=client_id, trainer_id=trainer_id)
        db.add(conversation)
        await db.flush()
        logger.info("Opened conversation %s client=%s trainer=%s", conversation.id, client_id, trainer_id)
    return conversation


async def get_conversation(
    db: AsyncSession,
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Conversation:
    """Load a conversation the user takes part in. Anyone else gets NotFound."""
    result = await db.execute(
        select(Conversation).where(
            Conversation.id == conversation_id,
            or_(Conversation.client_id == user_id, Conversation.trainer_id == user_id),
        )
    )
    conversation = result.scalar_one_or_none()
    if conversation is None:
        raise NotFound("Conversation not found")
    return conversation


def role_in(conversation: Conversation, user_id: uuid.UUID) -> ParticipantRole:
    if user_id == conversation.client_id:
        return ParticipantRole.client
    return ParticipantRole.trainer


async def summarize(db: AsyncSession, conversation: Conversation) -> ConversationSummary:
    stmt = select(
        exists().where(
            Message.conversation_id == conversation.id,
            Message.sender_id == conversation.client_id,
        )
    )
    has_client_message = bool((await db.execute(stmt)).scalar())
    stage = await engagement_service.get_stage(
        db, client_id=conversation.client_id, trainer_id=conversation.trainer_id
    )
    return ConversationSummary(
        conversation_id=conversation.id,
        client_id=conversation.client_id,
        trainer_id=conversation.trainer_id,
        has_client_message=has_client_message,
        closed_stage=stage if stage_machine.is_terminal(stage) else None,
    )


async def can_user_send(
    db: AsyncSession,
    conversation: Conversation,
    user_id: uuid.UUID,
) -> bool:
    summary = await summarize(db, conversation)
    return can_send(role_in(conversation, user_id), summary)


async def send_message(
    db: AsyncSession,
    *,
    conversation_id: uuid.UUID,
    sender_id: uuid.UUID,
    content: str,
    message_type: str = "text",
    ip_address: str | None = None,
) -> Message:
    """Append a message.

    Raises InvalidTransition when a trainer writes first, or when the
    engagement has been declined or unmatched.
    """
    if not content or not content.strip():
        raise ValidationError("Message content must not be empty")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message content must be at most {MAX_MESSAGE_LENGTH} characters")

    conversation = await get_conversation(db, conversation_id, sender_id)
    role = role_in(conversation, sender_id)

    summary = await summarize(db, conversation)
    if summary.is_closed:
        raise InvalidTransition(
            f"This conversation is closed because the engagement is {summary.closed_stage.value}",
            current=summary.closed_stage.value,
            attempted="send_message",
        )
    if not can_send(role, summary):
        logger.warning("Trainer %s tried to write first in conversation %s", sender_id, conversation.id)
        raise InvalidTransition(
            "Your client has not written yet. You can reply once they send a message.",
            current="awaiting_client_message",
            attempted="send_message",
        )

    now = datetime.now(timezone.utc)
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        content=content,
        message_type=message_type,
        created_at=now,
    )
    db.add(message)
    if role == ParticipantRole.client:
        conversation.client_last_read_at = now
    else:
        conversation.trainer_last_read_at = now
    conversation.updated_at = now
    await db.flush()

    if role == ParticipantRole.client:
        await engagement_service.apply_event(
            db,
            client_id=conversation.client_id,
            trainer_id=conversation.trainer_id,
            event=EngagementEvent.first_message_sent,
            actor_id=sender_id,
            ip_address=ip_address,
        )

    await audit_service.log_event(
        db,
        user_id=sender_id,
        event_type="message.sent",
        entity_type="Message",
        entity_id=message.id,
        action="send",
        detail={"conversation_id": str(conversation.id), "role": role.value},
        ip_address=ip_address,
    )
    recipient = conversation.trainer_id if role == ParticipantRole.client else conversation.client_id
    await notification_service.notify(
        recipient,
        "message.received",
        "You have a new message",
        {"conversation_id": str(conversation.id)},
    )
    return message


async def get_messages(
    db: AsyncSession,
    *,
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
    limit: int = 100,
) -> list[Message]:
    """Latest ``limit`` messages, oldest first."""
    await get_conversation(db, conversation_id, user_id)
    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc())
        .limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def mark_as_read(
    db: AsyncSession,
    *,
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Conversation:
    conversation = await get_conversation(db, conversation_id, user_id)
    now = datetime.now(timezone.utc)
    if role_in(conversation, user_id) == ParticipantRole.client:
        conversation.client_last_read_at = now
    else:
        conversation.trainer_last_read_at = now
    await db.flush()
    return conversation


async def unread_count(
    db: AsyncSession,
    *,
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
) -> int:
    conversation = await get_conversation(db, conversation_id, user_id)
    if role_in(conversation, user_id) == ParticipantRole.client:
        last_read = Conversation.client_last_read_at
    else:
        last_read = Conversation.trainer_last_read_at

    # Compare against the stored column so both sides share one representation.
    stmt = (
        select(func.count(Message.id))
        .join(Conversation, Conversation.id == Message.conversation_id)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_id != user_id,
            or_(last_read.is_(None), Message.created_at > last_read),
        )
    )
    return (await db.execute(stmt)).scalar() or 0


async def list_conversations(db: AsyncSession, user_id: uuid.UUID) -> list[Conversation]:
    result = await db.execute(
        select(Conversation)
        .where(or_(Conversation.client_id == user_id, Conversation.trainer_id == user_id))
        .order_by(Conversation.updated_at.desc())
    )
    return list(result.scalars().all())
