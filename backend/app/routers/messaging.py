"""Conversation routes: open, list, read, send, mark read."""

import uuid as uuid_mod

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_role
from app.dependencies import get_db
from app.models.user import User, UserRole
from app.schemas.messaging import (
    ConversationCreate,
    ConversationRead,
    ConversationState,
    MessageCreate,
    MessageRead,
)
from app.services import engagement_service, messaging_service

router = APIRouter(prefix="/conversations", tags=["conversations"])

participant = require_role(UserRole.client, UserRole.trainer)


def _parse_conversation_id(value: str) -> uuid_mod.UUID:
    try:
        return uuid_mod.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid conversation_id")


async def _state(db: AsyncSession, conversation, user: User) -> ConversationState:
    return ConversationState(
        conversation=ConversationRead.model_validate(conversation),
        can_send=await messaging_service.can_user_send(db, conversation, user.id),
        unread_count=await messaging_service.unread_count(
            db, conversation_id=conversation.id, user_id=user.id
        ),
    )


@router.post("", response_model=ConversationState)
async def open_conversation(
    body: ConversationCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.client)),
):
    client_id, trainer_id = await engagement_service.resolve_pair(
        db, actor=current_user, other_id=body.trainer_id
    )
    conversation = await messaging_service.get_or_create_conversation(
        db, client_id=client_id, trainer_id=trainer_id
    )
    return await _state(db, conversation, current_user)


@router.get("", response_model=list[ConversationRead])
async def list_conversations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    return await messaging_service.list_conversations(db, current_user.id)


@router.get("/{conversation_id}", response_model=ConversationState)
async def get_conversation(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    conversation = await messaging_service.get_conversation(
        db, _parse_conversation_id(conversation_id), current_user.id
    )
    return await _state(db, conversation, current_user)


@router.get("/{conversation_id}/messages", response_model=list[MessageRead])
async def list_messages(
    conversation_id: str,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    return await messaging_service.get_messages(
        db,
        conversation_id=_parse_conversation_id(conversation_id),
        user_id=current_user.id,
        limit=min(max(limit, 1), 500),
    )


@router.post("/{conversation_id}/messages", status_code=201, response_model=MessageRead)
async def send_message(
    conversation_id: str,
    body: MessageCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    ip = request.client.host if request.client else None
    return await messaging_service.send_message(
        db,
        conversation_id=_parse_conversation_id(conversation_id),
        sender_id=current_user.id,
        content=body.content,
        message_type=body.message_type,
        ip_address=ip,
    )


@router.post("/{conversation_id}/read", response_model=ConversationState)
async def mark_read(
    conversation_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(participant),
):
    conversation = await messaging_service.mark_as_read(
        db,
        conversation_id=_parse_conversation_id(conversation_id),
        user_id=current_user.id,
    )
    return await _state(db, conversation, current_user)
