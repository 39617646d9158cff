import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from app.engine.stage_machine import EngagementEvent, Stage


class EngagementRead(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    trainer_id: uuid.UUID
    stage: Stage
    notes: str | None = None
    liked_at: datetime | None = None
    matched_at: datetime | None = None
    discovery_completed_at: datetime | None = None
    became_client_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class EngagementStatus(BaseModel):
    """Current stage of a pair plus what can happen next."""

    client_id: uuid.UUID
    trainer_id: uuid.UUID
    stage: Stage
    allowed_events: list[EngagementEvent]


class EngagementEventRequest(BaseModel):
    event: str


class EngagementNotesUpdate(BaseModel):
    notes: str | None = Field(None, max_length=2000)
