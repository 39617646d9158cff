import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from app.models.template_assignment import AssignmentStatus, AssignmentType


class AssignmentCreate(BaseModel):
    client_id: uuid.UUID
    template_id: str = Field(..., max_length=100)
    template_name: str = Field(..., max_length=255)
    assignment_type: str = "direct"
    assignment_notes: str | None = Field(None, max_length=1000)


class SupersedeRequest(AssignmentCreate):
    reason: str = Field(..., max_length=500)


class EndAssignmentRequest(BaseModel):
    reason: str = Field(..., max_length=500)


class AssignmentRead(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    trainer_id: uuid.UUID
    template_id: str
    template_name: str
    assignment_type: AssignmentType
    assignment_notes: str | None = None
    status: AssignmentStatus
    assigned_at: datetime
    expired_at: datetime | None = None
    expiry_reason: str | None = None
    correlation_id: uuid.UUID
    assigned_by: uuid.UUID

    model_config = {"from_attributes": True}


class ActiveAssignment(BaseModel):
    has_active: bool
    assignment: AssignmentRead | None = None
