import uuid
from datetime import datetime

from pydantic import BaseModel


class AuditLogEventRead(BaseModel):
    """History entry as shown to engagement participants.

    Both sides read the same history, so the actor's IP address is left out.
    """

    id: uuid.UUID
    user_id: uuid.UUID
    event_type: str
    action: str
    detail: dict | None = None
    correlation_id: uuid.UUID | None = None
    timestamp: datetime

    model_config = {"from_attributes": True}
