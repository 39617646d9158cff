"""Who may speak in a client/trainer conversation.

Clients may always write. A trainer may write only once the client has
authored at least one message in the conversation. Once the engagement is
declined or unmatched nobody may write. Nothing is cached: the summary is
rebuilt from message rows and the engagement stage every time the thread
is opened.
"""

import enum
import uuid
from dataclasses import dataclass

from app.engine.stage_machine import Stage


class ParticipantRole(str, enum.Enum):
    client = "client"
    trainer = "trainer"


@dataclass(frozen=True)
class ConversationSummary:
    conversation_id: uuid.UUID | None
    client_id: uuid.UUID
    trainer_id: uuid.UUID
    has_client_message: bool
    # Terminal engagement stage that closed the thread, if any.
    closed_stage: Stage | None = None

    @property
    def is_closed(self) -> bool:
        return self.closed_stage is not None


def can_send(role: ParticipantRole, conversation: ConversationSummary) -> bool:
    if conversation.is_closed:
        return False
    if role == ParticipantRole.client:
        return True
    return conversation.has_client_message
