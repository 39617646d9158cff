"""Coach selection request status machine.

    pending → accepted → awaiting_payment → completed
    pending | accepted → declined
    pending | accepted → alternative_suggested → accepted  (client takes it)
    alternative_suggested → withdrawn                      (client starts over)

declined, completed and withdrawn are terminal. A pair may hold many
requests over time but only one live request at once.
"""

import enum

from app.core.errors import InvalidTransition


class RequestStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    awaiting_payment = "awaiting_payment"
    alternative_suggested = "alternative_suggested"
    declined = "declined"
    completed = "completed"
    withdrawn = "withdrawn"


class RequestAction(str, enum.Enum):
    trainer_accept = "trainer_accept"
    trainer_decline = "trainer_decline"
    trainer_suggest_alternative = "trainer_suggest_alternative"
    client_accept_alternative = "client_accept_alternative"
    client_start_over = "client_start_over"
    client_proceed_to_payment = "client_proceed_to_payment"
    record_payment_completed = "record_payment_completed"


LIVE_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.pending,
    RequestStatus.accepted,
    RequestStatus.awaiting_payment,
    RequestStatus.alternative_suggested,
})

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.declined,
    RequestStatus.completed,
    RequestStatus.withdrawn,
})

TRANSITIONS: dict[RequestAction, dict[RequestStatus, RequestStatus]] = {
    RequestAction.trainer_accept: {
        RequestStatus.pending: RequestStatus.accepted,
    },
    RequestAction.trainer_decline: {
        RequestStatus.pending: RequestStatus.declined,
        RequestStatus.accepted: RequestStatus.declined,
    },
    RequestAction.trainer_suggest_alternative: {
        RequestStatus.pending: RequestStatus.alternative_suggested,
        RequestStatus.accepted: RequestStatus.alternative_suggested,
    },
    RequestAction.client_accept_alternative: {
        RequestStatus.alternative_suggested: RequestStatus.accepted,
    },
    RequestAction.client_start_over: {
        RequestStatus.alternative_suggested: RequestStatus.withdrawn,
    },
    RequestAction.client_proceed_to_payment: {
        RequestStatus.accepted: RequestStatus.awaiting_payment,
    },
    RequestAction.record_payment_completed: {
        RequestStatus.accepted: RequestStatus.completed,
        RequestStatus.awaiting_payment: RequestStatus.completed,
    },
}


def is_live(status: RequestStatus) -> bool:
    return status in LIVE_STATUSES


def next_status(current: RequestStatus, action: RequestAction) -> RequestStatus:
    """Return the status ``action`` moves a request to, or raise InvalidTransition."""
    try:
        return TRANSITIONS[action][current]
    except KeyError:
        raise InvalidTransition(
            f"This request is {current.value.replace('_', ' ')}; "
            f"'{action.value}' is no longer possible",
            current=current.value,
            attempted=action.value,
        ) from None
