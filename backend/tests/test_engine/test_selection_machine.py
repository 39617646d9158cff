import pytest

from app.core.errors import InvalidTransition
from app.engine.selection_machine import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    RequestAction,
    RequestStatus,
    is_live,
    next_status,
)


def test_live_and_terminal_partition_statuses():
    assert LIVE_STATUSES | TERMINAL_STATUSES == set(RequestStatus)
    assert not LIVE_STATUSES & TERMINAL_STATUSES


def test_straight_through_flow():
    status = RequestStatus.pending
    for action, expected in [
        (RequestAction.trainer_accept, RequestStatus.accepted),
        (RequestAction.client_proceed_to_payment, RequestStatus.awaiting_payment),
        (RequestAction.record_payment_completed, RequestStatus.completed),
    ]:
        status = next_status(status, action)
        assert status == expected


def test_alternative_flow():
    status = next_status(RequestStatus.pending, RequestAction.trainer_suggest_alternative)
    assert status == RequestStatus.alternative_suggested
    assert next_status(status, RequestAction.client_accept_alternative) == RequestStatus.accepted
    assert next_status(status, RequestAction.client_start_over) == RequestStatus.withdrawn


def test_trainer_can_decline_after_accepting():
    assert next_status(RequestStatus.accepted, RequestAction.trainer_decline) == RequestStatus.declined


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
@pytest.mark.parametrize("action", list(RequestAction))
def test_terminal_statuses_reject_everything(status, action):
    with pytest.raises(InvalidTransition):
        next_status(status, action)


def test_rejection_message_names_status():
    with pytest.raises(InvalidTransition) as exc_info:
        next_status(RequestStatus.declined, RequestAction.trainer_accept)
    assert "declined" in exc_info.value.message
    assert exc_info.value.attempted == "trainer_accept"


def test_is_live():
    assert is_live(RequestStatus.awaiting_payment)
    assert not is_live(RequestStatus.withdrawn)
