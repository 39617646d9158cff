"""Engagement stage machine.

Stages advance along the happy path

    browsing → liked → matched → discovery_call_booked → discovery_in_progress
    → discovery_completed → agreed → getting_to_know_your_coach → active_client

and may fork to the terminal negative stages declined / unmatched from any
non-terminal stage. ``transition`` is the only function that decides a new
stage; it performs no I/O.
"""

import enum

from app.core.errors import InvalidTransition


class Stage(str, enum.Enum):
    browsing = "browsing"
    liked = "liked"
    matched = "matched"
    discovery_call_booked = "discovery_call_booked"
    discovery_in_progress = "discovery_in_progress"
    discovery_completed = "discovery_completed"
    agreed = "agreed"
    getting_to_know_your_coach = "getting_to_know_your_coach"
    active_client = "active_client"
    declined = "declined"
    unmatched = "unmatched"


class EngagementEvent(str, enum.Enum):
    like = "like"
    first_message_sent = "first_message_sent"
    discovery_call_booked = "discovery_call_booked"
    discovery_call_started = "discovery_call_started"
    discovery_call_completed = "discovery_call_completed"
    selection_accepted = "selection_accepted"
    payment_completed = "payment_completed"
    decline = "decline"
    unmatch = "unmatch"


HAPPY_PATH: list[Stage] = [
    Stage.browsing,
    Stage.liked,
    Stage.matched,
    Stage.discovery_call_booked,
    Stage.discovery_in_progress,
    Stage.discovery_completed,
    Stage.agreed,
    Stage.getting_to_know_your_coach,
    Stage.active_client,
]

TERMINAL_STAGES: frozenset[Stage] = frozenset({Stage.declined, Stage.unmatched})

_RANK: dict[Stage, int] = {stage: i for i, stage in enumerate(HAPPY_PATH)}

# event -> {from_stage: to_stage}
TRANSITIONS: dict[EngagementEvent, dict[Stage, Stage]] = {
    EngagementEvent.like: {
        Stage.browsing: Stage.liked,
    },
    EngagementEvent.first_message_sent: {
        Stage.browsing: Stage.matched,
        Stage.liked: Stage.matched,
    },
    EngagementEvent.discovery_call_booked: {
        Stage.liked: Stage.discovery_call_booked,
        Stage.matched: Stage.discovery_call_booked,
    },
    EngagementEvent.discovery_call_started: {
        Stage.discovery_call_booked: Stage.discovery_in_progress,
    },
    EngagementEvent.discovery_call_completed: {
        Stage.discovery_in_progress: Stage.discovery_completed,
    },
    # Trainer acceptance moves to agreed; the client's confirmation moves on.
    EngagementEvent.selection_accepted: {
        Stage.liked: Stage.agreed,
        Stage.matched: Stage.agreed,
        Stage.discovery_completed: Stage.agreed,
        Stage.agreed: Stage.getting_to_know_your_coach,
    },
    EngagementEvent.payment_completed: {
        Stage.agreed: Stage.active_client,
        Stage.getting_to_know_your_coach: Stage.active_client,
    },
    EngagementEvent.decline: {
        stage: Stage.declined for stage in HAPPY_PATH
    },
    EngagementEvent.unmatch: {
        stage: Stage.unmatched for stage in HAPPY_PATH
    },
}

# Events that are silently satisfied once the stage is at or past this point.
_SATISFIED_FROM: dict[EngagementEvent, Stage] = {
    EngagementEvent.first_message_sent: Stage.matched,
    EngagementEvent.selection_accepted: Stage.getting_to_know_your_coach,
    EngagementEvent.payment_completed: Stage.active_client,
}


def is_terminal(stage: Stage) -> bool:
    return stage in TERMINAL_STAGES


def stage_rank(stage: Stage) -> int:
    """Position on the happy path. Terminal stages rank as browsing."""
    return _RANK.get(stage, 0)


def is_at_or_beyond(stage: Stage, milestone: Stage) -> bool:
    """True if ``stage`` is on the happy path at or past ``milestone``."""
    if is_terminal(stage):
        return False
    return _RANK[stage] >= _RANK[milestone]


def transition(current: Stage, event: EngagementEvent) -> Stage:
    """Return the stage produced by ``event`` from ``current``.

    Raises InvalidTransition when the event is not legal. Re-sending an event
    whose effect already holds returns ``current`` unchanged.
    """
    if is_terminal(current):
        raise InvalidTransition(
            f"Engagement is {current.value}; no further changes are possible",
            current=current.value,
            attempted=event.value,
        )

    targets = TRANSITIONS[event]
    if current in targets:
        return targets[current]

    if current in targets.values():
        return current

    satisfied_from = _SATISFIED_FROM.get(event)
    if satisfied_from is not None and is_at_or_beyond(current, satisfied_from):
        return current

    raise InvalidTransition(
        f"Cannot apply '{event.value}' while engagement is '{current.value}'",
        current=current.value,
        attempted=event.value,
    )


def can_apply(current: Stage, event: EngagementEvent) -> bool:
    try:
        transition(current, event)
    except InvalidTransition:
        return False
    return True


def allowed_events(current: Stage) -> list[EngagementEvent]:
    """Events that would change the stage from ``current``."""
    return [
        event
        for event in EngagementEvent
        if can_apply(current, event) and transition(current, event) != current
    ]
