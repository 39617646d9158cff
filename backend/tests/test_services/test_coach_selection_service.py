import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, InvalidTransition, NotFound, ValidationError
from app.engine.selection_machine import RequestStatus
from app.engine.stage_machine import EngagementEvent, Stage
from app.models.engagement import Engagement
from app.models.user import User, UserRole
from app.services import audit_service, coach_selection_service as svc, engagement_service


async def _create_pair(db: AsyncSession) -> tuple[User, User]:
    client = User(email="sel-client@example.com", password_hash="fakehash", role=UserRole.client)
    trainer = User(email="sel-coach@example.com", password_hash="fakehash", role=UserRole.trainer)
    db.add_all([client, trainer])
    await db.commit()
    return client, trainer


async def _matched_pair(db: AsyncSession) -> tuple[User, User]:
    client, trainer = await _create_pair(db)
    await engagement_service.apply_event(
        db,
        client_id=client.id,
        trainer_id=trainer.id,
        event=EngagementEvent.first_message_sent,
        actor_id=client.id,
    )
    await db.commit()
    return client, trainer


async def _create(db, client, trainer, price="500.00", package_id="pkg-12"):
    return await svc.create_request(
        db,
        client_id=client.id,
        trainer_id=trainer.id,
        package_id=package_id,
        package_name="12 week transformation",
        package_price=Decimal(price),
        package_duration="12 weeks",
        client_message="Ready to start",
    )


async def _stage(db, client, trainer) -> Stage:
    return await engagement_service.get_stage(db, client_id=client.id, trainer_id=trainer.id)


@pytest.mark.asyncio
async def test_create_request_pending(db_session: AsyncSession, notifications):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await db_session.commit()

    assert request.status == RequestStatus.pending
    assert request.package_price == Decimal("500.00")
    assert notifications.sent[0].recipient_id == trainer.id
    assert notifications.sent[0].event == "coach_selection.created"


@pytest.mark.asyncio
async def test_create_request_needs_interaction(db_session: AsyncSession):
    client, trainer = await _create_pair(db_session)
    with pytest.raises(InvalidTransition) as exc_info:
        await _create(db_session, client, trainer)
    assert exc_info.value.current == "browsing"


@pytest.mark.asyncio
async def test_one_live_request_per_pair(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    first = await _create(db_session, client, trainer)
    await db_session.commit()

    with pytest.raises(Conflict) as exc_info:
        await _create(db_session, client, trainer, package_id="pkg-4")
    assert exc_info.value.context["request_id"] == first.id


@pytest.mark.asyncio
async def test_new_request_allowed_after_decline(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    first = await _create(db_session, client, trainer)
    await svc.trainer_decline(
        db_session, request_id=first.id, trainer_id=trainer.id, trainer_response="Fully booked"
    )
    await db_session.commit()

    second = await _create(db_session, client, trainer, package_id="pkg-4")
    assert second.status == RequestStatus.pending
    # Declining the request leaves the engagement alone
    assert await _stage(db_session, client, trainer) == Stage.matched


@pytest.mark.asyncio
async def test_invalid_package_rejected(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    with pytest.raises(ValidationError):
        await _create(db_session, client, trainer, price="-1")
    with pytest.raises(ValidationError):
        await _create(db_session, client, trainer, package_id=" ")


@pytest.mark.asyncio
async def test_trainer_accept_moves_engagement_to_agreed(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await svc.trainer_accept(db_session, request_id=request.id, trainer_id=trainer.id)
    await db_session.commit()

    assert request.status == RequestStatus.accepted
    assert request.responded_at is not None
    assert await _stage(db_session, client, trainer) == Stage.agreed


@pytest.mark.asyncio
async def test_other_trainer_cannot_act(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    with pytest.raises(NotFound):
        await svc.trainer_accept(db_session, request_id=request.id, trainer_id=uuid.uuid4())


@pytest.mark.asyncio
async def test_accept_alternative_adopts_new_package(db_session: AsyncSession):
    """Price 500 pending; trainer suggests 400; client accepts and the package becomes 400."""
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await svc.trainer_suggest_alternative(
        db_session,
        request_id=request.id,
        trainer_id=trainer.id,
        alternative_package_id="pkg-8",
        alternative_package_name="8 week kickstart",
        alternative_package_price=Decimal("400.00"),
        alternative_package_duration="8 weeks",
    )
    assert request.status == RequestStatus.alternative_suggested
    assert request.package_price == Decimal("500.00")

    await svc.client_accept_alternative(db_session, request_id=request.id, client_id=client.id)
    await db_session.commit()

    assert request.status == RequestStatus.accepted
    assert request.package_id == "pkg-8"
    assert request.package_price == Decimal("400.00")
    assert request.package_duration == "8 weeks"
    assert request.suggested_alternative_package_price is None
    assert await _stage(db_session, client, trainer) == Stage.agreed


@pytest.mark.asyncio
async def test_start_over_withdraws_and_opens_new(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await svc.trainer_suggest_alternative(
        db_session,
        request_id=request.id,
        trainer_id=trainer.id,
        alternative_package_id="pkg-8",
        alternative_package_name="8 week kickstart",
        alternative_package_price=Decimal("400.00"),
    )
    fresh = await svc.client_start_over(
        db_session,
        request_id=request.id,
        client_id=client.id,
        package_id="pkg-4",
        package_name="4 week taster",
        package_price=Decimal("150.00"),
        package_duration="4 weeks",
    )
    await db_session.commit()

    assert request.status == RequestStatus.withdrawn
    assert fresh.status == RequestStatus.pending
    assert fresh.id != request.id

    latest = await svc.get_latest_request(db_session, client_id=client.id, trainer_id=trainer.id)
    assert latest.id == fresh.id
    history = await svc.list_for_client(db_session, client.id)
    assert {r.status for r in history} == {RequestStatus.withdrawn, RequestStatus.pending}


@pytest.mark.asyncio
async def test_start_over_validates_before_withdrawing(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await svc.trainer_suggest_alternative(
        db_session,
        request_id=request.id,
        trainer_id=trainer.id,
        alternative_package_id="pkg-8",
        alternative_package_name="8 week kickstart",
        alternative_package_price=Decimal("400.00"),
    )
    with pytest.raises(ValidationError):
        await svc.client_start_over(
            db_session,
            request_id=request.id,
            client_id=client.id,
            package_id="pkg-4",
            package_name="",
            package_price=Decimal("150.00"),
            package_duration="4 weeks",
        )
    assert request.status == RequestStatus.alternative_suggested


@pytest.mark.asyncio
async def test_full_flow_to_active_client(db_session: AsyncSession, notifications):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await svc.trainer_accept(db_session, request_id=request.id, trainer_id=trainer.id)
    await svc.client_proceed_to_payment(db_session, request_id=request.id, client_id=client.id)
    assert request.status == RequestStatus.awaiting_payment
    assert await _stage(db_session, client, trainer) == Stage.getting_to_know_your_coach

    await svc.record_payment_completed(
        db_session, request_id=request.id, actor_id=client.id, payment_reference="pay_123"
    )
    await db_session.commit()

    assert request.status == RequestStatus.completed
    assert request.completed_at is not None
    engagement = await engagement_service.get_engagement(
        db_session, client_id=client.id, trainer_id=trainer.id
    )
    assert engagement.stage == Stage.active_client
    assert engagement.became_client_at is not None

    completed = [n for n in notifications.sent if n.event == "coach_selection.completed"]
    assert {n.recipient_id for n in completed} == {client.id, trainer.id}


@pytest.mark.asyncio
async def test_payment_writes_share_correlation_id(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await svc.trainer_accept(db_session, request_id=request.id, trainer_id=trainer.id)
    await svc.record_payment_completed(db_session, request_id=request.id, actor_id=client.id)
    await db_session.commit()

    history = await audit_service.get_entity_history(
        db_session, "CoachSelectionRequest", request.id
    )
    assert history[-1].detail["to_status"] == "completed"
    events = await audit_service.get_correlated_events(db_session, history[-1].correlation_id)
    assert [e.event_type for e in events] == [
        "coach_selection.status_changed",
        "engagement.stage_changed",
    ]
    assert events[1].detail["to_stage"] == "active_client"


async def _correlated_with_last_status(db, request):
    history = await audit_service.get_entity_history(db, "CoachSelectionRequest", request.id)
    assert history[-1].correlation_id is not None
    return await audit_service.get_correlated_events(db, history[-1].correlation_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("via_alternative", [False, True])
async def test_stage_advancing_steps_share_correlation_id(
    db_session: AsyncSession, via_alternative
):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    if via_alternative:
        await svc.trainer_suggest_alternative(
            db_session,
            request_id=request.id,
            trainer_id=trainer.id,
            alternative_package_id="pkg-8",
            alternative_package_name="8 week kickstart",
            alternative_package_price=Decimal("400.00"),
        )
        await svc.client_accept_alternative(db_session, request_id=request.id, client_id=client.id)
    else:
        await svc.trainer_accept(db_session, request_id=request.id, trainer_id=trainer.id)
    await db_session.commit()

    events = await _correlated_with_last_status(db_session, request)
    assert [e.event_type for e in events] == [
        "coach_selection.status_changed",
        "engagement.stage_changed",
    ]
    assert events[0].detail["to_status"] == "accepted"
    assert events[1].detail["to_stage"] == "agreed"

    await svc.client_proceed_to_payment(db_session, request_id=request.id, client_id=client.id)
    await db_session.commit()

    events = await _correlated_with_last_status(db_session, request)
    assert [e.detail.get("to_status") or e.detail.get("to_stage") for e in events] == [
        "awaiting_payment",
        "getting_to_know_your_coach",
    ]


@pytest.mark.asyncio
async def test_payment_refused_from_pending_changes_nothing(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    with pytest.raises(InvalidTransition):
        await svc.record_payment_completed(db_session, request_id=request.id, actor_id=client.id)

    assert request.status == RequestStatus.pending
    assert request.completed_at is None
    assert await _stage(db_session, client, trainer) == Stage.matched


@pytest.mark.asyncio
async def test_payment_refused_when_engagement_closed(db_session: AsyncSession):
    """A decline between acceptance and payment blocks the payment entirely."""
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await svc.trainer_accept(db_session, request_id=request.id, trainer_id=trainer.id)
    await engagement_service.apply_event(
        db_session,
        client_id=client.id,
        trainer_id=trainer.id,
        event=EngagementEvent.decline,
        actor_id=trainer.id,
    )

    with pytest.raises(InvalidTransition):
        await svc.record_payment_completed(db_session, request_id=request.id, actor_id=client.id)
    assert request.status == RequestStatus.accepted
    assert await _stage(db_session, client, trainer) == Stage.declined


@pytest.mark.asyncio
async def test_superseded_request_not_actionable(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    first = await _create(db_session, client, trainer)
    await svc.trainer_decline(db_session, request_id=first.id, trainer_id=trainer.id)
    await _create(db_session, client, trainer, package_id="pkg-4")
    await db_session.commit()

    with pytest.raises(InvalidTransition) as exc_info:
        await svc.trainer_accept(db_session, request_id=first.id, trainer_id=trainer.id)
    assert "newer request" in exc_info.value.message


@pytest.mark.asyncio
async def test_list_pending_for_trainer(db_session: AsyncSession):
    client, trainer = await _matched_pair(db_session)
    request = await _create(db_session, client, trainer)
    await db_session.commit()

    pending = await svc.list_pending_for_trainer(db_session, trainer.id)
    assert [r.id for r in pending] == [request.id]

    await svc.trainer_accept(db_session, request_id=request.id, trainer_id=trainer.id)
    assert await svc.list_pending_for_trainer(db_session, trainer.id) == []


@pytest.mark.asyncio
async def test_live_index_catches_request_past_the_check(
    db_session: AsyncSession, notifications, monkeypatch
):
    client, trainer = await _matched_pair(db_session)
    await _create(db_session, client, trainer)
    await db_session.commit()

    async def _no_live_request(db, client_id, trainer_id):
        return None

    monkeypatch.setattr(svc, "_get_live_request", _no_live_request)
    with pytest.raises(Conflict):
        await _create(db_session, client, trainer, package_id="pkg-4")
    await db_session.rollback()

    requests = await svc.list_for_client(db_session, client.id)
    assert [r.package_id for r in requests] == ["pkg-12"]


@pytest.mark.asyncio
async def test_concurrent_requests_leave_one_live(file_sessions, notifications):
    async with file_sessions() as db:
        client, trainer = await _create_pair(db)
        db.add(Engagement(client_id=client.id, trainer_id=trainer.id, stage=Stage.liked))
        await db.commit()

    async def _attempt(package_id: str) -> str:
        async with file_sessions() as db:
            try:
                await _create(db, client, trainer, package_id=package_id)
                await db.commit()
                return "created"
            except Conflict:
                await db.rollback()
                return "conflict"

    results = await asyncio.gather(_attempt("pkg-12"), _attempt("pkg-4"))
    assert sorted(results) == ["conflict", "created"]

    async with file_sessions() as db:
        requests = await svc.list_for_client(db, client.id)
    assert len(requests) == 1
    assert requests[0].status == RequestStatus.pending
