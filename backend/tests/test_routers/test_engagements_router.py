import pytest
from httpx import AsyncClient

from app.models.user import UserRole


@pytest.mark.asyncio
async def test_status_lists_role_events(client: AsyncClient, make_user):
    _, client_headers = await make_user("eng-c@example.com")
    trainer, _ = await make_user("eng-t@example.com", UserRole.trainer)

    response = await client.get(f"/engagements/{trainer.id}", headers=client_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["stage"] == "browsing"
    assert data["allowed_events"] == ["like", "decline", "unmatch"]


@pytest.mark.asyncio
async def test_like_then_notes_and_history(client: AsyncClient, make_user):
    client_user, client_headers = await make_user("eng-c@example.com")
    trainer, trainer_headers = await make_user("eng-t@example.com", UserRole.trainer)

    response = await client.post(
        f"/engagements/{trainer.id}/events", json={"event": "like"}, headers=client_headers
    )
    assert response.status_code == 200
    assert response.json()["stage"] == "liked"
    assert response.json()["liked_at"] is not None

    response = await client.patch(
        f"/engagements/{client_user.id}/notes",
        json={"notes": "Wants to run a 10k"},
        headers=trainer_headers,
    )
    assert response.status_code == 200
    assert response.json()["notes"] == "Wants to run a 10k"

    response = await client.get(f"/engagements/{client_user.id}/history", headers=trainer_headers)
    assert response.status_code == 200
    assert [e["event_type"] for e in response.json()] == [
        "engagement.stage_changed",
        "engagement.notes_updated",
    ]
    assert "ip_address" not in response.json()[0]


@pytest.mark.asyncio
async def test_illegal_event_returns_409(client: AsyncClient, make_user):
    _, client_headers = await make_user("eng-c@example.com")
    trainer, _ = await make_user("eng-t@example.com", UserRole.trainer)

    response = await client.post(
        f"/engagements/{trainer.id}/events",
        json={"event": "discovery_call_completed"},
        headers=client_headers,
    )
    assert response.status_code == 409
    data = response.json()
    assert data["error_type"] == "InvalidTransition"
    assert data["context"]["current"] == "browsing"
    assert data["retry_hint"]


@pytest.mark.asyncio
async def test_event_role_enforced(client: AsyncClient, make_user):
    client_user, _ = await make_user("eng-c@example.com")
    _, trainer_headers = await make_user("eng-t@example.com", UserRole.trainer)

    response = await client.post(
        f"/engagements/{client_user.id}/events", json={"event": "like"}, headers=trainer_headers
    )
    assert response.status_code == 403

    response = await client.post(
        f"/engagements/{client_user.id}/events",
        json={"event": "payment_completed"},
        headers=trainer_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_bad_input(client: AsyncClient, make_user):
    _, client_headers = await make_user("eng-c@example.com")
    other_client, _ = await make_user("eng-c2@example.com")
    trainer, _ = await make_user("eng-t@example.com", UserRole.trainer)

    response = await client.post(
        f"/engagements/{trainer.id}/events", json={"event": "wink"}, headers=client_headers
    )
    assert response.status_code == 400

    response = await client.get("/engagements/not-a-uuid", headers=client_headers)
    assert response.status_code == 400

    # Two clients never form an engagement
    response = await client.get(f"/engagements/{other_client.id}", headers=client_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_with_stage_filter(client: AsyncClient, make_user):
    _, client_headers = await make_user("eng-c@example.com")
    trainer, trainer_headers = await make_user("eng-t@example.com", UserRole.trainer)
    await client.post(
        f"/engagements/{trainer.id}/events", json={"event": "like"}, headers=client_headers
    )

    response = await client.get("/engagements", params={"stage": "liked"}, headers=trainer_headers)
    assert response.status_code == 200
    assert len(response.json()) == 1

    response = await client.get(
        "/engagements", params={"stage": "matched"}, headers=trainer_headers
    )
    assert response.json() == []

    response = await client.get("/engagements", params={"stage": "bogus"}, headers=trainer_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_is_not_a_participant(client: AsyncClient, make_user):
    _, admin_headers = await make_user("eng-a@example.com", UserRole.admin)
    response = await client.get("/engagements", headers=admin_headers)
    assert response.status_code == 403
