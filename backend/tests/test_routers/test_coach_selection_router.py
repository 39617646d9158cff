from decimal import Decimal

import pytest
from httpx import AsyncClient

from app.models.user import UserRole

PACKAGE = {
    "package_id": "pkg-12",
    "package_name": "12 week transformation",
    "package_price": "500.00",
    "package_duration": "12 weeks",
}


async def _liked_pair(client: AsyncClient, make_user):
    client_user, client_headers = await make_user("sel-c@example.com")
    trainer, trainer_headers = await make_user("sel-t@example.com", UserRole.trainer)
    response = await client.post(
        f"/engagements/{trainer.id}/events", json={"event": "like"}, headers=client_headers
    )
    assert response.status_code == 200
    return client_user, client_headers, trainer, trainer_headers


async def _stage(client: AsyncClient, headers: dict, other_id) -> str:
    response = await client.get(f"/engagements/{other_id}", headers=headers)
    return response.json()["stage"]


@pytest.mark.asyncio
async def test_create_needs_prior_interaction(client: AsyncClient, make_user):
    _, client_headers = await make_user("sel-c@example.com")
    trainer, _ = await make_user("sel-t@example.com", UserRole.trainer)

    response = await client.post(
        "/coach-selection/requests",
        json={**PACKAGE, "trainer_id": str(trainer.id)},
        headers=client_headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Like or message this coach before choosing them"


@pytest.mark.asyncio
async def test_only_clients_create(client: AsyncClient, make_user):
    _, _, trainer, trainer_headers = await _liked_pair(client, make_user)
    response = await client.post(
        "/coach-selection/requests",
        json={**PACKAGE, "trainer_id": str(trainer.id)},
        headers=trainer_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_duplicate_live_request_conflicts(client: AsyncClient, make_user):
    _, client_headers, trainer, trainer_headers = await _liked_pair(client, make_user)
    body = {**PACKAGE, "trainer_id": str(trainer.id)}

    first = await client.post("/coach-selection/requests", json=body, headers=client_headers)
    assert first.status_code == 201
    assert first.json()["status"] == "pending"

    second = await client.post("/coach-selection/requests", json=body, headers=client_headers)
    assert second.status_code == 409
    assert second.json()["context"]["request_id"] == first.json()["id"]

    pending = await client.get("/coach-selection/requests", headers=trainer_headers)
    assert [r["id"] for r in pending.json()] == [first.json()["id"]]


@pytest.mark.asyncio
async def test_alternative_then_payment(client: AsyncClient, make_user):
    client_user, client_headers, trainer, trainer_headers = await _liked_pair(client, make_user)
    _, admin_headers = await make_user("sel-a@example.com", UserRole.admin)

    created = await client.post(
        "/coach-selection/requests",
        json={**PACKAGE, "trainer_id": str(trainer.id)},
        headers=client_headers,
    )
    request_id = created.json()["id"]

    response = await client.post(
        f"/coach-selection/requests/{request_id}/suggest-alternative",
        json={
            "package_id": "pkg-8",
            "package_name": "8 week kickstart",
            "package_price": "400.00",
            "trainer_response": "Let's start shorter",
        },
        headers=trainer_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "alternative_suggested"
    assert Decimal(response.json()["suggested_alternative_package_price"]) == Decimal("400")

    response = await client.post(
        f"/coach-selection/requests/{request_id}/accept-alternative", headers=client_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "accepted"
    assert data["package_id"] == "pkg-8"
    assert Decimal(data["package_price"]) == Decimal("400")
    assert await _stage(client, client_headers, trainer.id) == "agreed"

    response = await client.post(
        f"/coach-selection/requests/{request_id}/proceed-to-payment", headers=client_headers
    )
    assert response.json()["status"] == "awaiting_payment"
    assert await _stage(client, client_headers, trainer.id) == "getting_to_know_your_coach"

    # Payment confirmation is relayed by an admin, never by the client
    response = await client.post(
        f"/coach-selection/requests/{request_id}/payment-completed",
        json={"payment_reference": "pay_42"},
        headers=client_headers,
    )
    assert response.status_code == 403

    response = await client.post(
        f"/coach-selection/requests/{request_id}/payment-completed",
        json={"payment_reference": "pay_42"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert await _stage(client, trainer_headers, client_user.id) == "active_client"


@pytest.mark.asyncio
async def test_trainer_accept_and_decline(client: AsyncClient, make_user):
    _, client_headers, trainer, trainer_headers = await _liked_pair(client, make_user)
    created = await client.post(
        "/coach-selection/requests",
        json={**PACKAGE, "trainer_id": str(trainer.id)},
        headers=client_headers,
    )
    request_id = created.json()["id"]

    response = await client.post(
        f"/coach-selection/requests/{request_id}/accept",
        json={"trainer_response": "Welcome aboard"},
        headers=trainer_headers,
    )
    assert response.json()["status"] == "accepted"
    assert response.json()["trainer_response"] == "Welcome aboard"

    response = await client.post(
        f"/coach-selection/requests/{request_id}/decline", json={}, headers=trainer_headers
    )
    assert response.json()["status"] == "declined"

    response = await client.post(
        f"/coach-selection/requests/{request_id}/accept", json={}, headers=trainer_headers
    )
    assert response.status_code == 409
    assert response.json()["error_type"] == "InvalidTransition"


@pytest.mark.asyncio
async def test_start_over(client: AsyncClient, make_user):
    _, client_headers, trainer, trainer_headers = await _liked_pair(client, make_user)
    created = await client.post(
        "/coach-selection/requests",
        json={**PACKAGE, "trainer_id": str(trainer.id)},
        headers=client_headers,
    )
    request_id = created.json()["id"]
    await client.post(
        f"/coach-selection/requests/{request_id}/suggest-alternative",
        json={"package_id": "pkg-8", "package_name": "8 weeks", "package_price": "400.00"},
        headers=trainer_headers,
    )

    response = await client.post(
        f"/coach-selection/requests/{request_id}/start-over",
        json={**PACKAGE, "package_id": "pkg-4", "package_price": "150.00"},
        headers=client_headers,
    )
    assert response.status_code == 201
    assert response.json()["status"] == "pending"
    assert response.json()["id"] != request_id

    latest = await client.get(
        f"/coach-selection/requests/latest/{trainer.id}", headers=client_headers
    )
    assert latest.json()["package_id"] == "pkg-4"

    history = await client.get("/coach-selection/requests", headers=client_headers)
    assert sorted(r["status"] for r in history.json()) == ["pending", "withdrawn"]


@pytest.mark.asyncio
async def test_latest_404_and_bad_id(client: AsyncClient, make_user):
    _, client_headers = await make_user("sel-c@example.com")
    trainer, _ = await make_user("sel-t@example.com", UserRole.trainer)

    response = await client.get(
        f"/coach-selection/requests/latest/{trainer.id}", headers=client_headers
    )
    assert response.status_code == 404

    response = await client.post(
        "/coach-selection/requests/nope/accept-alternative", headers=client_headers
    )
    assert response.status_code == 400
