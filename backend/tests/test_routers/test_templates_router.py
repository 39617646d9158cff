import pytest
from httpx import AsyncClient

from app.models.user import UserRole


async def _assign(client: AsyncClient, headers: dict, client_id, template_id: str, name: str):
    return await client.post(
        "/template-assignments",
        json={"client_id": str(client_id), "template_id": template_id, "template_name": name},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_assign_conflict_then_expire(client: AsyncClient, make_user):
    client_user, client_headers = await make_user("tpl-c@example.com")
    _, trainer_headers = await make_user("tpl-t@example.com", UserRole.trainer)

    first = await _assign(client, trainer_headers, client_user.id, "tpl-a", "Plan A")
    assert first.status_code == 201
    assert first.json()["status"] == "active"

    second = await _assign(client, trainer_headers, client_user.id, "tpl-b", "Plan B")
    assert second.status_code == 409
    assert second.json()["context"]["assignment_id"] == first.json()["id"]
    assert second.json()["context"]["template_name"] == "Plan A"

    expired = await client.post(
        f"/template-assignments/{first.json()['id']}/expire",
        json={"reason": "superseded"},
        headers=trainer_headers,
    )
    assert expired.status_code == 200
    assert expired.json()["status"] == "expired"
    assert expired.json()["expiry_reason"] == "superseded"

    third = await _assign(client, trainer_headers, client_user.id, "tpl-b", "Plan B")
    assert third.status_code == 201

    active = await client.get(
        f"/template-assignments/clients/{client_user.id}/active", headers=client_headers
    )
    assert active.json()["has_active"] is True
    assert active.json()["assignment"]["template_name"] == "Plan B"


@pytest.mark.asyncio
async def test_supersede(client: AsyncClient, make_user):
    client_user, _ = await make_user("tpl-c@example.com")
    _, trainer_headers = await make_user("tpl-t@example.com", UserRole.trainer)
    first = await _assign(client, trainer_headers, client_user.id, "tpl-a", "Plan A")

    response = await client.post(
        "/template-assignments/supersede",
        json={
            "client_id": str(client_user.id),
            "template_id": "tpl-b",
            "template_name": "Plan B",
            "assignment_type": "customized",
            "reason": "Moving to hypertrophy",
        },
        headers=trainer_headers,
    )
    assert response.status_code == 201
    assert response.json()["assignment_type"] == "customized"

    listing = await client.get(
        f"/template-assignments/clients/{client_user.id}", headers=trainer_headers
    )
    statuses = {a["id"]: a["status"] for a in listing.json()}
    assert statuses[first.json()["id"]] == "expired"
    assert statuses[response.json()["id"]] == "active"


@pytest.mark.asyncio
async def test_remove_requires_reason(client: AsyncClient, make_user):
    client_user, _ = await make_user("tpl-c@example.com")
    _, trainer_headers = await make_user("tpl-t@example.com", UserRole.trainer)
    first = await _assign(client, trainer_headers, client_user.id, "tpl-a", "Plan A")

    response = await client.post(
        f"/template-assignments/{first.json()['id']}/remove",
        json={"reason": "  "},
        headers=trainer_headers,
    )
    assert response.status_code == 422

    response = await client.post(
        f"/template-assignments/{first.json()['id']}/remove",
        json={"reason": "Wrong client"},
        headers=trainer_headers,
    )
    assert response.json()["status"] == "removed"


@pytest.mark.asyncio
async def test_access_rules(client: AsyncClient, make_user):
    client_user, client_headers = await make_user("tpl-c@example.com")
    other_client, other_headers = await make_user("tpl-c2@example.com")
    _, trainer_headers = await make_user("tpl-t@example.com", UserRole.trainer)
    _, rival_headers = await make_user("tpl-t2@example.com", UserRole.trainer)
    _, admin_headers = await make_user("tpl-a@example.com", UserRole.admin)
    first = await _assign(client, trainer_headers, client_user.id, "tpl-a", "Plan A")
    assignment_id = first.json()["id"]

    # Clients cannot assign, and only see their own assignments
    response = await _assign(client, client_headers, other_client.id, "tpl-x", "X")
    assert response.status_code == 403
    response = await client.get(
        f"/template-assignments/clients/{client_user.id}", headers=other_headers
    )
    assert response.status_code == 403

    # Another trainer cannot end it
    response = await client.post(
        f"/template-assignments/{assignment_id}/expire",
        json={"reason": "mine now"},
        headers=rival_headers,
    )
    assert response.status_code == 404

    # Admins can
    response = await client.post(
        f"/template-assignments/{assignment_id}/expire",
        json={"reason": "account review"},
        headers=admin_headers,
    )
    assert response.status_code == 200

    response = await client.post(
        f"/template-assignments/{assignment_id}/expire",
        json={"reason": "again"},
        headers=admin_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_invalid_assignment_type(client: AsyncClient, make_user):
    client_user, _ = await make_user("tpl-c@example.com")
    _, trainer_headers = await make_user("tpl-t@example.com", UserRole.trainer)
    response = await client.post(
        "/template-assignments",
        json={
            "client_id": str(client_user.id),
            "template_id": "tpl-a",
            "template_name": "Plan A",
            "assignment_type": "bespoke",
        },
        headers=trainer_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_other_trainer_cannot_supersede(client: AsyncClient, make_user):
    client_user, _ = await make_user("tpl-c@example.com")
    _, trainer_headers = await make_user("tpl-t@example.com", UserRole.trainer)
    _, rival_headers = await make_user("tpl-t2@example.com", UserRole.trainer)
    first = await _assign(client, trainer_headers, client_user.id, "tpl-a", "Plan A")

    response = await client.post(
        "/template-assignments/supersede",
        json={
            "client_id": str(client_user.id),
            "template_id": "tpl-b",
            "template_name": "Plan B",
            "reason": "My plan is better",
        },
        headers=rival_headers,
    )
    assert response.status_code == 409
    assert response.json()["context"]["assignment_id"] == first.json()["id"]

    listing = await client.get(
        f"/template-assignments/clients/{client_user.id}", headers=trainer_headers
    )
    assert [(a["template_name"], a["status"]) for a in listing.json()] == [("Plan A", "active")]
