import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.auth import (
    hash_password,
    login_user,
    logout_user,
    register_user,
    require_role,
    verify_password,
)
from app.models.session import Session
from app.models.user import User, UserRole, UserStatus
from app.services import audit_service


@pytest.mark.asyncio
async def test_hash_and_verify_password():
    """bcrypt hash and verify round-trip."""
    pw = "SecurePass123!"
    hashed = hash_password(pw)
    assert hashed != pw
    assert verify_password(pw, hashed) is True
    assert verify_password("WrongPass", hashed) is False


@pytest.mark.asyncio
async def test_register_trainer(db_session: AsyncSession):
    """Register creates a user with the requested role and a hashed password."""
    user = await register_user(
        db_session,
        email="Coach@Example.com",
        password="SecurePass123!",
        role=UserRole.trainer,
        first_name="Jordan",
        last_name="Lee",
        ip_address="127.0.0.1",
    )
    await db_session.commit()

    assert user.email == "coach@example.com"
    assert user.role == UserRole.trainer
    assert user.first_name == "Jordan"
    assert user.status == UserStatus.active
    assert verify_password("SecurePass123!", user.password_hash) is True


@pytest.mark.asyncio
async def test_register_admin_is_refused(db_session: AsyncSession):
    with pytest.raises(HTTPException) as exc_info:
        await register_user(
            db_session,
            email="root@example.com",
            password="SecurePass123!",
            role=UserRole.admin,
        )
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_register_duplicate_email(db_session: AsyncSession):
    """Register with duplicate email raises 409."""
    await register_user(db_session, email="dup@example.com", password="Pass123!")
    await db_session.commit()

    with pytest.raises(HTTPException) as exc_info:
        await register_user(db_session, email="dup@example.com", password="Pass456!")
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_login_user_success(db_session: AsyncSession):
    """Login returns user + token and records the session's IP."""
    await register_user(db_session, email="login@example.com", password="SecurePass123!")
    await db_session.commit()

    user, token = await login_user(
        db_session,
        email="login@example.com",
        password="SecurePass123!",
        ip_address="10.1.1.1",
    )
    await db_session.commit()

    assert user.email == "login@example.com"
    assert len(token) == 64  # hex(32 bytes)

    result = await db_session.execute(select(Session).where(Session.token == token))
    session = result.scalar_one()
    assert session.ip_address == "10.1.1.1"
    lifetime = session.expires_at - session.created_at
    assert round(lifetime.total_seconds() / 3600) == settings.session_duration_hours


@pytest.mark.asyncio
async def test_login_wrong_password(db_session: AsyncSession):
    """Login with wrong password raises 401."""
    await register_user(db_session, email="wrongpw@example.com", password="CorrectPass123!")
    await db_session.commit()

    with pytest.raises(HTTPException) as exc_info:
        await login_user(db_session, email="wrongpw@example.com", password="WrongPass!")
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_login_suspended_user(db_session: AsyncSession):
    user = await register_user(db_session, email="susp@example.com", password="Pass1234!")
    user.status = UserStatus.suspended
    await db_session.commit()

    with pytest.raises(HTTPException) as exc_info:
        await login_user(db_session, email="susp@example.com", password="Pass1234!")
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_all_auth_events_in_audit_log(db_session: AsyncSession):
    """Register, login, logout all logged to audit."""
    user = await register_user(
        db_session,
        email="audit-auth@example.com",
        password="Pass123!",
        ip_address="10.0.0.1",
    )
    await db_session.commit()

    _, token = await login_user(
        db_session,
        email="audit-auth@example.com",
        password="Pass123!",
        ip_address="10.0.0.2",
    )
    await logout_user(db_session, token=token, ip_address="10.0.0.3")
    await db_session.commit()

    events = await audit_service.get_events_by_actor(db_session, user.id)
    event_types = [e.event_type for e in events]
    assert event_types == ["auth.register", "auth.login", "auth.logout"]
    assert events[0].detail["role"] == "client"


@pytest.mark.asyncio
async def test_require_role():
    dependency = require_role(UserRole.trainer)
    trainer = User(email="t@example.com", password_hash="h", role=UserRole.trainer)
    client = User(email="c@example.com", password_hash="h", role=UserRole.client)

    assert await dependency(user=trainer) is trainer
    with pytest.raises(HTTPException) as exc_info:
        await dependency(user=client)
    assert exc_info.value.status_code == 403
