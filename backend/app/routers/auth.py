"""Auth routes: register, login, logout, me."""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    SESSION_TOKEN_HEADER,
    get_current_user,
    login_user,
    logout_user,
    register_user,
)
from app.dependencies import get_db
from app.models.user import User, UserRole
from app.schemas.user import LoginRequest, UserCreate, UserRead

router = APIRouter(prefix="/auth", tags=["auth"])


def _parse_role(value: str) -> UserRole:
    try:
        return UserRole(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid role: {value}")


@router.post("/register", response_model=UserRead, status_code=201)
async def register(
    body: UserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    ip = request.client.host if request.client else None
    user = await register_user(
        db,
        email=body.email,
        password=body.password,
        role=_parse_role(body.role),
        first_name=body.first_name,
        last_name=body.last_name,
        ip_address=ip,
    )
    return user


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    ip = request.client.host if request.client else None
    user, token = await login_user(db, email=body.email, password=body.password, ip_address=ip)
    return {"token": token, "user_id": str(user.id), "role": user.role.value}


@router.post("/logout", status_code=204)
async def logout(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    token = request.headers.get(SESSION_TOKEN_HEADER)
    ip = request.client.host if request.client else None
    await logout_user(db, token=token, ip_address=ip)


@router.get("/me", response_model=UserRead)
async def me(current_user: User = Depends(get_current_user)):
    return current_user
