"""Auth API routes: login, current user, site user management."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select

import config
from hq.models import User
from hq.models.base import async_session_factory
from hq.models.user import USER_ROLES, USER_STATUSES
from hq.permissions import MANAGE_SITE_USERS, Actor, permissions_for_role
from web.auth import (
    create_access_token,
    get_actor,
    get_current_user,
    get_user_by_username,
    hash_password,
    require_permission,
    require_user,
    verify_password,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])

require_site_admin = require_permission(MANAGE_SITE_USERS)


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
    role: str


class UserResponse(BaseModel):
    id: int
    username: str
    role: str
    status: str


class MeResponse(UserResponse):
    permissions: list[str] = []
    captain_team_ids: list[int] = []


class CreateUserRequest(BaseModel):
    username: str
    password: str
    role: str = "player"  # public, player, moderator, dvhl_manager, admin
    status: str = "approved"  # pending, approved, rejected


def _user_response(u: User) -> UserResponse:
    return UserResponse(id=u.id, username=u.username, role=u.role, status=u.status)


def _check_role_status(role: Optional[str], status: Optional[str]) -> None:
    if role is not None and role not in USER_ROLES:
        raise HTTPException(400, "Invalid role")
    if status is not None and status not in USER_STATUSES:
        raise HTTPException(400, "Invalid status")


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest):
    """Authenticate and return JWT."""
    user = await get_user_by_username(body.username)
    if not user:
        # Bootstrap: if INITIAL_ADMIN_PASSWORD is set and matches, create admin
        if (
            config.INITIAL_ADMIN_PASSWORD
            and body.username == config.INITIAL_ADMIN_USERNAME
            and body.password == config.INITIAL_ADMIN_PASSWORD
        ):
            async with async_session_factory() as session:
                user = User(
                    username=config.INITIAL_ADMIN_USERNAME,
                    password_hash=hash_password(config.INITIAL_ADMIN_PASSWORD),
                    role="admin",
                    status="approved",
                )
                session.add(user)
                await session.commit()
                await session.refresh(user)
                token = create_access_token(user.username, user.role)
                return LoginResponse(access_token=token, username=user.username, role=user.role)
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    token = create_access_token(user.username, user.role)
    return LoginResponse(access_token=token, username=user.username, role=user.role)


@router.get("/me", response_model=MeResponse)
async def get_me(user: User = Depends(require_user)):
    """Get current authenticated user with capabilities (empty until approved)."""
    if user.status != "approved":
        return MeResponse(id=user.id, username=user.username, role=user.role, status=user.status)
    actor = await get_actor(user)
    return MeResponse(
        id=user.id,
        username=user.username,
        role=user.role,
        status=user.status,
        permissions=sorted(permissions_for_role(user.role)),
        captain_team_ids=sorted(actor.captain_team_ids),
    )


@router.get("/me/optional")
async def get_me_optional(user: Optional[User] = Depends(get_current_user)):
    """Get current user if logged in, else null. For frontend auth check."""
    if not user:
        return None
    return {"username": user.username, "role": user.role, "status": user.status}


@router.get("/users", response_model=list[UserResponse])
async def list_users(admin: Actor = Depends(require_site_admin)):
    """List all users (site user managers only)."""
    async with async_session_factory() as session:
        result = await session.execute(select(User).order_by(User.username))
        return [_user_response(u) for u in result.scalars().all()]


@router.post("/users", response_model=UserResponse)
async def create_user(body: CreateUserRequest, admin: Actor = Depends(require_site_admin)):
    """Create a new user."""
    _check_role_status(body.role, body.status)
    async with async_session_factory() as session:
        existing = await session.execute(select(User).where(User.username == body.username))
        if existing.scalar_one_or_none():
            raise HTTPException(400, "Username already exists")
        user = User(
            username=body.username,
            password_hash=hash_password(body.password),
            role=body.role,
            status=body.status,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return _user_response(user)


class UpdateUserRequest(BaseModel):
    password: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None


@router.patch("/users/{username}")
async def update_user(username: str, body: UpdateUserRequest, admin: Actor = Depends(require_site_admin)):
    """Update user password, role or approval status."""
    _check_role_status(body.role, body.status)
    async with async_session_factory() as session:
        result = await session.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(404, "User not found")
        if body.password is not None:
            user.password_hash = hash_password(body.password)
        if body.role is not None:
            user.role = body.role
        if body.status is not None:
            user.status = body.status
        await session.commit()
        return {"ok": True}


@router.delete("/users/{username}")
async def delete_user(username: str, admin: Actor = Depends(require_site_admin)):
    """Delete a user. Cannot delete self."""
    if username == admin.user.username:
        raise HTTPException(400, "Cannot delete your own account")
    async with async_session_factory() as session:
        result = await session.execute(select(User).where(User.username == username))
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(404, "User not found")
        await session.delete(user)
        await session.commit()
        return {"ok": True}
