from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from salesdesk.api.errors import envelope
from salesdesk.core.auth import get_auth_context, get_current_user
from salesdesk.core.context import get_request_context
from salesdesk.core.database import get_db
from salesdesk.core.rbac import require_roles
from salesdesk.identity.models import User
from salesdesk.identity.schemas import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    RoleName,
    UserCreate,
    UserUpdate,
)
from salesdesk.identity.service import AuthService, UserService, serialize_user
from salesdesk.platform.security.context import AuthContext


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
users_router = APIRouter(prefix="/api/users", tags=["users"])

auth_service = AuthService()
user_service = UserService()


@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
def register(dto: RegisterRequest, request: Request, db: Session = Depends(get_db)) -> dict[str, Any]:
    user, tokens = auth_service.register(db, dto, get_request_context(request))
    return envelope(
        {"user": serialize_user(user), **tokens.model_dump()},
        message="User registered successfully",
    )


@auth_router.post("/login")
def login(dto: LoginRequest, request: Request, db: Session = Depends(get_db)) -> dict[str, Any]:
    user, tokens = auth_service.login(db, dto, get_request_context(request))
    return envelope({"user": serialize_user(user), **tokens.model_dump()}, message="Login successful")


@auth_router.post("/refresh-token")
def refresh_token(dto: RefreshRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    tokens = auth_service.refresh(db, dto.refresh_token)
    return envelope(tokens.model_dump(), message="Token refreshed successfully")


@auth_router.post("/logout")
def logout(db: Session = Depends(get_db), ctx: AuthContext = Depends(get_auth_context)) -> dict[str, Any]:
    auth_service.logout(db, ctx)
    return envelope(message="Logged out successfully")


@auth_router.get("/me")
def me(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return envelope({"user": serialize_user(user)})


@users_router.get("")
def list_users(
    role: RoleName | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_roles("users.list")),
) -> dict[str, Any]:
    users = user_service.list_users(db, ctx, filters={"role": role, "is_active": is_active}, q=search)
    return envelope({"users": users}, count=len(users))


@users_router.get("/{user_id}")
def get_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"user": user_service.get_user(db, user_id)})


@users_router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    dto: UserCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_roles("users.create")),
) -> dict[str, Any]:
    return envelope({"user": user_service.create_user(db, ctx, dto)}, message="User created successfully")


@users_router.put("/{user_id}")
def update_user(
    user_id: uuid.UUID,
    dto: UserUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"user": user_service.update_user(db, ctx, user_id, dto)}, message="User updated successfully")


@users_router.delete("/{user_id}")
def delete_user(
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_roles("users.delete")),
) -> dict[str, Any]:
    user_service.delete_user(db, ctx, user_id)
    return envelope(message="User deleted successfully")
