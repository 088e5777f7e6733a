from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from salesdesk.core.auth import create_access_token, create_refresh_token, decode_refresh_token
from salesdesk.core.context import RequestContext
from salesdesk.core.security import hash_password, hash_refresh_token, verify_password
from salesdesk.core.database import utcnow
from salesdesk.crm.side_effects import fan_out
from salesdesk.identity.models import User
from salesdesk.identity.schemas import (
    LoginRequest,
    RegisterRequest,
    TokenPair,
    UserCreate,
    UserRead,
    UserUpdate,
)
from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.errors import (
    AccountDisabled,
    Conflict,
    Forbidden,
    InvalidCredential,
    InvalidOperation,
    NotFound,
)
from salesdesk.platform.security.policies import DEFAULT_ROLE, Role
from salesdesk.platform.security.repository import BaseRepository
from salesdesk.services.audit import AuditAction, EntityType, create_details, delete_details


logger = logging.getLogger("salesdesk.identity")

# Only an administrator may change these on a user record; others have them dropped.
ADMIN_ONLY_FIELDS = frozenset({"role", "is_active"})


class UserRepository(BaseRepository[User]):
    model = User
    resource = "User"
    filter_fields = ("role", "is_active")
    search_fields = ("first_name", "last_name", "email")


def serialize_user(user: User) -> dict[str, Any]:
    return UserRead.model_validate(user).model_dump(mode="json")


def context_for(user: User, client: RequestContext | None) -> AuthContext:
    return AuthContext(
        user_id=user.id,
        role=user.role,
        email=user.email,
        correlation_id=client.correlation_id if client is not None else None,
        ip_address=client.ip_address if client is not None else None,
        user_agent=client.user_agent if client is not None else None,
    )


def _ensure_unique(
    db: Session,
    *,
    email: str | None,
    mobile: str | None,
    exclude_id: uuid.UUID | None = None,
) -> None:
    clauses = []
    if email:
        clauses.append(User.email == email.lower())
    if mobile:
        clauses.append(User.mobile == mobile)
    if not clauses:
        return
    query = select(User.id).where(or_(*clauses))
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    if db.scalar(query.limit(1)) is not None:
        raise Conflict("User with this email or mobile already exists")


class AuthService:
    def _issue_tokens(self, user: User) -> TokenPair:
        access_token = create_access_token(user)
        refresh_token = create_refresh_token(user)
        user.refresh_token_hash = hash_refresh_token(refresh_token)
        return TokenPair(access_token=access_token, refresh_token=refresh_token)

    def register(
        self,
        db: Session,
        dto: RegisterRequest,
        client: RequestContext | None = None,
    ) -> tuple[User, TokenPair]:
        _ensure_unique(db, email=dto.email, mobile=dto.mobile)
        user = User(
            first_name=dto.first_name,
            last_name=dto.last_name,
            email=dto.email.lower(),
            mobile=dto.mobile,
            password_hash=hash_password(dto.password),
            role=DEFAULT_ROLE,
        )
        db.add(user)
        db.flush()
        tokens = self._issue_tokens(user)
        db.commit()
        db.refresh(user)

        fan_out(
            db,
            context_for(user, client),
            action=AuditAction.CREATE,
            entity_type=EntityType.USER,
            entity_id=user.id,
            details=create_details(EntityType.USER, user),
        )
        return user, tokens

    def login(
        self,
        db: Session,
        dto: LoginRequest,
        client: RequestContext | None = None,
    ) -> tuple[User, TokenPair]:
        if dto.email:
            user = db.scalars(select(User).where(User.email == dto.email.lower())).first()
            login_method = "email"
        else:
            user = db.scalars(select(User).where(User.mobile == dto.mobile)).first()
            login_method = "mobile"

        if user is None or not verify_password(dto.password, user.password_hash):
            raise InvalidCredential("Invalid credentials")
        if not user.is_active:
            raise AccountDisabled()

        user.last_login = utcnow()
        tokens = self._issue_tokens(user)
        db.commit()
        db.refresh(user)

        fan_out(
            db,
            context_for(user, client),
            action=AuditAction.LOGIN,
            entity_type=EntityType.USER,
            entity_id=user.id,
            details={"login_method": login_method},
        )
        return user, tokens

    def refresh(self, db: Session, refresh_token: str) -> TokenPair:
        user_id = decode_refresh_token(refresh_token)
        user = db.get(User, user_id)
        if user is None or user.refresh_token_hash != hash_refresh_token(refresh_token):
            raise InvalidCredential("Invalid refresh token")
        if not user.is_active:
            raise AccountDisabled()

        tokens = self._issue_tokens(user)
        db.commit()
        return tokens

    def logout(self, db: Session, ctx: AuthContext) -> None:
        user = db.get(User, ctx.user_id)
        if user is None:
            raise NotFound("User not found")
        user.refresh_token_hash = None
        db.commit()

        fan_out(
            db,
            ctx,
            action=AuditAction.LOGOUT,
            entity_type=EntityType.USER,
            entity_id=user.id,
        )


class UserService:
    repository = UserRepository()

    def list_users(
        self,
        db: Session,
        ctx: AuthContext,
        *,
        filters: Mapping[str, Any] | None = None,
        q: str | None = None,
    ) -> list[dict[str, Any]]:
        return [serialize_user(user) for user in self.repository.list(db, ctx, filters=filters, q=q)]

    def _load(self, db: Session, user_id: uuid.UUID) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def get_user(self, db: Session, user_id: uuid.UUID) -> dict[str, Any]:
        return serialize_user(self._load(db, user_id))

    def create_user(self, db: Session, ctx: AuthContext, dto: UserCreate) -> dict[str, Any]:
        _ensure_unique(db, email=dto.email, mobile=dto.mobile)
        user = User(
            first_name=dto.first_name,
            last_name=dto.last_name,
            email=dto.email.lower(),
            mobile=dto.mobile,
            password_hash=hash_password(dto.password),
            role=dto.role,
            is_active=dto.is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        fan_out(
            db,
            ctx,
            action=AuditAction.CREATE,
            entity_type=EntityType.USER,
            entity_id=user.id,
            details=create_details(EntityType.USER, user),
        )
        return serialize_user(user)

    def update_user(self, db: Session, ctx: AuthContext, user_id: uuid.UUID, dto: UserUpdate) -> dict[str, Any]:
        is_admin = ctx.role == Role.SYSTEM_ADMIN
        if not is_admin and user_id != ctx.user_id:
            raise Forbidden("Not authorized to update this user")

        user = self._load(db, user_id)
        changes = dto.changes()
        if not is_admin:
            dropped = sorted(ADMIN_ONLY_FIELDS & changes.keys())
            for field in dropped:
                changes.pop(field)
            if dropped:
                logger.info(
                    "user.update.fields_dropped",
                    extra={"entity_id": str(user_id), "actor_id": str(ctx.user_id), "role": ctx.role},
                )

        if "email" in changes:
            changes["email"] = changes["email"].lower()
        _ensure_unique(db, email=changes.get("email"), mobile=changes.get("mobile"), exclude_id=user.id)

        for field, value in changes.items():
            setattr(user, field, value)
        user.updated_at = utcnow()
        db.commit()
        db.refresh(user)

        fan_out(
            db,
            ctx,
            action=AuditAction.UPDATE,
            entity_type=EntityType.USER,
            entity_id=user.id,
            details=dto.model_dump(mode="json", exclude_unset=True),
        )
        return serialize_user(user)

    def delete_user(self, db: Session, ctx: AuthContext, user_id: uuid.UUID) -> None:
        if user_id == ctx.user_id:
            raise InvalidOperation("Cannot delete your own account")

        user = self._load(db, user_id)
        details = delete_details(EntityType.USER, user)
        db.delete(user)
        db.commit()

        fan_out(
            db,
            ctx,
            action=AuditAction.DELETE,
            entity_type=EntityType.USER,
            entity_id=user_id,
            details=details,
        )
