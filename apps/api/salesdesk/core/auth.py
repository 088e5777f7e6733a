from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session
from starlette.requests import Request

from salesdesk.context import get_correlation_id
from salesdesk.core.config import get_settings
from salesdesk.core.context import get_request_context
from salesdesk.core.database import get_db
from salesdesk.identity.models import User
from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.errors import AccountDisabled, InvalidCredential, NotFound, Unauthenticated

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _encode(claims: dict[str, Any], secret: str, lifetime: timedelta) -> str:
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    payload = {
        **claims,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
    settings = get_settings()
    return _encode(
        {"sub": str(user.id), "role": user.role, "type": ACCESS_TOKEN_TYPE},
        settings.jwt_secret,
        timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(user: User) -> str:
    settings = get_settings()
    return _encode(
        {"sub": str(user.id), "type": REFRESH_TOKEN_TYPE},
        settings.jwt_refresh_secret,
        timedelta(days=settings.refresh_token_expire_days),
    )


def _decode(token: str, secret: str, expected_type: str) -> uuid.UUID:
    settings = get_settings()
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise InvalidCredential("Token expired") from exc
    except JWTError as exc:
        raise InvalidCredential() from exc

    if payload.get("type") != expected_type:
        raise InvalidCredential()
    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError as exc:
        raise InvalidCredential() from exc


def decode_access_token(token: str) -> uuid.UUID:
    return _decode(token, get_settings().jwt_secret, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> uuid.UUID:
    return _decode(token, get_settings().jwt_refresh_secret, REFRESH_TOKEN_TYPE)


def bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header[len("Bearer ") :].strip() if auth_header.startswith("Bearer ") else ""


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    token = bearer_token(request)
    if not token:
        raise Unauthenticated()

    user_id = decode_access_token(token)
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if not user.is_active:
        raise AccountDisabled()

    context = get_request_context(request)
    if context is not None:
        context.user_id = str(user.id)
    return user


def get_auth_context(request: Request, user: User = Depends(get_current_user)) -> AuthContext:
    context = get_request_context(request)
    return AuthContext(
        user_id=user.id,
        role=user.role,
        email=user.email,
        correlation_id=get_correlation_id() or getattr(context, "correlation_id", None),
        ip_address=getattr(context, "ip_address", None),
        user_agent=getattr(context, "user_agent", None),
    )
