from __future__ import annotations

from collections.abc import Iterable


class CRMError(Exception):
    """Base error raised by the request pipeline; carries the HTTP status it maps to."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(CRMError):
    status_code = 401
    default_message = "No token provided"


class InvalidCredential(CRMError):
    status_code = 401
    default_message = "Invalid token"


class AccountDisabled(CRMError):
    status_code = 403
    default_message = "Account is disabled"


class Forbidden(CRMError):
    status_code = 403
    default_message = "Not authorized to access this resource"

    @classmethod
    def for_roles(cls, required_roles: Iterable[str]) -> Forbidden:
        return cls(f"Access denied. Required roles: {', '.join(sorted(required_roles))}")


class NotFound(CRMError):
    status_code = 404
    default_message = "Resource not found"

    @classmethod
    def for_entity(cls, entity_type: str) -> NotFound:
        return cls(f"{entity_type} not found")


class Conflict(CRMError):
    status_code = 400
    default_message = "Resource already exists"


class InvalidInput(CRMError):
    status_code = 400
    default_message = "Invalid input"


class InvalidOperation(CRMError):
    status_code = 400
    default_message = "Operation not allowed"
