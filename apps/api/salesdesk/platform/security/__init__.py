from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.errors import (
    AccountDisabled,
    Conflict,
    CRMError,
    Forbidden,
    InvalidCredential,
    InvalidInput,
    InvalidOperation,
    NotFound,
    Unauthenticated,
)
from salesdesk.platform.security.policies import (
    DEFAULT_OPERATION_POLICY,
    AuthorizationGate,
    Role,
    allowed,
    is_row_scoped,
)
from salesdesk.platform.security.repository import BaseRepository
from salesdesk.platform.security.rls import apply_row_scope, effective_assignee, validate_row_access

__all__ = [
    "AuthContext",
    "AccountDisabled",
    "AuthorizationGate",
    "BaseRepository",
    "CRMError",
    "Conflict",
    "DEFAULT_OPERATION_POLICY",
    "Forbidden",
    "InvalidCredential",
    "InvalidInput",
    "InvalidOperation",
    "NotFound",
    "Role",
    "Unauthenticated",
    "allowed",
    "apply_row_scope",
    "effective_assignee",
    "is_row_scoped",
    "validate_row_access",
]
