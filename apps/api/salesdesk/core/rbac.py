from collections.abc import Callable

from fastapi import Depends, Request

from salesdesk.core.auth import get_auth_context
from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.policies import AuthorizationGate


def get_authorization_gate(request: Request) -> AuthorizationGate:
    return request.app.state.authorization_gate


def require_roles(operation: str) -> Callable[..., AuthContext]:
    """Dependency enforcing the roles the gate declares for ``operation``."""

    def checker(
        ctx: AuthContext = Depends(get_auth_context),
        gate: AuthorizationGate = Depends(get_authorization_gate),
    ) -> AuthContext:
        gate.check(ctx.role, operation)
        return ctx

    return checker
