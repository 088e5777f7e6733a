from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import StrEnum
from types import MappingProxyType

from salesdesk.metrics import observe_authz_denied
from salesdesk.platform.security.errors import Forbidden


logger = logging.getLogger("salesdesk.authz")


class Role(StrEnum):
    SYSTEM_ADMIN = "System Admin"
    SALES_MANAGER = "Sales Manager"
    SALES_EXECUTIVE = "Sales Executive"
    MARKETING_EXECUTIVE = "Marketing Executive"
    SUPPORT_EXECUTIVE = "Support Executive"
    CUSTOMER = "Customer"


ALL_ROLES: frozenset[str] = frozenset(role.value for role in Role)

# Roles whose list/read access is narrowed to rows assigned to themselves.
RESTRICTED_ROLES: frozenset[str] = frozenset({Role.SALES_EXECUTIVE.value})

DEFAULT_ROLE = Role.SALES_EXECUTIVE.value


# Operation -> roles allowed to call it. Operations missing from the table are open
# to every authenticated identity.
DEFAULT_OPERATION_POLICY: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "audit_logs.list": frozenset({Role.SYSTEM_ADMIN}),
        "users.list": frozenset({Role.SYSTEM_ADMIN, Role.SALES_MANAGER}),
        "users.create": frozenset({Role.SYSTEM_ADMIN}),
        "users.delete": frozenset({Role.SYSTEM_ADMIN}),
        "campaigns.create": frozenset({Role.MARKETING_EXECUTIVE, Role.SYSTEM_ADMIN}),
        "organization.update": frozenset({Role.SYSTEM_ADMIN}),
        "reports.sales": frozenset({Role.SALES_MANAGER, Role.SYSTEM_ADMIN, Role.SALES_EXECUTIVE}),
        "reports.productivity": frozenset({Role.SALES_MANAGER, Role.SYSTEM_ADMIN}),
        "reports.campaigns": frozenset({Role.MARKETING_EXECUTIVE, Role.SYSTEM_ADMIN}),
        "system.metrics": frozenset({Role.SYSTEM_ADMIN}),
    }
)


def allowed(role: str, required_roles: Iterable[str] | None) -> bool:
    if required_roles is None:
        return True
    return role in set(required_roles)


def is_row_scoped(role: str) -> bool:
    return role in RESTRICTED_ROLES


class AuthorizationGate:
    """Checks a role against the statically declared roles of an operation.

    The policy table is injected at construction so deployments and tests can
    supply their own role sets; it is frozen to keep it out of request-time mutation.
    """

    def __init__(self, policy: Mapping[str, Iterable[str]] | None = None) -> None:
        source = DEFAULT_OPERATION_POLICY if policy is None else policy
        self._policy: Mapping[str, frozenset[str]] = MappingProxyType(
            {operation: frozenset(str(role) for role in roles) for operation, roles in source.items()}
        )

    @property
    def policy(self) -> Mapping[str, frozenset[str]]:
        return self._policy

    def required_roles(self, operation: str) -> frozenset[str] | None:
        return self._policy.get(operation)

    def allowed(self, role: str, operation: str) -> bool:
        return allowed(role, self.required_roles(operation))

    def check(self, role: str, operation: str) -> None:
        required = self.required_roles(operation)
        if allowed(role, required):
            return
        observe_authz_denied(operation=operation, role=role)
        logger.info("authz.denied", extra={"operation": operation, "role": role})
        raise Forbidden.for_roles(required or ())
