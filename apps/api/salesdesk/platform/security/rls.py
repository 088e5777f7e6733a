from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.sql import Select

from salesdesk.metrics import observe_row_scope_applied, observe_row_scope_denied
from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.errors import Forbidden
from salesdesk.platform.security.policies import is_row_scoped


logger = logging.getLogger("salesdesk.rls")

OWNER_COLUMN = "assigned_to"


def effective_assignee(ctx: AuthContext, requested: uuid.UUID | None) -> uuid.UUID | None:
    """Return the assignee filter to apply; restricted roles always get their own id."""

    if is_row_scoped(ctx.role):
        return ctx.user_id
    return requested


def apply_row_scope(
    query: Select[Any],
    entity_type: str,
    ctx: AuthContext,
    *,
    model: type[Any] | None = None,
) -> Select[Any]:
    """Narrow ``query`` to rows owned by the caller when the caller's role is restricted.

    Aggregates over bare columns carry no ORM entity, so callers selecting
    ``func.count(...)`` and the like pass the owning ``model`` explicitly.
    """

    if not is_row_scoped(ctx.role):
        return query

    if model is not None:
        candidates = [model]
    else:
        candidates = [description.get("entity") for description in query.column_descriptions]

    scoped: list[Any] = []
    for candidate in candidates:
        if candidate is None or candidate in scoped or not hasattr(candidate, OWNER_COLUMN):
            continue
        query = query.where(getattr(candidate, OWNER_COLUMN) == ctx.user_id)
        scoped.append(candidate)

    if scoped:
        observe_row_scope_applied(entity_type=entity_type)
    return query


def validate_row_access(entity_type: str, record: Any, ctx: AuthContext, *, action: str = "read") -> None:
    """Reject single-record access to a row the caller's role may not see."""

    if not is_row_scoped(ctx.role):
        return
    if getattr(record, OWNER_COLUMN, None) == ctx.user_id:
        return

    observe_row_scope_denied(entity_type=entity_type, action=action)
    logger.info(
        "rls.denied",
        extra={
            "entity_type": entity_type,
            "entity_id": str(getattr(record, "id", "")),
            "actor_id": str(ctx.user_id),
            "action": action,
        },
    )
    raise Forbidden(f"Not authorized to access this {entity_type.lower()}")
