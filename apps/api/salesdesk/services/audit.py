"""Append-only audit trail written after a mutation commits.

Writes are best-effort: a failure is logged and counted, the session is rolled
back to a clean state and ``None`` is returned. The primary mutation has already
committed by the time this runs, so it is never undone here.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from salesdesk.metrics import observe_audit_write_failure
from salesdesk.models.audit import AuditLog
from salesdesk.platform.security.context import AuthContext


logger = logging.getLogger("salesdesk.audit")


class AuditAction(StrEnum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    ASSIGN = "ASSIGN"
    CONVERT = "CONVERT"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"


class EntityType(StrEnum):
    USER = "User"
    LEAD = "Lead"
    CONTACT = "Contact"
    ACCOUNT = "Account"
    DEAL = "Deal"
    TASK = "Task"
    COMMUNICATION = "Communication"
    CAMPAIGN = "Campaign"
    ORGANIZATION = "Organization"
    NOTIFICATION = "Notification"


# Fields captured in the details payload when an entity is created.
CREATE_SNAPSHOT_FIELDS: Mapping[EntityType, tuple[str, ...]] = {
    EntityType.USER: ("email", "role"),
    EntityType.LEAD: ("email",),
    EntityType.CONTACT: ("email",),
    EntityType.ACCOUNT: ("name",),
    EntityType.DEAL: ("name", "value"),
    EntityType.TASK: ("title",),
    EntityType.COMMUNICATION: ("type", "subject"),
    EntityType.CAMPAIGN: ("name",),
    EntityType.ORGANIZATION: ("company_name",),
    EntityType.NOTIFICATION: ("title",),
}

# Field identifying a deleted entity in its audit entry.
DELETE_IDENTITY_FIELD: Mapping[EntityType, str] = {
    EntityType.USER: "email",
    EntityType.LEAD: "email",
    EntityType.CONTACT: "email",
    EntityType.ACCOUNT: "name",
    EntityType.DEAL: "name",
    EntityType.TASK: "title",
    EntityType.COMMUNICATION: "type",
    EntityType.CAMPAIGN: "name",
    EntityType.ORGANIZATION: "company_name",
    EntityType.NOTIFICATION: "title",
}


def create_details(entity_type: EntityType, record: Any) -> dict[str, Any]:
    return {field: getattr(record, field, None) for field in CREATE_SNAPSHOT_FIELDS[entity_type]}


def delete_details(entity_type: EntityType, record: Any) -> dict[str, Any]:
    field = DELETE_IDENTITY_FIELD[entity_type]
    return {field: getattr(record, field, None)}


def write_audit_log(
    db: Session,
    ctx: AuthContext | None,
    *,
    action: AuditAction,
    entity_type: EntityType,
    entity_id: uuid.UUID | None,
    details: Mapping[str, Any] | None = None,
    actor_id: uuid.UUID | None = None,
) -> AuditLog | None:
    event = AuditLog(
        user_id=actor_id or (ctx.user_id if ctx is not None else None),
        action=action.value,
        entity_type=entity_type.value,
        entity_id=entity_id,
        details=jsonable_encoder(dict(details or {})),
        ip_address=ctx.ip_address if ctx is not None else None,
        user_agent=ctx.user_agent if ctx is not None else None,
        correlation_id=ctx.correlation_id if ctx is not None else None,
    )
    try:
        db.add(event)
        db.commit()
    except Exception as exc:
        db.rollback()
        observe_audit_write_failure(entity_type=entity_type.value, action=action.value)
        logger.exception(
            "audit.write_failed",
            extra={
                "action": action.value,
                "entity_type": entity_type.value,
                "entity_id": str(entity_id) if entity_id else None,
                "error": str(exc),
            },
        )
        return None
    return event
