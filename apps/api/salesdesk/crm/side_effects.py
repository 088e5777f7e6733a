"""Notification and audit fan-out run after a successful mutation.

Notification rules are declared per entity kind in ``NOTIFICATION_RULES``; the
``plan_*`` functions are pure and only decide which notifications a transition
produces. ``fan_out`` persists them and then writes the single audit entry for
the operation. The audit write runs even when notification persistence raises.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from sqlalchemy.orm import Session

from salesdesk.crm.models import Notification
from salesdesk.metrics import observe_notification_emitted, observe_notification_failure
from salesdesk.otel import get_tracer
from salesdesk.platform.security.context import AuthContext
from salesdesk.services.audit import AuditAction, EntityType, write_audit_log


logger = logging.getLogger("salesdesk.side_effects")
_tracer = get_tracer("salesdesk.side_effects")


class NotificationEvent(StrEnum):
    ASSIGNED = "assigned"
    REASSIGNED = "reassigned"
    STATUS_CHANGED = "status_changed"


class NotificationPriority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@dataclass(frozen=True, slots=True)
class StatusRule:
    field: str
    title: str
    message: str
    priority: NotificationPriority


@dataclass(frozen=True, slots=True)
class NotificationRules:
    notification_type: str
    label: Callable[[Any], str]
    assigned_title: str
    assigned_message: str
    reassigned_title: str
    reassigned_message: str
    status_rule: StatusRule | None = None


@dataclass(frozen=True, slots=True)
class NotificationDraft:
    user_id: uuid.UUID
    type: str
    event: NotificationEvent
    title: str
    message: str
    priority: NotificationPriority
    related_entity_type: EntityType
    related_entity_id: uuid.UUID


def _person_label(record: Any) -> str:
    return f"{record.first_name} {record.last_name}"


NOTIFICATION_RULES: Mapping[EntityType, NotificationRules] = {
    EntityType.LEAD: NotificationRules(
        notification_type="Lead Assignment",
        label=_person_label,
        assigned_title="New Lead Assigned",
        assigned_message="You have been assigned a new lead: {label}",
        reassigned_title="Lead Reassigned",
        reassigned_message="You have been assigned a lead: {label}",
        status_rule=StatusRule(
            field="status",
            title="Lead Status Changed",
            message="Lead {label} status changed to {value}",
            priority=NotificationPriority.MEDIUM,
        ),
    ),
    EntityType.DEAL: NotificationRules(
        notification_type="Deal Stage Change",
        label=lambda record: record.name,
        assigned_title="New Deal Assigned",
        assigned_message='You have been assigned a new deal: "{label}"',
        reassigned_title="Deal Reassigned",
        reassigned_message="You have been assigned deal: {label}",
        status_rule=StatusRule(
            field="stage",
            title="Deal Stage Updated",
            message='Deal "{label}" moved to {value}',
            priority=NotificationPriority.HIGH,
        ),
    ),
    EntityType.TASK: NotificationRules(
        notification_type="Task Reminder",
        label=lambda record: record.title,
        assigned_title="New Task Assigned",
        assigned_message="You have been assigned a new task: {label}",
        reassigned_title="Task Reassigned",
        reassigned_message="You have been assigned task: {label}",
        status_rule=StatusRule(
            field="status",
            title="Task Status Changed",
            message='Task "{label}" status changed to {value}',
            priority=NotificationPriority.MEDIUM,
        ),
    ),
    EntityType.CONTACT: NotificationRules(
        notification_type="System Alert",
        label=_person_label,
        assigned_title="New Contact Assigned",
        assigned_message="You have been assigned a new contact: {label}",
        reassigned_title="Contact Reassigned",
        reassigned_message="You have been assigned contact: {label}",
    ),
    EntityType.ACCOUNT: NotificationRules(
        notification_type="System Alert",
        label=lambda record: record.name,
        assigned_title="New Account Assigned",
        assigned_message="You have been assigned a new account: {label}",
        reassigned_title="Account Reassigned",
        reassigned_message="You have been assigned account: {label}",
    ),
}


def _draft(
    rules: NotificationRules,
    entity_type: EntityType,
    record: Any,
    *,
    target: uuid.UUID,
    event: NotificationEvent,
    title: str,
    message: str,
    priority: NotificationPriority,
    value: Any = None,
) -> NotificationDraft:
    return NotificationDraft(
        user_id=target,
        type=rules.notification_type,
        event=event,
        title=title,
        message=message.format(label=rules.label(record), value=value),
        priority=priority,
        related_entity_type=entity_type,
        related_entity_id=record.id,
    )


def plan_create_notifications(
    entity_type: EntityType,
    record: Any,
    ctx: AuthContext,
    *,
    explicit_assignee: bool,
) -> list[NotificationDraft]:
    rules = NOTIFICATION_RULES.get(entity_type)
    if rules is None or not explicit_assignee:
        return []
    target = record.assigned_to
    if target is None or target == ctx.user_id:
        return []
    return [
        _draft(
            rules,
            entity_type,
            record,
            target=target,
            event=NotificationEvent.ASSIGNED,
            title=rules.assigned_title,
            message=rules.assigned_message,
            priority=NotificationPriority.HIGH,
        )
    ]


def plan_update_notifications(
    entity_type: EntityType,
    record: Any,
    ctx: AuthContext,
    *,
    previous: Mapping[str, Any],
    changes: Mapping[str, Any],
) -> list[NotificationDraft]:
    """Notifications produced by applying ``changes`` over ``previous`` values."""

    rules = NOTIFICATION_RULES.get(entity_type)
    if rules is None:
        return []

    drafts: list[NotificationDraft] = []

    status_rule = rules.status_rule
    if status_rule is not None and status_rule.field in changes:
        new_value = changes[status_rule.field]
        if new_value is not None and new_value != previous.get(status_rule.field):
            target = record.assigned_to or ctx.user_id
            if target != ctx.user_id:
                drafts.append(
                    _draft(
                        rules,
                        entity_type,
                        record,
                        target=target,
                        event=NotificationEvent.STATUS_CHANGED,
                        title=status_rule.title,
                        message=status_rule.message,
                        priority=status_rule.priority,
                        value=new_value,
                    )
                )

    if "assigned_to" in changes:
        new_assignee = changes["assigned_to"]
        # Re-submitting the current assignee is the same as not sending the field.
        if (
            new_assignee is not None
            and new_assignee != previous.get("assigned_to")
            and new_assignee != ctx.user_id
        ):
            drafts.append(
                _draft(
                    rules,
                    entity_type,
                    record,
                    target=new_assignee,
                    event=NotificationEvent.REASSIGNED,
                    title=rules.reassigned_title,
                    message=rules.reassigned_message,
                    priority=NotificationPriority.HIGH,
                )
            )

    return drafts


def _persist(db: Session, drafts: Iterable[NotificationDraft]) -> list[Notification]:
    created: list[Notification] = []
    for draft in drafts:
        notification = Notification(
            user_id=draft.user_id,
            type=draft.type,
            event=draft.event.value,
            title=draft.title,
            message=draft.message,
            priority=draft.priority.value,
            related_entity_type=draft.related_entity_type.value,
            related_entity_id=draft.related_entity_id,
        )
        db.add(notification)
        created.append(notification)
    if created:
        db.commit()
    return created


def fan_out(
    db: Session,
    ctx: AuthContext,
    *,
    action: AuditAction,
    entity_type: EntityType,
    entity_id: uuid.UUID | None,
    details: Mapping[str, Any] | None = None,
    notifications: Iterable[NotificationDraft] = (),
) -> list[Notification]:
    drafts = list(notifications)
    with _tracer.start_as_current_span(
        "crm.side_effects",
        attributes={
            "crm.entity_type": entity_type.value,
            "crm.action": action.value,
            "crm.notifications": len(drafts),
        },
    ):
        try:
            created = _persist(db, drafts)
        except Exception:
            db.rollback()
            observe_notification_failure(entity_type=entity_type.value)
            raise
        finally:
            write_audit_log(
                db,
                ctx,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details,
            )

    for draft in drafts:
        observe_notification_emitted(entity_type=entity_type.value, event=draft.event.value)
        logger.info(
            "notification.emitted",
            extra={
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
                "target_user_id": str(draft.user_id),
                "event": draft.event.value,
            },
        )
    return created
