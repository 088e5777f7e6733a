from __future__ import annotations

import logging
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salesdesk.crm import side_effects
from salesdesk.crm.models import Notification
from salesdesk.crm.side_effects import (
    NotificationEvent,
    NotificationPriority,
    fan_out,
    plan_create_notifications,
    plan_update_notifications,
)
from salesdesk.models import AuditLog
from salesdesk.services.audit import AuditAction, EntityType, write_audit_log


def _lead(assigned_to: uuid.UUID | None) -> SimpleNamespace:
    return SimpleNamespace(id=uuid.uuid4(), first_name="Alice", last_name="Williams", assigned_to=assigned_to)


def test_create_plan_requires_explicit_assignee(actors) -> None:
    manager = actors.ctx("manager")
    record = _lead(actors["sarah"].id)

    assert plan_create_notifications(EntityType.LEAD, record, manager, explicit_assignee=False) == []

    [draft] = plan_create_notifications(EntityType.LEAD, record, manager, explicit_assignee=True)
    assert draft.user_id == actors["sarah"].id
    assert draft.event is NotificationEvent.ASSIGNED
    assert draft.priority is NotificationPriority.HIGH
    assert draft.related_entity_type is EntityType.LEAD
    assert draft.related_entity_id == record.id


def test_create_plan_skips_self_assignment(actors) -> None:
    sarah = actors.ctx("sarah")

    assert plan_create_notifications(EntityType.TASK, _lead(sarah.user_id), sarah, explicit_assignee=True) == []


def test_kinds_without_rules_never_notify(actors) -> None:
    record = _lead(actors["sarah"].id)

    assert plan_create_notifications(EntityType.CAMPAIGN, record, actors.ctx("manager"), explicit_assignee=True) == []
    assert (
        plan_update_notifications(
            EntityType.COMMUNICATION,
            record,
            actors.ctx("manager"),
            previous={"assigned_to": None},
            changes={"assigned_to": actors["sarah"].id},
        )
        == []
    )


def test_deal_stage_change_is_high_priority(actors) -> None:
    sarah_id = actors["sarah"].id
    deal = SimpleNamespace(id=uuid.uuid4(), name="Big Deal", assigned_to=sarah_id)

    [draft] = plan_update_notifications(
        EntityType.DEAL,
        deal,
        actors.ctx("manager"),
        previous={"stage": "Prospecting"},
        changes={"stage": "Proposal"},
    )

    assert draft.title == "Deal Stage Updated"
    assert draft.message == 'Deal "Big Deal" moved to Proposal'
    assert draft.priority is NotificationPriority.HIGH
    assert draft.type == "Deal Stage Change"


def test_unchanged_status_is_not_a_transition(actors) -> None:
    record = _lead(actors["sarah"].id)

    drafts = plan_update_notifications(
        EntityType.LEAD,
        record,
        actors.ctx("manager"),
        previous={"status": "New"},
        changes={"status": "New"},
    )

    assert drafts == []


def test_status_change_and_reassignment_in_one_update(actors) -> None:
    sarah_id = actors["sarah"].id
    mike_id = actors["mike"].id
    # The record already carries the applied changes when the plan runs.
    task = SimpleNamespace(id=uuid.uuid4(), title="Call back", assigned_to=mike_id)

    drafts = plan_update_notifications(
        EntityType.TASK,
        task,
        actors.ctx("manager"),
        previous={"status": "Pending", "assigned_to": sarah_id},
        changes={"status": "In Progress", "assigned_to": mike_id},
    )

    assert [(draft.event, draft.user_id) for draft in drafts] == [
        (NotificationEvent.STATUS_CHANGED, mike_id),
        (NotificationEvent.REASSIGNED, mike_id),
    ]
    assert drafts[0].message == 'Task "Call back" status changed to In Progress'


def test_reassignment_to_actor_or_to_nobody_is_silent(actors) -> None:
    manager = actors.ctx("manager")
    contact = SimpleNamespace(id=uuid.uuid4(), first_name="Rob", last_name="Smith", assigned_to=None)
    previous = {"assigned_to": actors["sarah"].id}

    assert plan_update_notifications(
        EntityType.CONTACT, contact, manager, previous=previous, changes={"assigned_to": None}
    ) == []
    assert plan_update_notifications(
        EntityType.CONTACT, contact, manager, previous=previous, changes={"assigned_to": manager.user_id}
    ) == []


def test_fan_out_persists_notifications_and_audit(db_session: Session, actors) -> None:
    manager = actors.ctx("manager")
    record = _lead(actors["sarah"].id)
    drafts = plan_create_notifications(EntityType.LEAD, record, manager, explicit_assignee=True)

    created = fan_out(
        db_session,
        manager,
        action=AuditAction.CREATE,
        entity_type=EntityType.LEAD,
        entity_id=record.id,
        details={"email": "alice@example.com"},
        notifications=drafts,
    )

    assert len(created) == 1
    assert db_session.scalars(select(Notification)).one().user_id == actors["sarah"].id
    entry = db_session.scalars(select(AuditLog)).one()
    assert entry.entity_id == record.id
    assert entry.correlation_id == "corr-test"


def test_fan_out_writes_audit_when_notifications_fail(
    db_session: Session, actors, monkeypatch: pytest.MonkeyPatch
) -> None:
    def failing_persist(db: Session, drafts: object) -> list[Notification]:
        raise RuntimeError("notification store unavailable")

    monkeypatch.setattr(side_effects, "_persist", failing_persist)
    manager = actors.ctx("manager")
    record = _lead(actors["sarah"].id)

    with pytest.raises(RuntimeError):
        fan_out(
            db_session,
            manager,
            action=AuditAction.UPDATE,
            entity_type=EntityType.LEAD,
            entity_id=record.id,
            notifications=plan_create_notifications(EntityType.LEAD, record, manager, explicit_assignee=True),
        )

    entry = db_session.scalars(select(AuditLog)).one()
    assert entry.action == "UPDATE"
    assert entry.details == {}


def test_audit_write_failure_is_swallowed(actors, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR)
    db = MagicMock()
    db.commit.side_effect = SQLAlchemyError("disk full")

    result = write_audit_log(
        db,
        actors.ctx("manager"),
        action=AuditAction.DELETE,
        entity_type=EntityType.DEAL,
        entity_id=uuid.uuid4(),
    )

    assert result is None
    db.rollback.assert_called_once()
    assert any(record.getMessage() == "audit.write_failed" for record in caplog.records)
