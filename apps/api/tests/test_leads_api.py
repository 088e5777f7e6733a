from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from salesdesk.core.config import get_settings
from salesdesk.crm.models import Notification
from salesdesk.models import AuditLog


def _notifications_for(db_session: Session, user_id: uuid.UUID) -> list[Notification]:
    return list(
        db_session.scalars(
            select(Notification).where(Notification.user_id == user_id).order_by(Notification.created_at.asc())
        ).all()
    )


def test_create_without_assignee_defaults_to_actor(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="sarah")

    assert lead["assigned_to"] == {
        "id": str(actors["sarah"].id),
        "first_name": "Sarah",
        "last_name": "Seller",
        "email": "sarah@salesdesk.io",
    }
    assert lead["status"] == "New"
    assert lead["source"] is None
    assert lead["converted_to"] is None
    assert db_session.scalars(select(Notification)).all() == []


def test_create_with_explicit_assignee_notifies_them(client: TestClient, actors, db_session: Session, create_lead) -> None:
    create_lead(actor="manager", assigned_to=str(actors["sarah"].id))

    [notification] = _notifications_for(db_session, actors["sarah"].id)
    assert notification.type == "Lead Assignment"
    assert notification.event == "assigned"
    assert notification.title == "New Lead Assigned"
    assert notification.message == "You have been assigned a new lead: Alice Williams"
    assert notification.priority == "High"
    assert notification.is_read is False


def test_create_writes_one_audit_entry(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="manager")

    [entry] = db_session.scalars(select(AuditLog).where(AuditLog.entity_type == "Lead")).all()
    assert entry.action == "CREATE"
    assert str(entry.entity_id) == lead["id"]
    assert entry.user_id == actors["manager"].id
    assert entry.details == {"email": "alice@example.com"}


def test_create_response_uses_envelope(client: TestClient, actors) -> None:
    response = client.post(
        "/api/leads",
        json={"first_name": "Ann", "last_name": "Lee", "email": "ann@example.com", "mobile": "+15550000"},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Lead created successfully"
    assert body["data"]["lead"]["first_name"] == "Ann"


def test_create_with_unknown_assignee_is_rejected(client: TestClient, actors) -> None:
    response = client.post(
        "/api/leads",
        json={
            "first_name": "Ann",
            "last_name": "Lee",
            "email": "ann@example.com",
            "mobile": "+15550000",
            "assigned_to": str(uuid.uuid4()),
        },
        headers=actors.headers("manager"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Assigned user not found"


def test_status_change_notifies_assignee(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="sarah")

    response = client.put(f"/api/leads/{lead['id']}", json={"status": "Contacted"}, headers=actors.headers("manager"))

    assert response.status_code == 200
    assert response.json()["message"] == "Lead updated successfully"
    [notification] = _notifications_for(db_session, actors["sarah"].id)
    assert notification.title == "Lead Status Changed"
    assert notification.event == "status_changed"
    assert notification.message == "Lead Alice Williams status changed to Contacted"
    assert notification.priority == "Medium"


def test_status_change_by_assignee_notifies_nobody(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="sarah")

    response = client.put(f"/api/leads/{lead['id']}", json={"status": "Contacted"}, headers=actors.headers("sarah"))

    assert response.status_code == 200
    assert db_session.scalars(select(Notification)).all() == []


def test_reassignment_notifies_new_assignee(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="sarah")
    mike_id = actors["mike"].id

    response = client.put(
        f"/api/leads/{lead['id']}",
        json={"assigned_to": str(mike_id)},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 200
    assert response.json()["data"]["lead"]["assigned_to"]["id"] == str(mike_id)
    [notification] = _notifications_for(db_session, mike_id)
    assert notification.title == "Lead Reassigned"
    assert notification.event == "reassigned"
    assert notification.priority == "High"
    assert _notifications_for(db_session, actors["sarah"].id) == []


def test_resubmitting_current_assignee_is_not_a_reassignment(
    client: TestClient, actors, db_session: Session, create_lead
) -> None:
    sarah_id = actors["sarah"].id
    lead = create_lead(actor="manager", assigned_to=str(sarah_id))

    response = client.put(
        f"/api/leads/{lead['id']}",
        json={"assigned_to": str(sarah_id), "company": "Renamed Co."},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 200
    assert [notification.event for notification in _notifications_for(db_session, sarah_id)] == ["assigned"]


def test_empty_update_changes_nothing(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="manager")

    response = client.put(f"/api/leads/{lead['id']}", json={}, headers=actors.headers("manager"))

    assert response.status_code == 200
    updated = response.json()["data"]["lead"]
    for field in ("first_name", "last_name", "email", "mobile", "company", "status", "value"):
        assert updated[field] == lead[field]
    actions = db_session.scalars(select(AuditLog.action).where(AuditLog.entity_type == "Lead")).all()
    assert sorted(actions) == ["CREATE", "UPDATE"]


def test_explicit_null_for_required_field_is_rejected(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="manager")

    response = client.put(f"/api/leads/{lead['id']}", json={"status": None}, headers=actors.headers("manager"))

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "Fields cannot be null: status" in response.json()["message"]


def test_optional_field_can_be_cleared(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="manager")

    response = client.put(f"/api/leads/{lead['id']}", json={"company": None}, headers=actors.headers("manager"))

    assert response.status_code == 200
    assert response.json()["data"]["lead"]["company"] is None


def test_list_filters_and_search(client: TestClient, actors, create_lead) -> None:
    create_lead(first_name="Nina", company="Acme")
    create_lead(first_name="Omar", company="Globex", status="Contacted")
    headers = actors.headers("manager")

    by_status = client.get("/api/leads?status=Contacted", headers=headers)
    by_search = client.get("/api/leads?search=acme", headers=headers)
    bad_status = client.get("/api/leads?status=Unknown", headers=headers)

    assert [lead["first_name"] for lead in by_status.json()["data"]["leads"]] == ["Omar"]
    assert [lead["first_name"] for lead in by_search.json()["data"]["leads"]] == ["Nina"]
    assert bad_status.status_code == 400


def test_source_campaign_is_expanded(client: TestClient, actors, create_lead) -> None:
    campaign = client.post(
        "/api/campaigns",
        json={"name": "Spring Push", "type": "Email", "start_date": "2026-03-01T00:00:00Z"},
        headers=actors.headers("marketing"),
    ).json()["data"]["campaign"]

    lead = create_lead(source_id=campaign["id"])

    assert lead["source"] == {"id": campaign["id"], "name": "Spring Push", "type": "Email"}


def test_delete_lead(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="manager")
    headers = actors.headers("manager")

    deleted = client.delete(f"/api/leads/{lead['id']}", headers=headers)
    missing = client.get(f"/api/leads/{lead['id']}", headers=headers)

    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "message": "Lead deleted successfully", "data": {}}
    assert missing.status_code == 404
    assert missing.json()["message"] == "Lead not found"
    entry = db_session.scalars(select(AuditLog).where(AuditLog.action == "DELETE")).one()
    assert entry.details == {"email": "alice@example.com"}


def test_convert_to_contact_account_and_deal(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="manager", assigned_to=str(actors["sarah"].id))

    response = client.post(
        f"/api/leads/{lead['id']}/convert",
        json={"convert_to": ["contact", "account", "deal"]},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Lead converted successfully"
    data = body["data"]
    assert data["lead"]["status"] == "Qualified"
    assert data["lead"]["converted_at"] is not None
    assert data["lead"]["converted_to"] == {
        "contact": data["contact"]["id"],
        "account": data["account"]["id"],
        "deal": data["deal"]["id"],
    }
    assert data["contact"]["first_name"] == "Alice"
    assert data["contact"]["account"]["id"] == data["account"]["id"]
    assert data["account"]["name"] == "Startup Co."
    assert data["deal"]["name"] == "Deal - Alice Williams"
    assert data["deal"]["stage"] == "Prospecting"
    assert data["deal"]["value"] == 50000
    assert data["deal"]["contact"]["id"] == data["contact"]["id"]
    for key in ("contact", "account", "deal"):
        assert data[key]["assigned_to"]["id"] == str(actors["sarah"].id)

    entry = db_session.scalars(select(AuditLog).where(AuditLog.action == "CONVERT")).one()
    assert entry.details == {
        "contact_id": data["contact"]["id"],
        "account_id": data["account"]["id"],
        "deal_id": data["deal"]["id"],
    }


def test_convert_to_contact_only(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="manager")

    response = client.post(
        f"/api/leads/{lead['id']}/convert",
        json={"convert_to": ["Contact"]},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["contact"]["account_id"] is None
    assert data["account"] is None
    assert data["deal"] is None
    assert data["lead"]["converted_to"] == {"contact": data["contact"]["id"], "account": None, "deal": None}


def test_convert_to_contact_and_deal(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="manager")

    response = client.post(
        f"/api/leads/{lead['id']}/convert",
        json={"convert_to": ["contact", "deal"]},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["account"] is None
    assert data["contact"]["account_id"] is None
    assert data["deal"]["account_id"] is None
    assert data["deal"]["contact_id"] == data["contact"]["id"]
    assert data["lead"]["status"] == "Qualified"
    assert data["lead"]["converted_at"] is not None


def test_account_name_falls_back_to_lead_name(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="manager", company=None)

    response = client.post(
        f"/api/leads/{lead['id']}/convert",
        json={"convert_to": ["account"]},
        headers=actors.headers("manager"),
    )

    assert response.json()["data"]["account"]["name"] == "Alice Williams"


@pytest.mark.parametrize("convert_to", [[], ["invoice"], ["contact", "invoice"]])
def test_convert_rejects_bad_targets(client: TestClient, actors, create_lead, convert_to: list[str]) -> None:
    lead = create_lead(actor="manager")

    response = client.post(
        f"/api/leads/{lead['id']}/convert",
        json={"convert_to": convert_to},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "convert_to must be a non-empty list of: contact, account, deal"


def test_second_conversion_is_refused(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="manager")
    headers = actors.headers("manager")
    first = client.post(f"/api/leads/{lead['id']}/convert", json={"convert_to": ["contact"]}, headers=headers)

    second = client.post(f"/api/leads/{lead['id']}/convert", json={"convert_to": ["deal"]}, headers=headers)

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["message"] == "Lead has already been converted"


def test_reconversion_when_enabled(
    client: TestClient, actors, create_lead, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("ALLOW_LEAD_RECONVERSION", "true")
    get_settings.cache_clear()
    lead = create_lead(actor="manager")
    headers = actors.headers("manager")
    client.post(f"/api/leads/{lead['id']}/convert", json={"convert_to": ["contact"]}, headers=headers)

    second = client.post(f"/api/leads/{lead['id']}/convert", json={"convert_to": ["deal"]}, headers=headers)

    assert second.status_code == 200
    assert second.json()["data"]["lead"]["converted_to"]["contact"] is None
    assert second.json()["data"]["deal"]["contact_id"] is None


def test_sales_executive_cannot_convert_foreign_lead(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="manager", assigned_to=str(actors["mike"].id))

    response = client.post(
        f"/api/leads/{lead['id']}/convert",
        json={"convert_to": ["contact"]},
        headers=actors.headers("sarah"),
    )

    assert response.status_code == 403
