from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from salesdesk.crm.models import Notification


def _create_task(client: TestClient, headers: dict[str, str], **overrides: object) -> dict:
    payload = {"title": "Call Alice", "type": "Call", "priority": "High", "due_date": "2026-10-20T10:00:00Z"}
    payload.update(overrides)
    response = client.post("/api/tasks", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["task"]


def test_task_linked_to_lead_and_assigned(client: TestClient, actors, db_session: Session, create_lead) -> None:
    lead = create_lead(actor="manager")

    task = _create_task(
        client,
        actors.headers("manager"),
        related_to={"entity_type": "Lead", "entity_id": lead["id"]},
        assigned_to=str(actors["sarah"].id),
    )

    assert task["related_entity_type"] == "Lead"
    assert task["related_entity_id"] == lead["id"]
    assert task["assigned_to"]["first_name"] == "Sarah"
    notification = db_session.scalars(select(Notification)).one()
    assert notification.type == "Task Reminder"
    assert notification.title == "New Task Assigned"
    assert notification.message == "You have been assigned a new task: Call Alice"


def test_task_filters(client: TestClient, actors, create_lead) -> None:
    headers = actors.headers("manager")
    lead = create_lead(actor="manager")
    _create_task(client, headers, related_to={"entity_type": "Lead", "entity_id": lead["id"]})
    _create_task(client, headers, title="Prep deck", type="Meeting", priority="Low", due_date="2026-10-21T09:00:00Z")

    by_related = client.get(f"/api/tasks?related_to=Lead:{lead['id']}", headers=headers)
    by_type = client.get("/api/tasks?type=Meeting", headers=headers)
    by_day = client.get("/api/tasks?due_date=2026-10-21", headers=headers)
    bad_related = client.get("/api/tasks?related_to=Lead:nope", headers=headers)

    assert [task["title"] for task in by_related.json()["data"]["tasks"]] == ["Call Alice"]
    assert [task["title"] for task in by_type.json()["data"]["tasks"]] == ["Prep deck"]
    assert [task["title"] for task in by_day.json()["data"]["tasks"]] == ["Prep deck"]
    assert bad_related.status_code == 400


def test_tasks_are_ordered_by_due_date(client: TestClient, actors) -> None:
    headers = actors.headers("manager")
    _create_task(client, headers, title="Later", due_date="2026-11-02T09:00:00Z")
    _create_task(client, headers, title="Sooner", due_date="2026-11-01T09:00:00Z")

    titles = [task["title"] for task in client.get("/api/tasks", headers=headers).json()["data"]["tasks"]]

    assert titles == ["Sooner", "Later"]


def test_completing_a_task_stamps_completion(client: TestClient, actors) -> None:
    task = _create_task(client, actors.headers("sarah"))

    response = client.put(f"/api/tasks/{task['id']}", json={"status": "Completed"}, headers=actors.headers("sarah"))

    assert response.status_code == 200
    assert response.json()["data"]["task"]["completed_at"] is not None


def test_task_status_change_by_manager_notifies_assignee(client: TestClient, actors, db_session: Session) -> None:
    task = _create_task(client, actors.headers("sarah"))

    client.put(f"/api/tasks/{task['id']}", json={"status": "In Progress"}, headers=actors.headers("manager"))

    notification = db_session.scalars(select(Notification)).one()
    assert notification.user_id == actors["sarah"].id
    assert notification.title == "Task Status Changed"
    assert notification.message == 'Task "Call Alice" status changed to In Progress'


def test_log_and_list_communications(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="sarah")
    headers = actors.headers("sarah")

    logged = client.post(
        "/api/communications",
        json={
            "type": "Call",
            "subject": "Intro call",
            "content": "Discussed pricing",
            "related_to": {"entity_type": "Lead", "entity_id": lead["id"]},
            "duration": 15,
        },
        headers=headers,
    )
    listed = client.get(f"/api/communications/Lead/{lead['id']}", headers=headers)

    assert logged.status_code == 201
    assert logged.json()["message"] == "Communication logged successfully"
    communication = logged.json()["data"]["communication"]
    assert communication["created_by"]["id"] == str(actors["sarah"].id)
    assert communication["direction"] == "Outbound"
    assert listed.json()["count"] == 1
    assert listed.json()["data"]["communications"][0]["subject"] == "Intro call"


def test_communication_requires_existing_entity(client: TestClient, actors) -> None:
    response = client.post(
        "/api/communications",
        json={
            "type": "Note",
            "content": "Orphan",
            "related_to": {"entity_type": "Deal", "entity_id": "00000000-0000-4000-8000-000000000000"},
        },
        headers=actors.headers("sarah"),
    )

    assert response.status_code == 404
    assert response.json()["message"] == "Deal not found"


def test_communication_list_rejects_unknown_entity_type(client: TestClient, actors) -> None:
    response = client.get(
        "/api/communications/Widget/00000000-0000-4000-8000-000000000000",
        headers=actors.headers("sarah"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid entity type"


def test_only_author_or_admin_changes_communication(client: TestClient, actors, create_lead) -> None:
    lead = create_lead(actor="sarah")
    created = client.post(
        "/api/communications",
        json={"type": "Note", "content": "First", "related_to": {"entity_type": "Lead", "entity_id": lead["id"]}},
        headers=actors.headers("sarah"),
    ).json()["data"]["communication"]
    path = f"/api/communications/{created['id']}"

    foreign_update = client.put(path, json={"content": "Hijacked"}, headers=actors.headers("mike"))
    own_update = client.put(path, json={"content": "Edited"}, headers=actors.headers("sarah"))
    admin_delete = client.delete(path, headers=actors.headers("admin"))

    assert foreign_update.status_code == 403
    assert foreign_update.json()["message"] == "Not authorized to update this communication"
    assert own_update.json()["data"]["communication"]["content"] == "Edited"
    assert admin_delete.status_code == 200
