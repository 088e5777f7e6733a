from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from salesdesk.crm.models import Notification

MISSING_ID = "00000000-0000-4000-8000-000000000000"


def _create(client: TestClient, path: str, key: str, headers: dict[str, str], payload: dict) -> dict:
    response = client.post(path, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"][key]


def test_contact_expands_account_summary(client: TestClient, actors) -> None:
    headers = actors.headers("manager")
    account = _create(client, "/api/accounts", "account", headers, {"name": "Acme", "industry": "Retail"})

    contact = _create(
        client,
        "/api/contacts",
        "contact",
        headers,
        {"first_name": "Bob", "last_name": "Stone", "email": "bob@acme.com", "account_id": account["id"]},
    )
    listed = client.get(f"/api/contacts?account_id={account['id']}", headers=headers).json()

    assert contact["account"] == {"id": account["id"], "name": "Acme", "industry": "Retail"}
    assert contact["assigned_to"]["email"] == "manager@salesdesk.io"
    assert listed["count"] == 1


def test_contact_rejects_unknown_account(client: TestClient, actors) -> None:
    response = client.post(
        "/api/contacts",
        json={"first_name": "Bob", "last_name": "Stone", "account_id": MISSING_ID},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Account not found"


def test_deal_expands_references(client: TestClient, actors) -> None:
    headers = actors.headers("manager")
    account = _create(client, "/api/accounts", "account", headers, {"name": "Acme"})
    contact = _create(
        client,
        "/api/contacts",
        "contact",
        headers,
        {"first_name": "Bob", "last_name": "Stone", "email": "bob@acme.com"},
    )

    deal = _create(
        client,
        "/api/deals",
        "deal",
        headers,
        {"name": "Acme rollout", "value": 12000, "account_id": account["id"], "contact_id": contact["id"]},
    )

    assert deal["stage"] == "Prospecting"
    assert deal["account"] == {"id": account["id"], "name": "Acme"}
    assert deal["contact"]["email"] == "bob@acme.com"
    assert deal["source"] is None


def test_deal_rejects_unknown_contact(client: TestClient, actors) -> None:
    response = client.post(
        "/api/deals",
        json={"name": "Ghost", "value": 1, "contact_id": MISSING_ID},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Contact not found"


def test_closing_stage_notifies_owner_and_stamps_close_date(
    client: TestClient,
    actors,
    db_session: Session,
) -> None:
    deal = _create(client, "/api/deals", "deal", actors.headers("sarah"), {"name": "Big one", "value": 5000})
    assert deal["actual_close_date"] is None

    response = client.put(
        f"/api/deals/{deal['id']}",
        json={"stage": "Closed Won"},
        headers=actors.headers("manager"),
    )

    assert response.status_code == 200
    assert response.json()["data"]["deal"]["actual_close_date"] is not None
    notification = db_session.scalars(select(Notification)).one()
    assert notification.user_id == actors["sarah"].id
    assert notification.type == "Deal Stage Change"
    assert notification.title == "Deal Stage Updated"
    assert notification.message == 'Deal "Big one" moved to Closed Won'
    assert notification.priority == "High"


def test_owner_moving_own_deal_is_silent(client: TestClient, actors, db_session: Session) -> None:
    deal = _create(client, "/api/deals", "deal", actors.headers("sarah"), {"name": "Mine", "value": 100})

    client.put(f"/api/deals/{deal['id']}", json={"stage": "Proposal"}, headers=actors.headers("sarah"))

    assert db_session.scalars(select(Notification)).all() == []


def test_account_type_filter_and_delete(client: TestClient, actors) -> None:
    headers = actors.headers("manager")
    _create(client, "/api/accounts", "account", headers, {"name": "Acme"})
    partner = _create(client, "/api/accounts", "account", headers, {"name": "Globex", "type": "Partner"})

    partners = client.get("/api/accounts?type=Partner", headers=headers).json()
    deleted = client.delete(f"/api/accounts/{partner['id']}", headers=headers)
    missing = client.get(f"/api/accounts/{partner['id']}", headers=headers)

    assert [account["name"] for account in partners["data"]["accounts"]] == ["Globex"]
    assert deleted.status_code == 200
    assert missing.status_code == 404
    assert missing.json()["message"] == "Account not found"
