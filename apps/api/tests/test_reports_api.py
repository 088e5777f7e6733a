from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from salesdesk.core.database import utcnow
from salesdesk.crm.models import Campaign, Deal, Lead, Task


@pytest.fixture()
def pipeline(db_session: Session, actors) -> None:
    sarah = actors["sarah"].id
    mike = actors["mike"].id
    db_session.add_all(
        [
            Deal(name="S1", stage="Closed Won", value=1000, assigned_to=sarah),
            Deal(name="S2", stage="Proposal", value=500, assigned_to=sarah),
            Deal(name="M1", stage="Closed Lost", value=250, assigned_to=mike),
            Lead(first_name="A", last_name="One", email="a@example.com", mobile="1", status="New", assigned_to=sarah),
            Lead(
                first_name="B",
                last_name="Two",
                email="b@example.com",
                mobile="2",
                status="Qualified",
                assigned_to=sarah,
                converted_at=utcnow(),
            ),
            Lead(first_name="C", last_name="Three", email="c@example.com", mobile="3", status="Lost", assigned_to=mike),
            Task(title="T1", due_date=utcnow(), status="Completed", assigned_to=sarah),
            Task(title="T2", due_date=utcnow(), status="Pending", assigned_to=sarah),
            Task(title="T3", due_date=utcnow(), status="Pending", assigned_to=mike),
        ]
    )
    db_session.commit()


def test_sales_report_for_manager(client: TestClient, actors, pipeline: None) -> None:
    response = client.get("/api/reports/sales", headers=actors.headers("manager"))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"] == {
        "total_deals": 3,
        "won_deals": 1,
        "lost_deals": 1,
        "total_value": 1750.0,
        "won_value": 1000.0,
        "win_rate": 33.33,
    }
    assert data["pipeline"] == {
        "Prospecting": 0,
        "Proposal": 1,
        "Negotiation": 0,
        "Closed Won": 1,
        "Closed Lost": 1,
    }
    assert data["value_by_stage"]["Closed Lost"] == 250.0


def test_sales_report_is_row_scoped_for_sales_executive(client: TestClient, actors, pipeline: None) -> None:
    response = client.get("/api/reports/sales", headers=actors.headers("sarah"))

    summary = response.json()["data"]["summary"]
    assert summary["total_deals"] == 2
    assert summary["won_deals"] == 1
    assert summary["lost_deals"] == 0
    assert summary["win_rate"] == 50.0


def test_sales_report_denied_to_marketing(client: TestClient, actors) -> None:
    response = client.get("/api/reports/sales", headers=actors.headers("marketing"))

    assert response.status_code == 403
    assert response.json()["message"] == (
        "Access denied. Required roles: Sales Executive, Sales Manager, System Admin"
    )


def test_leads_report(client: TestClient, actors, pipeline: None) -> None:
    everyone = client.get("/api/reports/leads", headers=actors.headers("support")).json()["data"]
    own = client.get("/api/reports/leads", headers=actors.headers("sarah")).json()["data"]

    assert everyone["summary"] == {"total_leads": 3, "converted_leads": 1, "conversion_rate": 33.33}
    assert everyone["status_count"] == {"New": 1, "Contacted": 0, "Qualified": 1, "Lost": 1}
    assert own["summary"] == {"total_leads": 2, "converted_leads": 1, "conversion_rate": 50.0}
    assert own["status_count"]["Lost"] == 0


def test_leads_report_groups_by_source(client: TestClient, actors, db_session: Session) -> None:
    campaign = Campaign(name="Expo", start_date=datetime(2026, 1, 1, tzinfo=timezone.utc))
    db_session.add(campaign)
    db_session.flush()
    db_session.add(Lead(first_name="D", last_name="Four", email="d@example.com", mobile="4", source_id=campaign.id))
    db_session.commit()

    data = client.get("/api/reports/leads", headers=actors.headers("manager")).json()["data"]

    assert data["leads_by_source"] == {str(campaign.id): 1}


def test_productivity_report(client: TestClient, actors, pipeline: None) -> None:
    response = client.get("/api/reports/productivity", headers=actors.headers("manager"))

    assert response.status_code == 200
    rows = {row["email"]: row for row in response.json()["data"]["productivity"]}
    assert set(rows) == {"manager@salesdesk.io", "sarah@salesdesk.io", "mike@salesdesk.io"}
    sarah = rows["sarah@salesdesk.io"]
    assert sarah["user_name"] == "Sarah Seller"
    assert (sarah["leads"], sarah["deals"], sarah["won_deals"]) == (2, 2, 1)
    assert sarah["deal_value"] == 1000.0
    assert (sarah["tasks"], sarah["completed_tasks"], sarah["completion_rate"]) == (2, 1, 50.0)
    assert rows["manager@salesdesk.io"]["completion_rate"] == 0.0


def test_productivity_report_denied_to_sales_executive(client: TestClient, actors) -> None:
    response = client.get("/api/reports/productivity", headers=actors.headers("sarah"))

    assert response.status_code == 403


def test_campaign_report(client: TestClient, actors, db_session: Session) -> None:
    start = datetime(2026, 6, 1, tzinfo=timezone.utc)
    db_session.add_all(
        [
            Campaign(
                name="Summer",
                type="Email",
                start_date=start,
                budget=50000,
                leads_generated=150,
                leads_converted=45,
                revenue=250000,
            ),
            Campaign(name="Organic", type="Other", start_date=start),
        ]
    )
    db_session.commit()

    response = client.get("/api/reports/campaigns", headers=actors.headers("marketing"))

    assert response.status_code == 200
    rows = {row["campaign_name"]: row for row in response.json()["data"]["campaign_performance"]}
    assert rows["Summer"]["roi"] == 400.0
    assert rows["Summer"]["conversion_rate"] == 30.0
    assert rows["Organic"]["roi"] == 0.0
    assert rows["Organic"]["conversion_rate"] == 0.0


def test_inverted_date_range_is_rejected(client: TestClient, actors) -> None:
    response = client.get(
        "/api/reports/sales?start_date=2026-02-01T00:00:00Z&end_date=2026-01-01T00:00:00Z",
        headers=actors.headers("manager"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "end_date must not be before start_date"


@pytest.mark.parametrize("report", ["sales", "leads"])
def test_mixed_offset_date_range_is_accepted(client: TestClient, actors, report: str) -> None:
    response = client.get(
        f"/api/reports/{report}?start_date=2026-01-01T00:00:00Z&end_date=2026-02-01T00:00:00",
        headers=actors.headers("manager"),
    )

    assert response.status_code == 200


def test_mixed_offset_inverted_range_is_rejected(client: TestClient, actors) -> None:
    response = client.get(
        "/api/reports/sales?start_date=2026-02-01T00:00:00&end_date=2026-01-01T00:00:00%2B00:00",
        headers=actors.headers("manager"),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "end_date must not be before start_date"
