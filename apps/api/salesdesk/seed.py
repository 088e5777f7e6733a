"""Reset the database to a small demo dataset.

Run with ``python -m salesdesk.seed``. Every CRM table is emptied first, so
never point this at a database holding real data.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete
from sqlalchemy.orm import Session

from salesdesk.core.database import SessionLocal
from salesdesk.core.security import hash_password
from salesdesk.crm.models import Account, Campaign, Communication, Contact, Deal, Lead, Notification, Organization, Task
from salesdesk.identity.models import User
from salesdesk.logging import configure_logging
from salesdesk.models import AuditLog


logger = logging.getLogger("salesdesk.seed")

DEMO_USERS = (
    ("Admin", "User", "admin@crm.com", "+1234567890", "admin123", "System Admin"),
    ("John", "Manager", "manager@crm.com", "+1234567891", "manager123", "Sales Manager"),
    ("Sarah", "Johnson", "sarah@crm.com", "+1234567892", "sales123", "Sales Executive"),
    ("Mike", "Davis", "mike@crm.com", "+1234567893", "sales123", "Sales Executive"),
    ("Emily", "Wilson", "emily@crm.com", "+1234567894", "marketing123", "Marketing Executive"),
    ("David", "Brown", "david@crm.com", "+1234567895", "support123", "Support Executive"),
)

# Children before parents so foreign keys never dangle mid-reset.
_RESET_ORDER = (Notification, AuditLog, Communication, Task, Deal, Lead, Contact, Account, Campaign, Organization, User)


def _day(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def reset(session: Session) -> None:
    for model in _RESET_ORDER:
        session.execute(delete(model))
    session.flush()


def seed(session: Session) -> dict[str, User]:
    users: dict[str, User] = {}
    for first_name, last_name, email, mobile, password, role in DEMO_USERS:
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            mobile=mobile,
            password_hash=hash_password(password),
            role=role,
            is_active=True,
        )
        session.add(user)
        users[email] = user
    session.flush()

    sarah = users["sarah@crm.com"]
    mike = users["mike@crm.com"]
    emily = users["emily@crm.com"]

    session.add(
        Organization(
            company_name="CRM Corporation",
            company_email="info@crm.com",
            company_phone="+1-800-CRM-HELP",
            address={
                "street": "123 Business Street",
                "city": "New York",
                "state": "NY",
                "zip_code": "10001",
                "country": "USA",
            },
            currency="USD",
            timezone="America/New_York",
            working_hours={
                "start": "09:00",
                "end": "17:00",
                "days": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
            },
        )
    )

    summer = Campaign(
        name="Summer Sale 2024",
        type="Email",
        status="Active",
        start_date=_day("2024-06-01"),
        end_date=_day("2024-08-31"),
        budget=50000,
        description="Summer promotional campaign",
        created_by=emily.id,
        leads_generated=150,
        leads_converted=45,
        revenue=250000,
    )
    webinars = Campaign(
        name="Webinar Series",
        type="Webinar",
        status="Completed",
        start_date=_day("2024-01-01"),
        end_date=_day("2024-03-31"),
        budget=30000,
        description="Educational webinar series",
        created_by=emily.id,
        leads_generated=200,
        leads_converted=60,
        revenue=180000,
    )
    tech = Account(
        name="Tech Solutions Inc.",
        email="contact@techsolutions.com",
        phone="+1-555-0101",
        website="https://techsolutions.com",
        industry="Technology",
        type="Customer",
        assigned_to=sarah.id,
        annual_revenue=5000000,
        employee_count=150,
    )
    globalent = Account(
        name="Global Enterprises",
        email="info@globalent.com",
        phone="+1-555-0102",
        website="https://globalent.com",
        industry="Manufacturing",
        type="Customer",
        assigned_to=mike.id,
        annual_revenue=10000000,
        employee_count=500,
    )
    session.add_all([summer, webinars, tech, globalent])
    session.flush()

    robert = Contact(
        first_name="Robert",
        last_name="Smith",
        email="robert.smith@techsolutions.com",
        mobile="+1-555-0201",
        phone="+1-555-0202",
        job_title="CEO",
        account_id=tech.id,
        assigned_to=sarah.id,
    )
    jennifer = Contact(
        first_name="Jennifer",
        last_name="Martinez",
        email="jennifer.martinez@globalent.com",
        mobile="+1-555-0203",
        phone="+1-555-0204",
        job_title="VP of Sales",
        account_id=globalent.id,
        assigned_to=mike.id,
    )
    alice = Lead(
        first_name="Alice",
        last_name="Williams",
        email="alice.williams@example.com",
        mobile="+1-555-0301",
        company="Startup Co.",
        job_title="Founder",
        status="New",
        source_id=summer.id,
        assigned_to=sarah.id,
        value=50000,
    )
    session.add_all(
        [
            robert,
            jennifer,
            alice,
            Lead(
                first_name="Bob",
                last_name="Anderson",
                email="bob.anderson@example.com",
                mobile="+1-555-0302",
                company="Innovation Labs",
                job_title="CTO",
                status="Contacted",
                source_id=webinars.id,
                assigned_to=mike.id,
                value=75000,
            ),
            Lead(
                first_name="Carol",
                last_name="Taylor",
                email="carol.taylor@example.com",
                mobile="+1-555-0303",
                company="Digital Solutions",
                job_title="Director",
                status="Qualified",
                assigned_to=sarah.id,
                value=100000,
            ),
        ]
    )
    session.flush()

    enterprise = Deal(
        name="Tech Solutions - Enterprise Package",
        account_id=tech.id,
        contact_id=robert.id,
        stage="Negotiation",
        value=250000,
        expected_close_date=_day("2024-12-31"),
        probability=75,
        assigned_to=sarah.id,
        source_id=summer.id,
        description="Enterprise software package deal",
    )
    annual = Deal(
        name="Global Enterprises - Annual Contract",
        account_id=globalent.id,
        contact_id=jennifer.id,
        stage="Proposal",
        value=500000,
        expected_close_date=_day("2024-11-30"),
        probability=60,
        assigned_to=mike.id,
        source_id=webinars.id,
        description="Annual service contract",
    )
    session.add_all(
        [
            enterprise,
            annual,
            Deal(
                name="Startup Co. - Starter Package",
                stage="Closed Won",
                value=50000,
                actual_close_date=_day("2024-09-15"),
                probability=100,
                assigned_to=sarah.id,
                description="Starter package deal - closed",
            ),
        ]
    )
    session.flush()

    session.add_all(
        [
            Task(
                title="Follow up with Tech Solutions",
                description="Schedule meeting to discuss proposal",
                type="Meeting",
                priority="High",
                status="Pending",
                due_date=_day("2024-10-20"),
                assigned_to=sarah.id,
                related_entity_type="Deal",
                related_entity_id=enterprise.id,
                reminder_enabled=True,
                reminder_at=_day("2024-10-19"),
            ),
            Task(
                title="Send proposal to Global Enterprises",
                description="Prepare and send detailed proposal",
                type="Email",
                priority="Urgent",
                status="In Progress",
                due_date=_day("2024-10-18"),
                assigned_to=mike.id,
                related_entity_type="Deal",
                related_entity_id=annual.id,
            ),
            Task(
                title="Call Alice Williams",
                description="Initial qualification call",
                type="Call",
                priority="Medium",
                status="Pending",
                due_date=_day("2024-10-22"),
                assigned_to=sarah.id,
                related_entity_type="Lead",
                related_entity_id=alice.id,
            ),
        ]
    )
    return users


def main() -> None:
    configure_logging()
    with SessionLocal() as session:
        reset(session)
        seed(session)
        session.commit()
    logger.info("seed.completed", extra={"event": "seed", "entity_type": "User"})
    for _, _, email, _, password, role in DEMO_USERS:
        print(f"{role}: {email} / {password}")


if __name__ == "__main__":
    main()
