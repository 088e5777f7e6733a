from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from salesdesk.api.errors import envelope
from salesdesk.core.auth import get_auth_context
from salesdesk.core.database import get_db
from salesdesk.core.rbac import require_roles
from salesdesk.crm.schemas import (
    AccountCreate,
    AccountType,
    AccountUpdate,
    CampaignCreate,
    CampaignStatus,
    CampaignType,
    CampaignUpdate,
    CommunicationCreate,
    CommunicationUpdate,
    ContactCreate,
    ContactUpdate,
    DealCreate,
    DealStage,
    DealUpdate,
    LeadConvertRequest,
    LeadCreate,
    LeadStatus,
    LeadUpdate,
    NotificationType,
    OrganizationUpdate,
    TaskCreate,
    TaskPriority,
    TaskStatus,
    TaskType,
    TaskUpdate,
)
from salesdesk.crm.service import (
    AccountService,
    AuditService,
    CampaignService,
    CommunicationService,
    ContactService,
    DealService,
    LeadService,
    NotificationService,
    OrganizationService,
    TaskService,
)
from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.errors import InvalidInput

leads_router = APIRouter(prefix="/api/leads", tags=["crm.leads"])
contacts_router = APIRouter(prefix="/api/contacts", tags=["crm.contacts"])
accounts_router = APIRouter(prefix="/api/accounts", tags=["crm.accounts"])
deals_router = APIRouter(prefix="/api/deals", tags=["crm.deals"])
tasks_router = APIRouter(prefix="/api/tasks", tags=["crm.tasks"])
communications_router = APIRouter(prefix="/api/communications", tags=["crm.communications"])
campaigns_router = APIRouter(prefix="/api/campaigns", tags=["crm.campaigns"])
notifications_router = APIRouter(prefix="/api/notifications", tags=["crm.notifications"])
organization_router = APIRouter(prefix="/api/organization", tags=["crm.organization"])
audit_router = APIRouter(prefix="/api/audit-logs", tags=["crm.audit"])

lead_service = LeadService()
contact_service = ContactService()
account_service = AccountService()
deal_service = DealService()
task_service = TaskService()
communication_service = CommunicationService()
campaign_service = CampaignService()
notification_service = NotificationService()
organization_service = OrganizationService()
audit_service = AuditService()


def _list_envelope(key: str, items: list[dict[str, Any]]) -> dict[str, Any]:
    return envelope({key: items}, count=len(items))


def _parse_related_to(raw: str | None) -> tuple[str | None, uuid.UUID | None]:
    """Parse the ``Type:id`` form used to filter tasks by related entity."""

    if not raw:
        return None, None
    entity_type, _, entity_id = raw.partition(":")
    try:
        return entity_type, uuid.UUID(entity_id) if entity_id else None
    except ValueError as exc:
        raise InvalidInput("related_to must look like <EntityType>:<id>") from exc


# Leads


@leads_router.get("")
def list_leads(
    status_filter: LeadStatus | None = Query(default=None, alias="status"),
    assigned_to: uuid.UUID | None = Query(default=None),
    source_id: uuid.UUID | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    leads = lead_service.list(
        db,
        ctx,
        filters={"status": status_filter, "assigned_to": assigned_to, "source_id": source_id},
        q=search,
    )
    return _list_envelope("leads", leads)


@leads_router.get("/{lead_id}")
def get_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"lead": lead_service.get(db, ctx, lead_id)})


@leads_router.post("", status_code=status.HTTP_201_CREATED)
def create_lead(
    dto: LeadCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"lead": lead_service.create(db, ctx, dto)}, message="Lead created successfully")


@leads_router.put("/{lead_id}")
def update_lead(
    lead_id: uuid.UUID,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"lead": lead_service.update(db, ctx, lead_id, dto)}, message="Lead updated successfully")


@leads_router.delete("/{lead_id}")
def delete_lead(
    lead_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    lead_service.delete(db, ctx, lead_id)
    return envelope(message="Lead deleted successfully")


@leads_router.post("/{lead_id}/convert")
def convert_lead(
    lead_id: uuid.UUID,
    dto: LeadConvertRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope(lead_service.convert_lead(db, ctx, lead_id, dto), message="Lead converted successfully")


# Contacts


@contacts_router.get("")
def list_contacts(
    account_id: uuid.UUID | None = Query(default=None),
    assigned_to: uuid.UUID | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    contacts = contact_service.list(
        db,
        ctx,
        filters={"account_id": account_id, "assigned_to": assigned_to},
        q=search,
    )
    return _list_envelope("contacts", contacts)


@contacts_router.get("/{contact_id}")
def get_contact(
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"contact": contact_service.get(db, ctx, contact_id)})


@contacts_router.post("", status_code=status.HTTP_201_CREATED)
def create_contact(
    dto: ContactCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"contact": contact_service.create(db, ctx, dto)}, message="Contact created successfully")


@contacts_router.put("/{contact_id}")
def update_contact(
    contact_id: uuid.UUID,
    dto: ContactUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    contact = contact_service.update(db, ctx, contact_id, dto)
    return envelope({"contact": contact}, message="Contact updated successfully")


@contacts_router.delete("/{contact_id}")
def delete_contact(
    contact_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    contact_service.delete(db, ctx, contact_id)
    return envelope(message="Contact deleted successfully")


# Accounts


@accounts_router.get("")
def list_accounts(
    type_filter: AccountType | None = Query(default=None, alias="type"),
    industry: str | None = Query(default=None),
    assigned_to: uuid.UUID | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    accounts = account_service.list(
        db,
        ctx,
        filters={"type": type_filter, "industry": industry, "assigned_to": assigned_to},
        q=search,
    )
    return _list_envelope("accounts", accounts)


@accounts_router.get("/{account_id}")
def get_account(
    account_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"account": account_service.get(db, ctx, account_id)})


@accounts_router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    dto: AccountCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"account": account_service.create(db, ctx, dto)}, message="Account created successfully")


@accounts_router.put("/{account_id}")
def update_account(
    account_id: uuid.UUID,
    dto: AccountUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    account = account_service.update(db, ctx, account_id, dto)
    return envelope({"account": account}, message="Account updated successfully")


@accounts_router.delete("/{account_id}")
def delete_account(
    account_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    account_service.delete(db, ctx, account_id)
    return envelope(message="Account deleted successfully")


# Deals


@deals_router.get("")
def list_deals(
    stage: DealStage | None = Query(default=None),
    assigned_to: uuid.UUID | None = Query(default=None),
    account_id: uuid.UUID | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    deals = deal_service.list(
        db,
        ctx,
        filters={"stage": stage, "assigned_to": assigned_to, "account_id": account_id},
        q=search,
    )
    return _list_envelope("deals", deals)


@deals_router.get("/{deal_id}")
def get_deal(
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"deal": deal_service.get(db, ctx, deal_id)})


@deals_router.post("", status_code=status.HTTP_201_CREATED)
def create_deal(
    dto: DealCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"deal": deal_service.create(db, ctx, dto)}, message="Deal created successfully")


@deals_router.put("/{deal_id}")
def update_deal(
    deal_id: uuid.UUID,
    dto: DealUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"deal": deal_service.update(db, ctx, deal_id, dto)}, message="Deal updated successfully")


@deals_router.delete("/{deal_id}")
def delete_deal(
    deal_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    deal_service.delete(db, ctx, deal_id)
    return envelope(message="Deal deleted successfully")


# Tasks


@tasks_router.get("")
def list_tasks(
    status_filter: TaskStatus | None = Query(default=None, alias="status"),
    priority: TaskPriority | None = Query(default=None),
    type_filter: TaskType | None = Query(default=None, alias="type"),
    assigned_to: uuid.UUID | None = Query(default=None),
    due_date: date | None = Query(default=None),
    related_to: str | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    related_type, related_id = _parse_related_to(related_to)
    tasks = task_service.list(
        db,
        ctx,
        filters={
            "status": status_filter,
            "priority": priority,
            "type": type_filter,
            "assigned_to": assigned_to,
            "due_date": due_date,
            "related_entity_type": related_type,
            "related_entity_id": related_id,
        },
        q=search,
    )
    return _list_envelope("tasks", tasks)


@tasks_router.get("/{task_id}")
def get_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"task": task_service.get(db, ctx, task_id)})


@tasks_router.post("", status_code=status.HTTP_201_CREATED)
def create_task(
    dto: TaskCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"task": task_service.create(db, ctx, dto)}, message="Task created successfully")


@tasks_router.put("/{task_id}")
def update_task(
    task_id: uuid.UUID,
    dto: TaskUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"task": task_service.update(db, ctx, task_id, dto)}, message="Task updated successfully")


@tasks_router.delete("/{task_id}")
def delete_task(
    task_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    task_service.delete(db, ctx, task_id)
    return envelope(message="Task deleted successfully")


# Communications


@communications_router.get("/{entity_type}/{entity_id}")
def list_communications(
    entity_type: str,
    entity_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    communications = communication_service.list_for_entity(db, ctx, entity_type, entity_id)
    return _list_envelope("communications", communications)


@communications_router.post("", status_code=status.HTTP_201_CREATED)
def create_communication(
    dto: CommunicationCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    communication = communication_service.create(db, ctx, dto)
    return envelope({"communication": communication}, message="Communication logged successfully")


@communications_router.put("/{communication_id}")
def update_communication(
    communication_id: uuid.UUID,
    dto: CommunicationUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    communication = communication_service.update(db, ctx, communication_id, dto)
    return envelope({"communication": communication}, message="Communication updated successfully")


@communications_router.delete("/{communication_id}")
def delete_communication(
    communication_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    communication_service.delete(db, ctx, communication_id)
    return envelope(message="Communication deleted successfully")


# Campaigns


@campaigns_router.get("")
def list_campaigns(
    status_filter: CampaignStatus | None = Query(default=None, alias="status"),
    type_filter: CampaignType | None = Query(default=None, alias="type"),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    campaigns = campaign_service.list(db, ctx, filters={"status": status_filter, "type": type_filter}, q=search)
    return _list_envelope("campaigns", campaigns)


@campaigns_router.get("/{campaign_id}")
def get_campaign(
    campaign_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"campaign": campaign_service.get(db, ctx, campaign_id)})


@campaigns_router.post("", status_code=status.HTTP_201_CREATED)
def create_campaign(
    dto: CampaignCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_roles("campaigns.create")),
) -> dict[str, Any]:
    return envelope({"campaign": campaign_service.create(db, ctx, dto)}, message="Campaign created successfully")


@campaigns_router.put("/{campaign_id}")
def update_campaign(
    campaign_id: uuid.UUID,
    dto: CampaignUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    campaign = campaign_service.update(db, ctx, campaign_id, dto)
    return envelope({"campaign": campaign}, message="Campaign updated successfully")


@campaigns_router.delete("/{campaign_id}")
def delete_campaign(
    campaign_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    campaign_service.delete(db, ctx, campaign_id)
    return envelope(message="Campaign deleted successfully")


# Notifications


@notifications_router.get("")
def list_notifications(
    is_read: bool | None = Query(default=None),
    type_filter: NotificationType | None = Query(default=None, alias="type"),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    notifications, unread_count = notification_service.list_for_user(
        db,
        ctx,
        is_read=is_read,
        notification_type=type_filter,
        limit=limit,
    )
    return envelope(
        {"notifications": notifications, "unread_count": unread_count},
        count=len(notifications),
    )


@notifications_router.put("/read-all")
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    marked = notification_service.mark_all_read(db, ctx)
    return envelope({"marked": marked}, message="All notifications marked as read")


@notifications_router.put("/{notification_id}/read")
def mark_notification_read(
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    notification = notification_service.mark_read(db, ctx, notification_id)
    return envelope({"notification": notification}, message="Notification marked as read")


@notifications_router.delete("/{notification_id}")
def delete_notification(
    notification_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    notification_service.delete(db, ctx, notification_id)
    return envelope(message="Notification deleted successfully")


# Organization


@organization_router.get("")
def get_organization(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
) -> dict[str, Any]:
    return envelope({"organization": organization_service.get(db)})


@organization_router.put("")
def update_organization(
    dto: OrganizationUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_roles("organization.update")),
) -> dict[str, Any]:
    organization = organization_service.update(db, ctx, dto)
    return envelope({"organization": organization}, message="Organization settings updated successfully")


# Audit logs


@audit_router.get("")
def list_audit_logs(
    user_id: uuid.UUID | None = Query(default=None),
    action: str | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_roles("audit_logs.list")),
) -> dict[str, Any]:
    logs = audit_service.list_audit_logs(
        db,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return _list_envelope("logs", logs)
