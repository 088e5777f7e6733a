from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import case
from sqlalchemy.sql import ColumnElement, Select

from salesdesk.crm.models import Account, Campaign, Communication, Contact, Deal, Lead, Notification, Task
from salesdesk.platform.security.repository import BaseRepository


class LeadRepository(BaseRepository[Lead]):
    model = Lead
    resource = "Lead"
    filter_fields = ("status", "assigned_to", "source_id")
    search_fields = ("first_name", "last_name", "email", "company")


class ContactRepository(BaseRepository[Contact]):
    model = Contact
    resource = "Contact"
    filter_fields = ("account_id", "assigned_to")
    search_fields = ("first_name", "last_name", "email", "job_title")


class AccountRepository(BaseRepository[Account]):
    model = Account
    resource = "Account"
    filter_fields = ("type", "industry", "assigned_to")
    search_fields = ("name", "email", "industry")


class DealRepository(BaseRepository[Deal]):
    model = Deal
    resource = "Deal"
    filter_fields = ("stage", "assigned_to", "account_id")
    search_fields = ("name", "description")


_PRIORITY_RANK = {"Urgent": 4, "High": 3, "Medium": 2, "Low": 1}


class TaskRepository(BaseRepository[Task]):
    model = Task
    resource = "Task"
    filter_fields = ("status", "priority", "type", "assigned_to", "related_entity_type", "related_entity_id")
    search_fields = ("title", "description")

    def apply_filters(self, query: Select[Any], filters: Mapping[str, Any]) -> Select[Any]:
        query = super().apply_filters(query, filters)
        due_on = filters.get("due_date")
        if isinstance(due_on, date):
            day_start = datetime.combine(due_on, time.min, tzinfo=timezone.utc)
            query = query.where(Task.due_date >= day_start, Task.due_date < day_start + timedelta(days=1))
        return query

    def ordering(self) -> Sequence[ColumnElement[Any]]:
        priority_rank = case(_PRIORITY_RANK, value=Task.priority, else_=0)
        return (Task.due_date.asc(), priority_rank.desc())


class CommunicationRepository(BaseRepository[Communication]):
    model = Communication
    resource = "Communication"
    filter_fields = ("related_entity_type", "related_entity_id", "type")


class CampaignRepository(BaseRepository[Campaign]):
    model = Campaign
    resource = "Campaign"
    filter_fields = ("status", "type")
    search_fields = ("name", "description")


class NotificationRepository(BaseRepository[Notification]):
    model = Notification
    resource = "Notification"
    filter_fields = ("user_id", "is_read", "type")

