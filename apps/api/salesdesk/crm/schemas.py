from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from salesdesk.core.database import as_utc


LeadStatus = Literal["New", "Contacted", "Qualified", "Lost"]
DealStage = Literal["Prospecting", "Proposal", "Negotiation", "Closed Won", "Closed Lost"]
AccountType = Literal["Customer", "Partner", "Competitor", "Reseller", "Other"]
TaskType = Literal["Call", "Meeting", "Email", "Follow-up", "Other"]
TaskPriority = Literal["Low", "Medium", "High", "Urgent"]
TaskStatus = Literal["Pending", "In Progress", "Completed", "Cancelled"]
RelatedEntityType = Literal["Lead", "Contact", "Account", "Deal"]
CommunicationType = Literal["Email", "Call", "Note", "Meeting", "Document"]
CommunicationDirection = Literal["Inbound", "Outbound"]
CampaignType = Literal["Email", "Social Media", "Webinar", "Trade Show", "Advertisement", "Other"]
CampaignStatus = Literal["Planning", "Active", "Completed", "Cancelled"]
NotificationType = Literal["Task Reminder", "Lead Assignment", "Deal Stage Change", "New Message", "System Alert"]


class PartialUpdate(BaseModel):
    """Update payload where only the fields actually sent are applied.

    Fields named in ``non_nullable`` may be omitted but not set to null.
    """

    non_nullable: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_required(self) -> PartialUpdate:
        nulled = sorted(name for name in self.model_fields_set & self.non_nullable if getattr(self, name) is None)
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class Address(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    zip_code: str | None = None


class LeadCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    mobile: str = Field(min_length=1, max_length=32)
    company: str | None = None
    job_title: str | None = None
    status: LeadStatus = "New"
    source_id: UUID | None = None
    value: float | None = Field(default=None, ge=0)
    notes: str | None = None
    assigned_to: UUID | None = None


class LeadUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"first_name", "last_name", "email", "mobile", "status"})

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None
    mobile: str | None = Field(default=None, min_length=1, max_length=32)
    company: str | None = None
    job_title: str | None = None
    status: LeadStatus | None = None
    source_id: UUID | None = None
    value: float | None = Field(default=None, ge=0)
    notes: str | None = None
    assigned_to: UUID | None = None


class ConvertedTo(BaseModel):
    contact: UUID | None = None
    account: UUID | None = None
    deal: UUID | None = None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    email: str
    mobile: str
    company: str | None
    job_title: str | None
    status: str
    source_id: UUID | None
    value: float | None
    notes: str | None
    assigned_to: UUID | None
    converted_to: ConvertedTo | None
    converted_at: datetime | None
    created_at: datetime
    updated_at: datetime


class LeadConvertRequest(BaseModel):
    # Validated by the conversion service so a bad target list reports InvalidOperation.
    convert_to: list[str] = Field(default_factory=list)


class ContactCreate(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr | None = None
    mobile: str | None = None
    phone: str | None = None
    job_title: str | None = None
    account_id: UUID | None = None
    address: Address | None = None
    notes: str | None = None
    assigned_to: UUID | None = None


class ContactUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"first_name", "last_name"})

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    email: EmailStr | None = None
    mobile: str | None = None
    phone: str | None = None
    job_title: str | None = None
    account_id: UUID | None = None
    address: Address | None = None
    notes: str | None = None
    assigned_to: UUID | None = None


class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    email: str | None
    mobile: str | None
    phone: str | None
    job_title: str | None
    account_id: UUID | None
    address: dict | None
    notes: str | None
    assigned_to: UUID | None
    created_at: datetime
    updated_at: datetime


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = None
    website: str | None = None
    industry: str | None = None
    type: AccountType = "Customer"
    address: Address | None = None
    description: str | None = None
    annual_revenue: float | None = Field(default=None, ge=0)
    employee_count: int | None = Field(default=None, ge=0)
    assigned_to: UUID | None = None


class AccountUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"name", "type"})

    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = None
    website: str | None = None
    industry: str | None = None
    type: AccountType | None = None
    address: Address | None = None
    description: str | None = None
    annual_revenue: float | None = Field(default=None, ge=0)
    employee_count: int | None = Field(default=None, ge=0)
    assigned_to: UUID | None = None


class AccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str | None
    phone: str | None
    website: str | None
    industry: str | None
    type: str
    address: dict | None
    description: str | None
    annual_revenue: float | None
    employee_count: int | None
    assigned_to: UUID | None
    created_at: datetime
    updated_at: datetime


class DealCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    account_id: UUID | None = None
    contact_id: UUID | None = None
    stage: DealStage = "Prospecting"
    value: float = Field(ge=0)
    currency: str = "USD"
    expected_close_date: datetime | None = None
    probability: int = Field(default=0, ge=0, le=100)
    description: str | None = None
    source_id: UUID | None = None
    assigned_to: UUID | None = None


class DealUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"name", "stage", "value", "currency", "probability"})

    name: str | None = Field(default=None, min_length=1, max_length=255)
    account_id: UUID | None = None
    contact_id: UUID | None = None
    stage: DealStage | None = None
    value: float | None = Field(default=None, ge=0)
    currency: str | None = None
    expected_close_date: datetime | None = None
    actual_close_date: datetime | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    description: str | None = None
    source_id: UUID | None = None
    assigned_to: UUID | None = None


class DealRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    account_id: UUID | None
    contact_id: UUID | None
    stage: str
    value: float
    currency: str
    expected_close_date: datetime | None
    actual_close_date: datetime | None
    probability: int
    description: str | None
    source_id: UUID | None
    assigned_to: UUID | None
    created_at: datetime
    updated_at: datetime


class RelatedTo(BaseModel):
    entity_type: RelatedEntityType
    entity_id: UUID


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    type: TaskType = "Other"
    priority: TaskPriority = "Medium"
    status: TaskStatus = "Pending"
    due_date: datetime
    related_to: RelatedTo | None = None
    reminder_enabled: bool = False
    reminder_at: datetime | None = None
    assigned_to: UUID | None = None


class TaskUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"title", "type", "priority", "status", "due_date"})

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    type: TaskType | None = None
    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    due_date: datetime | None = None
    related_to: RelatedTo | None = None
    reminder_enabled: bool | None = None
    reminder_at: datetime | None = None
    assigned_to: UUID | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    type: str
    priority: str
    status: str
    due_date: datetime
    completed_at: datetime | None
    related_entity_type: str | None
    related_entity_id: UUID | None
    reminder_enabled: bool
    reminder_at: datetime | None
    assigned_to: UUID | None
    created_at: datetime
    updated_at: datetime


class CommunicationCreate(BaseModel):
    type: CommunicationType
    subject: str | None = None
    content: str = Field(min_length=1)
    related_to: RelatedTo
    direction: CommunicationDirection = "Outbound"
    duration: int | None = Field(default=None, ge=0)
    attachments: list[str] = Field(default_factory=list)


class CommunicationUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset({"type", "content", "direction", "attachments"})

    type: CommunicationType | None = None
    subject: str | None = None
    content: str | None = Field(default=None, min_length=1)
    direction: CommunicationDirection | None = None
    duration: int | None = Field(default=None, ge=0)
    attachments: list[str] | None = None


class CommunicationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    subject: str | None
    content: str
    related_entity_type: str
    related_entity_id: UUID
    created_by: UUID
    direction: str
    duration: int | None
    attachments: list[str]
    created_at: datetime
    updated_at: datetime


class CampaignCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: CampaignType = "Other"
    status: CampaignStatus = "Planning"
    start_date: datetime
    end_date: datetime | None = None
    budget: float | None = Field(default=None, ge=0)
    currency: str = "USD"
    description: str | None = None
    target_audience: str | None = None

    @model_validator(mode="after")
    def _end_after_start(self) -> CampaignCreate:
        if self.end_date is not None and as_utc(self.end_date) < as_utc(self.start_date):
            raise ValueError("end_date must not be before start_date")
        return self


class CampaignUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset(
        {"name", "type", "status", "start_date", "currency", "leads_generated", "leads_converted", "revenue"}
    )

    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: CampaignType | None = None
    status: CampaignStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    budget: float | None = Field(default=None, ge=0)
    currency: str | None = None
    description: str | None = None
    target_audience: str | None = None
    leads_generated: int | None = Field(default=None, ge=0)
    leads_converted: int | None = Field(default=None, ge=0)
    revenue: float | None = Field(default=None, ge=0)


class CampaignRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    type: str
    status: str
    start_date: datetime
    end_date: datetime | None
    budget: float | None
    currency: str
    description: str | None
    target_audience: str | None
    leads_generated: int
    leads_converted: int
    revenue: float
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    type: NotificationType
    event: str
    title: str
    message: str
    priority: str
    is_read: bool
    read_at: datetime | None
    related_entity_type: str | None
    related_entity_id: UUID | None
    created_at: datetime


class WorkingHours(BaseModel):
    start: str = "09:00"
    end: str = "17:00"
    days: list[str] = Field(default_factory=lambda: ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"])


class OrganizationUpdate(PartialUpdate):
    non_nullable: ClassVar[frozenset[str]] = frozenset(
        {"company_name", "company_email", "currency", "timezone", "holidays"}
    )

    company_name: str | None = Field(default=None, min_length=1)
    company_email: EmailStr | None = None
    company_phone: str | None = None
    address: Address | None = None
    currency: str | None = None
    timezone: str | None = None
    working_hours: WorkingHours | None = None
    holidays: list[str] | None = None
    logo: str | None = None
    website: str | None = None


class OrganizationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_name: str
    company_email: str
    company_phone: str | None
    address: dict | None
    currency: str
    timezone: str
    working_hours: dict | None
    holidays: list[Any]
    logo: str | None
    website: str | None
    created_at: datetime
    updated_at: datetime


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID | None
    action: str
    entity_type: str
    entity_id: UUID | None
    details: dict
    ip_address: str | None
    user_agent: str | None
    correlation_id: str | None
    timestamp: datetime

    @field_validator("details", mode="before")
    @classmethod
    def _details_default(cls, value: Any) -> Any:
        return value or {}
