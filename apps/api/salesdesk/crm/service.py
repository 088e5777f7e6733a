from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from salesdesk.core.config import get_settings
from salesdesk.core.database import as_utc, utcnow
from salesdesk.crm.models import (
    Account,
    Campaign,
    Communication,
    Contact,
    Deal,
    Lead,
    Notification,
    Organization,
    Task,
)
from salesdesk.crm.projections import project_many, project_one
from salesdesk.crm.repositories import (
    AccountRepository,
    CampaignRepository,
    CommunicationRepository,
    ContactRepository,
    DealRepository,
    LeadRepository,
    NotificationRepository,
    TaskRepository,
)
from salesdesk.crm.schemas import (
    AccountRead,
    AuditLogRead,
    CampaignCreate,
    CampaignRead,
    CampaignUpdate,
    CommunicationCreate,
    CommunicationRead,
    CommunicationUpdate,
    ContactRead,
    DealRead,
    LeadConvertRequest,
    LeadRead,
    NotificationRead,
    OrganizationRead,
    OrganizationUpdate,
    PartialUpdate,
    TaskRead,
)
from salesdesk.crm.side_effects import fan_out, plan_create_notifications, plan_update_notifications
from salesdesk.identity.models import User
from salesdesk.models.audit import AuditLog
from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.errors import Forbidden, InvalidInput, InvalidOperation, NotFound
from salesdesk.platform.security.policies import Role
from salesdesk.platform.security.repository import BaseRepository
from salesdesk.services.audit import AuditAction, EntityType, create_details, delete_details


logger = logging.getLogger("salesdesk.crm")

ModelT = TypeVar("ModelT")


def _apply_related_to(values: dict[str, Any]) -> dict[str, Any]:
    if "related_to" not in values:
        return values
    related = values.pop("related_to")
    values["related_entity_type"] = related["entity_type"] if related else None
    values["related_entity_id"] = related["entity_id"] if related else None
    return values


class OwnedEntityService(Generic[ModelT]):
    """CRUD over a record carrying an ``assigned_to`` owner.

    List and single-record access go through row scoping; writes run the
    notification/audit fan-out once the mutation has committed.
    """

    entity_type: EntityType
    repository: BaseRepository[ModelT]
    read_schema: type[BaseModel]

    @property
    def model(self) -> type[ModelT]:
        return self.repository.model

    def serialize(self, db: Session, record: ModelT) -> dict[str, Any]:
        return project_one(db, self.entity_type.value, record, self.read_schema)

    def list(
        self,
        db: Session,
        ctx: AuthContext,
        *,
        filters: Mapping[str, Any] | None = None,
        q: str | None = None,
    ) -> list[dict[str, Any]]:
        records = self.repository.list(db, ctx, filters=filters, q=q)
        return project_many(db, self.entity_type.value, records, self.read_schema)

    def load(self, db: Session, ctx: AuthContext, entity_id: uuid.UUID, *, action: str = "read") -> ModelT:
        record = self.repository.get(db, entity_id)
        if record is None:
            raise NotFound.for_entity(self.entity_type.value)
        self.repository.validate_read_scope(record, ctx, action=action)
        return record

    def get(self, db: Session, ctx: AuthContext, entity_id: uuid.UUID) -> dict[str, Any]:
        return self.serialize(db, self.load(db, ctx, entity_id))

    def _validate_references(self, db: Session, values: Mapping[str, Any]) -> None:
        assignee = values.get("assigned_to")
        if assignee is not None and db.get(User, assignee) is None:
            raise InvalidInput("Assigned user not found")

    def _prepare_create(self, db: Session, ctx: AuthContext, values: dict[str, Any]) -> dict[str, Any]:
        return values

    def _prepare_update(
        self,
        db: Session,
        ctx: AuthContext,
        record: ModelT,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        return changes

    def create(self, db: Session, ctx: AuthContext, dto: BaseModel) -> dict[str, Any]:
        values = dto.model_dump()
        explicit_assignee = values.get("assigned_to") is not None
        if not explicit_assignee:
            values["assigned_to"] = ctx.user_id
        self._validate_references(db, values)
        values = self._prepare_create(db, ctx, values)

        record = self.model(**values)
        db.add(record)
        db.commit()
        db.refresh(record)

        fan_out(
            db,
            ctx,
            action=AuditAction.CREATE,
            entity_type=self.entity_type,
            entity_id=record.id,
            details=create_details(self.entity_type, record),
            notifications=plan_create_notifications(
                self.entity_type,
                record,
                ctx,
                explicit_assignee=explicit_assignee,
            ),
        )
        return self.serialize(db, record)

    def update(self, db: Session, ctx: AuthContext, entity_id: uuid.UUID, dto: PartialUpdate) -> dict[str, Any]:
        record = self.load(db, ctx, entity_id, action="update")
        changes = dto.changes()
        self._validate_references(db, changes)
        previous = {field: getattr(record, field, None) for field in changes}
        changes = self._prepare_update(db, ctx, record, changes)

        for field, value in changes.items():
            setattr(record, field, value)
        record.updated_at = utcnow()
        db.commit()
        db.refresh(record)

        fan_out(
            db,
            ctx,
            action=AuditAction.UPDATE,
            entity_type=self.entity_type,
            entity_id=record.id,
            details=dto.model_dump(mode="json", exclude_unset=True),
            notifications=plan_update_notifications(
                self.entity_type,
                record,
                ctx,
                previous=previous,
                changes=changes,
            ),
        )
        return self.serialize(db, record)

    def delete(self, db: Session, ctx: AuthContext, entity_id: uuid.UUID) -> None:
        record = self.load(db, ctx, entity_id, action="delete")
        details = delete_details(self.entity_type, record)
        record_id = record.id
        db.delete(record)
        db.commit()

        fan_out(
            db,
            ctx,
            action=AuditAction.DELETE,
            entity_type=self.entity_type,
            entity_id=record_id,
            details=details,
        )


class LeadService(OwnedEntityService[Lead]):
    entity_type = EntityType.LEAD
    repository = LeadRepository()
    read_schema = LeadRead

    conversion_order = ("contact", "account", "deal")

    def _validate_references(self, db: Session, values: Mapping[str, Any]) -> None:
        super()._validate_references(db, values)
        source_id = values.get("source_id")
        if source_id is not None and db.get(Campaign, source_id) is None:
            raise InvalidInput("Source campaign not found")

    def _conversion_targets(self, requested: list[str]) -> set[str]:
        targets = {str(item).strip().lower() for item in requested}
        unknown = sorted(targets - set(self.conversion_order))
        if not targets or unknown:
            raise InvalidOperation("convert_to must be a non-empty list of: contact, account, deal")
        return targets

    def convert_lead(
        self,
        db: Session,
        ctx: AuthContext,
        lead_id: uuid.UUID,
        dto: LeadConvertRequest,
    ) -> dict[str, Any]:
        targets = self._conversion_targets(dto.convert_to)
        lead = self.load(db, ctx, lead_id, action="convert")
        if lead.converted_at is not None and not get_settings().allow_lead_reconversion:
            raise InvalidOperation("Lead has already been converted")

        full_name = f"{lead.first_name} {lead.last_name}"
        contact: Contact | None = None
        account: Account | None = None
        deal: Deal | None = None

        if "contact" in targets:
            contact = Contact(
                first_name=lead.first_name,
                last_name=lead.last_name,
                email=lead.email,
                mobile=lead.mobile,
                job_title=lead.job_title,
                assigned_to=lead.assigned_to,
                notes=lead.notes,
            )
            db.add(contact)
            db.flush()

        if "account" in targets:
            account = Account(
                name=lead.company or full_name,
                email=lead.email,
                phone=lead.mobile,
                assigned_to=lead.assigned_to,
            )
            db.add(account)
            db.flush()
            if contact is not None:
                contact.account_id = account.id

        if "deal" in targets:
            deal = Deal(
                name=f"Deal - {full_name}",
                contact_id=contact.id if contact is not None else None,
                account_id=account.id if account is not None else None,
                value=lead.value or 0,
                stage="Prospecting",
                source_id=lead.source_id,
                assigned_to=lead.assigned_to,
            )
            db.add(deal)
            db.flush()

        lead.converted_contact_id = contact.id if contact is not None else None
        lead.converted_account_id = account.id if account is not None else None
        lead.converted_deal_id = deal.id if deal is not None else None
        lead.converted_at = utcnow()
        lead.status = "Qualified"
        lead.updated_at = utcnow()
        db.commit()
        for created in (lead, contact, account, deal):
            if created is not None:
                db.refresh(created)

        fan_out(
            db,
            ctx,
            action=AuditAction.CONVERT,
            entity_type=EntityType.LEAD,
            entity_id=lead.id,
            details={
                "contact_id": lead.converted_contact_id,
                "account_id": lead.converted_account_id,
                "deal_id": lead.converted_deal_id,
            },
        )
        logger.info(
            "lead.converted",
            extra={"entity_type": EntityType.LEAD.value, "entity_id": str(lead.id), "actor_id": str(ctx.user_id)},
        )
        return {
            "lead": self.serialize(db, lead),
            "contact": project_one(db, EntityType.CONTACT.value, contact, ContactRead) if contact else None,
            "account": project_one(db, EntityType.ACCOUNT.value, account, AccountRead) if account else None,
            "deal": project_one(db, EntityType.DEAL.value, deal, DealRead) if deal else None,
        }


class ContactService(OwnedEntityService[Contact]):
    entity_type = EntityType.CONTACT
    repository = ContactRepository()
    read_schema = ContactRead

    def _validate_references(self, db: Session, values: Mapping[str, Any]) -> None:
        super()._validate_references(db, values)
        account_id = values.get("account_id")
        if account_id is not None and db.get(Account, account_id) is None:
            raise InvalidInput("Account not found")


class AccountService(OwnedEntityService[Account]):
    entity_type = EntityType.ACCOUNT
    repository = AccountRepository()
    read_schema = AccountRead


class DealService(OwnedEntityService[Deal]):
    entity_type = EntityType.DEAL
    repository = DealRepository()
    read_schema = DealRead

    def _validate_references(self, db: Session, values: Mapping[str, Any]) -> None:
        super()._validate_references(db, values)
        for field, model, label in (
            ("account_id", Account, "Account"),
            ("contact_id", Contact, "Contact"),
            ("source_id", Campaign, "Source campaign"),
        ):
            ref = values.get(field)
            if ref is not None and db.get(model, ref) is None:
                raise InvalidInput(f"{label} not found")

    def _prepare_update(
        self,
        db: Session,
        ctx: AuthContext,
        record: Deal,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        stage = changes.get("stage")
        closing = stage in {"Closed Won", "Closed Lost"} and stage != record.stage
        if closing and "actual_close_date" not in changes:
            changes["actual_close_date"] = utcnow()
        return changes


class TaskService(OwnedEntityService[Task]):
    entity_type = EntityType.TASK
    repository = TaskRepository()
    read_schema = TaskRead

    def _prepare_create(self, db: Session, ctx: AuthContext, values: dict[str, Any]) -> dict[str, Any]:
        values = _apply_related_to(values)
        if values.get("status") == "Completed":
            values["completed_at"] = utcnow()
        return values

    def _prepare_update(
        self,
        db: Session,
        ctx: AuthContext,
        record: Task,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        changes = _apply_related_to(changes)
        if changes.get("status") == "Completed" and record.status != "Completed":
            changes["completed_at"] = utcnow()
        return changes


_RELATED_MODELS: Mapping[str, type[Any]] = {
    "Lead": Lead,
    "Contact": Contact,
    "Account": Account,
    "Deal": Deal,
}


class CommunicationService:
    entity_type = EntityType.COMMUNICATION
    repository = CommunicationRepository()

    def list_for_entity(
        self,
        db: Session,
        ctx: AuthContext,
        related_entity_type: str,
        related_entity_id: uuid.UUID,
    ) -> list[dict[str, Any]]:
        if related_entity_type not in _RELATED_MODELS:
            raise InvalidInput("Invalid entity type")
        records = self.repository.list(
            db,
            ctx,
            filters={"related_entity_type": related_entity_type, "related_entity_id": related_entity_id},
        )
        return project_many(db, self.entity_type.value, records, CommunicationRead)

    def _load_owned(self, db: Session, ctx: AuthContext, communication_id: uuid.UUID, verb: str) -> Communication:
        record = db.get(Communication, communication_id)
        if record is None:
            raise NotFound.for_entity(self.entity_type.value)
        if record.created_by != ctx.user_id and ctx.role != Role.SYSTEM_ADMIN:
            raise Forbidden(f"Not authorized to {verb} this communication")
        return record

    def create(self, db: Session, ctx: AuthContext, dto: CommunicationCreate) -> dict[str, Any]:
        related_model = _RELATED_MODELS[dto.related_to.entity_type]
        if db.get(related_model, dto.related_to.entity_id) is None:
            raise NotFound.for_entity(dto.related_to.entity_type)

        values = _apply_related_to(dto.model_dump())
        record = Communication(**values, created_by=ctx.user_id)
        db.add(record)
        db.commit()
        db.refresh(record)

        fan_out(
            db,
            ctx,
            action=AuditAction.CREATE,
            entity_type=self.entity_type,
            entity_id=record.id,
            details=create_details(self.entity_type, record),
        )
        return project_one(db, self.entity_type.value, record, CommunicationRead)

    def update(
        self,
        db: Session,
        ctx: AuthContext,
        communication_id: uuid.UUID,
        dto: CommunicationUpdate,
    ) -> dict[str, Any]:
        record = self._load_owned(db, ctx, communication_id, "update")
        for field, value in dto.changes().items():
            setattr(record, field, value)
        record.updated_at = utcnow()
        db.commit()
        db.refresh(record)

        fan_out(
            db,
            ctx,
            action=AuditAction.UPDATE,
            entity_type=self.entity_type,
            entity_id=record.id,
            details=dto.model_dump(mode="json", exclude_unset=True),
        )
        return project_one(db, self.entity_type.value, record, CommunicationRead)

    def delete(self, db: Session, ctx: AuthContext, communication_id: uuid.UUID) -> None:
        record = self._load_owned(db, ctx, communication_id, "delete")
        details = delete_details(self.entity_type, record)
        db.delete(record)
        db.commit()
        fan_out(
            db,
            ctx,
            action=AuditAction.DELETE,
            entity_type=self.entity_type,
            entity_id=communication_id,
            details=details,
        )


class CampaignService:
    entity_type = EntityType.CAMPAIGN
    repository = CampaignRepository()

    def list(
        self,
        db: Session,
        ctx: AuthContext,
        *,
        filters: Mapping[str, Any] | None = None,
        q: str | None = None,
    ) -> list[dict[str, Any]]:
        records = self.repository.list(db, ctx, filters=filters, q=q)
        return project_many(db, self.entity_type.value, records, CampaignRead)

    def _load(self, db: Session, campaign_id: uuid.UUID) -> Campaign:
        record = db.get(Campaign, campaign_id)
        if record is None:
            raise NotFound.for_entity(self.entity_type.value)
        return record

    def get(self, db: Session, ctx: AuthContext, campaign_id: uuid.UUID) -> dict[str, Any]:
        return project_one(db, self.entity_type.value, self._load(db, campaign_id), CampaignRead)

    def create(self, db: Session, ctx: AuthContext, dto: CampaignCreate) -> dict[str, Any]:
        record = Campaign(**dto.model_dump(), created_by=ctx.user_id)
        db.add(record)
        db.commit()
        db.refresh(record)
        fan_out(
            db,
            ctx,
            action=AuditAction.CREATE,
            entity_type=self.entity_type,
            entity_id=record.id,
            details=create_details(self.entity_type, record),
        )
        return project_one(db, self.entity_type.value, record, CampaignRead)

    def update(self, db: Session, ctx: AuthContext, campaign_id: uuid.UUID, dto: CampaignUpdate) -> dict[str, Any]:
        record = self._load(db, campaign_id)
        changes = dto.changes()
        for field, value in changes.items():
            setattr(record, field, value)
        if record.end_date is not None and as_utc(record.end_date) < as_utc(record.start_date):
            db.rollback()
            raise InvalidInput("end_date must not be before start_date")
        record.updated_at = utcnow()
        db.commit()
        db.refresh(record)
        fan_out(
            db,
            ctx,
            action=AuditAction.UPDATE,
            entity_type=self.entity_type,
            entity_id=record.id,
            details=dto.model_dump(mode="json", exclude_unset=True),
        )
        return project_one(db, self.entity_type.value, record, CampaignRead)

    def delete(self, db: Session, ctx: AuthContext, campaign_id: uuid.UUID) -> None:
        record = self._load(db, campaign_id)
        details = delete_details(self.entity_type, record)
        db.delete(record)
        db.commit()
        fan_out(
            db,
            ctx,
            action=AuditAction.DELETE,
            entity_type=self.entity_type,
            entity_id=campaign_id,
            details=details,
        )


class NotificationService:
    entity_type = EntityType.NOTIFICATION
    repository = NotificationRepository()

    def list_for_user(
        self,
        db: Session,
        ctx: AuthContext,
        *,
        is_read: bool | None = None,
        notification_type: str | None = None,
        limit: int = 50,
    ) -> tuple[list[dict[str, Any]], int]:
        records = self.repository.list(
            db,
            ctx,
            filters={"user_id": ctx.user_id, "is_read": is_read, "type": notification_type},
            limit=limit,
        )
        unread_count = db.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.user_id == ctx.user_id,
                Notification.is_read.is_(False),
            )
        )
        return project_many(db, self.entity_type.value, records, NotificationRead), int(unread_count or 0)

    def _load_own(self, db: Session, ctx: AuthContext, notification_id: uuid.UUID) -> Notification:
        record = db.get(Notification, notification_id)
        if record is None:
            raise NotFound.for_entity(self.entity_type.value)
        if record.user_id != ctx.user_id:
            raise Forbidden("Not authorized to access this notification")
        return record

    def mark_read(self, db: Session, ctx: AuthContext, notification_id: uuid.UUID) -> dict[str, Any]:
        record = self._load_own(db, ctx, notification_id)
        record.is_read = True
        record.read_at = utcnow()
        db.commit()
        db.refresh(record)
        fan_out(
            db,
            ctx,
            action=AuditAction.UPDATE,
            entity_type=self.entity_type,
            entity_id=record.id,
            details={"is_read": True},
        )
        return project_one(db, self.entity_type.value, record, NotificationRead)

    def mark_all_read(self, db: Session, ctx: AuthContext) -> int:
        result = db.execute(
            update(Notification)
            .where(Notification.user_id == ctx.user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
        )
        db.commit()
        marked = int(result.rowcount or 0)
        fan_out(
            db,
            ctx,
            action=AuditAction.UPDATE,
            entity_type=self.entity_type,
            entity_id=None,
            details={"is_read": True, "marked": marked},
        )
        return marked

    def delete(self, db: Session, ctx: AuthContext, notification_id: uuid.UUID) -> None:
        record = self._load_own(db, ctx, notification_id)
        details = delete_details(self.entity_type, record)
        db.delete(record)
        db.commit()
        fan_out(
            db,
            ctx,
            action=AuditAction.DELETE,
            entity_type=self.entity_type,
            entity_id=notification_id,
            details=details,
        )


class AuditService:
    def list_audit_logs(
        self,
        db: Session,
        *,
        user_id: uuid.UUID | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        query = select(AuditLog)
        if user_id is not None:
            query = query.where(AuditLog.user_id == user_id)
        if action:
            query = query.where(AuditLog.action == action)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if start_date is not None:
            query = query.where(AuditLog.timestamp >= start_date)
        if end_date is not None:
            query = query.where(AuditLog.timestamp <= end_date)
        query = query.order_by(AuditLog.timestamp.desc()).limit(limit)
        records = db.scalars(query).all()
        return project_many(db, "AuditLog", records, AuditLogRead)


DEFAULT_ORGANIZATION = {
    "company_name": "CRM Organization",
    "company_email": "admin@crm.com",
    "working_hours": {
        "start": "09:00",
        "end": "17:00",
        "days": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
    },
}


class OrganizationService:
    entity_type = EntityType.ORGANIZATION

    def get_or_create(self, db: Session) -> Organization:
        record = db.scalars(select(Organization).order_by(Organization.created_at.asc()).limit(1)).first()
        if record is not None:
            return record
        record = Organization(**DEFAULT_ORGANIZATION)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    def get(self, db: Session) -> dict[str, Any]:
        return project_one(db, self.entity_type.value, self.get_or_create(db), OrganizationRead)

    def update(self, db: Session, ctx: AuthContext, dto: OrganizationUpdate) -> dict[str, Any]:
        record = self.get_or_create(db)
        for field, value in dto.changes().items():
            setattr(record, field, value)
        record.updated_at = utcnow()
        db.commit()
        db.refresh(record)
        fan_out(
            db,
            ctx,
            action=AuditAction.UPDATE,
            entity_type=self.entity_type,
            entity_id=record.id,
            details=dto.model_dump(mode="json", exclude_unset=True),
        )
        return project_one(db, self.entity_type.value, record, OrganizationRead)
