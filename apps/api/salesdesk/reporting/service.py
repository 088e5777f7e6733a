from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from salesdesk.core.database import as_utc
from salesdesk.crm.models import Campaign, Deal, Lead, Task
from salesdesk.identity.models import User
from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.errors import InvalidInput
from salesdesk.platform.security.policies import Role
from salesdesk.platform.security.rls import apply_row_scope
from salesdesk.reporting.schemas import (
    CampaignPerformanceRow,
    CampaignReportRead,
    LeadsReportRead,
    LeadsSummary,
    ProductivityReportRead,
    ProductivityRow,
    SalesReportRead,
    SalesSummary,
)


DEAL_STAGES = ("Prospecting", "Proposal", "Negotiation", "Closed Won", "Closed Lost")
LEAD_STATUSES = ("New", "Contacted", "Qualified", "Lost")
PRODUCTIVITY_ROLES = (Role.SALES_EXECUTIVE, Role.SALES_MANAGER)


def _percentage(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


@dataclass(frozen=True)
class DateRange:
    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", as_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", as_utc(self.end))
        if self.start is not None and self.end is not None and self.end < self.start:
            raise InvalidInput("end_date must not be before start_date")

    def apply(self, query: Select[Any], column: Any) -> Select[Any]:
        if self.start is not None:
            query = query.where(column >= self.start)
        if self.end is not None:
            query = query.where(column <= self.end)
        return query


@dataclass(slots=True)
class ReportingService:
    def sales(self, db: Session, ctx: AuthContext, period: DateRange) -> SalesReportRead:
        query = select(Deal.stage, func.count(Deal.id), func.coalesce(func.sum(Deal.value), 0.0)).group_by(Deal.stage)
        query = period.apply(query, Deal.created_at)
        query = apply_row_scope(query, "Deal", ctx, model=Deal)

        pipeline = {stage: 0 for stage in DEAL_STAGES}
        value_by_stage = {stage: 0.0 for stage in DEAL_STAGES}
        for stage, count, value in db.execute(query).all():
            pipeline[stage] = int(count)
            value_by_stage[stage] = float(value or 0)

        total_deals = sum(pipeline.values())
        won_deals = pipeline["Closed Won"]
        return SalesReportRead(
            summary=SalesSummary(
                total_deals=total_deals,
                won_deals=won_deals,
                lost_deals=pipeline["Closed Lost"],
                total_value=sum(value_by_stage.values()),
                won_value=value_by_stage["Closed Won"],
                win_rate=_percentage(won_deals, total_deals),
            ),
            pipeline=pipeline,
            value_by_stage=value_by_stage,
        )

    def leads(self, db: Session, ctx: AuthContext, period: DateRange) -> LeadsReportRead:
        def scoped(query: Select[Any]) -> Select[Any]:
            return apply_row_scope(period.apply(query, Lead.created_at), "Lead", ctx, model=Lead)

        status_count = {status: 0 for status in LEAD_STATUSES}
        for status, count in db.execute(scoped(select(Lead.status, func.count(Lead.id)).group_by(Lead.status))).all():
            status_count[status] = int(count)

        converted = db.scalar(scoped(select(func.count(Lead.id)).where(Lead.converted_at.is_not(None)))) or 0
        by_source_query = (
            select(Lead.source_id, func.count(Lead.id)).where(Lead.source_id.is_not(None)).group_by(Lead.source_id)
        )
        leads_by_source = {str(source_id): int(count) for source_id, count in db.execute(scoped(by_source_query)).all()}

        total = sum(status_count.values())
        return LeadsReportRead(
            summary=LeadsSummary(
                total_leads=total,
                converted_leads=int(converted),
                conversion_rate=_percentage(converted, total),
            ),
            status_count=status_count,
            leads_by_source=leads_by_source,
        )

    def productivity(self, db: Session, period: DateRange) -> ProductivityReportRead:
        users = db.scalars(
            select(User)
            .where(User.role.in_([role.value for role in PRODUCTIVITY_ROLES]))
            .order_by(User.first_name.asc(), User.last_name.asc())
        ).all()

        def count(model: Any, user: User, *criteria: Any) -> int:
            query = select(func.count(model.id)).where(model.assigned_to == user.id, *criteria)
            return int(db.scalar(period.apply(query, model.created_at)) or 0)

        rows = []
        for user in users:
            tasks = count(Task, user)
            completed_tasks = count(Task, user, Task.status == "Completed")
            won_value_query = select(func.coalesce(func.sum(Deal.value), 0.0)).where(
                Deal.assigned_to == user.id,
                Deal.stage == "Closed Won",
            )
            rows.append(
                ProductivityRow(
                    user_id=user.id,
                    user_name=user.full_name,
                    email=user.email,
                    leads=count(Lead, user),
                    deals=count(Deal, user),
                    won_deals=count(Deal, user, Deal.stage == "Closed Won"),
                    deal_value=float(db.scalar(period.apply(won_value_query, Deal.created_at)) or 0),
                    tasks=tasks,
                    completed_tasks=completed_tasks,
                    completion_rate=_percentage(completed_tasks, tasks),
                )
            )
        return ProductivityReportRead(productivity=rows)

    def campaigns(self, db: Session) -> CampaignReportRead:
        campaigns = db.scalars(select(Campaign).order_by(Campaign.created_at.desc())).all()
        rows = []
        for campaign in campaigns:
            budget = campaign.budget or 0
            rows.append(
                CampaignPerformanceRow(
                    campaign_id=campaign.id,
                    campaign_name=campaign.name,
                    type=campaign.type,
                    status=campaign.status,
                    budget=campaign.budget,
                    leads_generated=campaign.leads_generated,
                    leads_converted=campaign.leads_converted,
                    revenue=campaign.revenue,
                    roi=_percentage(campaign.revenue - budget, budget),
                    conversion_rate=_percentage(campaign.leads_converted, campaign.leads_generated),
                )
            )
        return CampaignReportRead(campaign_performance=rows)


reporting_service = ReportingService()
