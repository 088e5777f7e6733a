from __future__ import annotations

import uuid

from pydantic import BaseModel


class SalesSummary(BaseModel):
    total_deals: int
    won_deals: int
    lost_deals: int
    total_value: float
    won_value: float
    win_rate: float


class SalesReportRead(BaseModel):
    summary: SalesSummary
    pipeline: dict[str, int]
    value_by_stage: dict[str, float]


class LeadsSummary(BaseModel):
    total_leads: int
    converted_leads: int
    conversion_rate: float


class LeadsReportRead(BaseModel):
    summary: LeadsSummary
    status_count: dict[str, int]
    leads_by_source: dict[str, int]


class ProductivityRow(BaseModel):
    user_id: uuid.UUID
    user_name: str
    email: str
    leads: int
    deals: int
    won_deals: int
    deal_value: float
    tasks: int
    completed_tasks: int
    completion_rate: float


class ProductivityReportRead(BaseModel):
    productivity: list[ProductivityRow]


class CampaignPerformanceRow(BaseModel):
    campaign_id: uuid.UUID
    campaign_name: str
    type: str
    status: str
    budget: float | None
    leads_generated: int
    leads_converted: int
    revenue: float
    roi: float
    conversion_rate: float


class CampaignReportRead(BaseModel):
    campaign_performance: list[CampaignPerformanceRow]
