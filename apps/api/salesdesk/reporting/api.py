from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from salesdesk.api.errors import envelope
from salesdesk.core.auth import get_auth_context
from salesdesk.core.database import get_db
from salesdesk.core.rbac import require_roles
from salesdesk.platform.security.context import AuthContext
from salesdesk.reporting.service import DateRange, reporting_service


router = APIRouter(prefix="/api/reports", tags=["reports"])


def get_date_range(
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
) -> DateRange:
    return DateRange(start=start_date, end=end_date)


@router.get("/sales")
def sales_report(
    ctx: AuthContext = Depends(require_roles("reports.sales")),
    period: DateRange = Depends(get_date_range),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return envelope(reporting_service.sales(db, ctx, period))


@router.get("/leads")
def leads_report(
    ctx: AuthContext = Depends(get_auth_context),
    period: DateRange = Depends(get_date_range),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return envelope(reporting_service.leads(db, ctx, period))


@router.get("/productivity")
def productivity_report(
    _: AuthContext = Depends(require_roles("reports.productivity")),
    period: DateRange = Depends(get_date_range),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return envelope(reporting_service.productivity(db, period))


@router.get("/campaigns")
def campaign_report(
    db: Session = Depends(get_db),
    _: AuthContext = Depends(require_roles("reports.campaigns")),
) -> dict[str, Any]:
    return envelope(reporting_service.campaigns(db))
