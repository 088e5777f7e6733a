from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from salesdesk.core.config import get_settings
from salesdesk.core.rbac import require_roles
from salesdesk.crm.api import (
    accounts_router,
    audit_router,
    campaigns_router,
    communications_router,
    contacts_router,
    deals_router,
    leads_router,
    notifications_router,
    organization_router,
    tasks_router,
)
from salesdesk.identity.api import auth_router, users_router
from salesdesk.metrics import generate_metrics_payload, metrics_content_type
from salesdesk.platform.security.context import AuthContext
from salesdesk.platform.security.errors import NotFound
from salesdesk.reporting.api import router as reports_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(organization_router)
router.include_router(users_router)
router.include_router(leads_router)
router.include_router(accounts_router)
router.include_router(contacts_router)
router.include_router(deals_router)
router.include_router(tasks_router)
router.include_router(communications_router)
router.include_router(campaigns_router)
router.include_router(reports_router)
router.include_router(notifications_router)
router.include_router(audit_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, object]:
    settings = get_settings()
    return {
        "success": True,
        "message": f"{settings.app_name} is running",
        "environment": settings.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics", tags=["system"])
def metrics(_: AuthContext = Depends(require_roles("system.metrics"))) -> Response:
    if not get_settings().metrics_enabled:
        raise NotFound("Route /metrics not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
