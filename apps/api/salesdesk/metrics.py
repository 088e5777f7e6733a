from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

authz_denied_total = Counter(
    "salesdesk_authz_denied_total",
    "Requests rejected by the authorization gate",
    ["operation", "role"],
)

row_scope_applied_total = Counter(
    "salesdesk_row_scope_applied_total",
    "List queries narrowed to the caller's own rows",
    ["entity_type"],
)

row_scope_denied_total = Counter(
    "salesdesk_row_scope_denied_total",
    "Single-record reads or writes rejected by row scoping",
    ["entity_type", "action"],
)

notifications_emitted_total = Counter(
    "salesdesk_notifications_emitted_total",
    "Notifications created by the side-effect fan-out",
    ["entity_type", "event"],
)

notification_failures_total = Counter(
    "salesdesk_notification_failures_total",
    "Notification writes that raised",
    ["entity_type"],
)

audit_write_failures_total = Counter(
    "salesdesk_audit_write_failures_total",
    "Audit log writes that failed and were dropped",
    ["entity_type", "action"],
)

rate_limited_total = Counter(
    "salesdesk_rate_limited_total",
    "Requests rejected by the API rate limiter",
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    return _UUID_RE.sub("{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        route_path = getattr(route, "path_format", None) or getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _PATH_PARAM_RE.sub("{id}", route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_authz_denied(operation: str, role: str) -> None:
    authz_denied_total.labels(operation=operation, role=role).inc()


def observe_row_scope_applied(entity_type: str) -> None:
    row_scope_applied_total.labels(entity_type=entity_type).inc()


def observe_row_scope_denied(entity_type: str, action: str) -> None:
    row_scope_denied_total.labels(entity_type=entity_type, action=action).inc()


def observe_notification_emitted(entity_type: str, event: str) -> None:
    notifications_emitted_total.labels(entity_type=entity_type, event=event).inc()


def observe_notification_failure(entity_type: str) -> None:
    notification_failures_total.labels(entity_type=entity_type).inc()


def observe_audit_write_failure(entity_type: str, action: str) -> None:
    audit_write_failures_total.labels(entity_type=entity_type, action=action).inc()


def observe_rate_limited() -> None:
    rate_limited_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
