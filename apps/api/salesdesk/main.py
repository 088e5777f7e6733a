from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from salesdesk.api.errors import register_exception_handlers
from salesdesk.api.routes import router as api_router
from salesdesk.core.config import get_settings
from salesdesk.core.context import RequestContextMiddleware
from salesdesk.logging import configure_logging
from salesdesk.middleware.correlation_id import CorrelationIdMiddleware
from salesdesk.middleware.rate_limit import ApiRateLimitMiddleware
from salesdesk.middleware.request_logging import RequestLoggingMiddleware
from salesdesk.otel import get_fastapi_server_request_hook, setup_otel
from salesdesk.platform.security.policies import DEFAULT_OPERATION_POLICY, AuthorizationGate


configure_logging()
settings = get_settings()

app = FastAPI(title=settings.app_name, version="1.0.0", debug=False)
app.state.authorization_gate = AuthorizationGate(DEFAULT_OPERATION_POLICY)

app.add_middleware(ApiRateLimitMiddleware)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["x-correlation-id", "x-request-id", "Retry-After"],
)

register_exception_handlers(app)
app.include_router(api_router)

if settings.otel_enabled:
    setup_otel("salesdesk-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
