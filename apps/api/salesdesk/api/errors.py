from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from salesdesk.context import get_correlation_id
from salesdesk.platform.security.errors import CRMError


logger = logging.getLogger("salesdesk.errors")


@dataclass
class ErrorEnvelope:
    success: bool
    message: str


def envelope(data: Any = None, *, message: str | None = None, count: int | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": True}
    if message is not None:
        payload["message"] = message
    if count is not None:
        payload["count"] = count
    payload["data"] = jsonable_encoder(data if data is not None else {})
    return payload


def error_response(request: Request, *, status_code: int, message: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=asdict(ErrorEnvelope(success=False, message=message)))
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    if correlation_id:
        response.headers["x-correlation-id"] = correlation_id
    return response


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in {"body", "query", "path"})
        text = str(error.get("msg", "Invalid value"))
        messages.append(f"{location}: {text}" if location else text)
    return "; ".join(messages) or "Invalid input"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CRMError)
    async def _handle_crm_error(request: Request, exc: CRMError) -> JSONResponse:
        logger.info(
            "request.rejected",
            extra={"path": request.url.path, "status_code": exc.status_code, "error": exc.message},
        )
        return error_response(request, status_code=exc.status_code, message=exc.message)

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(request, status_code=status.HTTP_400_BAD_REQUEST, message=_validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = f"Route {request.url.path} not found"
        else:
            message = str(exc.detail)
        return error_response(request, status_code=exc.status_code, message=message)

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("request.failed", extra={"path": request.url.path, "error": str(exc)})
        return error_response(
            request,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            message="Internal server error",
        )
