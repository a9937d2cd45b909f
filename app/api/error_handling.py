from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from app.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
)


logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
)
_CODE_BY_STATUS = {
    400: "ValidationError",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    409: "Conflict",
}


def status_for_error(exc: DomainError) -> int:
    for error_class, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return status_code
    return 500


def error_response(status_code: int, code: str, message: str, *, error_id: str | None = None) -> JSONResponse:
    content = {"error": code, "message": message}
    if error_id is not None:
        content["errorId"] = error_id
    return JSONResponse(status_code=status_code, content=content)


def _server_error(request: Request, *, code: str, message: str, exc: Exception) -> JSONResponse:
    error_id = uuid4().hex
    logger.error(
        "api: server_error error_id=%s path=%s method=%s code=%s",
        error_id,
        request.url.path,
        request.method,
        code,
        exc_info=exc,
    )
    return error_response(500, code, message, error_id=error_id)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def handle_domain_error(request: Request, exc: DomainError):
        status_code = status_for_error(exc)
        if status_code >= 500:
            # upstream and internal detail stays in the logs
            return _server_error(request, code=exc.code, message=type(exc).default_message, exc=exc)
        logger.info(
            "api: domain_error path=%s status=%s code=%s",
            request.url.path,
            status_code,
            exc.code,
        )
        return error_response(status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        if location:
            message = f"{location}: {message}"
        return error_response(400, "ValidationError", message)

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code >= 500:
            return _server_error(request, code="InternalError", message=message, exc=exc)
        code = _CODE_BY_STATUS.get(exc.status_code, "Error")
        return error_response(exc.status_code, code, message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        return _server_error(request, code="InternalError", message="Unexpected error.", exc=exc)
