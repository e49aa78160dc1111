"""Exception handlers that render every failure as the standard envelope.

Body shape: ``{"code", "message", "data": null, "details"}``. Ledger errors
carry their own code and kind; storage exceptions are first translated into
ledger errors so clients see a single vocabulary.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from microloan.services.ledger_errors import LedgerError, LedgerErrorKind, from_storage_error

logger = logging.getLogger(__name__)

_CODE_BY_STATUS = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limited",
    503: "service_unavailable",
}
_REQUEST_SECTIONS = {"body", "query", "path", "header"}


def _phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def error_response(status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    payload = {"code": code, "message": message, "data": None, "details": details or {}}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _CODE_BY_STATUS.get(exc.status_code, "http_error")
    if isinstance(exc.detail, str):
        message, details = exc.detail, {"detail": exc.detail}
    else:
        message, details = _phrase(exc.status_code), {"detail": exc.detail}
    response = error_response(exc.status_code, code, message, details)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def _describe_validation(errors: list[dict[str, Any]]) -> str:
    if not errors:
        return "Validation failed"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in _REQUEST_SECTIONS)
    reason = first.get("msg") or "Validation failed"
    return f"{location}: {reason}" if location else str(reason)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = list(exc.errors())
    return error_response(422, "validation_error", _describe_validation(errors), {"errors": errors})


async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if exc.kind is LedgerErrorKind.STORAGE_FAILURE:
        logger.error("Ledger storage failure code=%s path=%s", exc.code, request.url.path)
    else:
        logger.info("Ledger operation rejected code=%s kind=%s path=%s", exc.code, exc.kind.value, request.url.path)
    return error_response(exc.status_code, exc.code, exc.message, {"kind": exc.kind.value, **exc.details})


async def storage_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    translated = from_storage_error(exc)
    if translated.kind is LedgerErrorKind.STORAGE_FAILURE:
        logger.exception("Storage failure path=%s", request.url.path)
    else:
        logger.warning("Storage conflict code=%s path=%s", translated.code, request.url.path)
    return error_response(
        translated.status_code,
        translated.code,
        translated.message,
        {"kind": translated.kind.value, **translated.details},
    )


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = error_response(429, "rate_limited", _phrase(429), {"limit": str(exc.detail)})
    if isinstance(getattr(exc, "headers", None), dict):
        response.headers.update(exc.headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error path=%s", request.url.path)
    return error_response(500, "internal_server_error", "Internal server error")


def register_exception_handlers(app) -> None:
    # StaleDataError and IntegrityError are SQLAlchemyError subclasses.
    handlers = {
        StarletteHTTPException: http_exception_handler,
        RequestValidationError: validation_exception_handler,
        LedgerError: ledger_exception_handler,
        SQLAlchemyError: storage_exception_handler,
        RateLimitExceeded: rate_limit_exception_handler,
        Exception: unhandled_exception_handler,
    }
    for exc_class, handler in handlers.items():
        app.add_exception_handler(exc_class, handler)
