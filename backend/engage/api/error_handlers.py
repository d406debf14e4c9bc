"""Error Handlers — map exceptions raised by routes to the API error envelope.

Invariants:
    - Every error body has the shape {"error": {code, message, category, severity, ...}}
    - EngageError keeps its own status and code; 4xx logged as warning, 5xx as error
    - RequestValidationError → 400 VALIDATION_ERROR with field-level details
    - Unhandled exceptions → 500 INTERNAL_ERROR, never leaking internal details
    - The caller's X-Correlation-Id (when sent) is echoed in the envelope and logs

Design Decisions:
    - Kept out of main.py so the entry point stays wiring only
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from engage.core.errors import EngageError, ErrorSeverity

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngageError, _handle_engage_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)


def _respond(request: Request, status_code: int, body: dict) -> JSONResponse:
    correlation_id = request.headers.get(CORRELATION_HEADER)
    if correlation_id:
        body["error"]["correlation_id"] = correlation_id
    return JSONResponse(status_code=status_code, content=body)


def _log_extra(request: Request, **extra) -> dict:
    return {
        "path": request.url.path,
        "correlation_id": request.headers.get(CORRELATION_HEADER),
        **extra,
    }


async def _handle_engage_error(request: Request, exc: EngageError):
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        f"EngageError: {exc.message}",
        extra=_log_extra(
            request,
            error_code=exc.code,
            organization_id=exc.context.organization_id,
        ),
    )
    return _respond(request, exc.http_status, exc.to_response())


async def _handle_validation_error(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(loc) for loc in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    logger.warning(
        f"Validation error on {request.url.path}: {len(details)} field(s)",
        extra=_log_extra(request, error_code="VALIDATION_ERROR"),
    )
    return _respond(request, status.HTTP_400_BAD_REQUEST, {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "category": "validation",
            "severity": ErrorSeverity.ERROR.value,
            "details": details,
        },
    })


async def _handle_unexpected_error(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception on {request.url.path}: {exc}",
        exc_info=True,
        extra=_log_extra(request),
    )
    return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, {
        "error": {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "category": "internal",
            "severity": ErrorSeverity.CRITICAL.value,
        },
    })
