"""FastAPI exception handlers for converting BookingError to HTTP responses.

Every error body has the same shape:
``{"success": false, "error": <code>, "message", "recovery", "details"}``.

The ErrorCode-to-HTTP status mapping:
- 400 Bad Request: validation, non-refundable bookings, bad webhook signatures
- 404 Not Found: unknown booking, payment or resource
- 409 Conflict: capacity, state and concurrency conflicts
- 502 Bad Gateway: payment provider failures
- 500 Internal Server Error: webhook processing failures and anything unexpected

Usage:
    from booking_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from booking_engine.models import BookingError, ErrorCode, ErrorResponse
from booking_engine.utils.logging import get_logger

logger = get_logger(__name__)

# Map ErrorCode to HTTP status codes
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_REFUNDABLE: HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_SIGNATURE: HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.CAPACITY_ERROR: HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATE: HTTP_409_CONFLICT,
    ErrorCode.CONCURRENCY_CONFLICT: HTTP_409_CONFLICT,
    ErrorCode.REFUND_IN_PROGRESS: HTTP_409_CONFLICT,
    ErrorCode.EVENT_IN_PROGRESS: HTTP_409_CONFLICT,
    ErrorCode.STRIPE_ERROR: HTTP_502_BAD_GATEWAY,
    ErrorCode.WEBHOOK_PROCESSING_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INTERNAL_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(code: ErrorCode) -> int:
    """HTTP status for an ErrorCode; unmapped codes are treated as server errors."""
    return ERROR_CODE_TO_HTTP_STATUS.get(code, HTTP_500_INTERNAL_SERVER_ERROR)


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    status_code = get_http_status_for_error(exc.code)
    if status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content=exc.to_error_response().model_dump(mode="json"),
    )


def _field_name(loc: tuple[Any, ...]) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as VALIDATION_ERROR naming the first bad field."""
    errors = exc.errors()
    first = errors[0] if errors else {"loc": (), "msg": "Invalid request"}
    field = _field_name(tuple(first.get("loc", ())))
    body = ErrorResponse.from_code(
        ErrorCode.VALIDATION_ERROR,
        f"Invalid or missing field '{field}': {first.get('msg')}",
        {
            "field": field,
            "errors": [
                {"field": _field_name(tuple(e.get("loc", ()))), "message": e.get("msg")}
                for e in errors
            ],
        },
    )
    return JSONResponse(status_code=HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback for uncaught exceptions; internal details are logged, never returned."""
    logger.exception("Unhandled exception on %s %s: %s", request.method, request.url.path, exc)
    body = ErrorResponse.from_code(ErrorCode.INTERNAL_ERROR)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=body.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
