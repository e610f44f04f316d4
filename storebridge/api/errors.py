"""Exception handlers.

Every error leaves the API in the same shape:
``{error_code, message, details, request_id}``.
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storebridge.domain.exceptions import DomainError

logger = structlog.get_logger()

ERROR_STATUS_CODES: dict[str, int] = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "PAYMENT_VERIFICATION_FAILED": status.HTTP_402_PAYMENT_REQUIRED,
    "PAYMENT_SETTLEMENT_FAILED": status.HTTP_402_PAYMENT_REQUIRED,
    "ORDER_INTENT_EXPIRED": status.HTTP_410_GONE,
    "VARIANT_UNAVAILABLE": status.HTTP_409_CONFLICT,
    "INTERNAL_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_body(
    request: Request,
    error_code: str,
    message: str,
    details: dict | None = None,
) -> dict:
    return {
        "error_code": error_code,
        "message": message,
        "details": details or {},
        "request_id": getattr(request.state, "request_id", None),
    }


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors to their HTTP status."""
    status_code = ERROR_STATUS_CODES.get(exc.error_code, status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error("Domain error", error_code=exc.error_code, error=exc.message)
    else:
        logger.info("Request rejected", error_code=exc.error_code, error=exc.message)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(error_body(request, exc.error_code, exc.message, exc.details)),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body/query validation failures."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(
            request,
            "VALIDATION_ERROR",
            "Request validation failed",
            {"errors": jsonable_encoder(exc.errors())},
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details")
    else:
        error_code = "NOT_FOUND" if exc.status_code == 404 else "ERROR"
        message = str(detail)
        details = None

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, error_code, message, details),
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(request, "INTERNAL_ERROR", "An internal error occurred"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
