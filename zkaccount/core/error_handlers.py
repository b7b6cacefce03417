"""
Exception handlers rendering every failure in the standard error envelope
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError, OperationalError
import traceback
from datetime import datetime
from loguru import logger

from zkaccount.core.config import get_settings
from zkaccount.core.errors import APIError, ProtocolError


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = None,
    details: dict = None,
    request_id: str = None
) -> JSONResponse:
    """Create standardized error response"""
    settings = get_settings()

    error_response = {
        "error": {
            "message": message,
            "status_code": status_code,
            "timestamp": datetime.utcnow().isoformat(),
        }
    }

    if error_code:
        error_response["error"]["error_code"] = error_code

    if details and settings.environment != "production":
        error_response["error"]["details"] = details

    if request_id:
        error_response["error"]["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        content=error_response
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle protocol and API errors"""
    if isinstance(exc, ProtocolError):
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.error_code} ({exc.message})")
        details = exc.details
    else:
        logger.error(f"API Error: {exc.message} (Status: {exc.status_code})")
        details = None

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=details,
        request_id=getattr(request.state, 'request_id', None)
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions"""
    logger.warning(f"HTTP Exception: {exc.detail} (Status: {exc.status_code})")

    return create_error_response(
        status_code=exc.status_code,
        message=exc.detail or "An error occurred",
        error_code="HTTP_ERROR",
        request_id=getattr(request.state, 'request_id', None)
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors"""
    logger.warning(f"Validation Error: {exc.errors()}")

    formatted_errors = []
    for error in exc.errors():
        formatted_errors.append({
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return create_error_response(
        status_code=422,
        message="Validation failed",
        error_code="VALIDATION_ERROR",
        details={"validation_errors": formatted_errors},
        request_id=getattr(request.state, 'request_id', None)
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle ledger store errors"""
    logger.error(f"Database Error: {str(exc)}")

    if isinstance(exc, OperationalError):
        message = "Ledger store temporarily unavailable. Please try again later."
        error_code = "NetworkUnavailable"
        status_code = 503
    else:
        message = "Ledger store error occurred"
        error_code = "DB_ERROR"
        status_code = 500

    return create_error_response(
        status_code=status_code,
        message=message,
        error_code=error_code,
        request_id=getattr(request.state, 'request_id', None)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all other unhandled exceptions"""
    settings = get_settings()

    error_id = f"ERR_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}_{id(exc)}"

    logger.error(
        f"Unhandled Exception [{error_id}]: {str(exc)}\n"
        f"Request: {request.method} {request.url}\n"
        f"Traceback: {''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))}"
    )

    details = None
    if settings.environment == "development":
        details = {
            "error_id": error_id,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc)
        }

    return create_error_response(
        status_code=500,
        message="An internal error occurred",
        error_code="INTERNAL_ERROR",
        details=details,
        request_id=getattr(request.state, 'request_id', None)
    )
