"""
Error handling and logging utilities
"""
import logging
import traceback
from typing import Optional, Dict, Any
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import sentry_sdk

from config import settings

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception"""
    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.headers = headers
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception"""
    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=404, details=details)


class UnauthorizedException(AppException):
    """Unauthorized access exception"""
    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details, headers={"WWW-Authenticate": "Bearer"})


class AuthenticationError(UnauthorizedException):
    """Missing, malformed or expired bearer token"""


class ForbiddenException(AppException):
    """Forbidden access exception"""
    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=403, details=details)


# HTTP status for a failed pipeline response, by error_code
ERROR_CODE_STATUS = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "STATE_ERROR": status.HTTP_409_CONFLICT,
    "NO_WEBSERVICE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "CERTIFICATE_ERROR": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "SEND_ERROR": status.HTTP_502_BAD_GATEWAY,
    "PROTOCOL_ERROR": status.HTTP_502_BAD_GATEWAY,
    "SOAP_FAULT": status.HTTP_502_BAD_GATEWAY,
    "PARSE_ERROR": status.HTTP_502_BAD_GATEWAY,
    "DATABASE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for_error_code(error_code: Optional[str]) -> int:
    """Codes not listed (operadora-specific rejections) are reported as 422."""
    return ERROR_CODE_STATUS.get(error_code or "", status.HTTP_422_UNPROCESSABLE_ENTITY)


def log_error(error: Exception, request: Optional[Request] = None, context: Optional[Dict[str, Any]] = None):
    """
    Log error with context and send to Sentry if configured
    """
    error_context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if request:
        error_context.update({
            "path": request.url.path,
            "method": request.method,
            "client": request.client.host if request.client else None,
        })

    if context:
        error_context.update(context)

    logger.error(f"Error occurred: {error_context}")

    # No-op when Sentry was not initialized
    sentry_sdk.capture_exception(error, contexts={"custom": error_context})


async def app_exception_handler(request: Request, exc: AppException):
    """Handle application exceptions"""
    if exc.status_code >= 500:
        log_error(exc, request)
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.message,
                "type": type(exc).__name__,
                "details": exc.details,
            }
        },
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation exceptions with better formatting"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    logger.info(f"{request.method} {request.url.path} -> 422: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "message": "Validation error",
                "type": "ValidationError",
                "details": {
                    "errors": errors
                }
            }
        }
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    log_error(exc, request, {"traceback": traceback.format_exc()})

    # Don't expose internal errors in production
    is_development = settings.ENVIRONMENT == "development"

    error_detail = {
        "message": str(exc) if is_development else "Internal server error",
        "type": type(exc).__name__,
    }

    if is_development:
        error_detail["traceback"] = traceback.format_exc().split("\n")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": error_detail
        }
    )
