import asyncio
import functools
from datetime import datetime
from typing import Dict, Any, Optional
from fastapi import status
from sqlalchemy.exc import SQLAlchemyError
import logging

logger = logging.getLogger(__name__)


class BaseCustomException(Exception):
    """Base class for custom exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(BaseCustomException):
    """Exception for validation errors"""

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            error_code=error_code or "VALIDATION_ERROR"
        )


class NotFoundError(BaseCustomException):
    """Exception for resource not found errors"""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            error_code=error_code or "NOT_FOUND_ERROR"
        )


class ConflictError(BaseCustomException):
    """Exception for conflict errors"""

    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code=error_code or "CONFLICT_ERROR"
        )


class StoreError(BaseCustomException):
    """Exception for record store failures (connectivity, timeout, permission)"""

    def __init__(
        self,
        message: str = "Record store unavailable",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            error_code=error_code or "STORE_ERROR"
        )


class BusinessLogicError(BaseCustomException):
    """Exception for business logic errors"""

    def __init__(
        self,
        message: str = "Business logic error",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            error_code=error_code or "BUSINESS_LOGIC_ERROR"
        )


def create_error_response(
    exception: BaseCustomException,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Create standardized error response"""
    response = {
        "error": exception.__class__.__name__.replace("Error", " Error"),
        "message": exception.message,
        "error_code": exception.error_code,
        "timestamp": datetime.utcnow().isoformat(),
        "request_id": request_id
    }

    # Store failures are reported generically
    if exception.details and not isinstance(exception, StoreError):
        response["details"] = exception.details

    return response


def handle_store_error(error: Exception, operation: str = "store operation") -> StoreError:
    """Convert a low-level store failure into a StoreError"""
    logger.error(f"Store error during {operation}: {error!r}")

    error_message = "Record store operation failed"
    if isinstance(error, asyncio.TimeoutError) or "timeout" in str(error).lower():
        error_message = "Record store operation timed out"
    elif "connection" in str(error).lower() or isinstance(error, ConnectionError):
        error_message = "Record store connection failed"
    elif "permission" in str(error).lower():
        error_message = "Record store access denied"

    return StoreError(
        message=error_message,
        details={"operation": operation, "original_error": str(error)},
        error_code="STORE_OPERATION_ERROR"
    )


def handle_store_errors(operation: str, timeout: Optional[float] = None):
    """Decorator for repository coroutines.

    Bounds the call by ``timeout`` seconds (defaults to
    ``STORE_TIMEOUT_SECONDS``) and converts SQLAlchemy, connection and
    timeout failures into ``StoreError``. Custom exceptions pass through.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            from app.core.config import settings

            limit = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=limit)
            except BaseCustomException:
                raise
            except (SQLAlchemyError, ConnectionError, OSError, asyncio.TimeoutError) as e:
                raise handle_store_error(e, operation) from e

        return wrapper
    return decorator
