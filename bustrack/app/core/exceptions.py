"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, List

logger = logging.getLogger("bustrack.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class AuthProviderError(AppException):
    """
    Raised when the identity provider rejects a sign-in.

    The provider code is kept in details so clients can branch on it;
    the message is already the user-facing text for that code.
    """

    def __init__(self, provider_code: str, message: str, status_code: int = status.HTTP_401_UNAUTHORIZED):
        self.provider_code = provider_code
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status_code,
            details={"provider_code": provider_code}
        )


class NotADriverError(AppException):
    """Raised when a credential login succeeds for an account that is not a driver."""

    def __init__(self, message: str, reason: str):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_003",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"reason": reason, "signed_out": True}
        )


class StudentEmailValidationError(AppException):
    """Raised when a student signs in with an email outside the institutional pattern."""

    def __init__(self, message: str, email: str = None):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_004",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"email": email, "signed_out": True}
        )


class GeolocationUnavailableError(AppException):
    """Raised when the device cannot provide positions at all."""

    def __init__(self, message: str = "Geolocation is not supported by this device."):
        super().__init__(
            message=message,
            error_code="ERR_GEO_001",
            status_code=status.HTTP_400_BAD_REQUEST
        )


class GeolocationPermissionError(AppException):
    """Raised when the user denied location access."""

    def __init__(self, message: str = "Location permission was denied. Allow location access to start tracking."):
        super().__init__(
            message=message,
            error_code="ERR_GEO_002",
            status_code=status.HTTP_403_FORBIDDEN
        )


class DriverRegistryError(AppException):
    """Raised when the driver registry cannot be written. Safe to retry."""

    def __init__(self, message: str = "Failed to save driver. Please try again."):
        super().__init__(
            message=message,
            error_code="ERR_REGISTRY_001",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"retryable": True}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    # ctx may carry the raw exception object, which JSONResponse cannot encode
    return [
        {key: value for key, value in error.items() if key != "ctx"}
        for error in exc.errors()
    ]


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
