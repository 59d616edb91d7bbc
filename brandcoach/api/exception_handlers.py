"""
Global exception handlers for FastAPI.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from brandcoach.core.exceptions import (
    CoachingSystemError,
    ConfigurationError,
    InvalidPhaseError,
    NoPendingTurnError,
    PersistenceError,
    TurnFailedError,
    TurnInProgressError,
    UnknownCategoryError,
    ValidationError,
)

log = structlog.get_logger(__name__)


def status_for(exc: CoachingSystemError) -> int:
    """HTTP status code for an application error."""
    if isinstance(exc, UnknownCategoryError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, (TurnInProgressError, InvalidPhaseError, NoPendingTurnError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, TurnFailedError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(exc, PersistenceError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def setup_exception_handlers(app: FastAPI):
    """Register custom exception handlers with the FastAPI application.

    Turn failures carry retryable=true so clients can offer a retry button
    that calls the retry endpoint.
    """

    @app.exception_handler(CoachingSystemError)
    async def coaching_system_error_handler(
        request: Request,
        exc: CoachingSystemError,
    ) -> JSONResponse:
        status_code = status_for(exc)

        log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        ).warning(
            "request_error",
            message=exc.message,
            status_code=status_code,
        )

        error = {"type": type(exc).__name__, "message": exc.message}
        if isinstance(exc, TurnFailedError):
            error["reason"] = exc.reason
            error["retryable"] = exc.retryable

        return JSONResponse(status_code=status_code, content={"error": error})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request,
        exc: ConfigurationError,
    ) -> JSONResponse:
        """Handle configuration errors with HTTP 500 status."""
        log.error(
            "configuration_error",
            path=request.url.path,
            message=exc.message,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "ConfigurationError",
                    "message": "Server configuration error",
                }
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle all unhandled exceptions with HTTP 500 status."""
        log.bind(
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        ).error(
            "unhandled_exception",
            message=str(exc),
            exc_info=exc,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "type": "InternalServerError",
                    "message": "An unexpected error occurred",
                }
            },
        )
