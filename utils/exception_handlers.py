"""
Global Exception Handlers

Safety net for errors that escape a route. OAuth errors map to generic
messages so the client never learns which secret is missing or why a
state was rejected.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
import logging

from utils.error_responses import CallbackError, error_json
from utils.oauth_base import (
    OAuthException,
    ConfigurationError,
    InvalidStateError,
    UnsupportedPlatformError,
)

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPExceptions in the {"success": false, "error": ...} shape."""
    logger.warning(
        f"HTTP Exception: {exc.detail} (Status: {exc.status_code}, Path: {request.url.path})"
    )
    response = error_json(str(exc.detail), exc.status_code)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors.

    Returns:
        400 with field-level details
    """
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", []) if part != "body"),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": "Invalid request", "details": errors},
    )


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return error_json("Integration not configured", status.HTTP_500_INTERNAL_SERVER_ERROR)


async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    return error_json(CallbackError.INVALID_STATE.value, status.HTTP_400_BAD_REQUEST)


async def unsupported_platform_handler(request: Request, exc: UnsupportedPlatformError) -> JSONResponse:
    return error_json("Unsupported platform", status.HTTP_404_NOT_FOUND)


async def oauth_exception_handler(request: Request, exc: OAuthException) -> JSONResponse:
    logger.error(f"Unhandled OAuth error on {request.url.path}: {exc}")
    return error_json("Upstream provider error", status.HTTP_502_BAD_GATEWAY)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all handler for unexpected exceptions.

    Logs full error details but returns a generic message to the client.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=exc)
    return error_json("Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)


def register_exception_handlers(app):
    """
    Register all exception handlers with the FastAPI app.

    Usage:
        from utils.exception_handlers import register_exception_handlers
        register_exception_handlers(app)
    """
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(InvalidStateError, invalid_state_handler)
    app.add_exception_handler(UnsupportedPlatformError, unsupported_platform_handler)
    app.add_exception_handler(OAuthException, oauth_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
