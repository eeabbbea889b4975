"""API error handling middleware: consistent error responses.

Registers FastAPI exception handlers that convert calendar exceptions into
standardised ``{"error": {"code": "...", "message": "...", "user": "..."}}``
JSON responses.

Status code mapping:
- ``AccountNotConnectedError`` → 409 Conflict (``RECONNECT_REQUIRED``)
- ``RefreshTokenMissingError`` → 401 Unauthorized (``REAUTHENTICATE``)
- ``TokenRefreshError`` → 502 Bad Gateway (``TOKEN_REFRESH_FAILED``)
- ``RemoteRequestError`` → 502 Bad Gateway (``REMOTE_CALENDAR_ERROR``)
- ``ValueError`` → 400 Bad Request
- ``HTTPException`` → its own status, code derived from the status phrase
- ``RequestValidationError`` → 422 Unprocessable Entity (``VALIDATION_ERROR``)
- Any other ``Exception`` → 500 Internal Server Error
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from daybook.api.models import ErrorDetail, ErrorResponse
from daybook.calendar.errors import (
    AccountNotConnectedError,
    RefreshTokenMissingError,
    RemoteRequestError,
    TokenRefreshError,
)
from daybook.core.logging import get_user_context

logger = logging.getLogger(__name__)


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, user=get_user_context()))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _handle_account_not_connected(
    request: Request,
    exc: AccountNotConnectedError,
) -> JSONResponse:
    """Return 409 when the user has no Google account on file."""
    logger.info("Google account not connected for user=%s", exc.user_id)
    return _error_response(409, "RECONNECT_REQUIRED", str(exc))


async def _handle_refresh_token_missing(
    request: Request,
    exc: RefreshTokenMissingError,
) -> JSONResponse:
    """Return 401 when the stored grant cannot be refreshed."""
    logger.info("Google refresh token missing for user=%s", exc.user_id)
    return _error_response(401, "REAUTHENTICATE", str(exc))


async def _handle_token_refresh_error(
    request: Request,
    exc: TokenRefreshError,
) -> JSONResponse:
    logger.warning("Google token refresh failed (status=%s): %s", exc.status_code, exc)
    return _error_response(502, "TOKEN_REFRESH_FAILED", str(exc))


async def _handle_remote_request_error(
    request: Request,
    exc: RemoteRequestError,
) -> JSONResponse:
    logger.warning("Google Calendar request failed (status=%s): %s", exc.status_code, exc)
    return _error_response(502, "REMOTE_CALENDAR_ERROR", str(exc))


async def _handle_value_error(
    request: Request,
    exc: ValueError,
) -> JSONResponse:
    """Return 400 for validation / value errors."""
    logger.info("Validation error: %s", exc)
    return _error_response(400, "VALIDATION_ERROR", str(exc))


async def _handle_http_exception(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    try:
        code = HTTPStatus(exc.status_code).phrase.upper().replace(" ", "_")
    except ValueError:
        code = "HTTP_ERROR"
    return _error_response(exc.status_code, code, str(exc.detail))


async def _handle_request_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Return 422 when the request body or parameters fail validation."""
    errors = exc.errors()
    message = str(errors[0].get("msg", "Invalid request")) if errors else "Invalid request"
    logger.info("Request validation failed on %s: %s", request.url.path, message)
    return _error_response(422, "VALIDATION_ERROR", message)


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that catches any unhandled exception and returns a 500.

    This sits above the Starlette exception handler layer, ensuring that
    even exceptions not caught by ``add_exception_handler`` are converted
    to the standard error envelope rather than bubbling up as raw 500s.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return _error_response(500, "INTERNAL_ERROR", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application.

    Call this from ``create_app()`` after constructing the ``FastAPI`` instance.
    """
    app.add_exception_handler(AccountNotConnectedError, _handle_account_not_connected)  # type: ignore[arg-type]
    app.add_exception_handler(RefreshTokenMissingError, _handle_refresh_token_missing)  # type: ignore[arg-type]
    app.add_exception_handler(TokenRefreshError, _handle_token_refresh_error)  # type: ignore[arg-type]
    app.add_exception_handler(RemoteRequestError, _handle_remote_request_error)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, _handle_value_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_request_validation_error)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
