"""Error hierarchy for the calendar sync engine.

Every failure raised by token handling or the Google client derives from
:class:`CalendarSyncError`, so callers that must degrade gracefully (event
publishing) can catch one type while programming errors still propagate.
"""

from __future__ import annotations

import re

import httpx

_MAX_MESSAGE_CHARS = 200


class CalendarSyncError(RuntimeError):
    """Base error raised by the calendar token and request helpers."""


class AccountNotConnectedError(CalendarSyncError):
    """Raised when the user has no Google account credential on file."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__("Google account not connected; reconnect required")


class RefreshTokenMissingError(CalendarSyncError):
    """Raised when the access token is stale and no refresh token is stored."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__("Google refresh token missing. Re-authenticate with Google.")


class TokenRefreshError(CalendarSyncError):
    """Raised when the refresh-token exchange fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class RemoteRequestError(CalendarSyncError):
    """Raised when a Google Calendar API request fails."""

    action = "request"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        self.message = message
        if status_code is None:
            super().__init__(f"Google Calendar {self.action} failed: {message}")
        else:
            super().__init__(f"Google Calendar {self.action} failed ({status_code}): {message}")

    @classmethod
    def from_response(cls, response: httpx.Response) -> RemoteRequestError:
        return cls(
            safe_google_error_message(response),
            status_code=response.status_code,
            body=response.text,
        )


class RemoteListError(RemoteRequestError):
    """Raised when listing events fails."""

    action = "list events"


class RemoteCreateError(RemoteRequestError):
    """Raised when creating an event fails."""

    action = "create event"


def redact_credential_values(message: str) -> str:
    """Redact token-like values from *message*."""
    redacted = re.sub(
        r"(?i)\b(client_secret|refresh_token|access_token|token)\s*=\s*([^\s,;&]+)",
        r"\1=[REDACTED]",
        message,
    )
    redacted = re.sub(
        r"""(?i)(['"]?(?:client_secret|refresh_token|access_token|token)['"]?\s*:\s*)(['"]).*?\2""",
        r'\1"[REDACTED]"',
        redacted,
    )
    redacted = re.sub(r"(?i)\b(Bearer)\s+[A-Za-z0-9._~+/=-]+", r"\1 [REDACTED]", redacted)
    return redacted


def safe_google_error_message(response: httpx.Response) -> str:
    """Summarize a Google error response without leaking credentials."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            message = error_payload.get("message")
            if isinstance(message, str) and message.strip():
                return _squash(message)
        description = payload.get("error_description")
        if isinstance(description, str) and description.strip():
            return _squash(description)
        if isinstance(error_payload, str) and error_payload.strip():
            return _squash(error_payload)

    text = response.text.strip()
    if text:
        return _squash(text)
    return "Request failed without an error payload"


def _squash(message: str) -> str:
    return " ".join(redact_credential_values(message).split())[:_MAX_MESSAGE_CHARS]
