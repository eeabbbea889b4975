"""Diagnostic view of a user's Google calendar connection."""

from __future__ import annotations

import logging

from daybook.calendar.client import GoogleCalendarClient
from daybook.calendar.errors import CalendarSyncError
from daybook.calendar.models import GOOGLE_PROVIDER, ConnectionStatus
from daybook.calendar.tokens import CredentialRepository, TokenManager

logger = logging.getLogger(__name__)


class CalendarConnectionService:
    def __init__(
        self,
        *,
        credentials: CredentialRepository,
        tokens: TokenManager,
        client: GoogleCalendarClient,
    ) -> None:
        self._credentials = credentials
        self._tokens = tokens
        self._client = client

    async def describe(self, user_id: str) -> ConnectionStatus:
        """Summarize stored token state and, best effort, the Google account email."""
        credential = await self._credentials.get(user_id=user_id, provider=GOOGLE_PROVIDER)
        if credential is None:
            return ConnectionStatus(user_id=user_id, connected=False)

        profile_email: str | None = None
        try:
            token = await self._tokens.get_valid_access_token(user_id)
        except CalendarSyncError as exc:
            logger.warning("Skipping Google profile lookup for user=%s: %s", user_id, exc)
        else:
            profile_email = await self._client.fetch_profile_email(token)

        # Re-read so a refresh performed above is reflected in the report.
        credential = (
            await self._credentials.get(user_id=user_id, provider=GOOGLE_PROVIDER) or credential
        )
        return ConnectionStatus(
            user_id=user_id,
            connected=True,
            has_refresh_token=bool(credential.refresh_token),
            has_access_token=bool(credential.access_token),
            scope=credential.scope,
            expires_at=credential.expires_at,
            google_profile_email=profile_email,
        )
