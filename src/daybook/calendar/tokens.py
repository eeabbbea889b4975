"""OAuth access-token lifecycle for a user's Google calendar account.

``TokenManager`` guarantees that callers either receive an access token that
stays valid past the refresh buffer, or a well-defined
:class:`~daybook.calendar.errors.CalendarSyncError` subclass.

Refreshes are single-flight per ``(user_id, provider)``: concurrent callers
for the same user wait on one keyed lock, re-read the stored credential and
reuse the token the first caller wrote.
"""

from __future__ import annotations

import asyncio
import logging
import math
import weakref
from typing import Any, Protocol

import httpx

from daybook.calendar.errors import (
    AccountNotConnectedError,
    RefreshTokenMissingError,
    TokenRefreshError,
    safe_google_error_message,
)
from daybook.calendar.models import GOOGLE_PROVIDER, AccountCredential
from daybook.config import AuthConfig, GoogleConfig
from daybook.core.clock import Clock, epoch_seconds, utc_now

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_SECONDS = 3600
MAX_EXPIRES_IN_SECONDS = 365 * 24 * 3600


class CredentialRepository(Protocol):
    """Persistence contract for account credential records."""

    async def get(self, *, user_id: str, provider: str) -> AccountCredential | None:
        """Load the credential for user/provider, or ``None``."""
        ...

    async def update_tokens(self, credential: AccountCredential) -> None:
        """Persist the token fields of *credential* in a single write."""
        ...


class TokenManager:
    """Hands out valid Google access tokens, refreshing them when stale."""

    def __init__(
        self,
        *,
        credentials: CredentialRepository,
        google: GoogleConfig,
        http_client: httpx.AsyncClient,
        auth: AuthConfig | None = None,
        clock: Clock = utc_now,
        provider: str = GOOGLE_PROVIDER,
    ) -> None:
        self._credentials = credentials
        self._google = google
        self._http_client = http_client
        self._buffer_seconds = (auth or AuthConfig()).refresh_buffer_seconds
        self._clock = clock
        self._provider = provider
        # Entries vanish once no caller holds or awaits the lock.
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def get_valid_access_token(self, user_id: str) -> str:
        credential = await self._load(user_id)
        if self._token_is_fresh(credential):
            assert credential.access_token is not None
            return credential.access_token

        async with self._lock_for(user_id):
            # Another caller may have refreshed while we waited.
            credential = await self._load(user_id)
            if self._token_is_fresh(credential):
                assert credential.access_token is not None
                return credential.access_token

            if not credential.refresh_token:
                raise RefreshTokenMissingError(user_id)

            return await self._refresh(credential)

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        key = (user_id, self._provider)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def _load(self, user_id: str) -> AccountCredential:
        credential = await self._credentials.get(user_id=user_id, provider=self._provider)
        if credential is None:
            raise AccountNotConnectedError(user_id)
        return credential

    def _token_is_fresh(self, credential: AccountCredential) -> bool:
        if not credential.access_token or credential.expires_at is None:
            return False
        return credential.expires_at > epoch_seconds(self._clock) + self._buffer_seconds

    async def _refresh(self, credential: AccountCredential) -> str:
        assert credential.refresh_token is not None
        now_seconds = epoch_seconds(self._clock)
        try:
            response = await self._http_client.post(
                self._google.token_url,
                data={
                    "client_id": self._google.client_id,
                    "client_secret": self._google.client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": credential.refresh_token,
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TokenRefreshError(f"Google OAuth token refresh request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise TokenRefreshError(
                "Failed to refresh Google token "
                f"({response.status_code}): {safe_google_error_message(response)}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise TokenRefreshError(
                "Google OAuth token endpoint returned invalid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        if not isinstance(payload, dict):
            payload = {}
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token.strip():
            raise TokenRefreshError(
                "Google OAuth token response is missing a non-empty access_token",
                status_code=response.status_code,
            )

        refreshed = credential.model_copy(
            update={
                "access_token": access_token.strip(),
                "expires_at": now_seconds + _coerce_expires_in_seconds(payload.get("expires_in")),
                "refresh_token": _non_empty(payload.get("refresh_token"))
                or credential.refresh_token,
                "scope": _non_empty(payload.get("scope")) or credential.scope,
                "token_type": _non_empty(payload.get("token_type")) or credential.token_type,
            }
        )
        await self._credentials.update_tokens(refreshed)
        logger.info(
            "Refreshed Google access token for user=%s (expires_at=%s, rotated_refresh=%s)",
            credential.user_id,
            refreshed.expires_at,
            refreshed.refresh_token != credential.refresh_token,
        )
        assert refreshed.access_token is not None
        return refreshed.access_token


def _coerce_expires_in_seconds(value: Any) -> int:
    """Return a usable ``expires_in``, falling back to one hour for odd values.

    Non-finite, non-positive and implausibly large lifetimes (over a year)
    are all treated as missing.
    """
    if isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()) or len(text) > 12:
            return DEFAULT_EXPIRES_IN_SECONDS
        value = int(text)
    if isinstance(value, bool) or not isinstance(value, int | float):
        return DEFAULT_EXPIRES_IN_SECONDS
    # Compare before isfinite(): huge ints cannot be converted to float.
    if value <= 0 or value > MAX_EXPIRES_IN_SECONDS or not math.isfinite(value):
        return DEFAULT_EXPIRES_IN_SECONDS
    return int(value) or DEFAULT_EXPIRES_IN_SECONDS


def _non_empty(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None
