"""Thin Google Calendar REST client.

The client holds no token state and performs no retries; callers obtain a
bearer token from :class:`~daybook.calendar.tokens.TokenManager` and decide
their own retry policy.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from daybook.calendar.errors import RemoteCreateError, RemoteListError, RemoteRequestError
from daybook.calendar.models import RemoteEvent, RemoteEventCreate
from daybook.calendar.normalize import google_rfc3339
from daybook.config import GoogleConfig, SyncConfig
from daybook.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)


def build_event_body(payload: RemoteEventCreate) -> dict[str, Any]:
    """Translate an outbound payload into a Google Calendar event body."""
    body: dict[str, Any] = {
        "summary": payload.title,
        "start": {"dateTime": google_rfc3339(payload.start_at)},
        "end": {"dateTime": google_rfc3339(payload.end_at)},
        "attendees": [
            {"email": email.strip()} for email in payload.attendees if email and email.strip()
        ],
    }
    if payload.location and payload.location.strip():
        body["location"] = payload.location.strip()
    if payload.meet_link and payload.meet_link.strip():
        # Google only assigns conference links it creates itself, so a
        # caller-supplied link travels in the description.
        body["description"] = f"Meet link: {payload.meet_link.strip()}"
    return body


class GoogleCalendarClient:
    """Google Calendar API v3 calls used by sync and publish."""

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        google: GoogleConfig,
        sync: SyncConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._http_client = http_client
        self._google = google
        self._sync = sync or SyncConfig()
        self._clock = clock

    @property
    def events_url(self) -> str:
        calendar_id = quote(self._sync.calendar_id, safe="")
        return f"{self._google.api_base_url}/calendars/{calendar_id}/events"

    def sync_window_params(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "singleEvents": "true",
            "orderBy": "startTime",
            "timeMin": google_rfc3339(now - timedelta(days=self._sync.past_days)),
            "timeMax": google_rfc3339(now + timedelta(days=self._sync.future_days)),
            "maxResults": str(self._sync.max_results),
        }

    async def list_events(self, token: str) -> list[RemoteEvent]:
        """List events in the sliding sync window, ordered by start time."""
        payload = await self._request_json(
            "GET",
            self.events_url,
            token,
            error_cls=RemoteListError,
            params=self.sync_window_params(),
        )

        items = payload.get("items")
        if items is None:
            return []
        if not isinstance(items, list):
            raise RemoteListError("Google Calendar response 'items' is not an array")

        events: list[RemoteEvent] = []
        for item in items:
            if not isinstance(item, dict):
                logger.warning("Dropping non-object event item from Google listing")
                continue
            events.append(RemoteEvent.model_validate(item))
        return events

    async def create_event(self, token: str, payload: RemoteEventCreate) -> RemoteEvent:
        """Create an event on the user's calendar and return Google's copy."""
        response_payload = await self._request_json(
            "POST",
            self.events_url,
            token,
            error_cls=RemoteCreateError,
            json_body=build_event_body(payload),
        )
        try:
            event = RemoteEvent.model_validate(response_payload)
        except ValidationError as exc:
            raise RemoteCreateError(f"Unexpected event payload: {exc}") from exc
        if event.id is None:
            raise RemoteCreateError("Google Calendar response is missing the event id")
        return event

    async def fetch_profile_email(self, token: str) -> str | None:
        """Best-effort lookup of the Google account email; never raises."""
        try:
            response = await self._http_client.get(
                self._google.userinfo_url,
                headers=_auth_headers(token),
            )
        except httpx.HTTPError as exc:
            logger.warning("Google profile lookup failed: %s", exc)
            return None

        if response.status_code < 200 or response.status_code >= 300:
            logger.warning("Google profile lookup returned status %d", response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Google profile lookup returned invalid JSON")
            return None

        email = payload.get("email") if isinstance(payload, dict) else None
        if not isinstance(email, str) or not email.strip():
            return None
        return email.strip()

    async def _request_json(
        self,
        method: str,
        url: str,
        token: str,
        *,
        error_cls: type[RemoteRequestError],
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._http_client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=_auth_headers(token),
            )
        except httpx.HTTPError as exc:
            raise error_cls(f"transport error: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise error_cls.from_response(response)

        try:
            payload = response.json()
        except ValueError as exc:
            raise error_cls(
                "Google Calendar API returned invalid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        if not isinstance(payload, dict):
            raise error_cls(
                "Google Calendar API returned an unexpected JSON payload shape",
                status_code=response.status_code,
                body=response.text,
            )
        return payload


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}", "Accept": "application/json"}
