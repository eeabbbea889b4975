"""Local-first event creation with best-effort publishing to Google.

A draft is always saved locally. Publishing is attempted first so that a
successful remote create can stamp the local row with its external id; any
token or Google failure downgrades the row to ``source="app"`` and is
reported back as ``remote_sync_error`` instead of being raised.
"""

from __future__ import annotations

import logging

from daybook.calendar.client import GoogleCalendarClient
from daybook.calendar.errors import CalendarSyncError
from daybook.calendar.models import (
    EventDraft,
    EventSource,
    LocalEventFields,
    PublishResult,
    RemoteEvent,
    RemoteEventCreate,
)
from daybook.calendar.normalize import normalize_participants, optional_text, resolve_meeting_link
from daybook.calendar.sync import EventRepository
from daybook.calendar.tokens import TokenManager

logger = logging.getLogger(__name__)


class EventPublisher:
    """Creates local events and mirrors them to Google when possible."""

    def __init__(
        self,
        *,
        tokens: TokenManager,
        client: GoogleCalendarClient,
        events: EventRepository,
    ) -> None:
        self._tokens = tokens
        self._client = client
        self._events = events

    async def create_and_publish(self, user_id: str, draft: EventDraft) -> PublishResult:
        participants = normalize_participants(draft.participants)
        location = optional_text(draft.location)
        meet_link = optional_text(draft.meet_link)

        remote_event: RemoteEvent | None = None
        remote_sync_error: str | None = None
        try:
            remote_event = await self._publish(
                user_id,
                RemoteEventCreate(
                    title=draft.title,
                    start_at=draft.start_at,
                    end_at=draft.end_at,
                    attendees=participants,
                    location=location,
                    meet_link=meet_link,
                ),
            )
        except CalendarSyncError as exc:
            remote_sync_error = str(exc) or "Google sync failed"
            logger.warning(
                "Publishing event for user=%s to Google failed; saving locally only: %s",
                user_id,
                remote_sync_error,
            )

        fields = LocalEventFields(
            title=draft.title,
            start_at=draft.start_at,
            end_at=draft.end_at,
            participants=participants,
            location=location,
            meet_link=meet_link,
            source=EventSource.app,
        )
        if remote_event is not None and remote_event.id:
            fields.source = EventSource.app_google
            fields.meet_link = resolve_meeting_link(remote_event) or meet_link
            # A sync pass may already have stored this Google event.
            event = await self._events.upsert_external(
                user_id=user_id, external_id=remote_event.id, fields=fields
            )
        else:
            event = await self._events.create(user_id=user_id, fields=fields)
        return PublishResult(event=event, remote_sync_error=remote_sync_error)

    async def _publish(self, user_id: str, payload: RemoteEventCreate) -> RemoteEvent:
        token = await self._tokens.get_valid_access_token(user_id)
        return await self._client.create_event(token, payload)
