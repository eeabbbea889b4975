"""Pull-side reconciliation of Google events into the local event store.

One pass lists the sync window, projects each remote event onto local
fields, and upserts it keyed on ``(user_id, external_id)``. The store's
uniqueness constraint is what makes repeated passes idempotent.
"""

from __future__ import annotations

import logging
from typing import Protocol

from daybook.calendar.client import GoogleCalendarClient
from daybook.calendar.models import (
    UNTITLED_EVENT_TITLE,
    EventSource,
    LocalCalendarEvent,
    LocalEventFields,
    RemoteEvent,
    SyncResult,
)
from daybook.calendar.normalize import attendee_emails, resolve_instant, resolve_meeting_link
from daybook.calendar.tokens import TokenManager

logger = logging.getLogger(__name__)


class EventRepository(Protocol):
    """Persistence contract for local calendar events."""

    async def upsert_external(
        self,
        *,
        user_id: str,
        external_id: str,
        fields: LocalEventFields,
    ) -> LocalCalendarEvent:
        """Create or overwrite the event keyed on ``(user_id, external_id)``."""
        ...

    async def create(self, *, user_id: str, fields: LocalEventFields) -> LocalCalendarEvent:
        """Insert a new event that exists only locally."""
        ...

    async def list_for_user(self, *, user_id: str, limit: int = 100) -> list[LocalCalendarEvent]:
        """Return the user's events ordered by start time."""
        ...


def project_remote_event(event: RemoteEvent) -> LocalEventFields | None:
    """Project *event* onto local fields, or ``None`` when its times are unusable."""
    start_at = resolve_instant(event.start)
    end_at = resolve_instant(event.end)
    if start_at is None or end_at is None:
        return None

    title = event.summary if event.summary and event.summary.strip() else UNTITLED_EVENT_TITLE
    return LocalEventFields(
        title=title,
        start_at=start_at,
        end_at=end_at,
        participants=attendee_emails(event),
        location=event.location,
        meet_link=resolve_meeting_link(event),
        source=EventSource.google,
    )


class SyncReconciler:
    """Runs reconciliation passes for one user at a time."""

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

    async def sync_events_for_user(self, user_id: str) -> SyncResult:
        token = await self._tokens.get_valid_access_token(user_id)
        remote_events = await self._client.list_events(token)

        synced = 0
        skipped_cancelled = 0
        skipped_invalid_time = 0

        for event in remote_events:
            # Cancelled events stay in the local store; only new state is applied.
            if event.id is None or event.is_cancelled:
                skipped_cancelled += 1
                continue

            fields = project_remote_event(event)
            if fields is None:
                skipped_invalid_time += 1
                logger.debug("Skipping Google event %s without usable start/end", event.id)
                continue

            await self._events.upsert_external(
                user_id=user_id,
                external_id=event.id,
                fields=fields,
            )
            synced += 1

        result = SyncResult(
            synced=synced,
            total_from_google=len(remote_events),
            skipped_cancelled=skipped_cancelled,
            skipped_invalid_time=skipped_invalid_time,
        )
        logger.info(
            "Calendar sync for user=%s: synced=%d total=%d cancelled=%d invalid_time=%d",
            user_id,
            result.synced,
            result.total_from_google,
            result.skipped_cancelled,
            result.skipped_invalid_time,
        )
        return result
