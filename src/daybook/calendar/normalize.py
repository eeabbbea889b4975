"""Pure helpers that project Google event shapes onto local event fields."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import UTC, date, datetime

from daybook.calendar.models import RemoteEvent, RemoteEventTime

logger = logging.getLogger(__name__)

_HTTP_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)


def google_rfc3339(value: datetime) -> str:
    normalized = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return normalized.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_google_datetime(value: str) -> datetime:
    normalized = value.strip()
    if normalized.endswith(("Z", "z")):
        normalized = f"{normalized[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Google Calendar returned an invalid dateTime: {value}") from exc
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def resolve_instant(boundary: RemoteEventTime | None) -> datetime | None:
    """Resolve a Google start/end boundary to an aware instant.

    A precise ``dateTime`` wins. A date-only (all-day) value is read as UTC
    midnight. When neither field is usable the result is ``None`` and the
    caller must treat the event as having no valid time.
    """
    if boundary is None:
        return None

    if boundary.date_time is not None:
        try:
            return parse_google_datetime(boundary.date_time)
        except ValueError:
            logger.debug("Unparseable dateTime %r", boundary.date_time)
            return None

    if boundary.date is not None:
        try:
            parsed = date.fromisoformat(boundary.date)
        except ValueError:
            logger.debug("Unparseable all-day date %r", boundary.date)
            return None
        return datetime(parsed.year, parsed.month, parsed.day, tzinfo=UTC)

    return None


def resolve_meeting_link(event: RemoteEvent) -> str | None:
    """Pick the best joinable link for *event*.

    Precedence: the dedicated meeting-room link, then a location that is
    itself an http(s) URL, then the event's generic web link.
    """
    if event.hangout_link:
        return event.hangout_link
    if event.location and _HTTP_URL_PATTERN.match(event.location):
        return event.location
    return event.html_link or None


def attendee_emails(event: RemoteEvent) -> list[str]:
    return [attendee.email for attendee in event.attendees if attendee.email]


def normalize_participants(raw: str | Iterable[object] | None) -> list[str]:
    """Turn a comma-separated string or a list into trimmed, unique emails.

    Order of first appearance is preserved; blank entries are dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        candidates: Iterable[object] = raw.split(",")
    else:
        candidates = raw

    participants: list[str] = []
    seen: set[str] = set()
    for entry in candidates:
        if entry is None:
            continue
        normalized = str(entry).strip()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        participants.append(normalized)
    return participants


def optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None
