"""Pydantic models shared by the calendar sync engine.

Three families live here:

- provider-shaped ``Remote*`` models parsed from Google Calendar JSON
- the local ``AccountCredential`` / ``LocalCalendarEvent`` records
- result surfaces (``SyncResult``, ``PublishResult``) returned to callers
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

GOOGLE_PROVIDER = "google"
UNTITLED_EVENT_TITLE = "Untitled event"


class EventSource(StrEnum):
    """Where a local calendar event came from."""

    app = "app"
    google = "google"
    app_google = "app+google"


# ---------------------------------------------------------------------------
# Remote (provider-shaped) models
# ---------------------------------------------------------------------------


class _RemoteModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RemoteEventTime(_RemoteModel):
    """A Google start/end boundary: either a precise ``dateTime`` or an all-day ``date``."""

    date_time: str | None = Field(default=None, alias="dateTime")
    date: str | None = None
    time_zone: str | None = Field(default=None, alias="timeZone")

    @field_validator("date_time", "date", "time_zone", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip()
        return normalized or None


class RemoteAttendee(_RemoteModel):
    email: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip()
        return normalized or None


class RemoteEvent(_RemoteModel):
    """One item of a Google Calendar events listing.

    ``start``/``end`` are ``None`` both when the key is absent and when it is
    explicitly ``null``; the normalizer treats both as "no usable time".
    """

    id: str | None = None
    summary: str | None = None
    start: RemoteEventTime | None = None
    end: RemoteEventTime | None = None
    attendees: list[RemoteAttendee] = Field(default_factory=list)
    location: str | None = None
    hangout_link: str | None = Field(default=None, alias="hangoutLink")
    html_link: str | None = Field(default=None, alias="htmlLink")
    status: str | None = None
    updated: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _boundary_must_be_object(cls, value: Any) -> Any:
        return value if isinstance(value, dict | RemoteEventTime) else None

    @field_validator("attendees", mode="before")
    @classmethod
    def _drop_malformed_attendees(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict | RemoteAttendee)]

    @field_validator(
        "summary", "location", "hangout_link", "html_link", "status", "updated", mode="before"
    )
    @classmethod
    def _non_string_to_none(cls, value: Any) -> str | None:
        return value if isinstance(value, str) else None

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"


class RemoteEventCreate(BaseModel):
    """Outbound payload for creating a Google Calendar event."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    start_at: datetime
    end_at: datetime
    attendees: list[str] = Field(default_factory=list)
    location: str | None = None
    meet_link: str | None = None


# ---------------------------------------------------------------------------
# Local records
# ---------------------------------------------------------------------------


class AccountCredential(BaseModel):
    """OAuth token state for one user's Google account."""

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1)
    provider: str = GOOGLE_PROVIDER
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int | None = None
    scope: str | None = None
    token_type: str | None = None

    def __repr__(self) -> str:
        return (
            f"AccountCredential("
            f"user_id={self.user_id!r}, "
            f"provider={self.provider!r}, "
            f"access_token={'<REDACTED>' if self.access_token else None}, "
            f"refresh_token={'<REDACTED>' if self.refresh_token else None}, "
            f"expires_at={self.expires_at!r}, "
            f"scope={self.scope!r})"
        )

    __str__ = __repr__


class LocalEventFields(BaseModel):
    """Mutable fields written on create or upsert of a local event."""

    model_config = ConfigDict(extra="forbid")

    title: str
    start_at: datetime
    end_at: datetime
    participants: list[str] = Field(default_factory=list)
    location: str | None = None
    meet_link: str | None = None
    source: EventSource


class LocalCalendarEvent(LocalEventFields):
    """A calendar event as stored in the local database."""

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: UUID
    user_id: str
    external_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ---------------------------------------------------------------------------
# Inputs and result surfaces
# ---------------------------------------------------------------------------


class EventDraft(BaseModel):
    """A locally entered event, already validated by the caller."""

    model_config = ConfigDict(extra="forbid")

    title: str
    start_at: datetime
    end_at: datetime
    participants: str | list[str] | None = None
    location: str | None = None
    meet_link: str | None = None


class SyncResult(BaseModel):
    """Outcome counters from one reconciliation pass."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    synced: int = 0
    total_from_google: int = 0
    skipped_cancelled: int = 0
    skipped_invalid_time: int = 0

    @model_validator(mode="after")
    def _counts_add_up(self) -> SyncResult:
        accounted = self.synced + self.skipped_cancelled + self.skipped_invalid_time
        if accounted > self.total_from_google:
            raise ValueError("sync counters exceed total_from_google")
        return self


class PublishResult(BaseModel):
    """The locally created event plus any remote publish warning."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event: LocalCalendarEvent
    remote_sync_error: str | None = None


class ConnectionStatus(BaseModel):
    """Diagnostic view of a user's Google calendar connection."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    connected: bool
    has_refresh_token: bool = False
    has_access_token: bool = False
    scope: str | None = None
    expires_at: int | None = None
    google_profile_email: str | None = None
