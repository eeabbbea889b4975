"""Request models for the calendar endpoints."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from daybook.calendar.models import EventDraft


class EventCreateRequest(BaseModel):
    """Body of ``POST /api/calendar/events``.

    ``participants`` accepts either a comma-separated string or a list of
    email addresses. Naive timestamps are read as UTC.
    """

    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    title: str = Field(min_length=1, max_length=500)
    start_at: datetime
    end_at: datetime
    participants: str | list[str] | None = None
    location: str | None = None
    meet_link: str | None = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("title must not be blank")
        return normalized

    @field_validator("start_at", "end_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)

    @model_validator(mode="after")
    def _end_after_start(self) -> EventCreateRequest:
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self

    def to_draft(self) -> EventDraft:
        return EventDraft(
            title=self.title,
            start_at=self.start_at,
            end_at=self.end_at,
            participants=self.participants,
            location=self.location,
            meet_link=self.meet_link,
        )
