"""PostgreSQL-backed repositories for account credentials and local events.

Both repositories take an asyncpg pool (or anything exposing ``fetchrow``,
``fetch`` and ``execute``) and implement the ``CredentialRepository`` and
``EventRepository`` protocols used by the sync engine.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from daybook.calendar.models import (
    AccountCredential,
    EventSource,
    LocalCalendarEvent,
    LocalEventFields,
)

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)

_ACCOUNTS_TABLE = "calendar_accounts"
_EVENTS_TABLE = "calendar_events"

_ACCOUNTS_TABLE_DDL = f"""
CREATE TABLE IF NOT EXISTS {_ACCOUNTS_TABLE} (
    user_id       TEXT NOT NULL,
    provider      TEXT NOT NULL,
    access_token  TEXT,
    refresh_token TEXT,
    expires_at    BIGINT,
    scope         TEXT,
    token_type    TEXT,
    created_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (user_id, provider)
)
"""

_EVENTS_TABLE_DDL = f"""
CREATE TABLE IF NOT EXISTS {_EVENTS_TABLE} (
    id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id      TEXT NOT NULL,
    title        TEXT NOT NULL,
    start_at     TIMESTAMPTZ NOT NULL,
    end_at       TIMESTAMPTZ NOT NULL,
    participants JSONB NOT NULL DEFAULT '[]'::jsonb,
    location     TEXT,
    meet_link    TEXT,
    source       TEXT NOT NULL,
    external_id  TEXT,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
    UNIQUE (user_id, external_id)
)
"""

_EVENTS_START_INDEX_DDL = f"""
CREATE INDEX IF NOT EXISTS ix_calendar_events_user_start
ON {_EVENTS_TABLE} (user_id, start_at)
"""

_EVENT_COLUMNS = (
    "id, user_id, title, start_at, end_at, participants, location, meet_link, "
    "source, external_id, created_at, updated_at"
)


async def ensure_schema(pool: asyncpg.Pool) -> None:
    """Create the calendar tables and indexes if they do not exist."""
    for statement in (_ACCOUNTS_TABLE_DDL, _EVENTS_TABLE_DDL, _EVENTS_START_INDEX_DDL):
        await pool.execute(statement)
    logger.debug("Calendar schema ensured")


# ---------------------------------------------------------------------------
# Row decoding helpers
# ---------------------------------------------------------------------------


def _encode_participants(participants: list[str]) -> str:
    return json.dumps(list(participants), separators=(",", ":"))


def _decode_participants(value: Any) -> list[str]:
    """Normalize a DB JSONB value into a list of email strings."""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return []
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, str) and entry]


def _coerce_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return None


def _row_to_event(row: Mapping[str, Any]) -> LocalCalendarEvent:
    raw_id = row["id"]
    return LocalCalendarEvent(
        id=raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id)),
        user_id=row["user_id"],
        title=row["title"],
        start_at=_coerce_datetime(row["start_at"]),
        end_at=_coerce_datetime(row["end_at"]),
        participants=_decode_participants(row["participants"]),
        location=row["location"],
        meet_link=row["meet_link"],
        source=EventSource(row["source"]),
        external_id=row["external_id"],
        created_at=_coerce_datetime(row["created_at"]),
        updated_at=_coerce_datetime(row["updated_at"]),
    )


def _row_to_credential(row: Mapping[str, Any]) -> AccountCredential:
    return AccountCredential(
        user_id=row["user_id"],
        provider=row["provider"],
        access_token=row["access_token"],
        refresh_token=row["refresh_token"],
        expires_at=row["expires_at"],
        scope=row["scope"],
        token_type=row["token_type"],
    )


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class PostgresCredentialRepository:
    """Account credentials stored in ``calendar_accounts``."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get(self, *, user_id: str, provider: str) -> AccountCredential | None:
        row = await self.pool.fetchrow(
            f"""
            SELECT user_id, provider, access_token, refresh_token, expires_at, scope, token_type
            FROM {_ACCOUNTS_TABLE}
            WHERE user_id = $1 AND provider = $2
            """,
            user_id,
            provider,
        )
        if row is None:
            return None
        return _row_to_credential(row)

    async def update_tokens(self, credential: AccountCredential) -> None:
        """Write all token fields of *credential* in one statement."""
        await self.pool.execute(
            f"""
            UPDATE {_ACCOUNTS_TABLE}
            SET access_token = $3,
                refresh_token = $4,
                expires_at = $5,
                scope = $6,
                token_type = $7,
                updated_at = now()
            WHERE user_id = $1 AND provider = $2
            """,
            credential.user_id,
            credential.provider,
            credential.access_token,
            credential.refresh_token,
            credential.expires_at,
            credential.scope,
            credential.token_type,
        )

    async def save(self, credential: AccountCredential) -> None:
        """Insert or replace the credential, as done after an OAuth callback."""
        await self.pool.execute(
            f"""
            INSERT INTO {_ACCOUNTS_TABLE} (
                user_id, provider, access_token, refresh_token, expires_at, scope, token_type
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (user_id, provider) DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = COALESCE(EXCLUDED.refresh_token, {_ACCOUNTS_TABLE}.refresh_token),
                expires_at = EXCLUDED.expires_at,
                scope = EXCLUDED.scope,
                token_type = EXCLUDED.token_type,
                updated_at = now()
            """,
            credential.user_id,
            credential.provider,
            credential.access_token,
            credential.refresh_token,
            credential.expires_at,
            credential.scope,
            credential.token_type,
        )
        logger.info("Stored %s credential for user=%s", credential.provider, credential.user_id)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class PostgresEventRepository:
    """Local calendar events stored in ``calendar_events``."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def upsert_external(
        self,
        *,
        user_id: str,
        external_id: str,
        fields: LocalEventFields,
    ) -> LocalCalendarEvent:
        row = await self.pool.fetchrow(
            f"""
            INSERT INTO {_EVENTS_TABLE} (
                user_id, external_id, title, start_at, end_at, participants,
                location, meet_link, source
            )
            VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9)
            ON CONFLICT (user_id, external_id) DO UPDATE SET
                title = EXCLUDED.title,
                start_at = EXCLUDED.start_at,
                end_at = EXCLUDED.end_at,
                participants = EXCLUDED.participants,
                location = EXCLUDED.location,
                meet_link = EXCLUDED.meet_link,
                source = EXCLUDED.source,
                updated_at = now()
            RETURNING {_EVENT_COLUMNS}
            """,
            user_id,
            external_id,
            fields.title,
            fields.start_at,
            fields.end_at,
            _encode_participants(fields.participants),
            fields.location,
            fields.meet_link,
            fields.source.value,
        )
        return _row_to_event(row)

    async def create(self, *, user_id: str, fields: LocalEventFields) -> LocalCalendarEvent:
        """Insert an event that has no Google counterpart (``external_id`` is NULL)."""
        row = await self.pool.fetchrow(
            f"""
            INSERT INTO {_EVENTS_TABLE} (
                user_id, title, start_at, end_at, participants, location, meet_link, source
            )
            VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8)
            RETURNING {_EVENT_COLUMNS}
            """,
            user_id,
            fields.title,
            fields.start_at,
            fields.end_at,
            _encode_participants(fields.participants),
            fields.location,
            fields.meet_link,
            fields.source.value,
        )
        return _row_to_event(row)

    async def list_for_user(self, *, user_id: str, limit: int = 100) -> list[LocalCalendarEvent]:
        rows = await self.pool.fetch(
            f"""
            SELECT {_EVENT_COLUMNS}
            FROM {_EVENTS_TABLE}
            WHERE user_id = $1
            ORDER BY start_at ASC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [_row_to_event(row) for row in rows]
