"""Shared fixtures for the daybook test suite.

Provides in-memory stand-ins for the credential and event repositories, a
frozen clock, and a factory for ``httpx.AsyncClient`` instances backed by
``httpx.MockTransport``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from uuid import UUID, uuid4

import httpx
import pytest

from daybook.calendar.models import (
    AccountCredential,
    LocalCalendarEvent,
    LocalEventFields,
)
from daybook.config import AuthConfig, DaybookConfig, GoogleConfig, SyncConfig

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
FIXED_NOW_SECONDS = int(FIXED_NOW.timestamp())


class InMemoryCredentialRepository:
    """Credential store double that records every token write."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], AccountCredential] = {}
        self.writes: list[AccountCredential] = []
        self.reads = 0

    def put(self, credential: AccountCredential) -> None:
        self.records[(credential.user_id, credential.provider)] = credential

    async def get(self, *, user_id: str, provider: str) -> AccountCredential | None:
        self.reads += 1
        record = self.records.get((user_id, provider))
        return record.model_copy() if record is not None else None

    async def update_tokens(self, credential: AccountCredential) -> None:
        self.writes.append(credential)
        self.records[(credential.user_id, credential.provider)] = credential


class InMemoryEventRepository:
    """Event store double honouring the ``(user_id, external_id)`` uniqueness rule."""

    def __init__(self) -> None:
        self.rows: dict[UUID, LocalCalendarEvent] = {}

    async def upsert_external(
        self,
        *,
        user_id: str,
        external_id: str,
        fields: LocalEventFields,
    ) -> LocalCalendarEvent:
        for row_id, row in self.rows.items():
            if row.user_id == user_id and row.external_id == external_id:
                updated = LocalCalendarEvent(
                    id=row_id,
                    user_id=user_id,
                    external_id=external_id,
                    created_at=row.created_at,
                    updated_at=FIXED_NOW,
                    **fields.model_dump(),
                )
                self.rows[row_id] = updated
                return updated
        return self._insert(user_id, external_id, fields)

    async def create(self, *, user_id: str, fields: LocalEventFields) -> LocalCalendarEvent:
        return self._insert(user_id, None, fields)

    def _insert(
        self, user_id: str, external_id: str | None, fields: LocalEventFields
    ) -> LocalCalendarEvent:
        event = LocalCalendarEvent(
            id=uuid4(),
            user_id=user_id,
            external_id=external_id,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
            **fields.model_dump(),
        )
        self.rows[event.id] = event
        return event

    async def list_for_user(self, *, user_id: str, limit: int = 100) -> list[LocalCalendarEvent]:
        rows = [row for row in self.rows.values() if row.user_id == user_id]
        rows.sort(key=lambda row: row.start_at)
        return rows[:limit]


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return fixed_clock


@pytest.fixture
def credentials() -> InMemoryCredentialRepository:
    return InMemoryCredentialRepository()


@pytest.fixture
def events() -> InMemoryEventRepository:
    return InMemoryEventRepository()


@pytest.fixture
def google_config() -> GoogleConfig:
    return GoogleConfig(client_id="client-id", client_secret="client-secret")


@pytest.fixture
def daybook_config(google_config: GoogleConfig) -> DaybookConfig:
    return DaybookConfig(
        google=google_config,
        sync=SyncConfig(),
        auth=AuthConfig(refresh_buffer_seconds=60),
    )


@pytest.fixture
def make_credential() -> Callable[..., AccountCredential]:
    """Build a Google credential for ``user-1`` with overridable token fields."""

    def _make(**overrides) -> AccountCredential:
        values = {
            "user_id": "user-1",
            "access_token": "access-current",
            "refresh_token": "refresh-current",
            "expires_at": FIXED_NOW_SECONDS + 3600,
            "scope": "https://www.googleapis.com/auth/calendar",
            "token_type": "Bearer",
        }
        values.update(overrides)
        return AccountCredential(**values)

    return _make


@pytest.fixture
async def mock_http() -> AsyncIterator[Callable[..., httpx.AsyncClient]]:
    """Factory for AsyncClients whose requests are answered by *handler*."""
    clients: list[httpx.AsyncClient] = []

    def _factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _factory

    for client in clients:
        await client.aclose()
