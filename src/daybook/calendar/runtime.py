"""Wiring of the calendar services around one pool and one HTTP client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from daybook.calendar.client import GoogleCalendarClient
from daybook.calendar.connection import CalendarConnectionService
from daybook.calendar.publish import EventPublisher
from daybook.calendar.store import PostgresCredentialRepository, PostgresEventRepository
from daybook.calendar.sync import EventRepository, SyncReconciler
from daybook.calendar.tokens import CredentialRepository, TokenManager
from daybook.config import DaybookConfig, HttpConfig
from daybook.core.clock import Clock, utc_now

if TYPE_CHECKING:
    import asyncpg


@dataclass
class CalendarServices:
    credentials: CredentialRepository
    events: EventRepository
    tokens: TokenManager
    client: GoogleCalendarClient
    reconciler: SyncReconciler
    publisher: EventPublisher
    connection: CalendarConnectionService


def build_http_client(config: HttpConfig) -> httpx.AsyncClient:
    """Create the shared client used for both OAuth and Calendar calls."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_s, connect=config.connect_timeout_s)
    )


def build_calendar_services(
    config: DaybookConfig,
    *,
    http_client: httpx.AsyncClient,
    pool: asyncpg.Pool | None = None,
    credentials: CredentialRepository | None = None,
    events: EventRepository | None = None,
    clock: Clock = utc_now,
) -> CalendarServices:
    """Assemble the calendar services.

    Repositories default to the PostgreSQL implementations over *pool*;
    pass explicit ``credentials``/``events`` to substitute other stores.
    """
    if credentials is None or events is None:
        if pool is None:
            raise ValueError("A pool is required unless both repositories are supplied")
        credentials = credentials or PostgresCredentialRepository(pool)
        events = events or PostgresEventRepository(pool)

    tokens = TokenManager(
        credentials=credentials,
        google=config.google,
        http_client=http_client,
        auth=config.auth,
        clock=clock,
    )
    client = GoogleCalendarClient(
        http_client=http_client,
        google=config.google,
        sync=config.sync,
        clock=clock,
    )
    return CalendarServices(
        credentials=credentials,
        events=events,
        tokens=tokens,
        client=client,
        reconciler=SyncReconciler(tokens=tokens, client=client, events=events),
        publisher=EventPublisher(tokens=tokens, client=client, events=events),
        connection=CalendarConnectionService(credentials=credentials, tokens=tokens, client=client),
    )
