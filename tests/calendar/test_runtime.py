"""Unit tests for calendar service wiring."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest

from daybook.calendar.runtime import build_calendar_services, build_http_client
from daybook.calendar.store import PostgresCredentialRepository, PostgresEventRepository
from daybook.config import HttpConfig

pytestmark = pytest.mark.unit


async def test_services_share_repositories_and_client(daybook_config, credentials, events):
    async with httpx.AsyncClient() as http_client:
        services = build_calendar_services(
            daybook_config, http_client=http_client, credentials=credentials, events=events
        )

    assert services.credentials is credentials
    assert services.events is events
    assert services.reconciler._tokens is services.tokens
    assert services.publisher._tokens is services.tokens
    assert services.connection._client is services.client


async def test_pool_backs_default_repositories(daybook_config):
    pool = MagicMock()
    async with httpx.AsyncClient() as http_client:
        services = build_calendar_services(daybook_config, http_client=http_client, pool=pool)

    assert isinstance(services.credentials, PostgresCredentialRepository)
    assert isinstance(services.events, PostgresEventRepository)
    assert services.events.pool is pool


async def test_missing_pool_and_repositories_is_rejected(daybook_config):
    async with httpx.AsyncClient() as http_client:
        with pytest.raises(ValueError, match="pool is required"):
            build_calendar_services(daybook_config, http_client=http_client)


async def test_http_client_uses_configured_timeouts():
    client = build_http_client(HttpConfig(timeout_s=12.0, connect_timeout_s=3.0))
    try:
        assert client.timeout.read == 12.0
        assert client.timeout.connect == 3.0
    finally:
        await client.aclose()
