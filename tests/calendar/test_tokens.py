"""Unit tests for Google access-token caching and refresh."""

from __future__ import annotations

import asyncio
import gc
from urllib.parse import parse_qs

import httpx
import pytest

from daybook.calendar.errors import (
    AccountNotConnectedError,
    RefreshTokenMissingError,
    TokenRefreshError,
)
from daybook.calendar.tokens import TokenManager, _coerce_expires_in_seconds
from daybook.config import AuthConfig, GOOGLE_OAUTH_TOKEN_URL

pytestmark = pytest.mark.unit

NOW_SECONDS = 1772366400  # 2026-03-01T12:00:00Z


def _manager(credentials, google_config, http_client, clock, *, buffer_seconds=60):
    return TokenManager(
        credentials=credentials,
        google=google_config,
        http_client=http_client,
        auth=AuthConfig(refresh_buffer_seconds=buffer_seconds),
        clock=clock,
    )


def _token_response(**payload) -> httpx.Response:
    body = {"access_token": "access-new", "expires_in": 3599, "token_type": "Bearer"}
    body.update(payload)
    return httpx.Response(200, json=body)


async def test_fresh_token_is_returned_without_network_calls(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS + 3600))
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _token_response()

    manager = _manager(credentials, google_config, mock_http(handler), clock)

    token = await manager.get_valid_access_token("user-1")

    assert token == "access-current"
    assert calls == []
    assert credentials.writes == []


async def test_token_inside_buffer_is_refreshed_once_and_persisted(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS + 30))
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _token_response()

    manager = _manager(credentials, google_config, mock_http(handler), clock)

    token = await manager.get_valid_access_token("user-1")

    assert token == "access-new"
    assert len(calls) == 1
    request = calls[0]
    assert request.method == "POST"
    assert str(request.url) == GOOGLE_OAUTH_TOKEN_URL
    form = parse_qs(request.content.decode())
    assert form == {
        "client_id": ["client-id"],
        "client_secret": ["client-secret"],
        "grant_type": ["refresh_token"],
        "refresh_token": ["refresh-current"],
    }

    assert len(credentials.writes) == 1
    written = credentials.writes[0]
    assert written.access_token == "access-new"
    assert written.expires_at == NOW_SECONDS + 3599
    assert written.refresh_token == "refresh-current"
    assert written.scope == "https://www.googleapis.com/auth/calendar"


async def test_token_exactly_at_buffer_edge_is_refreshed(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS + 60))
    manager = _manager(credentials, google_config, mock_http(lambda r: _token_response()), clock)

    assert await manager.get_valid_access_token("user-1") == "access-new"


async def test_missing_access_token_triggers_refresh(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(access_token=None, expires_at=NOW_SECONDS + 3600))
    manager = _manager(credentials, google_config, mock_http(lambda r: _token_response()), clock)

    assert await manager.get_valid_access_token("user-1") == "access-new"


async def test_rotated_refresh_token_replaces_stored_one(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=None))
    handler = lambda request: _token_response(refresh_token="refresh-rotated", scope="s1 s2")  # noqa: E731
    manager = _manager(credentials, google_config, mock_http(handler), clock)

    await manager.get_valid_access_token("user-1")

    written = credentials.writes[0]
    assert written.refresh_token == "refresh-rotated"
    assert written.scope == "s1 s2"


async def test_missing_expires_in_defaults_to_one_hour(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS - 10))
    handler = lambda request: httpx.Response(200, json={"access_token": "access-new"})  # noqa: E731
    manager = _manager(credentials, google_config, mock_http(handler), clock)

    await manager.get_valid_access_token("user-1")

    assert credentials.writes[0].expires_at == NOW_SECONDS + 3600
    assert credentials.writes[0].token_type == "Bearer"


async def test_stale_token_without_refresh_token_raises_without_network(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(refresh_token=None, expires_at=NOW_SECONDS - 10))
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return _token_response()

    manager = _manager(credentials, google_config, mock_http(handler), clock)

    with pytest.raises(RefreshTokenMissingError, match="Re-authenticate"):
        await manager.get_valid_access_token("user-1")

    assert calls == []
    assert credentials.writes == []


async def test_unknown_user_raises_account_not_connected(
    credentials, google_config, clock, mock_http
):
    manager = _manager(credentials, google_config, mock_http(lambda r: _token_response()), clock)

    with pytest.raises(AccountNotConnectedError, match="reconnect required") as exc_info:
        await manager.get_valid_access_token("nobody")

    assert exc_info.value.user_id == "nobody"


async def test_refresh_failure_carries_status_and_body(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS - 10))
    handler = lambda request: httpx.Response(  # noqa: E731
        400,
        json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
    )
    manager = _manager(credentials, google_config, mock_http(handler), clock)

    with pytest.raises(TokenRefreshError) as exc_info:
        await manager.get_valid_access_token("user-1")

    error = exc_info.value
    assert error.status_code == 400
    assert "invalid_grant" in (error.body or "")
    assert "Token has been expired or revoked." in str(error)
    assert credentials.writes == []


async def test_refresh_response_without_access_token_is_rejected(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS - 10))
    handler = lambda request: httpx.Response(200, json={"expires_in": 3600})  # noqa: E731
    manager = _manager(credentials, google_config, mock_http(handler), clock)

    with pytest.raises(TokenRefreshError, match="access_token"):
        await manager.get_valid_access_token("user-1")

    assert credentials.writes == []


async def test_transport_error_becomes_token_refresh_error(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS - 10))

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    manager = _manager(credentials, google_config, mock_http(handler), clock)

    with pytest.raises(TokenRefreshError, match="connection refused"):
        await manager.get_valid_access_token("user-1")


async def test_concurrent_callers_share_a_single_refresh(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS - 10))
    calls: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.01)
        return _token_response()

    manager = _manager(credentials, google_config, mock_http(handler), clock)

    tokens = await asyncio.gather(*(manager.get_valid_access_token("user-1") for _ in range(5)))

    assert tokens == ["access-new"] * 5
    assert len(calls) == 1
    assert len(credentials.writes) == 1


async def test_refresh_for_one_user_does_not_block_another(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS - 10))
    credentials.put(make_credential(user_id="user-2", refresh_token="refresh-2", expires_at=0))
    seen_refresh_tokens: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen_refresh_tokens.append(parse_qs(request.content.decode())["refresh_token"][0])
        await asyncio.sleep(0.01)
        return _token_response()

    manager = _manager(credentials, google_config, mock_http(handler), clock)

    await asyncio.gather(
        manager.get_valid_access_token("user-1"),
        manager.get_valid_access_token("user-2"),
    )

    assert sorted(seen_refresh_tokens) == ["refresh-2", "refresh-current"]


async def test_per_user_locks_are_released_after_refresh(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=NOW_SECONDS - 10))
    http_client = mock_http(lambda request: _token_response())
    manager = _manager(credentials, google_config, http_client, clock)

    await manager.get_valid_access_token("user-1")
    gc.collect()

    assert len(manager._locks) == 0


async def test_non_finite_expires_in_falls_back_to_one_hour(
    credentials, google_config, clock, mock_http, make_credential
):
    credentials.put(make_credential(expires_at=0))

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b'{"access_token": "access-new", "expires_in": 1e400}')

    manager = _manager(credentials, google_config, mock_http(handler), clock)

    assert await manager.get_valid_access_token("user-1") == "access-new"
    assert credentials.writes[0].expires_at == NOW_SECONDS + 3600


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (120, 120),
        (120.9, 120),
        ("300", 300),
        (0, 3600),
        (-5, 3600),
        (True, 3600),
        ("soon", 3600),
        (None, 3600),
        (float("inf"), 3600),
        (float("nan"), 3600),
        (10**20, 3600),
        ("9" * 5000, 3600),
        (365 * 24 * 3600, 31536000),
    ],
)
def test_coerce_expires_in_seconds(raw, expected):
    assert _coerce_expires_in_seconds(raw) == expected
