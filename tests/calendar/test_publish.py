"""Unit tests for local-first event creation with Google publishing."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import pytest

from daybook.calendar.client import GoogleCalendarClient
from daybook.calendar.models import EventDraft, EventSource, LocalEventFields
from daybook.calendar.publish import EventPublisher
from daybook.calendar.tokens import TokenManager

pytestmark = pytest.mark.unit


def _standup(**overrides) -> EventDraft:
    values = {
        "title": "Standup",
        "start_at": datetime(2024, 1, 2, 9, 0, tzinfo=UTC),
        "end_at": datetime(2024, 1, 2, 9, 30, tzinfo=UTC),
        "participants": "a@x.com, b@x.com",
    }
    values.update(overrides)
    return EventDraft(**values)


@pytest.fixture
def build_publisher(credentials, events, google_config, clock, mock_http):
    def _build(handler: Callable[[httpx.Request], httpx.Response]) -> EventPublisher:
        http_client = mock_http(handler)
        return EventPublisher(
            tokens=TokenManager(
                credentials=credentials,
                google=google_config,
                http_client=http_client,
                clock=clock,
            ),
            client=GoogleCalendarClient(http_client=http_client, google=google_config, clock=clock),
            events=events,
        )

    return _build


async def test_successful_publish_links_local_row_to_google(
    build_publisher, credentials, events, make_credential
):
    credentials.put(make_credential())
    sent: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "evt_1", "summary": "Standup"})

    result = await build_publisher(handler).create_and_publish("user-1", _standup())

    event = result.event
    assert result.remote_sync_error is None
    assert event.source == EventSource.app_google
    assert event.external_id == "evt_1"
    assert event.participants == ["a@x.com", "b@x.com"]
    assert event.title == "Standup"
    assert event.user_id == "user-1"
    assert events.rows[event.id] == event
    assert sent[0]["attendees"] == [{"email": "a@x.com"}, {"email": "b@x.com"}]


async def test_remote_meeting_link_replaces_supplied_link(
    build_publisher, credentials, make_credential
):
    credentials.put(make_credential())
    handler = lambda request: httpx.Response(  # noqa: E731
        200, json={"id": "evt_1", "hangoutLink": "https://meet.google.com/new"}
    )

    result = await build_publisher(handler).create_and_publish(
        "user-1", _standup(meet_link="https://meet.example/mine")
    )

    assert result.event.meet_link == "https://meet.google.com/new"


async def test_supplied_link_is_kept_when_google_returns_none(
    build_publisher, credentials, make_credential
):
    credentials.put(make_credential())
    handler = lambda request: httpx.Response(200, json={"id": "evt_1"})  # noqa: E731

    result = await build_publisher(handler).create_and_publish(
        "user-1", _standup(meet_link=" https://meet.example/mine ", location="  ")
    )

    assert result.event.meet_link == "https://meet.example/mine"
    assert result.event.location is None


async def test_remote_failure_still_saves_local_event(
    build_publisher, credentials, events, make_credential
):
    credentials.put(make_credential())
    handler = lambda request: httpx.Response(  # noqa: E731
        503, json={"error": {"message": "Backend Error"}}
    )

    result = await build_publisher(handler).create_and_publish("user-1", _standup())

    assert result.event.source == EventSource.app
    assert result.event.external_id is None
    assert result.remote_sync_error == "Google Calendar create event failed (503): Backend Error"
    assert list(events.rows) == [result.event.id]


async def test_unconnected_account_degrades_to_local_only(build_publisher, events):
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"id": "never"})

    result = await build_publisher(handler).create_and_publish("user-1", _standup())

    assert calls == []
    assert result.event.source == EventSource.app
    assert result.remote_sync_error == "Google account not connected; reconnect required"
    assert len(events.rows) == 1


async def test_token_refresh_failure_degrades_to_local_only(
    build_publisher, credentials, make_credential
):
    credentials.put(make_credential(expires_at=0))
    handler = lambda request: httpx.Response(400, json={"error": "invalid_grant"})  # noqa: E731

    result = await build_publisher(handler).create_and_publish("user-1", _standup())

    assert result.event.source == EventSource.app
    assert result.remote_sync_error is not None
    assert "invalid_grant" in result.remote_sync_error


async def test_participants_list_is_deduplicated(build_publisher, credentials, make_credential):
    credentials.put(make_credential())
    handler = lambda request: httpx.Response(200, json={"id": "evt_9"})  # noqa: E731

    result = await build_publisher(handler).create_and_publish(
        "user-1", _standup(participants=["a@x.com", " a@x.com", "", "c@x.com"])
    )

    assert result.event.participants == ["a@x.com", "c@x.com"]


async def test_publish_result_serializes_with_camel_case_keys(
    build_publisher, credentials, make_credential
):
    credentials.put(make_credential())
    handler = lambda request: httpx.Response(200, json={"id": "evt_1"})  # noqa: E731

    result = await build_publisher(handler).create_and_publish("user-1", _standup())
    payload = result.model_dump(by_alias=True, mode="json")

    assert payload["remoteSyncError"] is None
    assert payload["event"]["externalId"] == "evt_1"
    assert payload["event"]["source"] == "app+google"
    assert payload["event"]["startAt"] == "2024-01-02T09:00:00Z"


async def test_publish_updates_row_already_stored_by_sync(
    build_publisher, credentials, events, make_credential
):
    credentials.put(make_credential())
    synced = await events.upsert_external(
        user_id="user-1",
        external_id="evt_1",
        fields=LocalEventFields(
            title="Standup",
            start_at=datetime(2024, 1, 2, 9, 0, tzinfo=UTC),
            end_at=datetime(2024, 1, 2, 9, 30, tzinfo=UTC),
            source=EventSource.google,
        ),
    )
    handler = lambda request: httpx.Response(200, json={"id": "evt_1"})  # noqa: E731

    result = await build_publisher(handler).create_and_publish("user-1", _standup())

    assert list(events.rows) == [synced.id]
    assert result.event.id == synced.id
    assert result.event.source == EventSource.app_google
    assert result.event.participants == ["a@x.com", "b@x.com"]


async def test_unusable_token_lifetime_does_not_block_local_save(
    build_publisher, credentials, events, make_credential
):
    credentials.put(make_credential(expires_at=0))

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            return httpx.Response(200, content=b'{"access_token": "at", "expires_in": 1e400}')
        return httpx.Response(200, json={"id": "evt_1"})

    result = await build_publisher(handler).create_and_publish("user-1", _standup())

    assert result.remote_sync_error is None
    assert list(events.rows) == [result.event.id]
    assert credentials.writes[0].expires_at < 2**63
