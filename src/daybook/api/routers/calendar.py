"""Calendar endpoints: sync, list/create local events, and connection status.

Provides a single router mounted at ``/api/calendar``. Every route acts for
the user named by the ``X-User-Id`` header.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from daybook.api.deps import get_calendar_services, get_current_user_id
from daybook.api.models import ApiResponse
from daybook.api.models.calendar import EventCreateRequest
from daybook.calendar.models import (
    ConnectionStatus,
    LocalCalendarEvent,
    PublishResult,
    SyncResult,
)
from daybook.calendar.runtime import CalendarServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar", tags=["calendar"])

EVENT_LIST_LIMIT = 100


@router.post("/sync", response_model=ApiResponse[SyncResult])
async def sync_calendar(
    user_id: str = Depends(get_current_user_id),
    services: CalendarServices = Depends(get_calendar_services),
) -> ApiResponse[SyncResult]:
    """Pull the user's Google events into the local store."""
    result = await services.reconciler.sync_events_for_user(user_id)
    return ApiResponse[SyncResult](data=result)


@router.get("/events", response_model=ApiResponse[list[LocalCalendarEvent]])
async def list_events(
    user_id: str = Depends(get_current_user_id),
    services: CalendarServices = Depends(get_calendar_services),
) -> ApiResponse[list[LocalCalendarEvent]]:
    """Return up to 100 local events ordered by start time."""
    events = await services.events.list_for_user(user_id=user_id, limit=EVENT_LIST_LIMIT)
    return ApiResponse[list[LocalCalendarEvent]](data=events)


@router.post("/events", response_model=ApiResponse[PublishResult], status_code=201)
async def create_event(
    request: EventCreateRequest,
    user_id: str = Depends(get_current_user_id),
    services: CalendarServices = Depends(get_calendar_services),
) -> ApiResponse[PublishResult]:
    """Save an event locally and publish it to Google when possible.

    A failed publish still returns 201; the reason is carried in
    ``remoteSyncError``.
    """
    result = await services.publisher.create_and_publish(user_id, request.to_draft())
    return ApiResponse[PublishResult](data=result)


@router.get("/connection", response_model=ApiResponse[ConnectionStatus])
async def get_connection(
    user_id: str = Depends(get_current_user_id),
    services: CalendarServices = Depends(get_calendar_services),
) -> ApiResponse[ConnectionStatus]:
    """Report the stored Google token state for the user."""
    status = await services.connection.describe(user_id)
    return ApiResponse[ConnectionStatus](data=status)
