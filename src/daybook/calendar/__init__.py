"""Google calendar sync engine: tokens, remote client, reconciliation and publishing."""

from daybook.calendar.client import GoogleCalendarClient
from daybook.calendar.connection import CalendarConnectionService
from daybook.calendar.errors import (
    AccountNotConnectedError,
    CalendarSyncError,
    RefreshTokenMissingError,
    RemoteCreateError,
    RemoteListError,
    RemoteRequestError,
    TokenRefreshError,
)
from daybook.calendar.models import (
    AccountCredential,
    ConnectionStatus,
    EventDraft,
    EventSource,
    LocalCalendarEvent,
    PublishResult,
    SyncResult,
)
from daybook.calendar.publish import EventPublisher
from daybook.calendar.sync import SyncReconciler
from daybook.calendar.tokens import TokenManager

__all__ = [
    "AccountCredential",
    "AccountNotConnectedError",
    "CalendarConnectionService",
    "CalendarSyncError",
    "ConnectionStatus",
    "EventDraft",
    "EventPublisher",
    "EventSource",
    "GoogleCalendarClient",
    "LocalCalendarEvent",
    "PublishResult",
    "RefreshTokenMissingError",
    "RemoteCreateError",
    "RemoteListError",
    "RemoteRequestError",
    "SyncReconciler",
    "SyncResult",
    "TokenManager",
    "TokenRefreshError",
]
