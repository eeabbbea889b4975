"""FastAPI dependency functions for the daybook API.

``get_calendar_services`` is a stub that the application lifespan (or a
test) replaces through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Header, HTTPException

from daybook.calendar.runtime import CalendarServices
from daybook.core.logging import set_user_context

USER_HEADER = "X-User-Id"


def get_calendar_services() -> CalendarServices:
    """Dependency stub -- overridden at app startup or in tests."""
    raise RuntimeError("Calendar services not initialized")


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias=USER_HEADER),
) -> str:
    """Resolve the signed-in user from the ``X-User-Id`` header.

    Sign-in happens upstream; requests without the header are rejected.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    set_user_context(user_id)
    return user_id
