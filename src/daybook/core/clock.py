"""Injectable wall-clock source."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def epoch_seconds(clock: Clock) -> int:
    return int(clock().timestamp())
