"""Time source handed to the payment services instead of reading the wall clock inline."""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(UTC)


def fixed_clock(moment: datetime) -> Clock:
    """Clock that always returns ``moment``. Used by tests and replays."""
    return lambda: moment
