"""Time helpers shared by sync and alarm code.

This module provides:
- WARSAW: The fixed zone every target instant is composed in
- compose_fire_instant: Build an aware datetime from date/time fields
- to_epoch_millis / from_epoch_millis: Millisecond conversions
- Clock: Injectable "now" source (system clock by default)
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

WARSAW = ZoneInfo("Europe/Warsaw")

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# Callable returning an aware "now"; tests pass a fixed lambda
Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def compose_fire_instant(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
) -> datetime:
    """Compose a target instant in the Europe/Warsaw zone.

    Seconds and sub-seconds are always zero.

    Args:
        year: Four-digit year.
        month: Month, 1-12.
        day: Day of month.
        hour: Hour of day, 0-23.
        minute: Minute, 0-59.

    Returns:
        Aware datetime in the Warsaw zone.

    Raises:
        ValueError: If the fields do not form a real calendar date/time.
    """
    return datetime(year, month, day, hour, minute, tzinfo=WARSAW)


def to_epoch_millis(value: datetime) -> int:
    """Convert an aware datetime to integer epoch milliseconds (floored)."""
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=millis)


def from_epoch_nanos(nanos: int) -> datetime:
    """Convert epoch nanoseconds (e.g. ``st_mtime_ns``) to an aware UTC datetime."""
    return EPOCH + timedelta(microseconds=nanos // 1000)


def format_instant(value: datetime) -> str:
    """Format an instant in Warsaw local time for log and CLI output."""
    return value.astimezone(WARSAW).strftime("%Y-%m-%d %H:%M:%S %Z")
