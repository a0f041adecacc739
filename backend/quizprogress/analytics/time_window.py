"""Time-window filtering for results and analytics rollups.

Windows are rolling offsets from the instant the filter runs, not
calendar boundaries: `week` keeps items stamped within the last
7 x 24h and `month` within the last 30 x 24h. Two calls made at
different instants can therefore disagree about an item that sits right
on the cutoff. Product has not asked for calendar-aligned windows, so
the rolling behaviour is kept.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional

WEEK = timedelta(milliseconds=7 * 24 * 60 * 60 * 1000)
MONTH = timedelta(milliseconds=30 * 24 * 60 * 60 * 1000)


class TimeRange(str, Enum):
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


_WINDOWS = {
    TimeRange.WEEK: WEEK,
    TimeRange.MONTH: MONTH,
}


def to_datetime(value: Any) -> Optional[datetime]:
    """Coerce a timestamp field to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), epoch milliseconds
    and ISO-8601 strings. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return to_datetime(parsed)
    return None


def _read_field(item: Any, field: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(field)
    return getattr(item, field, None)


def window_cutoff(time_range: TimeRange | str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Return the oldest instant inside `time_range`, or None for `all`."""
    time_range = TimeRange(time_range)
    if time_range is TimeRange.ALL:
        return None
    now = to_datetime(now) if now is not None else datetime.now(timezone.utc)
    return now - _WINDOWS[time_range]


def filter_by_time_range(
    items: Iterable[Any],
    time_range: TimeRange | str,
    field: str = "last_attempted",
    now: Optional[datetime] = None,
) -> List[Any]:
    """Return the items of `items` whose `field` falls inside `time_range`.

    The same function serves raw history (`field="timestamp"`) and the
    subject/topic rollups (`field="last_attempted"`). Items may be
    objects or mappings. `all` returns every item unchanged and in the
    original order; for the other windows items with a missing or
    unreadable timestamp are dropped.
    """
    cutoff = window_cutoff(time_range, now)
    if cutoff is None:
        return list(items)
    kept = []
    for item in items:
        stamp = to_datetime(_read_field(item, field))
        if stamp is not None and stamp >= cutoff:
            kept.append(item)
    return kept
