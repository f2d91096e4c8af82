from __future__ import annotations

import datetime as _dt
import re
from typing import Any

from .schedule_models import ScheduleItem

_ISO_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")


def today() -> _dt.date:
    """Current calendar day; tests patch this to pin the clock."""
    return _dt.date.today()


def parse_iso_date(value: Any) -> _dt.date | None:
    """
    Parse a `YYYY-MM-DD` value into a calendar date.

    Anything after the date part (a `T00:00:00` time, a zone suffix) is ignored.
    Empty or malformed input returns None; this function never raises.
    """

    if isinstance(value, _dt.datetime):
        return value.date()
    if isinstance(value, _dt.date):
        return value
    if not isinstance(value, str):
        return None
    match = _ISO_PREFIX.match(value.strip())
    if match is None:
        return None
    try:
        return _dt.date.fromisoformat(match.group(1))
    except ValueError:
        return None


def to_iso(d: _dt.date) -> str:
    return d.isoformat()


def add_days(d: _dt.date, days: int) -> _dt.date:
    return d + _dt.timedelta(days=days)


def start_of_week_monday(d: _dt.date) -> _dt.date:
    """Round back to the Monday that starts the ISO week containing `d`."""
    return d - _dt.timedelta(days=d.weekday())


def day_index(anchor_monday: _dt.date, value: Any) -> int | None:
    """Whole-day offset of `value` from the anchor, or None when unparseable."""
    d = parse_iso_date(value)
    if d is None:
        return None
    return (d - anchor_monday).days


def week_index_from_iso(anchor_monday: _dt.date, value: Any) -> int | None:
    day = day_index(anchor_monday, value)
    return None if day is None else day // 7


def item_day_span(anchor_monday: _dt.date, item: ScheduleItem) -> tuple[int, int] | None:
    """
    Inclusive (start_day, end_day) of an item relative to the anchor.

    Milestones span their start day only; a missing or unparseable end falls
    back to the start. Returns None when the start cannot be parsed.
    """

    start_day = day_index(anchor_monday, item.start)
    if start_day is None:
        return None
    end_day = day_index(anchor_monday, item.effective_end)
    if end_day is None:
        end_day = start_day
    return start_day, end_day
