from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass
from typing import Any

from . import dates
from .schedule_models import ScheduleItem

# Timeline tuning knobs (pixels unless noted).
HORIZON_WEEKS = 52  # weeks reachable from the anchor
MAX_DAY = HORIZON_WEEKS * 7 - 1
WEEK_COLUMN_WIDTH = 160
DAY_WIDTH = WEEK_COLUMN_WIDTH / 7
BAR_INSET = 8  # gap kept on each side of a bar inside its day cells
MIN_BAR_WIDTH = 16
MILESTONE_MIN_WIDTH = 24
MILESTONE_MAX_WIDTH = 36
MILESTONE_WIDTH_DAYS = 1.4
VIEW_MODES = (1, 4, 12, 36, 52)
DEFAULT_VIEW = 12


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(frozen=True)
class WeekRange:
    """Contiguous, inclusive range of week indices shown at once (a page)."""

    first: int
    last: int

    @property
    def first_day(self) -> int:
        return self.first * 7

    @property
    def last_day(self) -> int:
        return self.last * 7 + 6

    @property
    def weeks(self) -> int:
        return self.last - self.first + 1

    def contains_day(self, day: int) -> bool:
        return self.first_day <= day <= self.last_day


@dataclass(frozen=True)
class BarGeometry:
    """Clipped horizontal placement of an item within a page."""

    left: float
    width: float
    start_day: int
    end_day: int


@dataclass(frozen=True)
class WeekHeader:
    index: int
    start: _dt.date
    label: str


def page_for_view(view: int, page_start_week: int = 0) -> WeekRange:
    """Page of `view` weeks starting at `page_start_week`, kept inside the horizon."""

    if view >= HORIZON_WEEKS:
        return WeekRange(0, HORIZON_WEEKS - 1)
    start = clamp(page_start_week, 0, HORIZON_WEEKS - 1)
    end = clamp(start + max(view, 1), 0, HORIZON_WEEKS)
    return WeekRange(start, end - 1)


def page_for_dates(
    anchor: _dt.date,
    date_from: Any,
    date_to: Any,
    page_start_week: int = 0,
    view: int = DEFAULT_VIEW,
) -> WeekRange:
    """
    Page covering a custom date range.

    A missing or unparseable bound falls back to the current page start (for
    `date_from`) or to start + view (for `date_to`). Reversed bounds are swapped.
    """

    from_week = dates.week_index_from_iso(anchor, date_from)
    to_week = dates.week_index_from_iso(anchor, date_to)
    start = clamp(page_start_week if from_week is None else from_week, 0, HORIZON_WEEKS - 1)
    end = clamp(start + view - 1 if to_week is None else to_week, 0, HORIZON_WEEKS - 1)
    return WeekRange(min(start, end), max(start, end))


def validate_range(date_from: Any, date_to: Any) -> str:
    """Message for a bad custom range, or "" when it is usable or incomplete."""

    if not date_from or not date_to:
        return ""
    first = dates.parse_iso_date(date_from)
    last = dates.parse_iso_date(date_to)
    if first is None or last is None:
        return "Invalid date(s)"
    if first > last:
        return "Start after end"
    return ""


def can_prev(view: int, page_start_week: int, custom_range: bool = False) -> bool:
    if custom_range or view >= HORIZON_WEEKS:
        return False
    return page_start_week > 0


def can_next(view: int, page_start_week: int, custom_range: bool = False) -> bool:
    if custom_range or view >= HORIZON_WEEKS:
        return False
    return page_start_week + view < HORIZON_WEEKS


def prev_page(view: int, page_start_week: int, custom_range: bool = False) -> int:
    if not can_prev(view, page_start_week, custom_range):
        return page_start_week
    return clamp(page_start_week - view, 0, HORIZON_WEEKS)


def next_page(view: int, page_start_week: int, custom_range: bool = False) -> int:
    if not can_next(view, page_start_week, custom_range):
        return page_start_week
    return clamp(page_start_week + view, 0, HORIZON_WEEKS)


def bar_geometry(
    anchor: _dt.date,
    page: WeekRange,
    item: ScheduleItem,
    day_width: float = DAY_WIDTH,
) -> BarGeometry | None:
    """
    Map an item onto the page in pixels.

    Returns None when the item has no parseable start or lies entirely outside
    the page. Ranges are clipped to the page; milestones get a fixed-size marker
    at their start.
    """

    span = dates.item_day_span(anchor, item)
    if span is None:
        return None
    start_day, end_day = min(span), max(span)
    if end_day < page.first_day or start_day > page.last_day:
        return None

    start_in = max(start_day, page.first_day)
    end_in = min(end_day, page.last_day)
    left = (start_in - page.first_day) * day_width + BAR_INSET
    if item.is_milestone:
        width = min(MILESTONE_MAX_WIDTH, max(MILESTONE_MIN_WIDTH, day_width * MILESTONE_WIDTH_DAYS))
    else:
        width = max(MIN_BAR_WIDTH, (end_in - start_in + 1) * day_width - 2 * BAR_INSET)
    return BarGeometry(left=left, width=width, start_day=start_in, end_day=end_in)


def today_offset(
    anchor: _dt.date,
    page: WeekRange,
    today: _dt.date | None = None,
    day_width: float = DAY_WIDTH,
) -> float | None:
    """Horizontal offset of the today marker, or None when today is off-page."""

    day = dates.day_index(anchor, today or dates.today())
    if day is None or not page.contains_day(day):
        return None
    return (day - page.first_day) * day_width


def week_headers(anchor: _dt.date, page: WeekRange) -> list[WeekHeader]:
    headers: list[WeekHeader] = []
    for index in range(page.first, page.last + 1):
        start = dates.add_days(anchor, index * 7)
        finish = dates.add_days(start, 6)
        headers.append(WeekHeader(index, start, f"{start:%d %b} - {finish:%d %b}"))
    return headers


def day_to_iso(anchor: _dt.date, day: int) -> str:
    """ISO date of a day index, clamped to the horizon."""
    return dates.to_iso(dates.add_days(anchor, clamp(day, 0, MAX_DAY)))
