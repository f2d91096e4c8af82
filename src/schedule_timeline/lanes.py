from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from . import dates
from .schedule_models import ScheduleDocument, ScheduleItem


@dataclass(frozen=True)
class LaneAssignment:
    """Lane index per item id and the number of lanes each phase needs (at least 1)."""

    lane_of: dict[str, int] = field(default_factory=dict)
    lane_count_by_phase: dict[str, int] = field(default_factory=dict)


def item_interval(item: ScheduleItem) -> tuple[int, int] | None:
    """
    Inclusive day interval as date ordinals, or None when the start is unparseable.

    Milestones cover their start day; an end before the start is read as the start.
    """

    start = dates.parse_iso_date(item.start)
    if start is None:
        return None
    end = dates.parse_iso_date(item.effective_end) or start
    return start.toordinal(), max(start, end).toordinal()


def pack_intervals(entries: Iterable[tuple[str, tuple[int, int] | None, str]]) -> tuple[dict[str, int], int]:
    """
    Greedy first-fit lane assignment over inclusive day intervals.

    `entries` are (key, interval, name). Processing order is start ascending,
    longer intervals first on ties, then name. A lane is reused once its last
    occupied day is before the next start. Keys without an interval get lane 0
    and never open a lane. Returns (lane_of, lanes_used).
    """

    lane_of: dict[str, int] = {}
    placeable: list[tuple[str, int, int, str]] = []
    for key, interval, name in entries:
        if interval is None:
            lane_of[key] = 0
            continue
        placeable.append((key, interval[0], interval[1], name))

    placeable.sort(key=lambda entry: (entry[1], -(entry[2] - entry[1]), entry[3]))

    # Next free day for each lane.
    lane_free: list[int] = []
    for key, start, end, _name in placeable:
        for lane, free_from in enumerate(lane_free):
            if start >= free_from:
                lane_of[key] = lane
                lane_free[lane] = end + 1
                break
        else:
            lane_of[key] = len(lane_free)
            lane_free.append(end + 1)
    return lane_of, len(lane_free)


def pack_lanes(doc: ScheduleDocument, items: Iterable[ScheduleItem] | None = None) -> LaneAssignment:
    """
    Assign display lanes per phase.

    `items` restricts packing to the visible subset; by default every item of
    the document is packed. Items of unknown phases are ignored.
    """

    chosen = list(doc.items if items is None else items)
    lane_of: dict[str, int] = {}
    lane_count_by_phase: dict[str, int] = {}
    for phase in doc.phases:
        entries = [(item.id, item_interval(item), item.name) for item in chosen if item.phase_id == phase.id]
        phase_lanes, used = pack_intervals(entries)
        lane_of.update(phase_lanes)
        lane_count_by_phase[phase.id] = max(1, used)
    return LaneAssignment(lane_of=lane_of, lane_count_by_phase=lane_count_by_phase)
