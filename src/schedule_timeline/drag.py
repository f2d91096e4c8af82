from __future__ import annotations

import datetime as _dt
import math
from dataclasses import dataclass, replace
from typing import Literal

from . import dates
from .document import apply_item_patch
from .schedule_models import ScheduleDocument, ScheduleItem
from .viewport import DAY_WIDTH, MAX_DAY, clamp, day_to_iso

DragMode = Literal["move", "resize_end"]


@dataclass(frozen=True)
class DragSession:
    """
    Snapshot taken when a drag begins.

    Every delta is applied to these origin days, never to the previous frame,
    so intermediate updates cannot accumulate rounding drift.
    """

    item_id: str
    mode: DragMode
    origin_start_day: int
    origin_end_day: int


ActiveDrag = DragSession | None
"""At most one drag exists at a time; None means no drag is in progress."""


def begin_drag(
    active: ActiveDrag,
    doc: ScheduleDocument,
    anchor: _dt.date,
    item_id: str,
    mode: DragMode,
) -> ActiveDrag:
    """
    Start dragging `item_id`.

    While another drag is active it is returned unchanged. Unknown items and
    items without a parseable start cannot be dragged.
    """

    if active is not None:
        return active
    item = doc.item_by_id(item_id)
    if item is None:
        return None
    span = dates.item_day_span(anchor, item)
    if span is None:
        return None
    return DragSession(
        item_id=item_id,
        mode=mode,
        origin_start_day=clamp(min(span), 0, MAX_DAY),
        origin_end_day=clamp(max(span), 0, MAX_DAY),
    )


def delta_days(pixel_dx: float, day_width: float = DAY_WIDTH) -> int:
    """Whole days covered by a horizontal pointer movement, rounded half up."""
    return math.floor(pixel_dx / day_width + 0.5)


def apply_drag_delta(
    doc: ScheduleDocument,
    anchor: _dt.date,
    session: DragSession,
    delta: int,
) -> ScheduleDocument:
    """
    Re-derive the dragged item's dates from the session origin plus `delta` days.

    Moving keeps the duration; resizing moves the end but never before the
    origin start. Milestones can be moved but not resized. Results stay inside
    the horizon.
    """

    delta = clamp(delta, -MAX_DAY, MAX_DAY)
    origin_start, origin_end = session.origin_start_day, session.origin_end_day

    def dragged(item: ScheduleItem) -> ScheduleItem:
        if item.id != session.item_id:
            return item
        if session.mode == "move":
            new_start = clamp(origin_start + delta, 0, MAX_DAY)
            if item.is_milestone:
                return apply_item_patch(item, {"start": day_to_iso(anchor, new_start), "end": ""})
            duration = max(0, origin_end - origin_start)
            new_end = clamp(new_start + duration, new_start, MAX_DAY)
            return apply_item_patch(
                item, {"start": day_to_iso(anchor, new_start), "end": day_to_iso(anchor, new_end)}
            )
        if item.is_milestone:
            return item
        new_end = clamp(origin_end + delta, origin_start, MAX_DAY)
        return apply_item_patch(item, {"end": day_to_iso(anchor, new_end)})

    return replace(doc, items=tuple(dragged(item) for item in doc.items))


def end_drag(session: ActiveDrag) -> ActiveDrag:
    return None
