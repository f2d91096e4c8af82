import datetime as dt

from schedule_timeline.drag import DragSession, apply_drag_delta, begin_drag, delta_days, end_drag
from schedule_timeline.schedule_models import Phase, ScheduleDocument, ScheduleItem

ANCHOR = dt.date(2024, 1, 1)


def _doc():
    return ScheduleDocument(
        anchor_date="2024-01-01",
        phases=(Phase("p1", "Build"),),
        items=(
            ScheduleItem(id="t", phase_id="p1", type="task", name="t", start="2024-01-08", end="2024-01-12"),
            ScheduleItem(id="m", phase_id="p1", type="milestone", name="m", start="2024-01-10"),
            ScheduleItem(id="x", phase_id="p1", type="task", name="x", start="later"),
        ),
    )


def test_only_final_delta_matters_during_a_drag():
    origin = _doc()
    session = begin_drag(None, origin, ANCHOR, "t", "move")

    doc = origin
    for delta in (1, 2, -4, 3, 5):
        doc = apply_drag_delta(doc, ANCHOR, session, delta)

    assert doc == apply_drag_delta(origin, ANCHOR, session, 5)
    assert (doc.item_by_id("t").start, doc.item_by_id("t").end) == ("2024-01-13", "2024-01-17")


def test_resize_moves_end_but_not_before_start():
    doc = _doc()
    session = begin_drag(None, doc, ANCHOR, "t", "resize_end")

    longer = apply_drag_delta(doc, ANCHOR, session, 3)
    collapsed = apply_drag_delta(longer, ANCHOR, session, -100)

    assert (longer.item_by_id("t").start, longer.item_by_id("t").end) == ("2024-01-08", "2024-01-15")
    assert collapsed.item_by_id("t").end == "2024-01-08"


def test_milestones_move_but_do_not_resize():
    doc = _doc()
    moving = begin_drag(None, doc, ANCHOR, "m", "move")
    resizing = begin_drag(None, doc, ANCHOR, "m", "resize_end")

    moved = apply_drag_delta(doc, ANCHOR, moving, -2)

    assert (moved.item_by_id("m").start, moved.item_by_id("m").end) == ("2024-01-08", "")
    assert apply_drag_delta(doc, ANCHOR, resizing, 4).item_by_id("m") == doc.item_by_id("m")


def test_drag_is_clamped_to_horizon():
    doc = _doc()
    session = begin_drag(None, doc, ANCHOR, "t", "move")

    far = apply_drag_delta(doc, ANCHOR, session, 1000).item_by_id("t")
    back = apply_drag_delta(doc, ANCHOR, session, -1000).item_by_id("t")

    assert (far.start, far.end) == ("2024-12-29", "2024-12-29")
    assert (back.start, back.end) == ("2024-01-01", "2024-01-05")


def test_only_one_drag_at_a_time():
    doc = _doc()
    active = begin_drag(None, doc, ANCHOR, "t", "move")

    assert begin_drag(active, doc, ANCHOR, "m", "move") is active
    assert active == DragSession("t", "move", 7, 11)
    assert end_drag(active) is None
    assert begin_drag(None, doc, ANCHOR, "missing", "move") is None
    assert begin_drag(None, doc, ANCHOR, "x", "move") is None


def test_pixel_delta_rounds_to_days():
    assert delta_days(45, day_width=20) == 2
    assert delta_days(50, day_width=20) == 3
    assert delta_days(-29, day_width=20) == -1
    assert delta_days(-30, day_width=20) == -1
    assert delta_days(0) == 0
