import datetime as dt
import json

import pytest

from schedule_timeline import wbs_import
from schedule_timeline.schedule_models import Phase, ScheduleDocument, ScheduleItem
from schedule_timeline.wbs_import import (
    append_from_wbs,
    build_schedule_from_wbs,
    parse_wbs,
    wbs_status_to_schedule,
)

START = "2024-01-03"
FINISH = "2024-02-15"

SAMPLE_ROWS = [
    {"id": "1", "level": 0, "deliverable": "Discovery"},
    {"id": "1.1", "level": 1, "deliverable": "Interviews", "due_date": "2024-01-20", "status": "done"},
    {
        "id": "1.2",
        "level": 1,
        "deliverable": "Synthesis",
        "due_date": "2024-03-01",
        "status": "blocked",
        "predecessor": "1.1",
    },
    {"id": "2", "level": 0, "deliverable": "Build"},
    {"id": "2.1", "level": 1, "deliverable": "Backend"},
    {
        "id": "2.1.1",
        "level": 2,
        "deliverable": "API",
        "due_date": "2024-02-01",
        "description": "REST endpoints",
        "acceptance_criteria": "Contract tests pass",
        "predecessor": "9.9",
    },
    {"id": "3", "level": 0, "deliverable": "Launch", "status": "in_progress"},
]


def _names(doc):
    return [phase.name for phase in doc.phases]


def test_build_turns_leaf_rows_into_tasks_under_top_level_phases():
    doc = build_schedule_from_wbs({"rows": SAMPLE_ROWS}, START, FINISH)

    assert _names(doc) == ["Discovery", "Build", "Launch"]
    assert doc.anchor_date == "2024-01-01"
    assert [item.id for item in doc.items] == ["1.1", "1.2", "2.1.1", "3"]

    phase_of = {phase.id: phase.name for phase in doc.phases}
    interviews, synthesis, api, launch = doc.items
    assert {item.start for item in doc.items} == {START}
    assert (interviews.end, interviews.status, phase_of[interviews.phase_id]) == ("2024-01-20", "done", "Discovery")
    assert (synthesis.end, synthesis.status, synthesis.dependencies) == (FINISH, "at_risk", ("1.1",))
    assert phase_of[api.phase_id] == "Build"
    assert api.notes == "REST endpoints\nContract tests pass"
    assert api.dependencies == ()
    assert (launch.end, launch.status, phase_of[launch.phase_id]) == (START, "on_track", "Launch")


def test_build_without_rows_returns_none():
    assert build_schedule_from_wbs([], START, FINISH) is None
    assert build_schedule_from_wbs("not json", START, FINISH) is None


def test_build_defaults_start_to_today():
    doc = build_schedule_from_wbs([{"id": "a", "deliverable": "Solo"}], today=dt.date(2024, 5, 16))

    assert doc.items[0].start == "2024-05-16"
    assert doc.anchor_date == "2024-05-13"


def test_parse_wbs_accepts_aliases_and_loose_rows():
    payload = json.dumps(
        {
            "items": [
                {"id": "a", "name": "Alias", "dueDate": "2024-01-05", "depends_on": ["b", "c"], "depth": "2"},
                {"id": "a", "title": "Clash", "finish": "2024-02-01", "tags": ["x", "", None]},
                "junk",
            ]
        }
    )

    first, second, third = parse_wbs(payload)

    assert (first.deliverable, first.due_date, first.predecessor, first.level) == ("Alias", "2024-01-05", "b", 2)
    assert second.id != "a"
    assert (second.deliverable, second.due_date, second.tags) == ("Clash", "2024-02-01", ("x",))
    assert (third.deliverable, third.level, third.status) == ("(untitled)", 0, "not_started")
    assert parse_wbs({"unexpected": True}) == []
    assert parse_wbs("{broken") == []


@pytest.mark.parametrize(
    ("status", "expected"),
    [("done", "done"), (" DONE ", "done"), ("Blocked", "at_risk"), ("in_progress", "on_track"), ("", "on_track")],
)
def test_wbs_status_mapping(status, expected):
    assert wbs_status_to_schedule(status) == expected


def test_append_without_rows_leaves_schedule_unchanged():
    doc = ScheduleDocument(anchor_date="2024-01-01", phases=(Phase("p0", "Build"),))

    result = append_from_wbs(doc, [], START, FINISH)

    assert result.document is doc
    assert not result.changed
    assert result.message == "No WBS rows found; schedule unchanged."


def test_append_merges_phases_by_name_and_fills_missing_anchor():
    doc = ScheduleDocument(anchor_date="", phases=(Phase("p0", "  DISCOVERY "),))

    result = append_from_wbs(doc, SAMPLE_ROWS, START, FINISH)

    assert result.changed
    assert (result.added_phases, result.added_items) == (2, 4)
    assert result.message == "Appended 4 items from WBS."
    assert _names(result.document) == ["  DISCOVERY ", "Build", "Launch"]
    assert result.document.phases[0].id == "p0"
    assert result.document.item_by_id("1.1").phase_id == "p0"
    assert result.document.anchor_date == "2024-01-01"


def test_appending_twice_remaps_colliding_ids():
    once = append_from_wbs(ScheduleDocument(anchor_date="2023-12-25"), SAMPLE_ROWS, START, FINISH).document

    twice = append_from_wbs(once, SAMPLE_ROWS, START, FINISH)

    doc = twice.document
    assert twice.added_phases == 0
    assert len(doc.phases) == 3
    assert len(doc.items) == 8
    assert len({item.id for item in doc.items}) == 8
    assert doc.anchor_date == "2023-12-25"

    interviews_copy, synthesis_copy = doc.items[4], doc.items[5]
    assert interviews_copy.id != "1.1"
    assert synthesis_copy.dependencies == (interviews_copy.id,)
    assert doc.item_by_id("1.2").dependencies == ("1.1",)


def test_append_respects_item_limit_and_prunes_dropped_dependencies(monkeypatch):
    monkeypatch.setattr(wbs_import, "MAX_ITEMS", 3)
    existing = tuple(
        ScheduleItem(id=f"e{i}", phase_id="p0", type="task", name=f"e{i}", start=START, end=START) for i in range(2)
    )
    doc = ScheduleDocument(anchor_date="2024-01-01", phases=(Phase("p0", "Work"),), items=existing)
    rows = [
        {"id": "a", "deliverable": "First", "predecessor": "b"},
        {"id": "b", "deliverable": "Second"},
    ]

    result = append_from_wbs(doc, rows, START, FINISH)

    assert result.added_items == 1
    assert [item.id for item in result.document.items] == ["e0", "e1", "a"]
    assert result.document.item_by_id("a").dependencies == ()


def test_append_accepts_rows_already_parsed():
    rows = parse_wbs(
        [
            {"id": "w1", "level": 0, "deliverable": "Build"},
            {"id": "w2", "level": 1, "deliverable": "QA", "due_date": "2024-01-19", "predecessor": "w0"},
        ]
    )

    result = append_from_wbs(ScheduleDocument(), rows, "2024-01-08")

    assert _names(result.document) == ["Build"]
    assert [(item.id, item.name, item.start, item.end) for item in result.document.items] == [
        ("w2", "QA", "2024-01-08", "2024-01-19")
    ]


def test_row_cannot_depend_on_itself():
    rows = [{"id": "a", "deliverable": "Loop", "predecessor": "a"}]

    doc = build_schedule_from_wbs(rows, START, FINISH)

    assert doc.items[0].dependencies == ()


@pytest.mark.parametrize("level", [1e999, "1e999", float("nan"), "-3", None, "deep"])
def test_parse_wbs_tolerates_bad_levels(level):
    (row,) = parse_wbs({"rows": [{"id": "a", "deliverable": "Odd", "level": level}]})

    assert row.level == 0
