from schedule_timeline.dependencies import (
    Box,
    DependencyEdge,
    ItemFilter,
    connector_anchor,
    connector_path,
    dependency_candidates,
    filter_items,
    route_dependencies,
    visible_item_ids,
)
from schedule_timeline.schedule_models import Phase, ScheduleDocument, ScheduleItem


def _item(item_id, deps=(), phase_id="p1", item_type="task", name=None, notes=""):
    return ScheduleItem(
        id=item_id,
        phase_id=phase_id,
        type=item_type,
        name=name or item_id,
        start="2024-01-01",
        end="2024-01-02",
        notes=notes,
        dependencies=tuple(deps),
    )


def _doc(*items):
    return ScheduleDocument(
        anchor_date="2024-01-01",
        phases=(Phase("p1", "Build"), Phase("p2", "Run")),
        items=tuple(items),
    )


def test_edges_follow_document_order_without_duplicates_or_self_edges():
    doc = _doc(_item("a"), _item("b", ["a"]), _item("c", ["a", "b", "a", "c", "missing"]))

    edges = route_dependencies(doc, {"a", "b", "c"})

    assert edges == [DependencyEdge("a", "b"), DependencyEdge("a", "c"), DependencyEdge("b", "c")]
    assert route_dependencies(doc, ["c", "b", "a"]) == edges


def test_edges_require_both_endpoints_visible():
    doc = _doc(_item("a", phase_id="p2"), _item("b", ["a"]), _item("m", ["b"], item_type="milestone"))

    collapsed = visible_item_ids(doc, collapsed={"p2"})
    assert collapsed == {"b", "m"}
    assert route_dependencies(doc, collapsed) == [DependencyEdge("b", "m")]

    no_milestones = visible_item_ids(doc, ItemFilter(show_milestones=False))
    assert route_dependencies(doc, no_milestones) == [DependencyEdge("a", "b")]


def test_filters_match_types_and_text():
    doc = _doc(
        _item("a", name="Design review", notes="architecture"),
        _item("b", name="Build", item_type="deliverable"),
        _item("c", name="Go live", item_type="milestone"),
    )

    assert [item.id for item in filter_items(doc, ItemFilter(search="ARCHITECT"))] == ["a"]
    assert [item.id for item in filter_items(doc, ItemFilter(show_deliverables=False))] == ["a", "c"]
    assert [item.id for item in filter_items(doc, ItemFilter(show_tasks=False, search="  "))] == ["b", "c"]


def test_edge_list_is_capped():
    predecessors = [_item(f"p{i}") for i in range(50)]
    successors = [_item(f"s{i}", [p.id for p in predecessors]) for i in range(60)]
    doc = _doc(*predecessors, *successors)
    everything = {item.id for item in doc.items}

    edges = route_dependencies(doc, everything)

    assert len(edges) == 2500
    assert edges[0] == DependencyEdge("p0", "s0")
    assert len(route_dependencies(doc, everything, limit=3)) == 3


def test_connector_runs_from_predecessor_right_to_successor_left():
    boxes = {"a": Box(10, 0, 40, 20), "b": Box(80, 40, 30, 20)}

    anchor = connector_anchor(DependencyEdge("a", "b"), boxes)

    assert (anchor.x1, anchor.y1, anchor.x2, anchor.y2) == (50, 10, 80, 50)
    assert connector_path(anchor) == [(50, 10), (66, 10), (66, 50), (80, 50)]
    assert connector_anchor(DependencyEdge("a", "zz"), boxes) is None


def test_dependency_candidates_exclude_self_and_existing_and_are_capped():
    items = [_item(f"t{i:02d}", name=f"Task {i:02d}") for i in range(30)]
    items.append(_item("target", ["t00"], name="Target"))
    doc = _doc(*items)

    candidates = dependency_candidates(doc, "target")

    assert len(candidates) == 20
    assert candidates[0].id == "t01"
    assert "target" not in {item.id for item in candidates}
    assert [item.id for item in dependency_candidates(doc, "target", query="task 2")] == [
        f"t{i}" for i in range(20, 30)
    ]
    assert dependency_candidates(doc, "nobody") == []
