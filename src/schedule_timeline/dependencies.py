from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from .schedule_models import ScheduleDocument, ScheduleItem

MAX_EDGES = 2500
MAX_CANDIDATES = 20
CONNECTOR_STUB = 16.0  # horizontal run out of the predecessor before the elbow


@dataclass(frozen=True)
class ItemFilter:
    """Type toggles and free-text search applied to the timeline."""

    show_milestones: bool = True
    show_tasks: bool = True
    show_deliverables: bool = True
    search: str = ""

    def accepts(self, item: ScheduleItem) -> bool:
        if item.type == "milestone" and not self.show_milestones:
            return False
        if item.type == "task" and not self.show_tasks:
            return False
        if item.type == "deliverable" and not self.show_deliverables:
            return False
        query = self.search.strip().lower()
        if query:
            return query in f"{item.name}\n{item.notes}".lower()
        return True


@dataclass(frozen=True)
class DependencyEdge:
    predecessor_id: str
    successor_id: str


@dataclass(frozen=True)
class Box:
    """Axis-aligned bar rectangle in drawing coordinates."""

    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class ConnectorAnchor:
    x1: float
    y1: float
    x2: float
    y2: float


def filter_items(doc: ScheduleDocument, item_filter: ItemFilter | None = None) -> list[ScheduleItem]:
    item_filter = item_filter or ItemFilter()
    return [item for item in doc.items if item_filter.accepts(item)]


def visible_item_ids(
    doc: ScheduleDocument,
    item_filter: ItemFilter | None = None,
    collapsed: Iterable[str] = (),
) -> set[str]:
    """Ids of items that pass the filter and sit in a known, expanded phase."""

    hidden_phases = set(collapsed)
    open_phases = {phase.id for phase in doc.phases if phase.id not in hidden_phases}
    return {item.id for item in filter_items(doc, item_filter) if item.phase_id in open_phases}


def route_dependencies(
    doc: ScheduleDocument,
    visible_ids: Iterable[str],
    limit: int = MAX_EDGES,
) -> list[DependencyEdge]:
    """
    Dependency edges whose two endpoints are visible.

    Edges follow item order, then each item's dependency order. Self-edges and
    repeated dependencies are dropped; at most `limit` edges are returned.
    """

    visible = set(visible_ids)
    edges: list[DependencyEdge] = []
    seen: set[tuple[str, str]] = set()
    for item in doc.items:
        if item.id not in visible:
            continue
        for predecessor_id in item.dependencies:
            pair = (predecessor_id, item.id)
            if predecessor_id == item.id or predecessor_id not in visible or pair in seen:
                continue
            seen.add(pair)
            edges.append(DependencyEdge(predecessor_id, item.id))
            if len(edges) >= limit:
                return edges
    return edges


def connector_anchor(edge: DependencyEdge, boxes: Mapping[str, Box]) -> ConnectorAnchor | None:
    """From the right-middle of the predecessor to the left-middle of the successor."""

    pred = boxes.get(edge.predecessor_id)
    succ = boxes.get(edge.successor_id)
    if pred is None or succ is None:
        return None
    return ConnectorAnchor(
        x1=pred.left + pred.width,
        y1=pred.top + pred.height / 2,
        x2=succ.left,
        y2=succ.top + succ.height / 2,
    )


def connector_path(anchor: ConnectorAnchor, stub: float = CONNECTOR_STUB) -> list[tuple[float, float]]:
    """Orthogonal polyline: out of the predecessor, across to the successor row, in."""

    elbow_x = anchor.x1 + stub
    return [
        (anchor.x1, anchor.y1),
        (elbow_x, anchor.y1),
        (elbow_x, anchor.y2),
        (anchor.x2, anchor.y2),
    ]


def dependency_candidates(
    doc: ScheduleDocument,
    item_id: str,
    query: str = "",
    limit: int = MAX_CANDIDATES,
) -> list[ScheduleItem]:
    """Items that could be added as predecessors of `item_id`, sorted by name."""

    item = doc.item_by_id(item_id)
    if item is None:
        return []
    needle = query.strip().lower()
    existing = set(item.dependencies)
    candidates = [
        other
        for other in doc.items
        if other.id != item.id and other.id not in existing and (not needle or needle in other.name.lower())
    ]
    candidates.sort(key=lambda other: other.name.lower())
    return candidates[:limit]
