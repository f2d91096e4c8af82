from __future__ import annotations

import datetime as _dt
import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

from . import dates
from .document import apply_item_patch, new_id, safe_str
from .schedule_models import MAX_ITEMS, MAX_PHASES, MAX_WBS_ROWS, Phase, ScheduleDocument, ScheduleItem, WbsRow

logger = logging.getLogger(__name__)

FALLBACK_PHASE_NAME = "Work"

# Alternate spellings seen in WBS payloads, in order of preference.
_NAME_KEYS = ("deliverable", "name", "title")
_DUE_KEYS = ("due_date", "dueDate", "end", "finish")
_PREDECESSOR_KEYS = ("predecessor", "predecessor_id", "depends_on")
_LEVEL_KEYS = ("level", "depth")


@dataclass(frozen=True)
class ImportResult:
    """Outcome of appending a WBS into a schedule."""

    document: ScheduleDocument
    added_phases: int
    added_items: int
    message: str

    @property
    def changed(self) -> bool:
        return self.added_phases > 0 or self.added_items > 0


def parse_wbs(raw: Any) -> list[WbsRow]:
    """
    Normalise a loosely-shaped WBS payload into WbsRow values.

    Accepts a JSON string, a mapping holding `rows` or `items`, or a bare list.
    Anything else yields no rows.
    """

    obj = raw
    if isinstance(raw, (str, bytes)):
        try:
            obj = json.loads(raw)
        except ValueError:
            return []

    if isinstance(obj, Mapping):
        rows_raw = obj.get("rows")
        if not isinstance(rows_raw, list):
            rows_raw = obj.get("items")
    else:
        rows_raw = obj
    if not isinstance(rows_raw, list):
        return []

    rows: list[WbsRow] = []
    seen: set[str] = set()
    for entry in rows_raw[:MAX_WBS_ROWS]:
        row = _parse_row(entry if isinstance(entry, Mapping) else {})
        if row.id in seen:
            row = replace(row, id=new_id())
        seen.add(row.id)
        rows.append(row)
    return rows


def _parse_row(entry: Mapping[str, Any]) -> WbsRow:
    tags = entry.get("tags")
    return WbsRow(
        id=safe_str(entry.get("id")).strip() or new_id(),
        level=_parse_level(_first(entry, _LEVEL_KEYS)),
        deliverable=safe_str(_first(entry, _NAME_KEYS)) or "(untitled)",
        description=safe_str(entry.get("description")),
        acceptance_criteria=safe_str(entry.get("acceptance_criteria")),
        owner=safe_str(entry.get("owner")),
        status=safe_str(entry.get("status")) or "not_started",
        due_date=safe_str(_first(entry, _DUE_KEYS)).strip(),
        predecessor=_parse_predecessor(_first(entry, _PREDECESSOR_KEYS)),
        tags=tuple(safe_str(tag) for tag in tags if safe_str(tag)) if isinstance(tags, list) else (),
    )


def _first(entry: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = entry.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_level(value: Any) -> int:
    try:
        level = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(level, 0)


def _parse_predecessor(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return safe_str(value).strip()


def wbs_status_to_schedule(status: str) -> str:
    s = safe_str(status).strip().lower()
    if s == "done":
        return "done"
    if s == "blocked":
        return "at_risk"
    return "on_track"


def build_schedule_from_wbs(
    wbs: Any,
    project_start: Any = None,
    project_finish: Any = None,
    today: _dt.date | None = None,
) -> ScheduleDocument | None:
    """
    Convert a WBS into a schedule document; None when the WBS has no rows.

    Phases are the top-level rows (de-duplicated by name, first-seen order).
    Every leaf row becomes a task starting on the project start and ending on
    its due date (or the start), clamped to the project finish. When there are
    no leaves, one milestone per phase is emitted instead.
    """

    rows = wbs if _is_row_list(wbs) else parse_wbs(wbs)
    if not rows:
        return None

    proj_start = dates.parse_iso_date(project_start) or today or dates.today()
    start_iso = dates.to_iso(proj_start)

    phase_by_row, phase_names = _top_level_phases(rows)
    phases = [Phase(id=new_id(), name=name) for name in phase_names]
    phase_id_by_name = {phase.name: phase.id for phase in phases}

    has_children = _rows_with_children(rows)
    row_ids = {row.id for row in rows}

    items: list[ScheduleItem] = []
    for row in rows:
        if row.id in has_children:
            continue
        phase_id = phase_id_by_name[phase_by_row[row.id]]
        due = dates.parse_iso_date(row.due_date)
        predecessor = row.predecessor if row.predecessor in row_ids and row.predecessor != row.id else ""
        items.append(
            ScheduleItem(
                id=row.id,
                phase_id=phase_id,
                type="task",
                name=row.deliverable or "(untitled)",
                start=start_iso,
                end=dates.to_iso(due) if due else start_iso,
                status=wbs_status_to_schedule(row.status),  # type: ignore[arg-type]
                notes="\n".join(part for part in (row.description, row.acceptance_criteria) if part).strip(),
                dependencies=(predecessor,) if predecessor else (),
            )
        )

    proj_finish = dates.parse_iso_date(project_finish)
    if proj_finish is not None:
        items = [_clamp_end(item, proj_finish) for item in items]

    if not items:
        items = [
            ScheduleItem(id=new_id(), phase_id=phase.id, type="milestone", name=phase.name, start=start_iso)
            for phase in phases
        ]

    return ScheduleDocument(
        anchor_date=dates.to_iso(dates.start_of_week_monday(proj_start)),
        phases=tuple(phases),
        items=tuple(items),
    )


def _is_row_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(row, WbsRow) for row in value)


def _top_level_phases(rows: list[WbsRow]) -> tuple[dict[str, str], list[str]]:
    """Map each row id to the name of its top-level ancestor using a level stack."""

    stack: list[WbsRow] = []
    phase_by_row: dict[str, str] = {}
    names: list[str] = []
    for row in rows:
        while stack and row.level <= stack[-1].level:
            stack.pop()
        stack.append(row)
        top = next((entry for entry in stack if entry.level == 0), stack[0])
        name = top.deliverable or FALLBACK_PHASE_NAME
        phase_by_row[row.id] = name
        if name not in names:
            names.append(name)
    return phase_by_row, names


def _rows_with_children(rows: list[WbsRow]) -> set[str]:
    parents: set[str] = set()
    for row, following in zip(rows, rows[1:]):
        if following.level > row.level:
            parents.add(row.id)
    return parents


def _clamp_end(item: ScheduleItem, finish: _dt.date) -> ScheduleItem:
    end = dates.parse_iso_date(item.end) or dates.parse_iso_date(item.start)
    if end is not None and end > finish:
        return replace(item, end=dates.to_iso(finish))
    return item


def append_from_wbs(
    doc: ScheduleDocument,
    wbs: Any,
    project_start: Any = None,
    project_finish: Any = None,
    today: _dt.date | None = None,
) -> ImportResult:
    """
    Append WBS-derived phases and items to an existing schedule.

    Phases merge by case-insensitive name. Imported item ids that collide with
    existing ones are regenerated, and imported dependencies follow the new ids.
    `wbs` may be raw input or rows already returned by `parse_wbs`. Nothing is
    applied when the WBS has no rows.
    """

    rows = wbs if _is_row_list(wbs) else parse_wbs(wbs)
    if not rows:
        return ImportResult(doc, 0, 0, "No WBS rows found; schedule unchanged.")
    imported = build_schedule_from_wbs(rows, project_start, project_finish, today=today)
    if imported is None:  # pragma: no cover - rows were checked above
        return ImportResult(doc, 0, 0, "WBS format not recognised; schedule unchanged.")

    phases = list(doc.phases)
    phase_id_by_key = {_phase_key(phase.name): phase.id for phase in phases}
    phase_map: dict[str, str] = {}
    added_phases = 0
    for phase in imported.phases:
        key = _phase_key(phase.name)
        existing = phase_id_by_key.get(key)
        if existing is None:
            if len(phases) >= MAX_PHASES:
                existing = phases[-1].id if phases else phase.id
            else:
                existing = new_id()
                phases.append(Phase(id=existing, name=phase.name or "Phase"))
                phase_id_by_key[key] = existing
                added_phases += 1
        phase_map[phase.id] = existing

    existing_ids = {item.id for item in doc.items}
    id_map = {item.id: (new_id() if item.id in existing_ids else item.id) for item in imported.items}

    room = max(MAX_ITEMS - len(doc.items), 0)
    appended: list[ScheduleItem] = []
    for item in imported.items[:room]:
        remapped = replace(
            item,
            id=id_map[item.id],
            phase_id=phase_map.get(item.phase_id, item.phase_id),
            dependencies=tuple(id_map[dep] for dep in item.dependencies if dep in id_map),
        )
        appended.append(apply_item_patch(remapped, {}))
    if len(imported.items) > room:
        logger.debug("Item limit reached; imported %d of %d WBS items", room, len(imported.items))
        kept = {item.id for item in appended}
        appended = [
            replace(item, dependencies=tuple(dep for dep in item.dependencies if dep in kept))
            for item in appended
        ]

    anchor = doc.anchor_date or imported.anchor_date
    result = replace(doc, anchor_date=anchor, phases=tuple(phases), items=doc.items + tuple(appended))
    logger.info("Appended %d items and %d phases from WBS", len(appended), added_phases)
    return ImportResult(
        result,
        added_phases,
        len(appended),
        f"Appended {len(appended)} items from WBS.",
    )


def _phase_key(name: str) -> str:
    return safe_str(name).strip().lower() or "phase"
