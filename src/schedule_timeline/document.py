from __future__ import annotations

import datetime as _dt
import json
import logging
import math
import uuid
from dataclasses import dataclass, fields, replace
from typing import Any, Iterable, Mapping

from . import dates
from .schedule_models import (
    DOCUMENT_TYPE,
    DOCUMENT_VERSION,
    ITEM_STATUSES,
    ITEM_TYPES,
    MAX_DEPENDENCIES_PER_ITEM,
    MAX_ITEMS,
    MAX_PHASES,
    Phase,
    ScheduleDocument,
    ScheduleItem,
)

logger = logging.getLogger(__name__)

NEW_PHASE_NAME = "New phase"
DEFAULT_PHASE_NAME = "Phase"
FALLBACK_PHASE_NAME = "Schedule"
UNTITLED = "(untitled)"
DEFAULT_ITEM_NAMES = {"milestone": "New milestone", "task": "New task", "deliverable": "New deliverable"}
# New range items default to ending ten days after they start.
DEFAULT_ITEM_SPAN_DAYS = 10


class ScheduleValidationError(Exception):
    """Raised when a document with blocking validation issues is about to be saved."""

    def __init__(self, issues: list["ValidationIssue"]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues) or "schedule is not valid")


@dataclass(frozen=True)
class ValidationIssue:
    """User-facing problem with one item; blocking issues prevent saving."""

    code: str
    item_id: str
    message: str
    blocking: bool = True


def new_id() -> str:
    return str(uuid.uuid4())


def safe_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return str(value)


# ---------------------------------------------------------------------------
# Normalisation and serialisation
# ---------------------------------------------------------------------------


def normalize_document(raw: Any, *, today: _dt.date | None = None) -> ScheduleDocument:
    """
    Coerce loosely-typed JSON (mapping or JSON string) into a ScheduleDocument.

    - Input that is not a version 1 schedule falls back to `default_document`.
    - Missing ids are generated; unknown types become tasks, unknown statuses on_track.
    - Milestones lose their end; other items default end to start.
    - Phases are capped at MAX_PHASES and items at MAX_ITEMS, keeping the first entries.
    - Items pointing at an unknown phase get a phase named after that id; items
      without a phase join the first phase.
    """

    obj = _decode(raw)
    if not _is_schedule_mapping(obj):
        if raw is not None:
            logger.warning("Unrecognised schedule document; seeding default")
        return default_document(today=today)

    phases_raw = obj.get("phases")
    items_raw = obj.get("items")
    phases_raw = phases_raw if isinstance(phases_raw, list) else []
    items_raw = items_raw if isinstance(items_raw, list) else []
    if len(phases_raw) > MAX_PHASES:
        logger.debug("Truncating %d phases to %d", len(phases_raw), MAX_PHASES)
    if len(items_raw) > MAX_ITEMS:
        logger.debug("Truncating %d items to %d", len(items_raw), MAX_ITEMS)

    phases: list[Phase] = []
    phase_ids: set[str] = set()
    for entry in phases_raw[:MAX_PHASES]:
        entry = entry if isinstance(entry, Mapping) else {}
        phase_id = safe_str(entry.get("id")).strip()
        if not phase_id or phase_id in phase_ids:
            phase_id = new_id()
        phase_ids.add(phase_id)
        phases.append(Phase(id=phase_id, name=safe_str(entry.get("name")) or DEFAULT_PHASE_NAME))

    items: list[ScheduleItem] = []
    item_ids: set[str] = set()
    for entry in items_raw[:MAX_ITEMS]:
        item = _normalize_item(entry if isinstance(entry, Mapping) else {})
        if item.id in item_ids:
            item = replace(item, id=new_id())
        item_ids.add(item.id)
        items.append(item)

    items = _attach_to_phases(items, phases, phase_ids)

    anchor = dates.parse_iso_date(obj.get("anchor_date"))
    return ScheduleDocument(
        anchor_date=dates.to_iso(dates.start_of_week_monday(anchor)) if anchor else "",
        phases=tuple(phases),
        items=tuple(items),
    )


def default_document(*, today: _dt.date | None = None) -> ScheduleDocument:
    """Seed document shown for artifacts that have no schedule yet."""

    anchor = dates.start_of_week_monday(today or dates.today())
    preparation, deployment, configuration = new_id(), new_id(), new_id()
    kickoff_id, scope_id = new_id(), new_id()
    return ScheduleDocument(
        anchor_date=dates.to_iso(anchor),
        phases=(
            Phase(id=preparation, name="Preparation"),
            Phase(id=deployment, name="Deployment"),
            Phase(id=configuration, name="Configuration"),
        ),
        items=(
            ScheduleItem(
                id=kickoff_id,
                phase_id=preparation,
                type="milestone",
                name="Kickoff",
                start=dates.to_iso(dates.add_days(anchor, 2)),
            ),
            ScheduleItem(
                id=scope_id,
                phase_id=preparation,
                type="task",
                name="Scoping Documentation",
                start=dates.to_iso(dates.add_days(anchor, 7)),
                end=dates.to_iso(dates.add_days(anchor, 20)),
                status="at_risk",
                dependencies=(kickoff_id,),
            ),
        ),
    )


def serialize_document(doc: ScheduleDocument) -> dict[str, Any]:
    """Persisted JSON shape; key order and field presence never vary."""

    return {
        "version": DOCUMENT_VERSION,
        "type": DOCUMENT_TYPE,
        "anchor_date": doc.anchor_date.strip(),
        "phases": [{"id": phase.id, "name": phase.name} for phase in doc.phases],
        "items": [
            {
                "id": item.id,
                "phaseId": item.phase_id,
                "type": item.type,
                "name": item.name,
                "start": item.start,
                "end": item.end,
                "status": item.status,
                "notes": item.notes,
                "dependencies": [dep for dep in item.dependencies if dep],
            }
            for item in doc.items
        ],
    }


def _decode(raw: Any) -> Any:
    if isinstance(raw, (str, bytes)):
        try:
            return json.loads(raw)
        except ValueError:
            return None
    return raw


def _is_schedule_mapping(obj: Any) -> bool:
    if not isinstance(obj, Mapping) or obj.get("type") != DOCUMENT_TYPE:
        return False
    try:
        return float(obj.get("version")) == DOCUMENT_VERSION
    except (TypeError, ValueError, OverflowError):
        return False


def _normalize_item(entry: Mapping[str, Any]) -> ScheduleItem:
    item_type = safe_str(entry.get("type")).strip().lower()
    status = safe_str(entry.get("status")).strip().lower()
    deps_raw = _first_present(entry, ("dependencies", "dependsOn", "predecessors"))
    item = ScheduleItem(
        id=safe_str(entry.get("id")).strip() or new_id(),
        phase_id=safe_str(_first_present(entry, ("phaseId", "phase_id"))).strip(),
        type=item_type if item_type in ITEM_TYPES else "task",  # type: ignore[arg-type]
        name=safe_str(entry.get("name")) or UNTITLED,
        start=safe_str(entry.get("start")).strip(),
        end=safe_str(entry.get("end")).strip(),
        status=status if status in ITEM_STATUSES else "on_track",  # type: ignore[arg-type]
        notes=safe_str(entry.get("notes")),
        dependencies=parse_dependencies(deps_raw),
    )
    return _enforce_item_invariants(item)


def _first_present(entry: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = entry.get(key)
        if value is not None:
            return value
    return None


def parse_dependencies(value: Any) -> tuple[str, ...]:
    """Accept a list of ids or a comma-separated string; blanks dropped, capped."""

    if isinstance(value, (list, tuple)):
        deps = [safe_str(dep).strip() for dep in value]
    elif isinstance(value, str):
        deps = [part.strip() for part in value.split(",")]
    else:
        return ()
    return tuple(dep for dep in deps if dep)[:MAX_DEPENDENCIES_PER_ITEM]


def _attach_to_phases(items: list[ScheduleItem], phases: list[Phase], phase_ids: set[str]) -> list[ScheduleItem]:
    attached: list[ScheduleItem] = []
    for item in items:
        if item.phase_id in phase_ids:
            attached.append(item)
            continue
        if item.phase_id and len(phases) < MAX_PHASES:
            phases.append(Phase(id=item.phase_id, name=item.phase_id))
            phase_ids.add(item.phase_id)
            attached.append(item)
            continue
        if not phases:
            fallback = Phase(id=new_id(), name=FALLBACK_PHASE_NAME)
            phases.append(fallback)
            phase_ids.add(fallback.id)
        attached.append(replace(item, phase_id=phases[0].id))
    return attached


def _enforce_item_invariants(item: ScheduleItem) -> ScheduleItem:
    end = "" if item.is_milestone else (item.end or item.start)
    deps = tuple(dep for dep in item.dependencies if dep != item.id)
    if end == item.end and deps == item.dependencies:
        return item
    return replace(item, end=end, dependencies=deps)


# ---------------------------------------------------------------------------
# Anchor
# ---------------------------------------------------------------------------


def resolve_anchor(
    doc: ScheduleDocument,
    project_start: Any = None,
    today: _dt.date | None = None,
) -> _dt.date:
    """Monday of the document anchor, else of the project start, else of today."""

    for candidate in (doc.anchor_date, project_start):
        parsed = dates.parse_iso_date(candidate)
        if parsed is not None:
            return dates.start_of_week_monday(parsed)
    return dates.start_of_week_monday(today or dates.today())


def set_anchor_date(doc: ScheduleDocument, value: Any) -> ScheduleDocument:
    parsed = dates.parse_iso_date(value)
    anchor = dates.to_iso(dates.start_of_week_monday(parsed)) if parsed else ""
    return replace(doc, anchor_date=anchor)


# ---------------------------------------------------------------------------
# Phase operations
# ---------------------------------------------------------------------------


def add_phase(doc: ScheduleDocument, name: str = NEW_PHASE_NAME, phase_id: str | None = None) -> ScheduleDocument:
    if len(doc.phases) >= MAX_PHASES:
        logger.debug("Phase limit %d reached; not adding '%s'", MAX_PHASES, name)
        return doc
    phase = Phase(id=phase_id or new_id(), name=name)
    return replace(doc, phases=doc.phases + (phase,))


def update_phase(doc: ScheduleDocument, phase_id: str, name: str) -> ScheduleDocument:
    return replace(
        doc,
        phases=tuple(replace(phase, name=name) if phase.id == phase_id else phase for phase in doc.phases),
    )


def remove_phase(doc: ScheduleDocument, phase_id: str) -> ScheduleDocument:
    """Delete a phase together with its items and any dependencies on those items."""

    removed = {item.id for item in doc.items if item.phase_id == phase_id}
    kept = [item for item in doc.items if item.phase_id != phase_id]
    return replace(
        doc,
        phases=tuple(phase for phase in doc.phases if phase.id != phase_id),
        items=tuple(_prune_dependencies(kept, removed)),
    )


# ---------------------------------------------------------------------------
# Item operations
# ---------------------------------------------------------------------------


_PATCHABLE_FIELDS = frozenset(f.name for f in fields(ScheduleItem)) - {"id"}


def apply_item_patch(item: ScheduleItem, patch: Mapping[str, Any]) -> ScheduleItem:
    """
    Merge a partial update into an item and re-establish item invariants.

    Becoming a milestone clears `end`; leaving milestone defaults `end` to `start`.
    An end before the start is kept as typed; `validate_document` reports it.
    """

    unknown = sorted(set(patch) - _PATCHABLE_FIELDS)
    if unknown:
        raise ValueError(f"unexpected item fields {unknown}")

    changes: dict[str, Any] = {}
    for key, value in patch.items():
        if key == "type":
            if value in ITEM_TYPES:
                changes[key] = value
        elif key == "status":
            if value in ITEM_STATUSES:
                changes[key] = value
        elif key == "dependencies":
            changes[key] = parse_dependencies(value)
        else:
            changes[key] = safe_str(value)
    return _enforce_item_invariants(replace(item, **changes))


def add_item(
    doc: ScheduleDocument,
    phase_id: str,
    item_type: str = "task",
    start: Any = None,
    end: Any = None,
    name: str | None = None,
    item_id: str | None = None,
) -> ScheduleDocument:
    """Append a new item to a phase; unknown phases and full documents are left unchanged."""

    if doc.phase_by_id(phase_id) is None:
        logger.debug("Cannot add item to unknown phase '%s'", phase_id)
        return doc
    if len(doc.items) >= MAX_ITEMS:
        logger.debug("Item limit %d reached", MAX_ITEMS)
        return doc
    if item_type not in ITEM_TYPES:
        item_type = "task"

    start_date = dates.parse_iso_date(start) or dates.today()
    if end is None:
        end = dates.to_iso(dates.add_days(start_date, DEFAULT_ITEM_SPAN_DAYS))
    item = ScheduleItem(
        id=item_id or new_id(),
        phase_id=phase_id,
        type=item_type,  # type: ignore[arg-type]
        name=name or DEFAULT_ITEM_NAMES[item_type],
        start=dates.to_iso(start_date),
        end=safe_str(end),
    )
    return replace(doc, items=doc.items + (_enforce_item_invariants(item),))


def update_item(doc: ScheduleDocument, item_id: str, patch: Mapping[str, Any]) -> ScheduleDocument:
    return replace(
        doc,
        items=tuple(apply_item_patch(item, patch) if item.id == item_id else item for item in doc.items),
    )


def remove_item(doc: ScheduleDocument, item_id: str) -> ScheduleDocument:
    kept = [item for item in doc.items if item.id != item_id]
    return replace(doc, items=tuple(_prune_dependencies(kept, {item_id})))


def shift_item_by_weeks(doc: ScheduleDocument, item_id: str, weeks: int) -> ScheduleDocument:
    """Move an item by whole weeks; items with an unparseable start are left alone."""

    delta = weeks * 7

    def shifted(item: ScheduleItem) -> ScheduleItem:
        start = dates.parse_iso_date(item.start)
        if start is None:
            return item
        next_start = dates.to_iso(dates.add_days(start, delta))
        if item.is_milestone:
            return replace(item, start=next_start, end="")
        end = dates.parse_iso_date(item.end or item.start) or start
        return replace(item, start=next_start, end=dates.to_iso(dates.add_days(end, delta)))

    return replace(doc, items=tuple(shifted(item) if item.id == item_id else item for item in doc.items))


def duplicate_item(doc: ScheduleDocument, item_id: str, copy_id: str | None = None) -> ScheduleDocument:
    original = doc.item_by_id(item_id)
    if original is None or len(doc.items) >= MAX_ITEMS:
        return doc
    copy = replace(original, id=copy_id or new_id(), name=f"{original.name or UNTITLED} (copy)")
    return replace(doc, items=doc.items + (copy,))


def add_dependency(doc: ScheduleDocument, item_id: str, predecessor_id: str) -> ScheduleDocument:
    """Make `item_id` depend on `predecessor_id`. Cycles are not checked."""

    item = doc.item_by_id(item_id)
    if item is None or not predecessor_id or predecessor_id == item_id:
        return doc
    if predecessor_id in item.dependencies:
        return doc
    return update_item(doc, item_id, {"dependencies": item.dependencies + (predecessor_id,)})


def remove_dependency(doc: ScheduleDocument, item_id: str, predecessor_id: str) -> ScheduleDocument:
    item = doc.item_by_id(item_id)
    if item is None:
        return doc
    return update_item(
        doc, item_id, {"dependencies": tuple(dep for dep in item.dependencies if dep != predecessor_id)}
    )


def _prune_dependencies(items: Iterable[ScheduleItem], removed: set[str]) -> list[ScheduleItem]:
    if not removed:
        return list(items)
    pruned: list[ScheduleItem] = []
    for item in items:
        if any(dep in removed for dep in item.dependencies):
            item = replace(item, dependencies=tuple(dep for dep in item.dependencies if dep not in removed))
        pruned.append(item)
    return pruned


# ---------------------------------------------------------------------------
# Validation and summary
# ---------------------------------------------------------------------------


def validate_document(
    doc: ScheduleDocument,
    project_start: Any = None,
    project_finish: Any = None,
) -> list[ValidationIssue]:
    """
    Collect user-facing problems in document order.

    Project window checks only run when both project dates parse.
    """

    proj_start = dates.parse_iso_date(project_start)
    proj_finish = dates.parse_iso_date(project_finish)
    check_window = proj_start is not None and proj_finish is not None

    issues: list[ValidationIssue] = []
    for item in doc.items:
        start = dates.parse_iso_date(item.start)
        if start is None:
            issues.append(
                ValidationIssue("invalid_start", item.id, f'"{item.name}" has no valid start date.', blocking=False)
            )
            continue
        end = dates.parse_iso_date(item.effective_end) or start
        if end < start:
            issues.append(ValidationIssue("end_before_start", item.id, f'"{item.name}" ends before it starts.'))
        if check_window:
            if start < proj_start:
                issues.append(
                    ValidationIssue("starts_before_project", item.id, f'"{item.name}" starts before project start date.')
                )
            if end > proj_finish:
                issues.append(
                    ValidationIssue("ends_after_project", item.id, f'"{item.name}" ends after project finish date.')
                )
    return issues


def has_blocking_issues(issues: Iterable[ValidationIssue]) -> bool:
    return any(issue.blocking for issue in issues)


def ensure_savable(
    doc: ScheduleDocument,
    project_start: Any = None,
    project_finish: Any = None,
) -> list[ValidationIssue]:
    """Return non-blocking issues, or raise ScheduleValidationError when saving must be refused."""

    issues = validate_document(doc, project_start, project_finish)
    blocking = [issue for issue in issues if issue.blocking]
    if blocking:
        raise ScheduleValidationError(blocking)
    return issues


def progress_percent(items: Iterable[ScheduleItem]) -> int:
    """Share of non-milestone items marked done, as a rounded percentage."""

    counted = [item for item in items if not item.is_milestone]
    if not counted:
        return 0
    done = sum(1 for item in counted if item.status == "done")
    return int(math.floor(done / len(counted) * 100 + 0.5))
