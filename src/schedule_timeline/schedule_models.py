from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

ItemType = Literal["milestone", "task", "deliverable"]
"""Kinds of schedule entries: milestone (single day), task and deliverable (ranges)."""

ItemStatus = Literal["on_track", "at_risk", "delayed", "done"]

ITEM_TYPES: tuple[str, ...] = ("milestone", "task", "deliverable")
ITEM_STATUSES: tuple[str, ...] = ("on_track", "at_risk", "delayed", "done")

DOCUMENT_VERSION = 1
DOCUMENT_TYPE = "schedule"

# Resource bounds; inputs beyond them are truncated silently.
MAX_PHASES = 200
MAX_ITEMS = 4000
MAX_DEPENDENCIES_PER_ITEM = 50
MAX_WBS_ROWS = 5000


@dataclass(frozen=True)
class Phase:
    """Horizontal band of the timeline; list order is display order."""

    id: str
    name: str


@dataclass(frozen=True)
class ScheduleItem:
    """A milestone, task or deliverable placed on the timeline."""

    id: str
    phase_id: str
    type: ItemType = "task"
    name: str = ""
    start: str = ""
    end: str = ""
    status: ItemStatus = "on_track"
    notes: str = ""
    dependencies: tuple[str, ...] = ()

    @property
    def is_milestone(self) -> bool:
        return self.type == "milestone"

    @property
    def effective_end(self) -> str:
        """End date used for placement: the start for milestones or when end is empty."""
        if self.is_milestone:
            return self.start
        return self.end or self.start


@dataclass(frozen=True)
class ScheduleDocument:
    """
    Version 1 schedule document.

    Values are immutable; every editing operation in `document` returns a new
    document instead of changing this one.
    """

    anchor_date: str = ""
    phases: tuple[Phase, ...] = ()
    items: tuple[ScheduleItem, ...] = ()
    version: int = DOCUMENT_VERSION
    type: str = DOCUMENT_TYPE

    def phase_by_id(self, phase_id: str) -> Phase | None:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None

    def item_by_id(self, item_id: str) -> ScheduleItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def items_in_phase(self, phase_id: str) -> list[ScheduleItem]:
        return [item for item in self.items if item.phase_id == phase_id]


@dataclass(frozen=True)
class WbsRow:
    """
    One row of an external work breakdown structure, after normalisation.

    Parent/child structure is implicit: a row is a child of the nearest
    preceding row with a lower level.
    """

    id: str
    level: int
    deliverable: str
    description: str = ""
    acceptance_criteria: str = ""
    owner: str = ""
    status: str = "not_started"
    due_date: str = ""
    predecessor: str = ""
    tags: tuple[str, ...] = field(default_factory=tuple)
