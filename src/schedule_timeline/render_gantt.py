from __future__ import annotations

import datetime as _dt
from importlib import metadata
from pathlib import Path
from typing import Iterable

import matplotlib

matplotlib.use("Agg")  # ensure headless, deterministic output
import matplotlib.path as mpath
import matplotlib.pyplot as plt
from matplotlib.patches import FancyArrowPatch, Polygon, Rectangle

from .dependencies import Box, ItemFilter, connector_anchor, connector_path, filter_items, route_dependencies
from .document import progress_percent, resolve_anchor
from .lanes import pack_lanes
from .schedule_models import ScheduleDocument
from .viewport import BAR_INSET, DAY_WIDTH, DEFAULT_VIEW, WeekRange, bar_geometry, page_for_view, today_offset, week_headers

# Layout knobs, in drawing pixels.
BAR_HEIGHT = 32
LANE_GAP = 6
PHASE_TOP_PAD = 24
PHASE_BOTTOM_PAD = 16
COLLAPSED_PHASE_HEIGHT = 40
PX_PER_INCH = 96
LABEL_COLUMN_INCH = 2.8
FONT_SCALE = 1.0
TITLE_FONT = 14 * FONT_SCALE
LABEL_FONT = 10 * FONT_SCALE
BAR_FONT = 8 * FONT_SCALE
FOOTER_FONT = 8 * FONT_SCALE
TICK_FONT = 8 * FONT_SCALE

STATUS_COLORS = {
    "on_track": "#10b981",
    "at_risk": "#f59e0b",
    "delayed": "#ef4444",
    "done": "#3b82f6",
}
MILESTONE_COLOR = "#f97316"
CONNECTOR_COLOR = "#64748b"
TODAY_COLOR = "#dc2626"


def render_schedule(
    doc: ScheduleDocument,
    out_path: str,
    title: str,
    page: WeekRange | None = None,
    anchor: _dt.date | None = None,
    item_filter: ItemFilter | None = None,
    collapsed: Iterable[str] = (),
    today: _dt.date | None = None,
    day_width: float = DAY_WIDTH,
) -> dict[str, Box]:
    """
    Render one page of the schedule as a static SVG at `out_path`.

    - Phases become horizontal bands sized by their lane count; collapsed phases
      keep only a thin band with their label.
    - Bars and milestone markers use the viewport geometry; off-page items are skipped.
    - Dependency connectors are drawn between bars that are both on the page.

    Returns the drawn bar boxes keyed by item id.
    """

    if not doc.phases:
        raise ValueError("schedule has no phases to render")

    anchor = anchor or resolve_anchor(doc, today=today)
    page = page or page_for_view(DEFAULT_VIEW)
    hidden = set(collapsed)

    visible_items = filter_items(doc, item_filter)
    lanes = pack_lanes(doc, visible_items)

    bands: list[tuple[str, float, float]] = []  # (phase name, top, height)
    boxes: dict[str, Box] = {}
    markers: dict[str, str] = {}
    offset = 0.0
    for phase in doc.phases:
        if phase.id in hidden:
            bands.append((phase.name, offset, COLLAPSED_PHASE_HEIGHT))
            offset += COLLAPSED_PHASE_HEIGHT
            continue
        lane_count = lanes.lane_count_by_phase.get(phase.id, 1)
        height = PHASE_TOP_PAD + lane_count * (BAR_HEIGHT + LANE_GAP) + PHASE_BOTTOM_PAD
        for item in visible_items:
            if item.phase_id != phase.id:
                continue
            geometry = bar_geometry(anchor, page, item, day_width)
            if geometry is None:
                continue
            lane = lanes.lane_of.get(item.id, 0)
            top = offset + PHASE_TOP_PAD + lane * (BAR_HEIGHT + LANE_GAP)
            boxes[item.id] = Box(geometry.left, top, geometry.width, BAR_HEIGHT)
            markers[item.id] = "milestone" if item.is_milestone else item.status
        bands.append((phase.name, offset, height))
        offset += height

    chart_width = page.weeks * 7 * day_width + 2 * BAR_INSET
    total_height = max(offset, 1.0)
    fig = plt.figure(
        figsize=(chart_width / PX_PER_INCH + LABEL_COLUMN_INCH, max(3.0, total_height / PX_PER_INCH + 1.5))
    )
    gs = fig.add_gridspec(
        1,
        2,
        width_ratios=[LABEL_COLUMN_INCH, chart_width / PX_PER_INCH],
        wspace=0.02,
        left=0.02,
        right=0.98,
        top=0.88,
        bottom=0.08,
    )
    label_ax = fig.add_subplot(gs[0, 0])
    ax = fig.add_subplot(gs[0, 1], sharey=label_ax)

    ax.set_xlim(0, chart_width)
    ax.set_ylim(0, total_height)
    ax.invert_yaxis()
    ax.set_yticks([])
    ax.xaxis.tick_top()
    headers = week_headers(anchor, page)
    ax.set_xticks([(header.index - page.first) * 7 * day_width + 3.5 * day_width for header in headers])
    ax.set_xticklabels([header.label for header in headers], fontsize=TICK_FONT, rotation=30, ha="left")
    for index in range(page.weeks + 1):
        ax.axvline(index * 7 * day_width, color="#cbd5e1", linewidth=0.6, zorder=0)

    label_ax.set_xlim(0, 1)
    label_ax.axis("off")

    for name, top, height in bands:
        ax.axhline(top + height, color="#e2e8f0", linewidth=0.8, zorder=0)
        label_ax.text(0.98, top + height / 2, name, ha="right", va="center", fontsize=LABEL_FONT, fontweight="bold")

    items_by_id = {item.id: item for item in visible_items}
    for item_id, box in boxes.items():
        kind = markers[item_id]
        if kind == "milestone":
            cx = box.left + box.width / 2
            cy = box.top + box.height / 2
            half = box.width / 2
            diamond = [(cx - half, cy), (cx, cy - half), (cx + half, cy), (cx, cy + half)]
            ax.add_patch(Polygon(diamond, closed=True, facecolor=MILESTONE_COLOR, edgecolor="black", linewidth=0.5))
            continue
        ax.add_patch(
            Rectangle(
                (box.left, box.top),
                box.width,
                box.height,
                facecolor=STATUS_COLORS.get(kind, "#999999"),
                edgecolor="black",
                linewidth=0.5,
                zorder=2,
            )
        )
        ax.text(
            box.left + 4,
            box.top + box.height / 2,
            items_by_id[item_id].name,
            ha="left",
            va="center",
            fontsize=BAR_FONT,
            color="white",
            clip_on=True,
            zorder=3,
        )

    _draw_dependencies(ax, doc, boxes)

    marker_x = today_offset(anchor, page, today, day_width)
    if marker_x is not None:
        ax.axvline(marker_x + BAR_INSET, color=TODAY_COLOR, linewidth=1.0, linestyle="--", zorder=4)

    fig.suptitle(title, x=0.5, fontsize=TITLE_FONT, y=0.985)
    footer = f"{progress_percent(visible_items)}% complete - schedule_timeline v{_tool_version()}"
    fig.text(0.99, 0.01, footer, ha="right", va="bottom", fontsize=FOOTER_FONT, alpha=0.8)

    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    try:
        fig.savefig(out_path, format="svg", bbox_inches="tight")
    finally:
        plt.close(fig)
    return boxes


def _draw_dependencies(ax: plt.Axes, doc: ScheduleDocument, boxes: dict[str, Box]) -> None:
    for edge in route_dependencies(doc, boxes.keys()):
        anchor = connector_anchor(edge, boxes)
        if anchor is None:
            continue
        points = connector_path(anchor)
        codes = [mpath.Path.MOVETO] + [mpath.Path.LINETO] * (len(points) - 1)
        arrow = FancyArrowPatch(
            path=mpath.Path(points, codes),
            arrowstyle="-|>",
            mutation_scale=8.0,
            lw=0.9,
            color=CONNECTOR_COLOR,
            shrinkA=0.5,
            shrinkB=0.5,
            zorder=5,
        )
        ax.add_patch(arrow)


def _tool_version() -> str:
    try:
        return metadata.version("schedule_timeline")
    except metadata.PackageNotFoundError:
        return "0.0.0"
