from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
import webbrowser
from pathlib import Path

from .document import ScheduleValidationError, ensure_savable, resolve_anchor, validate_document
from .parse_schedule import ScheduleFileError, load_schedule, load_wbs, save_schedule
from .render_gantt import render_schedule
from .viewport import DEFAULT_VIEW, VIEW_MODES, page_for_dates, page_for_view, validate_range
from .wbs_import import append_from_wbs

logger = logging.getLogger("schedule_timeline")


def _parse_date(value: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Schedule timeline exporter",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("schedule", help="Path to schedule document (JSON or YAML)")
    parser.add_argument("--wbs", help="Append tasks from this WBS document before rendering")
    parser.add_argument("--project-start", type=_parse_date, help="Project start date (YYYY-MM-DD)")
    parser.add_argument("--project-finish", type=_parse_date, help="Project finish date (YYYY-MM-DD)")
    parser.add_argument("--out", default="output/schedule.svg", help="Output SVG path")
    parser.add_argument("--save-json", help="Write the (possibly updated) schedule document here")
    parser.add_argument("--view-weeks", type=int, choices=VIEW_MODES, default=DEFAULT_VIEW, help="Weeks per page")
    parser.add_argument("--page-start", type=int, default=0, help="First week index of the page")
    parser.add_argument("--range-from", type=_parse_date, help="Custom range start; overrides paging")
    parser.add_argument("--range-to", type=_parse_date, help="Custom range end; overrides paging")
    parser.add_argument("--title", default="Schedule / Roadmap", help="Chart title")
    parser.add_argument("--verbose", action="store_true", help="Log debug details")
    parser.add_argument(
        "--view",
        dest="view",
        action="store_true",
        default=True,
        help="Best-effort open the output file after rendering",
    )
    parser.add_argument(
        "--no-view",
        dest="view",
        action="store_false",
        help="Do not open the output file after rendering",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    schedule_path = Path(args.schedule)

    try:
        doc = load_schedule(schedule_path)
    except FileNotFoundError:
        print(f"Error: schedule file not found: {schedule_path}", file=sys.stderr)
        return 1
    except Exception as exc:  # Unexpected
        print(f"Unexpected error while loading schedule: {exc}", file=sys.stderr)
        return 1

    if args.wbs:
        try:
            rows = load_wbs(args.wbs)
        except ScheduleFileError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2
        except FileNotFoundError:
            print(f"Error: WBS file not found: {args.wbs}", file=sys.stderr)
            return 1
        except Exception as exc:
            print(f"Unexpected error while loading WBS: {exc}", file=sys.stderr)
            return 1
        result = append_from_wbs(doc, rows, args.project_start, args.project_finish)
        logger.info(result.message)
        doc = result.document

    for issue in validate_document(doc, args.project_start, args.project_finish):
        logger.warning(issue.message)

    anchor = resolve_anchor(doc, project_start=args.project_start)
    if args.range_from or args.range_to:
        range_error = validate_range(args.range_from, args.range_to)
        if range_error:
            print(f"Error: {range_error}", file=sys.stderr)
            return 2
        page = page_for_dates(anchor, args.range_from, args.range_to, args.page_start, args.view_weeks)
    else:
        page = page_for_view(args.view_weeks, args.page_start)

    try:
        render_schedule(doc, out_path=args.out, title=args.title, page=page, anchor=anchor)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except Exception as exc:
        print(f"Unexpected error while rendering: {exc}", file=sys.stderr)
        return 1

    if args.save_json:
        try:
            ensure_savable(doc, args.project_start, args.project_finish)
        except ScheduleValidationError as exc:
            print(f"Error: not saved: {exc}", file=sys.stderr)
            return 2
        save_schedule(doc, args.save_json)

    if args.view:
        try:
            webbrowser.open(Path(args.out).resolve().as_uri())
        except webbrowser.Error as exc:
            logger.debug("Could not open %s: %s", args.out, exc)

    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
