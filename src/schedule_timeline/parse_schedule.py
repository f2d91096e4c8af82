from __future__ import annotations

import datetime as _dt
import json
from pathlib import Path
from typing import Any

import yaml

from .document import normalize_document, serialize_document
from .schedule_models import ScheduleDocument, WbsRow
from .wbs_import import parse_wbs

YAML_SUFFIXES = {".yaml", ".yml"}


class ScheduleFileError(Exception):
    """Raised when a schedule or WBS file cannot be decoded."""


def read_payload(path: str | Path) -> Any:
    """
    Decode a JSON or YAML file into plain Python data.

    The suffix picks the decoder (`.yaml`/`.yml` use PyYAML, anything else JSON).
    An empty file decodes to None. Content that is not UTF-8 raises
    ScheduleFileError; FileNotFoundError propagates to the caller.
    """

    file_path = Path(path)
    try:
        with file_path.open("r", encoding="utf-8") as fh:
            text = fh.read()
        if not text.strip():
            return None
        if file_path.suffix.lower() in YAML_SUFFIXES:
            return yaml.safe_load(text)
        return json.loads(text)
    except (yaml.YAMLError, UnicodeDecodeError, ValueError) as exc:
        raise ScheduleFileError(f"{file_path}: could not decode {_format_name(file_path)}: {exc}") from exc


def load_schedule(path: str | Path, *, strict: bool = False, today: _dt.date | None = None) -> ScheduleDocument:
    """
    Load a schedule document from disk.

    Undecodable content falls back to the seeded default document unless
    `strict` is set, in which case ScheduleFileError is raised.
    """

    try:
        raw = read_payload(path)
    except ScheduleFileError:
        if strict:
            raise
        raw = None
    return normalize_document(raw, today=today)


def load_wbs(path: str | Path) -> list[WbsRow]:
    return parse_wbs(read_payload(path))


def save_schedule(doc: ScheduleDocument, path: str | Path) -> None:
    """Write the canonical JSON shape (or YAML for yaml suffixes), creating parent folders."""

    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    payload = serialize_document(doc)
    with file_path.open("w", encoding="utf-8") as fh:
        if file_path.suffix.lower() in YAML_SUFFIXES:
            yaml.safe_dump(payload, fh, sort_keys=False, allow_unicode=True)
        else:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
            fh.write("\n")


def _format_name(path: Path) -> str:
    return "YAML" if path.suffix.lower() in YAML_SUFFIXES else "JSON"
