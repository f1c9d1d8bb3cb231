"""Shared helper functions for CLI commands."""

import json
import re
from typing import TYPE_CHECKING, Any

from finishstrong.storage.schema import EXERCISES
from finishstrong.types import Entry, Session

if TYPE_CHECKING:
    from finishstrong import FinishStrong


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")

    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    sanitized = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)

    return sanitized


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, default=str))


def exercise_label(fs: "FinishStrong", exercise_id: str) -> str:
    exercise = fs.storage.get(EXERCISES, exercise_id)
    return exercise.display_name if exercise else exercise_id


def format_entry(fs: "FinishStrong", entry: Entry) -> str:
    """One-line summary, e.g. ``Bench Press  80 kg  5 reps x 3 sets``."""
    parts = [exercise_label(fs, entry.exercise_id)]
    if entry.weight is not None:
        weight = int(entry.weight) if float(entry.weight).is_integer() else entry.weight
        parts.append(f"{weight} {entry.unit}")
    if entry.reps is not None:
        parts.append(f"{entry.reps} reps x {entry.sets or 1} sets")
    elif entry.sets is not None:
        parts.append(f"{entry.sets} sets")
    line = "  ".join(parts)
    if entry.notes:
        line += f"  ({entry.notes})"
    marker = "" if entry.synced else " *"
    return f"[{entry.id[:8]}] {line}{marker}"


def format_session(session: Session) -> str:
    state = "active" if session.is_active else "ended"
    marker = "" if session.synced else " *"
    return f"[{session.id[:8]}] {session.name} - {session.date} ({state}){marker}"
