"""Shared helpers for finishstrong."""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Optional


def get_finishstrong_home() -> Path:
    """Return the finishstrong data directory.

    ``FINISHSTRONG_HOME`` overrides the default of ``~/.finishstrong``.
    """
    override = os.environ.get("FINISHSTRONG_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".finishstrong"


def normalize_exercise_name(raw_name: str) -> str:
    """Normalize an exercise name into its business key.

    "Bench Press" -> "bench_press"
    """
    return re.sub(r"\s+", "_", raw_name.strip().lower())


def format_display_name(raw_name: str) -> str:
    """Capitalize each word of a raw exercise name for display."""
    return " ".join(word[:1].upper() + word[1:] for word in raw_name.strip().split(" ") if word)


def get_auto_session_name(now: Optional[datetime] = None) -> str:
    """Name a session after the local time of day it started."""
    moment = now or datetime.now()
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    hour = moment.hour
    if 5 <= hour < 12:
        return "Morning Workout"
    if 12 <= hour < 17:
        return "Afternoon Workout"
    if 17 <= hour < 21:
        return "Evening Workout"
    return "Night Workout"


def local_date(now: Optional[datetime] = None) -> str:
    """Return the local calendar day (YYYY-MM-DD) for a moment."""
    moment = now or datetime.now()
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date().isoformat()
