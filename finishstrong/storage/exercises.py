"""Exercise catalogue operations.

Exercises are keyed for humans by their normalized name. They are created
by seeding or on first use during ingestion and are never deleted.
"""

import logging
import sqlite3
from typing import List, Optional, Tuple

from finishstrong.types import DEFAULT_EXERCISE_TYPE, Exercise, generate_id
from finishstrong.utils import format_display_name, normalize_exercise_name

from .schema import EXERCISES
from .sqlite import SQLiteStorage

logger = logging.getLogger(__name__)

# (name, display_name)
COMMON_EXERCISES: List[Tuple[str, str]] = [
    # Chest
    ("bench_press", "Bench Press"),
    ("incline_bench_press", "Incline Bench Press"),
    ("dumbbell_fly", "Dumbbell Fly"),
    ("push_up", "Push Up"),
    ("dips", "Dips"),
    # Back
    ("deadlift", "Deadlift"),
    ("barbell_row", "Barbell Row"),
    ("pull_up", "Pull Up"),
    ("lat_pulldown", "Lat Pulldown"),
    ("seated_cable_row", "Seated Cable Row"),
    # Shoulders
    ("overhead_press", "Overhead Press"),
    ("lateral_raise", "Lateral Raise"),
    ("front_raise", "Front Raise"),
    ("face_pull", "Face Pull"),
    ("shrug", "Shrug"),
    # Arms
    ("bicep_curl", "Bicep Curl"),
    ("hammer_curl", "Hammer Curl"),
    ("tricep_pushdown", "Tricep Pushdown"),
    ("skull_crusher", "Skull Crusher"),
    ("tricep_extension", "Tricep Extension"),
    # Legs
    ("squat", "Squat"),
    ("front_squat", "Front Squat"),
    ("leg_press", "Leg Press"),
    ("romanian_deadlift", "Romanian Deadlift"),
    ("leg_curl", "Leg Curl"),
    ("leg_extension", "Leg Extension"),
    ("calf_raise", "Calf Raise"),
    ("lunge", "Lunge"),
    # Core
    ("plank", "Plank"),
    ("crunch", "Crunch"),
]


def get_exercise_by_name(storage: SQLiteStorage, name: str) -> Optional[Exercise]:
    """Look up an exercise by its normalized business key."""
    return storage.first(EXERCISES, where={"name": name})


def resolve_exercise(storage: SQLiteStorage, raw_name: str) -> Exercise:
    """Return the exercise for ``raw_name``, creating it on first use.

    "Bench Press" and "bench  press" both resolve to ``bench_press``.
    """
    name = normalize_exercise_name(raw_name)
    if not name:
        raise ValueError("Exercise name is required")

    existing = get_exercise_by_name(storage, name)
    if existing:
        return existing

    exercise = Exercise(
        id=generate_id(),
        name=name,
        display_name=format_display_name(raw_name),
        type=DEFAULT_EXERCISE_TYPE,
    )
    try:
        storage.insert(EXERCISES, exercise)
    except sqlite3.IntegrityError:
        # Another writer created the same business key first
        existing = get_exercise_by_name(storage, name)
        if existing is None:
            raise
        return existing

    logger.debug(f"Created exercise {name} ({exercise.id})")
    return exercise


def seed_exercises(storage: SQLiteStorage) -> int:
    """Populate the catalogue with common exercises if it is empty.

    Returns:
        Number of exercises inserted (0 when the catalogue already had rows).
    """
    if storage.count(EXERCISES) > 0:
        return 0

    exercises = [
        Exercise(id=generate_id(), name=name, display_name=display_name)
        for name, display_name in COMMON_EXERCISES
    ]
    storage.bulk_insert(EXERCISES, exercises)
    logger.info(f"Seeded {len(exercises)} exercises")
    return len(exercises)
