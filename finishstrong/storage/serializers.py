"""Local record <-> remote wire row mapping.

The wire shape is flat snake_case. The mapping is mechanical: sync-only
local state (``synced``) never leaves the device, empty notes and owners
travel as null, and records arriving from the remote are marked as
already synced.
"""

from typing import Any, Callable, Dict

from finishstrong.types import DEFAULT_EXERCISE_TYPE, Entry, Exercise, Session

from .schema import ENTRIES, EXERCISES, SESSIONS


def exercise_to_wire(exercise: Exercise) -> Dict[str, Any]:
    return {
        "id": exercise.id,
        "name": exercise.name,
        "display_name": exercise.display_name,
        "type": exercise.type or DEFAULT_EXERCISE_TYPE,
    }


def session_to_wire(session: Session) -> Dict[str, Any]:
    return {
        "id": session.id,
        "name": session.name,
        "date": session.date,
        "started_at": session.started_at,
        "ended_at": session.ended_at,
        "notes": session.notes or None,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
        "user_id": session.user_id or None,
    }


def entry_to_wire(entry: Entry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "exercise_id": entry.exercise_id,
        "session_id": entry.session_id,
        "weight": entry.weight,
        "unit": entry.unit,
        "reps": entry.reps,
        "sets": entry.sets,
        "notes": entry.notes or None,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
        "user_id": entry.user_id or None,
    }


def exercise_from_wire(row: Dict[str, Any]) -> Exercise:
    return Exercise(
        id=row["id"],
        name=row["name"],
        display_name=row.get("display_name") or row["name"],
        type=row.get("type") or DEFAULT_EXERCISE_TYPE,
    )


def session_from_wire(row: Dict[str, Any]) -> Session:
    return Session(
        id=row["id"],
        name=row["name"],
        date=row["date"],
        started_at=row["started_at"],
        ended_at=row.get("ended_at"),
        notes=row.get("notes"),
        created_at=row.get("created_at") or row["started_at"],
        updated_at=row["updated_at"],
        synced=True,
        user_id=row.get("user_id"),
    )


def entry_from_wire(row: Dict[str, Any]) -> Entry:
    return Entry(
        id=row["id"],
        exercise_id=row["exercise_id"],
        session_id=row["session_id"],
        weight=row.get("weight"),
        unit=row.get("unit"),
        reps=row.get("reps"),
        sets=row.get("sets"),
        notes=row.get("notes"),
        created_at=row.get("created_at") or row["updated_at"],
        updated_at=row["updated_at"],
        synced=True,
        user_id=row.get("user_id"),
    )


TO_WIRE: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    EXERCISES: exercise_to_wire,
    SESSIONS: session_to_wire,
    ENTRIES: entry_to_wire,
}

FROM_WIRE: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    EXERCISES: exercise_from_wire,
    SESSIONS: session_from_wire,
    ENTRIES: entry_from_wire,
}
