"""Session commands for finishstrong CLI."""

from typing import TYPE_CHECKING, Optional

from finishstrong.cli.commands.helpers import (
    format_entry,
    format_session,
    print_json,
    validate_input,
)
from finishstrong.types import Session

if TYPE_CHECKING:
    from finishstrong import FinishStrong


def _resolve_session(fs: "FinishStrong", session_ref: Optional[str]) -> Optional[Session]:
    """Find a session by full id or unique id prefix; today's active one if None."""
    if not session_ref:
        return fs.active_session()
    session = fs.sessions.get_session(session_ref)
    if session:
        return session
    matches = [s for s in fs.list_sessions() if s.id.startswith(session_ref)]
    if len(matches) > 1:
        raise ValueError(f"Session id prefix {session_ref!r} is ambiguous")
    return matches[0] if matches else None


async def cmd_session(args, fs: "FinishStrong"):
    """Handle session subcommands (show, end, rename, delete)."""
    action = getattr(args, "session_action", None) or "show"

    if action == "show":
        if getattr(args, "date", None):
            sessions = fs.list_sessions(args.date)
        else:
            session = _resolve_session(fs, getattr(args, "id", None))
            sessions = [session] if session else []

        if args.json:
            print_json(
                [
                    {
                        "session": vars(s),
                        "entries": [vars(e) for e in fs.session_entries(s.id)],
                    }
                    for s in sessions
                ]
            )
            return
        if not sessions:
            print("No active session today")
            return
        for session in sessions:
            print(format_session(session))
            for entry in fs.session_entries(session.id):
                print(f"  {format_entry(fs, entry)}")
        return

    if action == "end":
        session = _resolve_session(fs, getattr(args, "id", None))
        if session is None or not fs.end_session(session.id):
            print("✗ No active session to end")
            return
        print(f"✓ Ended {session.name}")
        return

    session = _resolve_session(fs, args.id)
    if session is None:
        print(f"✗ Session {args.id} not found")
        return

    if action == "rename":
        name = validate_input(args.name, "name", 100)
        fs.update_session(session.id, name=name)
        print(f"✓ Renamed to {name}")
    elif action == "delete":
        removed = fs.delete_session(session.id)
        print(f"✓ Deleted {session.name} and {removed} entries")
