"""
finishstrong CLI - log workouts in plain text, sync when you can.

Usage:
    finishstrong log TEXT... [--json]
    finishstrong drain [--json]
    finishstrong sync [push|pull|status] [--json]
    finishstrong session [show|end|rename|delete] ...
    finishstrong entry edit ID [--weight W] [--unit U] [--reps R] [--sets S] [--notes N]
    finishstrong entry delete ID
    finishstrong auth [login|logout|whoami]
    finishstrong seed
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from finishstrong import FinishStrong
from finishstrong.cli.commands import (
    cmd_auth,
    cmd_drain,
    cmd_entry,
    cmd_log,
    cmd_seed,
    cmd_session,
    cmd_sync,
)
from finishstrong.config import Settings, get_settings
from finishstrong.protocols import FinishStrongError

logger = logging.getLogger(__name__)

COMMANDS = {
    "log": cmd_log,
    "drain": cmd_drain,
    "sync": cmd_sync,
    "session": cmd_session,
    "entry": cmd_entry,
    "auth": cmd_auth,
    "seed": cmd_seed,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="finishstrong",
        description="Offline-first workout logging",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # log
    p_log = subparsers.add_parser("log", help="Log a workout in plain text")
    p_log.add_argument("text", nargs="+", help='e.g. "bench 80kg 5x3"')

    # drain
    subparsers.add_parser("drain", help="Interpret queued submissions")

    # sync
    p_sync = subparsers.add_parser("sync", help="Push and pull changes")
    p_sync.add_argument(
        "sync_action",
        nargs="?",
        choices=["push", "pull", "status"],
        help="Only push, only pull, or show status (default: push then pull)",
    )

    # session
    p_session = subparsers.add_parser("session", help="Session operations")
    session_sub = p_session.add_subparsers(dest="session_action")

    session_show = session_sub.add_parser("show", help="Show a session and its entries")
    session_show.add_argument("id", nargs="?", help="Session id or prefix (default: active)")
    session_show.add_argument("--date", help="Show every session on YYYY-MM-DD")

    session_end = session_sub.add_parser("end", help="End a session")
    session_end.add_argument("id", nargs="?", help="Session id or prefix (default: active)")

    session_rename = session_sub.add_parser("rename", help="Rename a session")
    session_rename.add_argument("id", help="Session id or prefix")
    session_rename.add_argument("name", help="New name")

    session_delete = session_sub.add_parser("delete", help="Delete a session and its entries")
    session_delete.add_argument("id", help="Session id or prefix")

    # entry
    p_entry = subparsers.add_parser("entry", help="Entry operations")
    entry_sub = p_entry.add_subparsers(dest="entry_action", required=True)

    entry_edit = entry_sub.add_parser("edit", help="Edit an entry")
    entry_edit.add_argument("id", help="Entry id or prefix")
    entry_edit.add_argument("--weight", type=float)
    entry_edit.add_argument("--unit", choices=["kg", "lbs"])
    entry_edit.add_argument("--reps", type=int)
    entry_edit.add_argument("--sets", type=int)
    entry_edit.add_argument("--notes")
    entry_edit.add_argument("--bodyweight", action="store_true", help="Clear weight and unit")

    entry_delete = entry_sub.add_parser("delete", help="Delete an entry")
    entry_delete.add_argument("id", help="Entry id or prefix")

    # auth
    p_auth = subparsers.add_parser("auth", help="Sign in and out")
    auth_sub = p_auth.add_subparsers(dest="auth_action", required=True)

    auth_login = auth_sub.add_parser("login", help="Sign in with email and password")
    auth_login.add_argument("--email", "-e")
    auth_login.add_argument("--password", "-p", help="Prompted for when omitted")

    auth_sub.add_parser("logout", help="Sign out")
    auth_sub.add_parser("whoami", help="Show the signed-in user")

    # seed
    subparsers.add_parser("seed", help="Add common exercises to an empty catalogue")

    return parser


async def run(args: argparse.Namespace, settings: Optional[Settings] = None) -> int:
    """Build the app, dispatch one command and shut down cleanly."""
    fs = await FinishStrong.from_settings(settings)
    try:
        await COMMANDS[args.command](args, fs)
        if fs.sync_engine is not None:
            # aclose cancels an armed push, so run it before shutting down
            await fs.sync_engine.flush_scheduled_push()
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        return 1
    except FinishStrongError as e:
        logger.error(f"Command failed: {e}")
        return 1
    finally:
        await fs.aclose()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level)

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.error(f"Command failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
