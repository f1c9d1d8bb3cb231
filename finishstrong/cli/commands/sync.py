"""Sync commands for finishstrong CLI."""

from typing import TYPE_CHECKING

from finishstrong.cli.commands.helpers import print_json

if TYPE_CHECKING:
    from finishstrong import FinishStrong


def _print_push(result) -> None:
    if result.is_empty:
        print("✓ Push: nothing to send")
        return
    print(
        f"✓ Pushed {len(result.sessions)} sessions, {len(result.entries)} entries, "
        f"{len(result.exercises)} exercises"
    )
    if result.deleted:
        print(f"  Deleted {len(result.deleted)} record(s) remotely")


def _print_pull(result) -> None:
    if result.skipped:
        print("Pull skipped")
        return
    print(
        f"✓ Pulled {result.sessions} sessions, {result.entries} entries, "
        f"{result.exercises} exercises"
    )
    if result.kept_local:
        print(f"  Kept {result.kept_local} newer local record(s)")


async def cmd_sync(args, fs: "FinishStrong"):
    """Handle sync subcommands (push, pull, status; default push then pull)."""
    action = getattr(args, "sync_action", None)

    if action == "status":
        status = fs.status()
        sync = status["sync"]
        if args.json:
            print_json(status)
            return
        print("Sync Status")
        print("=" * 50)
        if sync is None:
            print("Remote sync not configured")
            return
        print(f"Signed in:        {status['email'] or status['user_id'] or 'no'}")
        print(f"Dirty sessions:   {sync['dirty_sessions']}")
        print(f"Dirty entries:    {sync['dirty_entries']}")
        print(f"Pending deletes:  {sync['pending_deletes']}")
        print(f"Last pull:        {sync['last_pull'] or 'never'}")
        return

    if not fs.auth_state.is_authenticated() and not args.json:
        print("Not signed in; run `finishstrong auth login` to sync")

    if action == "push":
        result = await fs.push()
        if args.json:
            print_json(result.to_dict())
        else:
            _print_push(result)
    elif action == "pull":
        result = await fs.pull()
        if args.json:
            print_json(result.to_dict())
        else:
            _print_pull(result)
    else:
        pushed, pulled = await fs.sync()
        if args.json:
            print_json({"push": pushed.to_dict(), "pull": pulled.to_dict()})
        else:
            _print_push(pushed)
            _print_pull(pulled)
