"""Entry commands for finishstrong CLI."""

from typing import TYPE_CHECKING, Optional

from finishstrong.cli.commands.helpers import format_entry, validate_input
from finishstrong.types import Entry

if TYPE_CHECKING:
    from finishstrong import FinishStrong


def _resolve_entry(fs: "FinishStrong", entry_ref: str) -> Optional[Entry]:
    entry = fs.entries.get_entry(entry_ref)
    if entry:
        return entry
    matches = [e for e in fs.entries.list_entries() if e.id.startswith(entry_ref)]
    if len(matches) > 1:
        raise ValueError(f"Entry id prefix {entry_ref!r} is ambiguous")
    return matches[0] if matches else None


async def cmd_entry(args, fs: "FinishStrong"):
    """Handle entry subcommands (edit, delete)."""
    entry = _resolve_entry(fs, args.id)
    if entry is None:
        print(f"✗ Entry {args.id} not found")
        return

    if args.entry_action == "edit":
        fields = {}
        if getattr(args, "bodyweight", False):
            fields["weight"] = None
            fields["unit"] = None
        if args.weight is not None:
            fields["weight"] = args.weight
        if args.unit is not None:
            fields["unit"] = args.unit
        if args.reps is not None:
            fields["reps"] = args.reps
        if args.sets is not None:
            fields["sets"] = args.sets
        if args.notes is not None:
            fields["notes"] = validate_input(args.notes, "notes", 500) or None
        if not fields:
            print("Nothing to change")
            return
        fs.update_entry(entry.id, **fields)
        print(f"✓ {format_entry(fs, fs.entries.get_entry(entry.id))}")

    elif args.entry_action == "delete":
        fs.delete_entry(entry.id)
        print(f"✓ Deleted {format_entry(fs, entry)}")
