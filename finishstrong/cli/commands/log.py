"""Workout logging commands for finishstrong CLI."""

from typing import TYPE_CHECKING

from finishstrong.cli.commands.helpers import format_entry, print_json, validate_input
from finishstrong.types import QueueStatus

if TYPE_CHECKING:
    from finishstrong import FinishStrong


async def cmd_log(args, fs: "FinishStrong"):
    """Queue free text and interpret it right away."""
    raw_input = validate_input(" ".join(args.text), "text", 1000)
    before = {entry.id for entry in fs.entries.list_entries()}
    item, result = await fs.log(raw_input)
    created = [entry for entry in fs.entries.list_entries() if entry.id not in before]

    if args.json:
        print_json(
            {
                "item": {"id": item.id, "status": item.status, "error": item.error},
                "drain": result.to_dict(),
                "entries": [entry.id for entry in created],
            }
        )
        return

    if item.status == QueueStatus.PARSED.value:
        print(f"✓ Logged {len(created)} entr{'y' if len(created) == 1 else 'ies'}")
        for entry in created:
            print(f"  {format_entry(fs, entry)}")
    elif item.status == QueueStatus.FAILED.value:
        print(f"✗ Could not log that: {item.error}")
    else:
        print("Queued; another drain is in progress")

    others = result.processed + result.failed - 1
    if others > 0:
        print(f"  (also drained {others} earlier queued item(s))")


async def cmd_drain(args, fs: "FinishStrong"):
    """Interpret everything still pending in the queue."""
    result = await fs.drain()

    if args.json:
        print_json(result.to_dict())
        return

    if not result.processed and not result.failed:
        print("Nothing pending")
        return
    print(f"✓ Parsed {result.processed}, failed {result.failed}")
    if not result.failed:
        return
    for item in fs.queue_items(status=QueueStatus.FAILED.value, limit=result.failed):
        print(f"  ✗ {item.raw_input!r}: {item.error}")
