"""Exercise catalogue seeding command for finishstrong CLI."""

from typing import TYPE_CHECKING

from finishstrong.cli.commands.helpers import print_json

if TYPE_CHECKING:
    from finishstrong import FinishStrong


async def cmd_seed(args, fs: "FinishStrong"):
    """Insert the common exercise catalogue into an empty store."""
    inserted = fs.seed()

    if getattr(args, "json", False):
        print_json({"inserted": inserted})
    elif inserted:
        print(f"✓ Seeded {inserted} exercises")
    else:
        print("Exercise catalogue already populated, nothing to seed")
