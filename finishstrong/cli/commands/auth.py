"""Authentication commands for finishstrong CLI."""

import getpass
import logging
from typing import TYPE_CHECKING

from finishstrong.cli.commands.helpers import print_json
from finishstrong.protocols import FinishStrongError

if TYPE_CHECKING:
    from finishstrong import FinishStrong

logger = logging.getLogger(__name__)


async def cmd_auth(args, fs: "FinishStrong"):
    """Handle auth subcommands (login, logout, whoami)."""
    if args.auth_action == "whoami":
        state = fs.auth_state
        if args.json:
            print_json({"user_id": state.user_id, "email": state.email})
        elif state.is_authenticated():
            print(f"Signed in as {state.email or state.user_id}")
        else:
            print("Not signed in")
        return

    if fs.auth is None:
        raise FinishStrongError(
            "Remote sync is not configured; set FINISHSTRONG_SUPABASE_URL "
            "and FINISHSTRONG_SUPABASE_KEY"
        )

    if args.auth_action == "login":
        email = args.email
        if not email:
            print("Email: ", end="", flush=True)
            try:
                email = input().strip()
            except (EOFError, KeyboardInterrupt):
                print("\nAborted.")
                return
        if not email:
            raise ValueError("Email is required")
        try:
            password = args.password or getpass.getpass("Password: ")
        except (EOFError, KeyboardInterrupt):
            print("\nAborted.")
            return

        user_id = await fs.auth.sign_in(email, password)
        print(f"✓ Signed in as {email} ({user_id})")

    elif args.auth_action == "logout":
        await fs.auth.sign_out()
        print("✓ Signed out")
