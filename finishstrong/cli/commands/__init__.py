"""CLI command modules for finishstrong.

Each module contains the handlers for one command group.
"""

from finishstrong.cli.commands.auth import cmd_auth
from finishstrong.cli.commands.entry import cmd_entry
from finishstrong.cli.commands.helpers import print_json, validate_input
from finishstrong.cli.commands.log import cmd_drain, cmd_log
from finishstrong.cli.commands.seed import cmd_seed
from finishstrong.cli.commands.session import cmd_session
from finishstrong.cli.commands.sync import cmd_sync

__all__ = [
    "cmd_auth",
    "cmd_drain",
    "cmd_entry",
    "cmd_log",
    "cmd_seed",
    "cmd_session",
    "cmd_sync",
    "print_json",
    "validate_input",
]
