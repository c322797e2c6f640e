"""Top-level commands, each a function of settings usable without the CLI.

    from shiftdb.commands.migrate import migrate
    from shiftdb.commands.status import status
"""

from shiftdb.commands.migrate import MigratePhase, RunOutcome
from shiftdb.commands.status import StatusReport

__all__ = ["MigratePhase", "RunOutcome", "StatusReport"]
