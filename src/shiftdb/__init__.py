"""
shiftdb - forward-only SQL migrations.

Applies committed migrations exactly once each, in order, under a
database advisory lock, with optional before/after hook actions and a
shadow database target for development.

    from shiftdb.core.settings import load_settings
    from shiftdb.commands.migrate import migrate

    outcome = migrate(load_settings(), shadow=False, force_actions=False)
"""

__version__ = "0.1.0"
