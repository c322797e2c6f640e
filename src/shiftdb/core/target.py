"""Migration target selection."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from shiftdb.core.errors import ConfigurationError

if TYPE_CHECKING:
    from shiftdb.core.settings import ParsedSettings


class Target(str, Enum):
    """Which database a run operates on. Chosen once per invocation."""

    PRODUCTION = "production"
    SHADOW = "shadow"

    @classmethod
    def from_shadow(cls, shadow: bool) -> Target:
        return cls.SHADOW if shadow else cls.PRODUCTION

    @property
    def is_shadow(self) -> bool:
        return self is Target.SHADOW

    @property
    def log_suffix(self) -> str:
        """Tag appended to the ``shiftdb`` prefix of operator log lines."""
        return "[shadow]" if self.is_shadow else ""

    def connection_string(self, settings: ParsedSettings) -> str:
        """Resolve the connection string this target selects.

        Raises:
            ConfigurationError: the selected connection string is not configured.
        """
        value = (
            settings.shadow_connection_string
            if self.is_shadow
            else settings.connection_string
        )
        if not value:
            raise ConfigurationError("Could not determine connection string").with_context(
                target=self.value
            )
        return value
