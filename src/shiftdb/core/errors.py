"""
Structured error types for shiftdb.

Every failure the migrate protocol can surface is a ``ShiftError``
subclass carrying a category, a retry flag, structured context and an
optional chained cause. None of them are retried by shiftdb itself: a
failed run is re-run by the operator, relying on the ledger for
idempotence.

Hierarchy::

    ShiftError
    ├── ConfigurationError       missing/invalid settings for the target
    ├── DatabaseConnectionError  target database unreachable
    ├── LedgerError              bookkeeping absent, corrupt or divergent
    ├── LockError                mutual exclusion could not be established
    ├── HookActionError          a before/after action failed
    └── RunnerError              a single migration failed to apply

Usage:
    from shiftdb.core.errors import LedgerError

    raise LedgerError("Ledger table missing").with_context(target="shadow")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and CLI reporting."""

    CONFIG = "CONFIG"             # Missing connection string, bad action file
    DATABASE = "DATABASE"         # Connection failures
    LEDGER = "LEDGER"             # Migration bookkeeping problems
    LOCK = "LOCK"                 # Advisory lock failures
    ACTION = "ACTION"             # Before/after hook failures
    MIGRATION = "MIGRATION"       # A committed migration failed
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging.

    Attributes:
        target: ``production`` or ``shadow``
        migration: Filename of the migration involved
        action: Description of the hook action involved
        metadata: Additional key-value pairs
    """

    target: str | None = None
    migration: str | None = None
    action: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["target", "migration", "action"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ShiftError(Exception):
    """Base exception for all shiftdb errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override either per instance. Passing ``cause`` chains the
    original exception (``__cause__``) so tracebacks keep the root cause.

    Example:
        >>> try:
        ...     conn.execute("SELECT 1")
        ... except Exception as exc:
        ...     raise LockError("Session lost while waiting", cause=exc)
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ShiftError:
        """Add context fields, returning self for chaining.

        Example:
            raise RunnerError("Failed").with_context(target="shadow")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ConfigurationError(ShiftError):
    """Missing or invalid configuration for the selected target."""

    default_category = ErrorCategory.CONFIG


class DatabaseConnectionError(ShiftError):
    """The target database could not be reached."""

    default_category = ErrorCategory.DATABASE


class LedgerError(ShiftError):
    """Migration bookkeeping is absent, corrupt, or diverges from the catalog."""

    default_category = ErrorCategory.LEDGER


class LockError(ShiftError):
    """Mutual exclusion could not be established or released."""

    default_category = ErrorCategory.LOCK


class HookActionError(ShiftError):
    """A before/after action failed; later actions in the phase did not run."""

    default_category = ErrorCategory.ACTION

    def __init__(self, message: str, *, action: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        if action is not None:
            self.context.action = action


class RunnerError(ShiftError):
    """A committed migration failed to apply and was rolled back."""

    default_category = ErrorCategory.MIGRATION

    def __init__(self, message: str, *, migration_identity: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.migration_identity = migration_identity
        self.context.migration = migration_identity

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["migration_identity"] = self.migration_identity
        return result


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ShiftError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "LedgerError",
    "LockError",
    "HookActionError",
    "RunnerError",
]
