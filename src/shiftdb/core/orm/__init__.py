"""SQLAlchemy plumbing for PostgreSQL targets."""

from shiftdb.core.orm.session import SAConnectionBridge, ShiftSession, create_shift_engine

__all__ = ["SAConnectionBridge", "ShiftSession", "create_shift_engine"]
