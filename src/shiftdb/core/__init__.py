"""
Core primitives: settings, errors, logging, connections, locks.

Modules
-------
errors       ShiftError hierarchy
logging      structlog configuration and helpers
settings     ShiftSettings / ParsedSettings
target       Production vs shadow target selection
connection   create_connection() and the with_client() scope
locks        with_advisory_lock()
protocols    Connection protocol
sqlite_conn  sqlite3 adapter
orm          SQLAlchemy bridge for PostgreSQL
"""
