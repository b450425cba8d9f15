"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so the notification
engine can degrade gracefully with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when the database cannot be initialized or reached.

    Examples:
    - Empty or malformed database URL
    - Database file not writable
    - Session requested before init_database()
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when an operation requires a row that does not exist.

    Lookups that treat "not found" as a normal outcome return None instead.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised on constraint violations (e.g. a duplicate username)."""

    pass
