"""Persistence layer exceptions.

This module defines custom exceptions for database and persistence operations.
All persistence exceptions inherit from PersistenceError for easy catching.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors.

    All database-related exceptions should inherit from this class.
    This allows callers to catch all persistence errors with a single except clause.
    """

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database not initialized before use
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a required failure record is not found.

    Updates and retries of a specific failure id raise this.
    Plain lookups return None instead.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when database constraint violation occurs.

    Examples:
    - Duplicate failure id
    - NOT NULL violation
    """

    pass


class StaleRecordError(PersistenceError):
    """Raised when a conditional update finds the record changed since it was read.

    Lifecycle updates only apply while the record is unresolved and its
    retry_count still matches the value observed at read time.
    """

    pass
