"""Persistence layer for failed email delivery records.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Data access
    - FailureRepository: session-bound queries and updates
    - DatabaseFailureStore: FailureStore used by the retry engine

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations
    - StaleRecordError: Conditional update lost to another writer

Example usage:
    >>> from email_retry.persistence import init_database, get_session, FailureRepository
    >>> init_database("sqlite:///./data/email_retry.db")
    >>> with get_session() as session:
    ...     pending = FailureRepository(session).list_unresolved()
"""

# Database initialization and session management
from .database import close_database, get_engine, get_session, init_database

# Data access
from .repositories import FailureRepository
from .store import DatabaseFailureStore

# Exceptions
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
    StaleRecordError,
)

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Data access
    "FailureRepository",
    "DatabaseFailureStore",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
    "StaleRecordError",
]
