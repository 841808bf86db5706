"""Persistence layer: forward ledger and run audit trail.

Public API:
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - ForwardLedgerRepository: which items were delivered where
    - RunRepository: one audit row per live run

Example usage:
    >>> from mail_forwarder.persistence import init_database, get_session, RunRepository
    >>> init_database("sqlite:///./data/forward_ledger.db")
    >>> with get_session() as session:
    ...     RunRepository(session).get_recent(limit=5)
"""

from .database import close_database, get_engine, get_session, init_database, is_initialized
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
)
from .repositories import ForwardLedgerRepository, RunRepository

__all__ = [
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "is_initialized",
    "ForwardLedgerRepository",
    "RunRepository",
    "PersistenceError",
    "DatabaseConnectionError",
    "DataIntegrityError",
]
