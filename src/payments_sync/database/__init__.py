"""Database module for stream state persistence."""

from .models import (
    Base,
    SyncState,
    SyncedRecord,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
)
from .repository import (
    SyncStateRepository,
    SyncedRecordRepository,
)

__all__ = [
    # Models
    "Base",
    "SyncState",
    "SyncedRecord",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    # Repositories
    "SyncStateRepository",
    "SyncedRecordRepository",
]
