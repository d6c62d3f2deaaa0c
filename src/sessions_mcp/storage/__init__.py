"""Storage abstractions for finalized therapy sessions."""

from .chroma import (
    ChromaEvent,
    ChromaStore,
    ChromaUnavailableError,
    SessionNotFoundError,
    SessionSaveError,
    SessionStore,
    StorageError,
)
from .models import GoalLogRecord, SessionRecord

__all__ = [
    "ChromaEvent",
    "ChromaStore",
    "ChromaUnavailableError",
    "GoalLogRecord",
    "SessionNotFoundError",
    "SessionRecord",
    "SessionSaveError",
    "SessionStore",
    "StorageError",
]
