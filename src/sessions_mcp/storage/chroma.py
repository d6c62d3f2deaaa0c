"""Chroma-based persistence layer."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from .models import GoalLogRecord, SessionRecord

logger = logging.getLogger(__name__)


class ChromaUnavailableError(RuntimeError):
    """Raised when the Chroma client cannot be constructed."""


class StorageError(RuntimeError):
    """Base class for session persistence failures."""

    retryable = False


class SessionSaveError(StorageError):
    """Raised when a finalized session could not be written."""

    retryable = True


class SessionNotFoundError(StorageError):
    """Raised when a session id has no stored record."""


class CollectionProtocol(Protocol):
    """Protocol for the minimal Chroma collection API used by the store."""

    def add(
        self,
        *,
        documents: Iterable[str],
        metadatas: Iterable[dict[str, Any]],
        ids: Iterable[str],
    ) -> None:
        ...

    def get(
        self,
        *,
        ids: Iterable[str] | None = None,
        where: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> dict[str, list[Any]]:
        ...


class ClientProtocol(Protocol):
    """Protocol for the minimal Chroma client API used by the store."""

    def get_or_create_collection(self, name: str) -> CollectionProtocol:
        ...


class SessionStore(Protocol):
    """Storage collaborator accepting finalized sessions."""

    async def save_session(self, record: SessionRecord) -> SessionRecord:
        ...

    def fetch_session(self, session_id: str) -> SessionRecord:
        ...

    def list_sessions(self, client_id: str | None = None) -> list[SessionRecord]:
        ...

    def fetch_goal_logs(self, session_id: str) -> list[GoalLogRecord]:
        ...


@dataclass(slots=True)
class ChromaEvent:
    """Represents a stored event in Chroma."""

    id: str
    session_id: str
    event_type: str
    document: str
    metadata: dict[str, Any]
    timestamp: datetime


def build_where(filters: dict[str, Any] | None) -> dict[str, Any] | None:
    """Translate a flat equality filter into a Chroma ``where`` clause."""

    if not filters:
        return None
    if len(filters) == 1:
        return dict(filters)
    return {"$and": [{key: value} for key, value in filters.items()]}


class ChromaStore:
    """Persist finalized therapy sessions and their goal logs via ChromaDB."""

    def __init__(
        self,
        path: Path,
        *,
        collection_name: str = "therapy_sessions",
        client_factory: Callable[[], ClientProtocol] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = Path(path)
        self._collection_name = collection_name
        self._client_factory = client_factory or self._default_client_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._client: ClientProtocol | None = None
        self._collection: CollectionProtocol | None = None
        self._counters: dict[str, int] = defaultdict(int)

    @property
    def collection_name(self) -> str:
        return self._collection_name

    def _default_client_factory(self) -> ClientProtocol:
        try:
            import chromadb
        except ImportError as exc:  # pragma: no cover - depends on environment
            raise ChromaUnavailableError(
                "chromadb package is not installed; install sessions-mcp with its storage dependencies"
            ) from exc

        return chromadb.PersistentClient(path=str(self._path))

    def _ensure_collection(self) -> CollectionProtocol:
        if self._collection is None:
            client = self._client or self._client_factory()
            self._client = client
            self._collection = client.get_or_create_collection(self._collection_name)
        return self._collection

    def _convert_result(self, result: dict[str, list[Any]]) -> list[ChromaEvent]:
        events: list[ChromaEvent] = []
        ids = result.get("ids", [])
        documents = result.get("documents", [])
        metadatas = result.get("metadatas", [])
        for event_id, document, metadata in zip(ids, documents, metadatas):
            timestamp_raw = metadata.get("timestamp")
            timestamp = (
                datetime.fromisoformat(timestamp_raw)
                if isinstance(timestamp_raw, str)
                else self._clock()
            )
            events.append(
                ChromaEvent(
                    id=event_id,
                    session_id=metadata.get("session_id", ""),
                    event_type=metadata.get("event_type", ""),
                    document=document,
                    metadata=metadata,
                    timestamp=timestamp,
                )
            )
        events.sort(key=lambda event: (event.timestamp, event.metadata.get("sequence", 0)))
        return events

    def ping(self) -> bool:
        """Verify that the underlying collection can be obtained."""

        self._ensure_collection()
        return True

    def _build_event(
        self,
        *,
        session_id: str,
        event_type: str,
        body: Any,
        metadata: dict[str, Any] | None = None,
        event_id: str | None = None,
        sequence: int | None = None,
    ) -> ChromaEvent:
        if sequence is None:
            sequence = self._counters[session_id] = self._counters[session_id] + 1
        timestamp = self._clock()

        document = body if isinstance(body, str) else json.dumps(body)
        record_metadata = {
            "session_id": session_id,
            "event_type": event_type,
            "timestamp": timestamp.isoformat(),
            "sequence": sequence,
        }
        if metadata:
            # Chroma rejects None metadata values.
            record_metadata.update({k: v for k, v in metadata.items() if v is not None})

        return ChromaEvent(
            id=event_id or f"{session_id}:{uuid.uuid4().hex}",
            session_id=session_id,
            event_type=event_type,
            document=document,
            metadata=record_metadata,
            timestamp=timestamp,
        )

    def _add_events(self, events: list[ChromaEvent]) -> None:
        self._ensure_collection().add(
            documents=[event.document for event in events],
            metadatas=[event.metadata for event in events],
            ids=[event.id for event in events],
        )

    def record_event(
        self,
        *,
        session_id: str,
        event_type: str,
        body: Any,
        metadata: dict[str, Any] | None = None,
    ) -> ChromaEvent:
        event = self._build_event(
            session_id=session_id,
            event_type=event_type,
            body=body,
            metadata=metadata,
        )
        self._add_events([event])
        return event

    def fetch_session_events(self, session_id: str, *, limit: int | None = None) -> list[ChromaEvent]:
        collection = self._ensure_collection()
        result = collection.get(where={"session_id": session_id}, limit=limit)
        return self._convert_result(result)

    async def save_session(self, record: SessionRecord) -> SessionRecord:
        """Durably write a finalized session and its goal logs."""

        return await asyncio.to_thread(self.write_session, record)

    def write_session(self, record: SessionRecord) -> SessionRecord:
        """Write the session and its goal logs in a single ``add``.

        Event ids derive from the session and goal log ids, so writing the same
        record again is a no-op.
        """

        session_event_id = f"{record.id}:session"
        events = [
            self._build_event(
                session_id=record.id,
                event_type="session_saved",
                body=record.to_payload(),
                metadata={
                    "client_id": record.client_id,
                    "origin": record.origin,
                    "total_trials": record.total_trials,
                    "success_count": record.success_count,
                    "tracking_id": record.tracking_id,
                },
                event_id=session_event_id,
                sequence=0,
            )
        ]
        events.extend(
            self._build_event(
                session_id=record.id,
                event_type="goal_log",
                body=log.to_payload(),
                metadata={
                    "client_id": record.client_id,
                    "goal_id": log.goal_id,
                    "cue_level": log.cue_level.value,
                    "was_successful": log.was_successful,
                },
                event_id=f"{record.id}:log:{log.id}",
                sequence=position,
            )
            for position, log in enumerate(record.goal_logs, start=1)
        )

        try:
            collection = self._ensure_collection()
            if collection.get(ids=[session_event_id]).get("ids"):
                logger.info("Session already saved", extra={"session_id": record.id})
                return record
            self._add_events(events)
        except ChromaUnavailableError:
            raise
        except Exception as exc:
            raise SessionSaveError(f"Unable to save session {record.id}: {exc}") from exc

        logger.info(
            "Saved session",
            extra={
                "session_id": record.id,
                "client_id": record.client_id,
                "goal_logs": len(record.goal_logs),
            },
        )
        return record

    def fetch_session(self, session_id: str) -> SessionRecord:
        events = self.search_events(filters={"session_id": session_id, "event_type": "session_saved"})
        if not events:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        return SessionRecord.from_payload(json.loads(events[-1].document))

    def list_sessions(self, client_id: str | None = None) -> list[SessionRecord]:
        filters: dict[str, Any] = {"event_type": "session_saved"}
        if client_id:
            filters["client_id"] = client_id
        events = self.search_events(filters=filters)
        sessions = [SessionRecord.from_payload(json.loads(event.document)) for event in events]
        sessions.sort(key=lambda session: session.start_time)
        return sessions

    def fetch_goal_logs(self, session_id: str) -> list[GoalLogRecord]:
        events = self.search_events(filters={"session_id": session_id, "event_type": "goal_log"})
        logs = [GoalLogRecord.from_payload(json.loads(event.document)) for event in events]
        logs.sort(key=lambda log: log.timestamp)
        return logs

    def search_events(
        self,
        query: str | None = None,
        *,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[ChromaEvent]:
        collection = self._ensure_collection()
        result = collection.get(where=build_where(filters), limit=limit)
        events = self._convert_result(result)
        if query:
            needle = query.lower()
            filtered: list[ChromaEvent] = []
            for event in events:
                haystacks = [event.document.lower()]
                haystacks.extend(str(value).lower() for value in event.metadata.values())
                if any(needle in hay for hay in haystacks):
                    filtered.append(event)
            events = filtered
        return events[:limit] if limit else events


__all__ = [
    "ChromaEvent",
    "ChromaStore",
    "ChromaUnavailableError",
    "SessionNotFoundError",
    "SessionSaveError",
    "SessionStore",
    "StorageError",
    "build_where",
]
