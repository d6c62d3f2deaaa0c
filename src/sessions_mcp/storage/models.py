"""Data models for persisted therapy sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..tracking.models import CueLevel


@dataclass(slots=True)
class GoalLogRecord:
    id: str
    goal_id: str | None
    goal_description: str
    cue_level: CueLevel
    was_successful: bool
    session_id: str
    timestamp: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "goal_id": self.goal_id,
            "goal_description": self.goal_description,
            "cue_level": self.cue_level.value,
            "was_successful": self.was_successful,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "GoalLogRecord":
        return cls(
            id=payload["id"],
            goal_id=payload.get("goal_id"),
            goal_description=payload["goal_description"],
            cue_level=CueLevel(payload["cue_level"]),
            was_successful=bool(payload["was_successful"]),
            session_id=payload["session_id"],
            timestamp=datetime.fromisoformat(payload["timestamp"]),
        )


@dataclass(slots=True)
class SessionRecord:
    """A finished session bundled with its goal logs, ready for durable write."""

    id: str
    client_id: str
    origin: str
    start_time: datetime
    end_time: datetime
    location: str | None = None
    notes: str | None = None
    tracking_id: str | None = None
    goal_logs: list[GoalLogRecord] = field(default_factory=list)

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    @property
    def total_trials(self) -> int:
        return len(self.goal_logs)

    @property
    def success_count(self) -> int:
        return sum(1 for log in self.goal_logs if log.was_successful)

    @property
    def failure_count(self) -> int:
        return self.total_trials - self.success_count

    @property
    def success_rate(self) -> float:
        if not self.goal_logs:
            return 0.0
        return self.success_count / self.total_trials

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "origin": self.origin,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "location": self.location,
            "notes": self.notes,
            "tracking_id": self.tracking_id,
            "goal_logs": [log.to_payload() for log in self.goal_logs],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionRecord":
        return cls(
            id=payload["id"],
            client_id=payload["client_id"],
            origin=payload.get("origin", "unknown"),
            start_time=datetime.fromisoformat(payload["start_time"]),
            end_time=datetime.fromisoformat(payload["end_time"]),
            location=payload.get("location"),
            notes=payload.get("notes"),
            tracking_id=payload.get("tracking_id"),
            goal_logs=[GoalLogRecord.from_payload(item) for item in payload.get("goal_logs", [])],
        )


__all__ = ["GoalLogRecord", "SessionRecord"]
