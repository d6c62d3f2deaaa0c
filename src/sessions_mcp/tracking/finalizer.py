"""Turn an active session into a persistable record and an end-of-session summary."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ..storage.models import GoalLogRecord, SessionRecord
from .active import ActiveSession
from .models import CueLevelBreakdown, PerformanceLevel, performance_level, success_percentage

DEFAULT_ORIGIN = "Watch"


def finalize(
    active: ActiveSession,
    *,
    origin: str = DEFAULT_ORIGIN,
    clock: Callable[[], datetime] | None = None,
    location: str | None = None,
    notes: str | None = None,
    session_id: str | None = None,
) -> SessionRecord:
    """Build the storage bundle for ``active``.

    The persisted session gets a freshly minted id, or ``session_id`` when
    retrying a failed save, and every goal log points at it. The in-memory id
    survives only as ``tracking_id``.
    """

    now = (clock or (lambda: datetime.now(timezone.utc)))()
    session_id = session_id or uuid.uuid4().hex
    record = SessionRecord(
        id=session_id,
        client_id=active.client_id,
        origin=origin,
        start_time=active.start_time,
        end_time=now,
        location=location,
        notes=notes,
        tracking_id=active.id,
    )
    record.goal_logs = [
        GoalLogRecord(
            id=trial.id,
            goal_id=trial.goal_id,
            goal_description=trial.goal_description,
            cue_level=trial.cue_level,
            was_successful=trial.was_successful,
            session_id=session_id,
            timestamp=trial.timestamp,
        )
        for trial in active.trials
    ]
    return record


@dataclass(slots=True)
class GoalPerformance:
    goal_id: str
    goal_name: str
    success_count: int
    total_count: int

    @property
    def success_percentage(self) -> int:
        if self.total_count == 0:
            return 0
        return success_percentage(self.success_count / self.total_count)

    @property
    def performance_level(self) -> PerformanceLevel:
        return performance_level(self.success_percentage)


@dataclass(slots=True)
class SessionSummary:
    session_id: str | None
    tracking_id: str
    client_id: str
    client_name: str
    start_time: datetime
    end_time: datetime
    duration: timedelta
    total_trials: int
    success_trials: int
    failure_trials: int
    cue_level_breakdown: CueLevelBreakdown
    goal_breakdown: list[GoalPerformance]

    @property
    def success_percentage(self) -> int:
        if self.total_trials == 0:
            return 0
        return success_percentage(self.success_trials / self.total_trials)

    @property
    def formatted_duration(self) -> str:
        seconds = int(self.duration.total_seconds())
        return f"{seconds // 60}:{seconds % 60:02d}"

    def to_payload(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "tracking_id": self.tracking_id,
            "client_id": self.client_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration": self.formatted_duration,
            "total_trials": self.total_trials,
            "success_trials": self.success_trials,
            "failure_trials": self.failure_trials,
            "success_percentage": self.success_percentage,
            "cue_levels": self.cue_level_breakdown.as_dict(),
            "goals": [
                {
                    "goal_id": goal.goal_id,
                    "goal_name": goal.goal_name,
                    "success_count": goal.success_count,
                    "total_count": goal.total_count,
                    "success_percentage": goal.success_percentage,
                    "performance_level": goal.performance_level.description,
                }
                for goal in self.goal_breakdown
            ],
        }


def summarize(
    active: ActiveSession,
    *,
    clock: Callable[[], datetime] | None = None,
    session_id: str | None = None,
) -> SessionSummary:
    """Report on ``active`` as it stands now, without ending it.

    ``session_id`` is the persisted id once the session has been finalized.
    """

    end_time = (clock or (lambda: datetime.now(timezone.utc)))()
    descriptions = {goal.id: goal.description for goal in active.goals}
    goal_breakdown = [
        GoalPerformance(
            goal_id=stat.goal_id,
            goal_name=descriptions.get(stat.goal_id) or "Unknown Goal",
            success_count=stat.success_count,
            total_count=stat.total_count,
        )
        for stat in active.all_goal_statistics
    ]
    return SessionSummary(
        session_id=session_id,
        tracking_id=active.id,
        client_id=active.client_id,
        client_name=active.client_name,
        start_time=active.start_time,
        end_time=end_time,
        duration=end_time - active.start_time,
        total_trials=active.total_trials,
        success_trials=active.success_count,
        failure_trials=active.failure_count,
        cue_level_breakdown=active.cue_level_breakdown,
        goal_breakdown=goal_breakdown,
    )


__all__ = ["DEFAULT_ORIGIN", "GoalPerformance", "SessionSummary", "finalize", "summarize"]
