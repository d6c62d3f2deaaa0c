"""In-memory state for a therapy session that is being logged."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Sequence

from . import statistics
from .models import CueLevel, CueLevelBreakdown, GoalStatistic, SessionGoal, TrialEntry


class ActiveSession:
    """Track goal rotation, trial history and live statistics for one session.

    A single owner drives an instance through discrete calls; nothing here is
    synchronized. The goal sequence is fixed at construction and callers are
    expected to reject an empty goal set before getting here.
    """

    def __init__(
        self,
        client_id: str,
        client_name: str,
        goals: Sequence[SessionGoal],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.id = uuid.uuid4().hex
        self.client_id = client_id
        self.client_name = client_name
        self.start_time = self._clock()
        self._goals: tuple[SessionGoal, ...] = tuple(goals)
        self._current_goal_index = 0
        self._trials: list[TrialEntry] = []

    # Goal navigation

    @property
    def goals(self) -> tuple[SessionGoal, ...]:
        return self._goals

    @property
    def current_goal_index(self) -> int:
        return self._current_goal_index

    @property
    def current_goal(self) -> SessionGoal | None:
        if self._current_goal_index >= len(self._goals):
            return None
        return self._goals[self._current_goal_index]

    def move_to_next_goal(self) -> None:
        if self._current_goal_index >= len(self._goals) - 1:
            return
        self._current_goal_index += 1

    def move_to_previous_goal(self) -> None:
        if self._current_goal_index <= 0:
            return
        self._current_goal_index -= 1

    def set_goal_index(self, index: int) -> bool:
        """Jump to ``index``. Returns False and leaves the index alone when out of range."""

        if not 0 <= index < len(self._goals):
            return False
        self._current_goal_index = index
        return True

    @property
    def navigation_dots(self) -> list[bool]:
        return [position == self._current_goal_index for position in range(len(self._goals))]

    # Trials

    @property
    def trials(self) -> tuple[TrialEntry, ...]:
        return tuple(self._trials)

    def add_trial(self, was_successful: bool, cue_level: CueLevel) -> TrialEntry | None:
        goal = self.current_goal
        if goal is None:
            return None
        trial = TrialEntry(
            goal_id=goal.id,
            goal_description=goal.description,
            was_successful=was_successful,
            cue_level=cue_level,
            timestamp=self._clock(),
        )
        self._trials.append(trial)
        return trial

    def remove_last_trial(self) -> TrialEntry | None:
        if not self._trials:
            return None
        return self._trials.pop()

    @property
    def can_undo(self) -> bool:
        return bool(self._trials)

    # Derived statistics, recomputed on every read

    @property
    def session_duration(self) -> timedelta:
        return self._clock() - self.start_time

    @property
    def formatted_duration(self) -> str:
        seconds = int(self.session_duration.total_seconds())
        return f"{seconds // 60:02d}:{seconds % 60:02d}"

    @property
    def total_trials(self) -> int:
        return len(self._trials)

    @property
    def success_count(self) -> int:
        return sum(1 for trial in self._trials if trial.was_successful)

    @property
    def failure_count(self) -> int:
        return sum(1 for trial in self._trials if not trial.was_successful)

    @property
    def success_rate(self) -> float:
        if not self._trials:
            return 0.0
        return self.success_count / self.total_trials

    @property
    def success_percentage(self) -> int:
        return statistics.success_percentage(self.success_rate)

    @property
    def formatted_success_rate(self) -> str:
        if not self._trials:
            return "0% (0/0)"
        return f"{self.success_percentage}% ({self.success_count}/{self.total_trials})"

    def statistics_for_goal(self, goal_id: str) -> GoalStatistic:
        return statistics.statistics_for_goal(goal_id, self._trials)

    @property
    def all_goal_statistics(self) -> list[GoalStatistic]:
        return statistics.all_statistics(self._goals, self._trials)

    @property
    def cue_level_breakdown(self) -> CueLevelBreakdown:
        return statistics.cue_level_breakdown(self._trials)


__all__ = ["ActiveSession"]
