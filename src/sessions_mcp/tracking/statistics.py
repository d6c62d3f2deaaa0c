"""Pure aggregation over trial sequences."""

from __future__ import annotations

from typing import Iterable, Sequence

from .models import (
    EXCELLENT_THRESHOLD,
    GOOD_THRESHOLD,
    CueLevel,
    CueLevelBreakdown,
    GoalStatistic,
    SessionGoal,
    TrialEntry,
    performance_level,
    success_percentage,
)


def statistics_for_goal(goal_id: str, trials: Iterable[TrialEntry]) -> GoalStatistic:
    goal_trials = [trial for trial in trials if trial.goal_id == goal_id]
    total_count = len(goal_trials)
    success_count = sum(1 for trial in goal_trials if trial.was_successful)
    success_rate = success_count / total_count if total_count > 0 else 0.0
    return GoalStatistic(
        goal_id=goal_id,
        success_count=success_count,
        total_count=total_count,
        success_rate=success_rate,
    )


def all_statistics(goals: Sequence[SessionGoal], trials: Sequence[TrialEntry]) -> list[GoalStatistic]:
    """Return one statistic per goal, in goal display order."""

    return [statistics_for_goal(goal.id, trials) for goal in goals]


def cue_level_breakdown(trials: Iterable[TrialEntry]) -> CueLevelBreakdown:
    counts = {level: 0 for level in CueLevel}
    for trial in trials:
        counts[trial.cue_level] += 1
    return CueLevelBreakdown(
        independent=counts[CueLevel.INDEPENDENT],
        minimal=counts[CueLevel.MINIMAL],
        moderate=counts[CueLevel.MODERATE],
        maximal=counts[CueLevel.MAXIMAL],
    )


__all__ = [
    "EXCELLENT_THRESHOLD",
    "GOOD_THRESHOLD",
    "all_statistics",
    "cue_level_breakdown",
    "performance_level",
    "statistics_for_goal",
    "success_percentage",
]
