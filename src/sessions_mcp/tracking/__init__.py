"""Active trial tracking: goal rotation, undo and live statistics."""

from .models import (
    CueLevel,
    CueLevelBreakdown,
    GoalStatistic,
    PerformanceLevel,
    SessionGoal,
    TrialEntry,
)
from .statistics import (
    all_statistics,
    cue_level_breakdown,
    performance_level,
    statistics_for_goal,
    success_percentage,
)
from .active import ActiveSession

__all__ = [
    "ActiveSession",
    "CueLevel",
    "CueLevelBreakdown",
    "GoalStatistic",
    "PerformanceLevel",
    "SessionGoal",
    "TrialEntry",
    "all_statistics",
    "cue_level_breakdown",
    "performance_level",
    "statistics_for_goal",
    "success_percentage",
]
