"""Value types shared by the trial tracker."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CueLevel(str, Enum):
    """Degree of prompting a client needed for a trial, most independent first."""

    INDEPENDENT = "independent"
    MINIMAL = "minimal"
    MODERATE = "moderate"
    MAXIMAL = "maximal"

    @property
    def display_name(self) -> str:
        return _SHORT_NAMES[self]

    @property
    def full_display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, value: "CueLevel | str") -> "CueLevel":
        """Resolve a member from itself, its value, or either display name."""

        if isinstance(value, cls):
            return value
        needle = str(value).strip().lower()
        for level in cls:
            if needle in {level.value, level.display_name.lower()}:
                return level
        raise ValueError(
            f"Invalid cue level '{value}'. Must be one of {[level.value for level in cls]}"
        )


_SHORT_NAMES = {
    CueLevel.INDEPENDENT: "Independent",
    CueLevel.MINIMAL: "Min",
    CueLevel.MODERATE: "Mod",
    CueLevel.MAXIMAL: "Max",
}


class PerformanceLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    NEEDS_WORK = "needs_work"

    @property
    def description(self) -> str:
        return {
            PerformanceLevel.EXCELLENT: "Excellent",
            PerformanceLevel.GOOD: "Good",
            PerformanceLevel.NEEDS_WORK: "Needs Work",
        }[self]


EXCELLENT_THRESHOLD = 85
GOOD_THRESHOLD = 70


def success_percentage(rate: float) -> int:
    """Convert a 0.0-1.0 rate into a whole percentage, rounding down."""

    return int(rate * 100)


def performance_level(success_percent: int) -> PerformanceLevel:
    """Band a whole success percentage. Out-of-range input is clamped to 0-100."""

    percent = max(0, min(100, int(success_percent)))
    if percent >= EXCELLENT_THRESHOLD:
        return PerformanceLevel.EXCELLENT
    if percent >= GOOD_THRESHOLD:
        return PerformanceLevel.GOOD
    return PerformanceLevel.NEEDS_WORK


@dataclass(frozen=True, slots=True)
class SessionGoal:
    """A goal the tracker rotates over during a session."""

    id: str
    description: str


@dataclass(frozen=True, slots=True)
class TrialEntry:
    """One logged attempt at a goal. Never mutated after creation."""

    goal_id: str
    goal_description: str
    was_successful: bool
    cue_level: CueLevel
    timestamp: datetime
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True, slots=True)
class GoalStatistic:
    goal_id: str
    success_count: int
    total_count: int
    success_rate: float

    @property
    def success_percentage(self) -> int:
        return success_percentage(self.success_rate)

    @property
    def performance_level(self) -> PerformanceLevel:
        return performance_level(self.success_percentage)


@dataclass(frozen=True, slots=True)
class CueLevelBreakdown:
    independent: int = 0
    minimal: int = 0
    moderate: int = 0
    maximal: int = 0

    @property
    def total(self) -> int:
        return self.independent + self.minimal + self.moderate + self.maximal

    def count(self, level: CueLevel) -> int:
        return getattr(self, level.value)

    def as_dict(self) -> dict[str, int]:
        return {level.value: self.count(level) for level in CueLevel}


__all__ = [
    "CueLevel",
    "CueLevelBreakdown",
    "EXCELLENT_THRESHOLD",
    "GOOD_THRESHOLD",
    "GoalStatistic",
    "PerformanceLevel",
    "SessionGoal",
    "TrialEntry",
    "performance_level",
    "success_percentage",
]
