"""Client and goal template models for the session catalog."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, Field, field_validator

from ..tracking.models import CueLevel, SessionGoal


class GoalStatus(str, Enum):
    """Lifecycle of a goal template. Inactive templates are kept for history."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class GoalTemplate(BaseModel):
    """A therapy goal that can be rotated through during a session."""

    id: str = Field(..., description="Stable identifier for the goal template.")
    title: str = Field(..., description="Short title shown in goal lists.")
    description: str | None = Field(
        default=None,
        description="Longer wording logged with each trial when present.",
    )
    category: str = Field(default="General", description="Clinical category of the goal.")
    default_cue_level: CueLevel = Field(
        default=CueLevel.INDEPENDENT,
        description="Cue level suggested when logging a trial for this goal.",
    )
    status: GoalStatus = Field(default=GoalStatus.ACTIVE)

    @field_validator("id", "title")
    @classmethod
    def _require_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Goal template id and title must not be empty")
        return normalized

    @field_validator("default_cue_level", mode="before")
    @classmethod
    def _parse_cue_level(cls, value: Any) -> CueLevel:
        return CueLevel.parse(value)

    @property
    def is_active(self) -> bool:
        return self.status is GoalStatus.ACTIVE

    @property
    def display_text(self) -> str:
        return self.description or self.title

    def to_session_goal(self) -> SessionGoal:
        return SessionGoal(id=self.id, description=self.display_text)


class Client(BaseModel):
    """A therapy client together with their goal templates."""

    id: str = Field(..., description="Unique identifier for the client.")
    name: str = Field(..., description="Full name. Never written to logs.")
    date_of_birth: date | None = None
    notes: str | None = None
    goals: list[GoalTemplate] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Client id must not be empty")
        return normalized

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Client name is required")
        return normalized

    @field_validator("goals", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("Client goals must be a sequence of goal templates")

    @field_validator("goals")
    @classmethod
    def _unique_goal_ids(cls, value: list[GoalTemplate]) -> list[GoalTemplate]:
        seen: set[str] = set()
        for goal in value:
            if goal.id in seen:
                raise ValueError(f"Duplicate goal id '{goal.id}'")
            seen.add(goal.id)
        return value

    @property
    def privacy_name(self) -> str:
        """First name and last initial, e.g. ``Emma J.``."""

        parts = self.name.split()
        if len(parts) < 2:
            return self.name
        return f"{parts[0]} {parts[-1][0]}."

    def age(self, today: date | None = None) -> int | None:
        if self.date_of_birth is None:
            return None
        today = today or date.today()
        born = self.date_of_birth
        return today.year - born.year - ((today.month, today.day) < (born.month, born.day))

    @property
    def active_goals(self) -> list[GoalTemplate]:
        return [goal for goal in self.goals if goal.is_active]

    def session_goals(
        self,
        goal_ids: Iterable[str] | None = None,
        *,
        limit: int | None = None,
    ) -> list[SessionGoal]:
        """Resolve the ordered goals for a new session.

        With ``goal_ids`` the caller's order is kept; inactive, unknown or
        repeated ids, or more ids than ``limit``, raise ``ValueError``.
        Otherwise the first ``limit`` active goals are used in catalog order.
        """

        if goal_ids is None:
            templates = self.active_goals
            if limit is not None:
                templates = templates[:limit]
            return [template.to_session_goal() for template in templates]

        requested = list(goal_ids)
        if limit is not None and len(requested) > limit:
            raise ValueError(f"At most {limit} goals can be used in one session, got {len(requested)}")

        by_id = {goal.id: goal for goal in self.active_goals}
        templates = []
        for goal_id in requested:
            if goal_id not in by_id:
                raise ValueError(f"Goal template '{goal_id}' is not an active goal for this client")
            if any(template.id == goal_id for template in templates):
                raise ValueError(f"Goal template '{goal_id}' was requested more than once")
            templates.append(by_id[goal_id])
        return [template.to_session_goal() for template in templates]


__all__ = ["Client", "GoalStatus", "GoalTemplate"]
