"""
Goal-tracking records as they are stored in documents and returned over HTTP.

Field names are snake_case in Python and camelCase on the wire
(`model_dump(by_alias=True)` / `to_doc()`), matching the stored documents.

Denormalised fields (dream_title, dream_category on instances) are copied
from the template when the instance is created and are NOT kept in sync
afterwards. They exist so the dashboard can render a week without loading
the dreams document.
"""
from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from dreamtrack.schemas.common import CamelModel


class Recurrence(str, enum.Enum):
    weekly = "weekly"
    monthly = "monthly"
    once = "once"


class GoalType(str, enum.Enum):
    weekly_goal = "weekly_goal"
    monthly_goal = "monthly_goal"
    deadline = "deadline"
    consistency = "consistency"


class LedgerSource(str, enum.Enum):
    dream = "dream"
    week = "week"
    connect = "connect"
    milestone = "milestone"


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class GoalTemplate(CamelModel):
    """A recurring goal definition authored on a dream."""

    id: str = Field(min_length=1)
    dream_id: Optional[str] = None
    title: str = ""
    description: str = ""
    recurrence: Recurrence
    frequency: int = Field(ge=1, description="Completions required per period.")
    target_weeks: Optional[int] = Field(default=None, ge=0)
    target_months: Optional[int] = Field(default=None, ge=0)
    start_date: str = Field(description="Week id, month id or ISO date.")
    active: bool = True
    completed: bool = False
    dream_title: str = ""
    dream_category: str = ""

    @model_validator(mode="after")
    def check_duration(self) -> "GoalTemplate":
        if self.recurrence == Recurrence.monthly.value:
            if self.target_months is None:
                raise ValueError("monthly templates need targetMonths")
        elif self.target_weeks is None:
            raise ValueError(f"{self.recurrence} templates need targetWeeks")
        if self.recurrence == Recurrence.once.value and self.frequency != 1:
            raise ValueError("one-off templates have frequency 1")
        return self


# ---------------------------------------------------------------------------
# Instances and live state
# ---------------------------------------------------------------------------

class GoalInstance(CamelModel):
    """One period's concrete occurrence of a template (or a standalone goal)."""

    id: str = Field(min_length=1)
    template_id: Optional[str] = None
    type: GoalType
    title: str = ""
    description: str = ""
    dream_id: Optional[str] = None
    dream_title: str = ""
    dream_category: str = ""
    recurrence: Optional[Recurrence] = None
    frequency: int = Field(default=1, ge=1)
    completion_count: int = Field(default=0, ge=0)
    completion_dates: list[str] = Field(default_factory=list)
    completed: bool = False
    completed_at: Optional[str] = None
    skipped: bool = False
    target_weeks: Optional[int] = None
    target_months: Optional[int] = None
    weeks_remaining: Optional[int] = None
    months_remaining: Optional[int] = None
    week_id: str
    month_id: Optional[str] = None
    created_at: Optional[str] = None

    @model_validator(mode="after")
    def check_completion(self) -> "GoalInstance":
        if self.completion_count > self.frequency:
            raise ValueError(
                f"completionCount {self.completion_count} exceeds frequency {self.frequency}"
            )
        if self.completed != (self.completion_count == self.frequency):
            raise ValueError("completed must equal completionCount == frequency")
        return self


class PeriodStats(CamelModel):
    total_goals: int = 0
    completed_goals: int = 0
    skipped_goals: int = 0
    score: int = Field(default=0, ge=0, le=100)


class CurrentPeriodState(CamelModel):
    """The live week for one user. Stats are derived, never written directly."""

    id: str
    user_id: str
    week_id: str
    week_start_date: str
    week_end_date: str
    goals: list[GoalInstance] = Field(default_factory=list)
    stats: PeriodStats = Field(default_factory=PeriodStats)
    # Stored instances that failed validation; kept verbatim, excluded from stats
    quarantined: list[dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

class PeriodSummary(CamelModel):
    """Immutable record of one archived week."""

    week_id: str
    total_goals: int = Field(ge=0)
    completed_goals: int = Field(ge=0)
    skipped_goals: int = Field(ge=0)
    score: int = Field(ge=0, le=100)
    week_start_date: str
    week_end_date: str
    archived_at: str


# ---------------------------------------------------------------------------
# Score ledger
# ---------------------------------------------------------------------------

class ScoreLedgerEntry(CamelModel):
    """One append-only scoring event."""

    id: str = Field(min_length=1)
    date: str
    source: LedgerSource
    points: int
    activity: str = Field(min_length=1)
    dream_id: Optional[str] = None
    week_id: Optional[str] = None
    connect_id: Optional[str] = None
    created_at: str

    @field_validator("activity", mode="before")
    @classmethod
    def strip_activity(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v
