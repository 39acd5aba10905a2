"""
Current-week and past-week request / response schemas.

GET  /users/{userId}/current-week                         → CurrentPeriodState
POST /users/{userId}/current-week/goals                   → AddGoalRequest → GoalMutationResponse
POST /users/{userId}/current-week/goals/{id}/{operation}  → GoalMutationResponse
GET  /users/{userId}/past-weeks                           → PastWeeksResponse
"""
from typing import Annotated, Optional

from pydantic import Field, field_validator

from dreamtrack.schemas.common import CamelModel
from dreamtrack.schemas.domain import CurrentPeriodState, GoalInstance, PeriodSummary


class AddGoalRequest(CamelModel):
    """A standalone deadline goal for the live week."""

    title: Annotated[str, Field(min_length=1, max_length=256, examples=["Book the venue"])]
    description: str = ""
    dream_id: Optional[str] = None
    dream_title: str = ""
    dream_category: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        stripped = v.strip() if isinstance(v, str) else v
        if not stripped:
            raise ValueError("title must not be empty after stripping whitespace")
        return stripped


class GoalMutationResponse(CamelModel):
    state: CurrentPeriodState
    goal: GoalInstance
    changed: bool = Field(description="False when the operation was a no-op.")
    completed_now: bool = Field(description="True on the transition into completed.")
    points_awarded: int = 0


class PastWeeksResponse(CamelModel):
    user_id: str
    total_weeks_tracked: int
    weeks: list[PeriodSummary]
