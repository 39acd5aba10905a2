"""
Scoring ledger schemas.

GET  /users/{userId}/scoring?year=      → LedgerResponse
GET  /users/{userId}/scoring/all-years  → AllYearsResponse
POST /users/{userId}/scoring/events     → ScoreEventRequest → ScoreEventResponse
GET  /scoring/rules                     → dict[source, points]
"""
from typing import Any, Optional

from pydantic import Field

from dreamtrack.schemas.common import CamelModel
from dreamtrack.schemas.domain import ScoreLedgerEntry


class ScoreEventRequest(CamelModel):
    """
    Fields are deliberately loose here; the Scoring Aggregator validates them
    so a malformed event is rejected (and logged) in one place.
    """
    source: Any = Field(default=None, examples=["connect"])
    points: Any = Field(default=None, examples=[3])
    activity: Any = Field(default=None, examples=["Logged a connect with Sam"])
    id: Optional[str] = Field(default=None, description="Idempotency key; repeats are ignored.")
    dream_id: Optional[str] = None
    week_id: Optional[str] = None
    connect_id: Optional[str] = None


class ScoreEventResponse(CamelModel):
    recorded: bool
    entry: Optional[ScoreLedgerEntry] = None
    total_score: int


class LedgerResponse(CamelModel):
    user_id: str
    year: int
    total_score: int
    entries: list[ScoreLedgerEntry]


class YearTotalOut(CamelModel):
    year: int
    total_score: int
    entry_count: int


class AllYearsResponse(CamelModel):
    user_id: str
    total_score: int
    years: list[YearTotalOut]
