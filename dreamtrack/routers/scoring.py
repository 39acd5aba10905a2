"""
Scoring router.

GET  /scoring/rules
GET  /users/{user_id}/scoring?year=
GET  /users/{user_id}/scoring/all-years
POST /users/{user_id}/scoring/events
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from dreamtrack.routers.deps import get_scoring
from dreamtrack.schemas.common import ErrorResponse
from dreamtrack.schemas.scoring import (
    AllYearsResponse,
    LedgerResponse,
    ScoreEventRequest,
    ScoreEventResponse,
    YearTotalOut,
)
from dreamtrack.services import periods
from dreamtrack.services.scoring import DEFAULT_POINTS, ScoringAggregator

router = APIRouter(tags=["scoring"])


@router.get("/scoring/rules", summary="Default points per ledger source")
def scoring_rules():
    return DEFAULT_POINTS


@router.get(
    "/users/{user_id}/scoring",
    response_model=LedgerResponse,
    summary="A year's score ledger",
)
def get_ledger(
    user_id: str,
    year: Optional[int] = Query(
        default=None, ge=2000, le=9999,
        description="Calendar year. Defaults to the current year (UTC).",
    ),
    scoring: ScoringAggregator = Depends(get_scoring),
):
    """Entries in append order; totalScore is the sum of their points."""
    target = year or periods.utcnow().year
    return LedgerResponse(
        user_id=user_id,
        year=target,
        total_score=scoring.total_score(user_id, target),
        entries=scoring.entries(user_id, target),
    )


@router.get(
    "/users/{user_id}/scoring/all-years",
    response_model=AllYearsResponse,
    summary="Score totals per year",
)
def get_all_years(user_id: str, scoring: ScoringAggregator = Depends(get_scoring)):
    years = scoring.all_years(user_id)
    return AllYearsResponse(
        user_id=user_id,
        total_score=sum(y.total_score for y in years),
        years=[
            YearTotalOut(year=y.year, total_score=y.total_score, entry_count=y.entry_count)
            for y in years
        ],
    )


@router.post(
    "/users/{user_id}/scoring/events",
    response_model=ScoreEventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a scoring event",
    responses={422: {"model": ErrorResponse, "description": "Missing or invalid source / points / activity."}},
)
def record_event(
    user_id: str,
    payload: ScoreEventRequest,
    scoring: ScoringAggregator = Depends(get_scoring),
):
    """
    Appends one ledger entry. Supplying `id` makes the call idempotent:
    a repeated id is acknowledged with `recorded: false`.
    """
    entry = scoring.record_event(
        user_id,
        source=payload.source,
        points=payload.points,
        activity=payload.activity,
        refs={
            "dream_id": payload.dream_id,
            "week_id": payload.week_id,
            "connect_id": payload.connect_id,
        },
        entry_id=payload.id,
    )
    year = int(entry.date[:4]) if entry else periods.utcnow().year
    return ScoreEventResponse(
        recorded=entry is not None,
        entry=entry,
        total_score=scoring.total_score(user_id, year),
    )
