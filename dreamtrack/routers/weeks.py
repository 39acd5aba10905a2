"""
Weeks router.

GET  /users/{user_id}/current-week
POST /users/{user_id}/current-week/goals
POST /users/{user_id}/current-week/goals/{instance_id}/toggle
POST /users/{user_id}/current-week/goals/{instance_id}/decrement
POST /users/{user_id}/current-week/goals/{instance_id}/skip
POST /users/{user_id}/current-week/recompute
POST /users/{user_id}/current-week/archive
GET  /users/{user_id}/past-weeks

Every endpoint goes through the lazy rollover, so the first request of a
new week archives the previous one before answering.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from dreamtrack.routers.deps import get_archiver, get_tracker
from dreamtrack.schemas.common import ErrorResponse
from dreamtrack.schemas.domain import CurrentPeriodState
from dreamtrack.schemas.weeks import AddGoalRequest, GoalMutationResponse, PastWeeksResponse
from dreamtrack.services.archiver import WeekArchiver
from dreamtrack.services.week_tracker import MutationResult, WeekTracker

router = APIRouter(prefix="/users/{user_id}", tags=["weeks"])

_MUTATION_RESPONSES = {
    200: {"description": "Goal updated (or unchanged when the operation was a no-op)."},
    404: {"model": ErrorResponse, "description": "No goal with that id in the current week."},
    409: {"model": ErrorResponse, "description": "Write conflict, or skip on a goal without a template."},
    503: {"model": ErrorResponse, "description": "Document store unavailable; safe to retry."},
}


# ---------------------------------------------------------------------------
# Serialization helper
# ---------------------------------------------------------------------------

def _mutation_to_response(result: MutationResult) -> GoalMutationResponse:
    return GoalMutationResponse(
        state=result.state,
        goal=result.goal,
        changed=result.changed,
        completed_now=result.completed_now,
        points_awarded=result.award.points if result.award else 0,
    )


# ---------------------------------------------------------------------------
# Current week
# ---------------------------------------------------------------------------

@router.get(
    "/current-week",
    response_model=CurrentPeriodState,
    summary="The live week with its goals and stats",
)
def current_week(user_id: str, tracker: WeekTracker = Depends(get_tracker)):
    """
    Return the user's live week. On the first call of a new ISO week the
    previous week is archived and the new one is seeded from templates.
    """
    return tracker.current(user_id)


@router.post(
    "/current-week/goals",
    response_model=GoalMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a standalone deadline goal to the live week",
)
def add_goal(
    user_id: str,
    payload: AddGoalRequest,
    tracker: WeekTracker = Depends(get_tracker),
):
    result = tracker.add_goal(
        user_id,
        title=payload.title,
        description=payload.description,
        dream_id=payload.dream_id,
        dream_title=payload.dream_title,
        dream_category=payload.dream_category,
    )
    return _mutation_to_response(result)


@router.post(
    "/current-week/goals/{instance_id}/toggle",
    response_model=GoalMutationResponse,
    summary="Complete / un-complete a goal, or count one completion",
    responses=_MUTATION_RESPONSES,
)
def toggle_goal(user_id: str, instance_id: str, tracker: WeekTracker = Depends(get_tracker)):
    """
    Frequency 1 goals flip between done and not done. Goals with a higher
    frequency count one completion per call, up to the frequency.
    """
    return _mutation_to_response(tracker.toggle(user_id, instance_id))


@router.post(
    "/current-week/goals/{instance_id}/decrement",
    response_model=GoalMutationResponse,
    summary="Undo one completion",
    responses=_MUTATION_RESPONSES,
)
def decrement_goal(user_id: str, instance_id: str, tracker: WeekTracker = Depends(get_tracker)):
    """No-op (changed=false) when the counter is already 0."""
    return _mutation_to_response(tracker.decrement(user_id, instance_id))


@router.post(
    "/current-week/goals/{instance_id}/skip",
    response_model=GoalMutationResponse,
    summary="Skip a recurring goal for this week",
    responses=_MUTATION_RESPONSES,
)
def skip_goal(user_id: str, instance_id: str, tracker: WeekTracker = Depends(get_tracker)):
    """Only goals created from a template can be skipped."""
    return _mutation_to_response(tracker.skip(user_id, instance_id))


@router.post(
    "/current-week/recompute",
    response_model=CurrentPeriodState,
    summary="Re-derive the cached stats from the goal list",
)
def recompute(user_id: str, tracker: WeekTracker = Depends(get_tracker)):
    return tracker.recompute_stats(user_id)


@router.post(
    "/current-week/archive",
    response_model=CurrentPeriodState,
    summary="Run the rollover check now",
)
def archive_now(user_id: str, archiver: WeekArchiver = Depends(get_archiver)):
    """
    Same check every request performs implicitly: archives the stored week
    if it has ended and returns the live week.
    """
    return archiver.ensure_current(user_id)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

@router.get(
    "/past-weeks",
    response_model=PastWeeksResponse,
    summary="Archived week summaries, most recent first",
)
def past_weeks(
    user_id: str,
    archiver: WeekArchiver = Depends(get_archiver),
):
    archiver.ensure_current(user_id)
    weeks = archiver.past_weeks(user_id)
    return PastWeeksResponse(
        user_id=user_id,
        total_weeks_tracked=len(weeks),
        weeks=weeks,
    )
