"""
Helpers shared by the Week Tracker and the Week Archiver: converting the
stored current-week document to and from CurrentPeriodState, and deriving
its stats.

Stats are a pure function of the goal list. They are written into the
document for cheap reads but recomputed after every mutation.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from dreamtrack.core.errors import DataIntegrityWarning
from dreamtrack.schemas.domain import CurrentPeriodState, GoalInstance, PeriodStats
from dreamtrack.services import periods

logger = logging.getLogger(__name__)


def period_score(completed: int, total: int) -> int:
    """round(100 * completed / total), halves rounded up; 0 for an empty period."""
    if total <= 0:
        return 0
    raw = Decimal(100 * completed) / Decimal(total)
    return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_stats(goals: Iterable[GoalInstance]) -> PeriodStats:
    goals = list(goals)
    total = len(goals)
    completed = sum(1 for g in goals if g.completed)
    skipped = sum(1 for g in goals if g.skipped and not g.completed)
    return PeriodStats(
        total_goals=total,
        completed_goals=completed,
        skipped_goals=skipped,
        score=period_score(completed, total),
    )


def new_state(
    user_id: str,
    week_id: str,
    goals: list[GoalInstance],
    now: Optional[datetime] = None,
) -> CurrentPeriodState:
    start, end = periods.week_range(week_id)
    stamp = periods.isoformat(now or periods.utcnow())
    return CurrentPeriodState(
        id=user_id,
        user_id=user_id,
        week_id=week_id,
        week_start_date=start.isoformat(),
        week_end_date=end.isoformat(),
        goals=goals,
        stats=compute_stats(goals),
        created_at=stamp,
        updated_at=stamp,
    )


def state_from_doc(
    doc: dict,
    warnings: Optional[list[DataIntegrityWarning]] = None,
) -> CurrentPeriodState:
    """
    Parse a stored current-week document. Goals that break an instance
    invariant are moved to `quarantined` (kept verbatim, excluded from
    stats) instead of failing the whole document.
    """
    raw_goals = doc.get("goals") or []
    goals: list[GoalInstance] = []
    quarantined: list[dict] = list(doc.get("quarantined") or [])
    for raw in raw_goals:
        try:
            goals.append(GoalInstance.model_validate(raw))
        except PydanticValidationError as exc:
            raw_id = raw.get("id") if isinstance(raw, dict) else None
            warning = DataIntegrityWarning(
                record_id=raw_id,
                reason="; ".join(e["msg"] for e in exc.errors()),
            )
            logger.warning("Quarantining goal %s of %s: %s", raw_id, doc.get("id"), warning.reason)
            if warnings is not None:
                warnings.append(warning)
            quarantined.append(raw)

    body = {k: v for k, v in doc.items() if k not in ("goals", "quarantined", "stats")}
    state = CurrentPeriodState.model_validate({**body, "goals": [], "quarantined": quarantined})
    state.goals = goals
    state.stats = compute_stats(goals)
    return state


def state_to_doc(state: CurrentPeriodState) -> dict:
    state.stats = compute_stats(state.goals)
    return state.to_doc()
