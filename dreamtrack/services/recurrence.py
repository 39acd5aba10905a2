"""
Recurrence Expander — templates in, the week's goal instances out.

For a target week, every active template that is due produces exactly one
instance with id "{templateId}_{weekId}". Templates that already have an
instance in the week are left alone, so expanding twice is a no-op.

Countdown
---------
    periods_elapsed = periods from the template's first period to the target
                      period, counting the target itself (first period -> 1)
    remaining       = target_periods - periods_elapsed

Weekly and one-off templates count weeks against targetWeeks; monthly
templates count months against targetMonths, using the month of the target
week's Monday. remaining == 0 is the final period and still shows.
remaining < 0 means the template has lapsed: no instance, reported in
`lapsed`, template left untouched. A target period before the template's
first period produces nothing (never retroactive).

Monthly carry-forward: when the previous week's instance of a monthly
template is in the same month, its counter, completion dates and completed
flag carry into the new instance; a new month starts from zero.

A template that fails validation is skipped with a DataIntegrityWarning;
the rest of the user's templates still expand.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from dreamtrack.core.errors import DataIntegrityWarning, ValidationError
from dreamtrack.schemas.domain import GoalInstance, GoalTemplate, GoalType, Recurrence
from dreamtrack.services import periods

logger = logging.getLogger(__name__)

TemplateLike = Union[GoalTemplate, dict[str, Any]]


@dataclass
class ExpansionResult:
    week_id: str
    instances: list[GoalInstance] = field(default_factory=list)
    lapsed: list[str] = field(default_factory=list)        # template ids
    not_started: list[str] = field(default_factory=list)   # template ids
    warnings: list[DataIntegrityWarning] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def instance_id(template_id: str, week_id: str) -> str:
    return f"{template_id}_{week_id}"


def _coerce(raw: TemplateLike) -> GoalTemplate:
    if isinstance(raw, GoalTemplate):
        return raw
    return GoalTemplate.model_validate(raw)


def countdown(template: GoalTemplate, week_id: str) -> Optional[int]:
    """
    Periods left after `week_id` for this template, floored at -1.
    None when `week_id` falls before the template's first period.
    """
    if template.recurrence == Recurrence.monthly.value:
        first = periods.first_month_of(template.start_date)
        elapsed = periods.months_between(first, periods.month_id_of_week(week_id)) + 1
        target = template.target_months or 0
    else:
        first = periods.first_week_of(template.start_date)
        elapsed = periods.weeks_between(first, week_id) + 1
        target = template.target_weeks or 0
    if elapsed < 1:
        return None
    return max(-1, target - elapsed)


def _build_instance(
    template: GoalTemplate,
    week_id: str,
    remaining: int,
    previous: Optional[GoalInstance],
    created_at: str,
) -> GoalInstance:
    common = dict(
        id=instance_id(template.id, week_id),
        template_id=template.id,
        title=template.title,
        description=template.description,
        dream_id=template.dream_id,
        dream_title=template.dream_title,
        dream_category=template.dream_category,
        recurrence=template.recurrence,
        frequency=template.frequency,
        week_id=week_id,
        created_at=created_at,
    )

    if template.recurrence == Recurrence.monthly.value:
        month_id = periods.month_id_of_week(week_id)
        carried = dict(completion_count=0, completion_dates=[], completed=False, completed_at=None)
        if previous is not None and previous.month_id == month_id:
            count = min(previous.completion_count, template.frequency)
            carried = dict(
                completion_count=count,
                completion_dates=list(previous.completion_dates),
                completed=count == template.frequency,
                completed_at=previous.completed_at if count == template.frequency else None,
            )
        return GoalInstance(
            type=GoalType.monthly_goal,
            target_months=template.target_months,
            target_weeks=periods.months_to_weeks(template.target_months or 0),
            months_remaining=remaining,
            month_id=month_id,
            **carried,
            **common,
        )

    goal_type = GoalType.deadline if template.recurrence == Recurrence.once.value else GoalType.weekly_goal
    return GoalInstance(
        type=goal_type,
        target_weeks=template.target_weeks,
        weeks_remaining=remaining,
        **common,
    )


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def expand(
    templates: Iterable[TemplateLike],
    week_id: str,
    existing: Iterable[GoalInstance] = (),
    previous: Iterable[GoalInstance] = (),
    completed_dream_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> ExpansionResult:
    """
    Produce the instances `week_id` still needs.

    existing            — instances already materialised for `week_id`
    previous            — the prior week's instances (monthly carry-forward,
                          finished one-off goals)
    completed_dream_ids — dreams whose templates no longer expand
    """
    periods.parse_week_id(week_id)
    created_at = periods.isoformat(now or periods.utcnow())
    result = ExpansionResult(week_id=week_id)

    present = {g.template_id for g in existing if g.template_id}
    prior = {g.template_id: g for g in previous if g.template_id}
    done_dreams = set(completed_dream_ids)
    seen: set[str] = set()

    for raw in templates:
        if isinstance(raw, GoalTemplate):
            raw_id = raw.id
        else:
            raw_id = raw.get("id") if isinstance(raw, dict) else None
        try:
            template = _coerce(raw)
            if template.id in seen:
                raise ValueError("duplicate template id")
            seen.add(template.id)
            remaining = countdown(template, week_id)
        except (PydanticValidationError, ValidationError, ValueError, TypeError) as exc:
            warning = DataIntegrityWarning(record_id=raw_id, reason=str(exc))
            logger.warning("Skipping template %s: %s", raw_id, warning.reason)
            result.warnings.append(warning)
            continue

        if not template.active or template.completed or template.id in present:
            continue
        if template.dream_id and template.dream_id in done_dreams:
            continue
        if remaining is None:
            result.not_started.append(template.id)
            continue
        if remaining < 0:
            result.lapsed.append(template.id)
            continue

        before = prior.get(template.id)
        if template.recurrence == Recurrence.once.value and before is not None and before.completed:
            # Deadline met last week
            continue

        result.instances.append(_build_instance(template, week_id, remaining, before, created_at))

    logger.debug(
        "Expanded %s: %d new, %d lapsed, %d warnings",
        week_id, len(result.instances), len(result.lapsed), len(result.warnings),
    )
    return result
