"""
Week Tracker — completion state of the live week's goals.

Mutations
---------
toggle(id)     frequency 1: flip completed, count 0 <-> 1, stamp/clear completedAt.
               frequency n > 1: count += 1, capped at n; completed and
               completedAt are set exactly when the count reaches n.
decrement(id)  count -= 1 when count > 0, otherwise a no-op; dropping below
               the frequency clears completed and completedAt.
skip(id)       recurring goals only (templateId set); marks skipped, counter
               untouched.

Invariant after every mutation: 0 <= completionCount <= frequency and
completed == (completionCount == frequency). Stats are recomputed from the
goal list on every write.

Each operation runs the Week Archiver's lazy rollover first, then a
conditional read-modify-write of the current-week document, retried on
write conflicts. An unknown goal id raises NotFoundError before anything is
written.

Points are awarded only on the transition into completed, with ledger entry
id "goal_{instanceId}", so a goal instance scores once at most. The award
goes to the ledger of the week's ISO year.

Completing (or re-opening) a goal made from a one-off template flags that
template completed (or not) in the dreams document, so it stops expanding
in later weeks.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from dreamtrack.core.config import settings
from dreamtrack.core.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    SkipNotAllowedError,
    StoreUnavailableError,
)
from dreamtrack.schemas.domain import (
    CurrentPeriodState,
    GoalInstance,
    GoalType,
    LedgerSource,
    Recurrence,
    ScoreLedgerEntry,
)
from dreamtrack.services import periods
from dreamtrack.services.archiver import WeekArchiver
from dreamtrack.services.scoring import ScoringAggregator
from dreamtrack.services.templates import TemplateRepository
from dreamtrack.services.week_state import state_from_doc, state_to_doc
from dreamtrack.store.documents import DocumentStore, read_modify_write

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure instance mutations
# ---------------------------------------------------------------------------
# Each returns (changed, became_completed).

def toggle_instance(goal: GoalInstance, stamp: str) -> tuple[bool, bool]:
    if goal.frequency == 1:
        if goal.completed:
            goal.completed = False
            goal.completion_count = 0
            goal.completed_at = None
            if goal.completion_dates:
                goal.completion_dates.pop()
            return True, False
        goal.completed = True
        goal.completion_count = 1
        goal.completed_at = stamp
        goal.completion_dates.append(stamp)
        return True, True

    if goal.completion_count >= goal.frequency:
        return False, False
    goal.completion_count += 1
    goal.completion_dates.append(stamp)
    if goal.completion_count == goal.frequency:
        goal.completed = True
        goal.completed_at = stamp
        return True, True
    return True, False


def decrement_instance(goal: GoalInstance, stamp: Optional[str] = None) -> tuple[bool, bool]:
    if goal.completion_count <= 0:
        return False, False
    goal.completion_count -= 1
    if goal.completion_dates:
        goal.completion_dates.pop()
    if goal.completion_count < goal.frequency:
        goal.completed = False
        goal.completed_at = None
    return True, False


def skip_instance(goal: GoalInstance, stamp: Optional[str] = None) -> tuple[bool, bool]:
    if not goal.template_id:
        raise SkipNotAllowedError(goal.id)
    if goal.skipped:
        return False, False
    goal.skipped = True
    return True, False


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------

@dataclass
class MutationResult:
    state: CurrentPeriodState
    goal: GoalInstance
    changed: bool
    completed_now: bool
    award: Optional[ScoreLedgerEntry] = None


Operation = Callable[[GoalInstance, str], tuple[bool, bool]]


class WeekTracker:

    def __init__(
        self,
        store: DocumentStore,
        archiver: WeekArchiver,
        scoring: ScoringAggregator,
        templates: TemplateRepository,
        container: str = settings.CURRENT_WEEK_CONTAINER,
        retries: int = settings.STORE_CONFLICT_RETRIES,
        points_per_goal: int = settings.POINTS_WEEKLY_GOAL,
    ):
        self._store = store
        self._archiver = archiver
        self._scoring = scoring
        self._templates = templates
        self._container = container
        self._retries = retries
        self._points = points_per_goal

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current(self, user_id: str, now: Optional[datetime] = None) -> CurrentPeriodState:
        return self._archiver.ensure_current(user_id, now)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def toggle(self, user_id: str, instance_id: str, now: Optional[datetime] = None) -> MutationResult:
        return self._apply(user_id, instance_id, toggle_instance, now)

    def decrement(self, user_id: str, instance_id: str, now: Optional[datetime] = None) -> MutationResult:
        return self._apply(user_id, instance_id, decrement_instance, now)

    def skip(self, user_id: str, instance_id: str, now: Optional[datetime] = None) -> MutationResult:
        return self._apply(user_id, instance_id, skip_instance, now)

    def recompute_stats(self, user_id: str, now: Optional[datetime] = None) -> CurrentPeriodState:
        """Re-derive the cached stats; rewrites the document only if they drifted."""
        self._archiver.ensure_current(user_id, now)
        fixed: dict[str, CurrentPeriodState] = {}

        def mutate(doc: Optional[dict]) -> Optional[dict]:
            if doc is None:
                raise NotFoundError(self._container, user_id)
            state = state_from_doc(doc)
            fixed["state"] = state
            if doc.get("stats") == state.stats.to_doc():
                return None
            logger.warning("Stats of %s drifted from its goals; rewriting", user_id)
            return state_to_doc(state)

        read_modify_write(self._store, self._container, user_id, user_id, mutate, self._retries)
        return fixed["state"]

    def add_goal(
        self,
        user_id: str,
        title: str,
        dream_id: Optional[str] = None,
        dream_title: str = "",
        dream_category: str = "",
        description: str = "",
        now: Optional[datetime] = None,
    ) -> MutationResult:
        """Add a standalone deadline goal (no template) to the live week."""
        state = self._archiver.ensure_current(user_id, now)
        stamp = periods.isoformat(now or periods.utcnow())
        goal = GoalInstance(
            id=f"goal_{uuid.uuid4().hex[:12]}_{state.week_id}",
            type=GoalType.deadline,
            title=title,
            description=description,
            dream_id=dream_id,
            dream_title=dream_title,
            dream_category=dream_category,
            recurrence=Recurrence.once,
            frequency=1,
            week_id=state.week_id,
            created_at=stamp,
        )
        saved_state: dict[str, CurrentPeriodState] = {}

        def mutate(doc: Optional[dict]) -> dict:
            if doc is None:
                raise NotFoundError(self._container, user_id)
            current = state_from_doc(doc)
            current.goals.append(goal.model_copy(deep=True))
            current.updated_at = stamp
            saved_state["state"] = current
            return state_to_doc(current)

        read_modify_write(self._store, self._container, user_id, user_id, mutate, self._retries)
        logger.info("Added standalone goal %s for %s", goal.id, user_id)
        return MutationResult(state=saved_state["state"], goal=goal, changed=True, completed_now=False)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        user_id: str,
        instance_id: str,
        operation: Operation,
        now: Optional[datetime],
    ) -> MutationResult:
        self._archiver.ensure_current(user_id, now)
        stamp = periods.isoformat(now or periods.utcnow())
        outcome: dict = {}

        def mutate(doc: Optional[dict]) -> Optional[dict]:
            if doc is None:
                raise NotFoundError(self._container, user_id)
            state = state_from_doc(doc)
            goal = next((g for g in state.goals if g.id == instance_id), None)
            if goal is None:
                raise NotFoundError("goal", instance_id)
            was_completed = goal.completed
            changed, completed_now = operation(goal, stamp)
            outcome.update(state=state, goal=goal, changed=changed, completed_now=completed_now)
            outcome["reopened"] = was_completed and not goal.completed
            if not changed:
                return None
            state.updated_at = stamp
            return state_to_doc(state)

        read_modify_write(self._store, self._container, user_id, user_id, mutate, self._retries)
        reopened = outcome.pop("reopened")
        result = MutationResult(**outcome)
        logger.debug(
            "%s on %s/%s: count=%d/%d completed=%s",
            getattr(operation, "__name__", "operation"), user_id, instance_id,
            result.goal.completion_count, result.goal.frequency, result.goal.completed,
        )
        if result.completed_now:
            result.award = self._award(user_id, result.goal, now)
        if result.goal.recurrence == Recurrence.once.value and (result.completed_now or reopened):
            self._sync_template(user_id, result.goal, now)
        return result

    def _award(
        self,
        user_id: str,
        goal: GoalInstance,
        now: Optional[datetime],
    ) -> Optional[ScoreLedgerEntry]:
        # The goal write is already committed; a scoring failure is logged and
        # left for the next completion of the same instance to fill in.
        try:
            return self._scoring.record_event(
                user_id,
                source=LedgerSource.week,
                points=self._points,
                activity=f"Completed goal: {goal.title or goal.id}",
                refs={"dream_id": goal.dream_id, "week_id": goal.week_id},
                entry_id=f"goal_{goal.id}",
                now=now,
                ledger_year=periods.parse_week_id(goal.week_id).isocalendar()[0],
            )
        except (StoreUnavailableError, ConcurrencyConflictError) as exc:
            logger.error("Could not award points for %s/%s: %s", user_id, goal.id, exc)
            return None

    def _sync_template(
        self,
        user_id: str,
        goal: GoalInstance,
        now: Optional[datetime],
    ) -> None:
        # A met one-off template stops expanding in every later week, not
        # only the next one. Separate commit from the goal write.
        if not goal.template_id:
            return
        try:
            self._templates.set_completed(user_id, goal.template_id, goal.completed, now)
        except (StoreUnavailableError, ConcurrencyConflictError) as exc:
            logger.error(
                "Could not update template %s of %s: %s", goal.template_id, user_id, exc
            )
