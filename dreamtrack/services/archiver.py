"""
Week Archiver — lazy rollover of the live week into history.

Trigger
-------
`ensure_current(user_id, now)` is called before every read or write of the
current week. When the stored weekId differs from the week of `now`:

  1. The stored week is summarised and archived.
  2. Every week the user missed in between is archived with an empty
     summary (0/0, score 0).
  3. The Recurrence Expander seeds the new week from the user's templates,
     carrying monthly counters forward.

Steps 1 and 2 are a single write to the history document; step 3 is
committed separately. If seeding fails, the archive is already written
and the next call retries the seed; re-archiving is a no-op.

History document (one per user, id = userId):

    {id, userId, weekHistory: {weekId: PeriodSummary}, totalWeeksTracked}

Idempotency
-----------
The first summary written for a weekId wins. Archiving a week that is
already in weekHistory returns the stored summary and writes nothing.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from dreamtrack.core.config import settings
from dreamtrack.core.errors import ConcurrencyConflictError
from dreamtrack.schemas.domain import CurrentPeriodState, GoalInstance, PeriodSummary
from dreamtrack.services import periods
from dreamtrack.services.recurrence import ExpansionResult, expand
from dreamtrack.services.templates import TemplateRepository
from dreamtrack.services.week_state import (
    new_state,
    period_score,
    state_from_doc,
    state_to_doc,
)
from dreamtrack.store.documents import ETAG_FIELD, DocumentStore, read_modify_write

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure summaries
# ---------------------------------------------------------------------------

def summarize(state: CurrentPeriodState, archived_at: str) -> PeriodSummary:
    """
    Fold a finished week into its summary. Every goal that was not completed
    counts as skipped at archive time, whether or not it was skipped
    explicitly.
    """
    total = len(state.goals)
    completed = sum(1 for g in state.goals if g.completed)
    return PeriodSummary(
        week_id=state.week_id,
        total_goals=total,
        completed_goals=completed,
        skipped_goals=total - completed,
        score=period_score(completed, total),
        week_start_date=state.week_start_date,
        week_end_date=state.week_end_date,
        archived_at=archived_at,
    )


def empty_summary(week_id: str, archived_at: str) -> PeriodSummary:
    start, end = periods.week_range(week_id)
    return PeriodSummary(
        week_id=week_id,
        total_goals=0,
        completed_goals=0,
        skipped_goals=0,
        score=0,
        week_start_date=start.isoformat(),
        week_end_date=end.isoformat(),
        archived_at=archived_at,
    )


# ---------------------------------------------------------------------------
# Archiver
# ---------------------------------------------------------------------------

class WeekArchiver:

    def __init__(
        self,
        store: DocumentStore,
        templates: TemplateRepository,
        current_container: str = settings.CURRENT_WEEK_CONTAINER,
        history_container: str = settings.PAST_WEEKS_CONTAINER,
        retries: int = settings.STORE_CONFLICT_RETRIES,
    ):
        self._store = store
        self._templates = templates
        self._current = current_container
        self._history = history_container
        self._retries = retries

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def store_summary(self, user_id: str, summary: PeriodSummary) -> PeriodSummary:
        """Write `summary` unless its week is already archived; return the stored one."""
        return self.store_summaries(user_id, [summary])[0]

    def store_summaries(
        self,
        user_id: str,
        summaries: Sequence[PeriodSummary],
    ) -> list[PeriodSummary]:
        """
        Archive several weeks with one write. Each weekId keeps its first
        summary; the stored summaries are returned in input order.
        """
        kept: dict[str, PeriodSummary] = {}
        if not summaries:
            return []
        stamp = summaries[-1].archived_at

        def mutate(doc: Optional[dict]) -> Optional[dict]:
            kept.clear()
            doc = doc or {
                "id": user_id,
                "userId": user_id,
                "weekHistory": {},
                "createdAt": stamp,
            }
            history = doc.setdefault("weekHistory", {})
            added = False
            for summary in summaries:
                if summary.week_id in history:
                    kept[summary.week_id] = PeriodSummary.model_validate(history[summary.week_id])
                    continue
                history[summary.week_id] = summary.to_doc()
                kept[summary.week_id] = summary
                added = True
            if not added:
                return None
            doc["totalWeeksTracked"] = len(history)
            doc["updatedAt"] = stamp
            return doc

        read_modify_write(
            self._store, self._history, user_id, user_id, mutate, self._retries
        )
        for summary in summaries:
            if kept[summary.week_id] is not summary:
                logger.info(
                    "Week %s already archived for %s; keeping first summary",
                    summary.week_id, user_id,
                )
            else:
                logger.info(
                    "Archived %s for %s (%d/%d goals, score %d)",
                    summary.week_id, user_id,
                    summary.completed_goals, summary.total_goals, summary.score,
                )
        return [kept[s.week_id] for s in summaries]

    def archive(
        self,
        user_id: str,
        state: CurrentPeriodState,
        now: Optional[datetime] = None,
    ) -> PeriodSummary:
        archived_at = periods.isoformat(now or periods.utcnow())
        return self.store_summary(user_id, summarize(state, archived_at))

    def past_weeks(self, user_id: str) -> list[PeriodSummary]:
        """Archived summaries, most recent week first."""
        doc = self._store.find(self._history, user_id, user_id)
        history = (doc or {}).get("weekHistory") or {}
        summaries = [PeriodSummary.model_validate(v) for v in history.values()]
        return sorted(summaries, key=lambda s: periods.parse_week_id(s.week_id), reverse=True)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def expand_for(
        self,
        user_id: str,
        week_id: str,
        existing: Sequence[GoalInstance] = (),
        previous: Sequence[GoalInstance] = (),
        now: Optional[datetime] = None,
    ) -> ExpansionResult:
        template_set = self._templates.load(user_id)
        return expand(
            template_set.templates,
            week_id,
            existing=existing,
            previous=previous,
            completed_dream_ids=template_set.completed_dream_ids,
            now=now,
        )

    def seed(
        self,
        user_id: str,
        week_id: str,
        previous: Sequence[GoalInstance] = (),
        now: Optional[datetime] = None,
    ) -> CurrentPeriodState:
        result = self.expand_for(user_id, week_id, previous=previous, now=now)
        logger.info("Seeded %s for %s with %d goal(s)", week_id, user_id, len(result.instances))
        return new_state(user_id, week_id, result.instances, now)

    # ------------------------------------------------------------------
    # Lazy trigger
    # ------------------------------------------------------------------

    def ensure_current(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> CurrentPeriodState:
        """Return the user's live week, rolling over first if it has ended."""
        now = now or periods.utcnow()
        target = periods.current_week_id(now)
        doc = self._store.find(self._current, user_id, user_id)

        if doc is None:
            state = self.seed(user_id, target, now=now)
            try:
                saved = self._store.put(self._current, state_to_doc(state), if_none_match=True)
            except ConcurrencyConflictError:
                # Another request seeded first
                saved = self._store.get(self._current, user_id, user_id)
            return state_from_doc(saved)

        state = state_from_doc(doc)
        if state.week_id == target:
            return state
        if periods.weeks_between(state.week_id, target) < 0:
            logger.warning(
                "Stored week %s for %s is ahead of %s; leaving it in place",
                state.week_id, user_id, target,
            )
            return state

        logger.info("Rolling over %s from %s to %s", user_id, state.week_id, target)
        archived_at = periods.isoformat(now)
        missed = periods.weeks_in_range(periods.next_week_id(state.week_id), target)
        self.store_summaries(
            user_id,
            [summarize(state, archived_at)] + [empty_summary(w, archived_at) for w in missed],
        )

        fresh = self.seed(user_id, target, previous=state.goals, now=now)
        try:
            saved = self._store.put(
                self._current, state_to_doc(fresh), if_match=doc[ETAG_FIELD]
            )
        except ConcurrencyConflictError:
            saved = self._store.get(self._current, user_id, user_id)
            if saved.get("weekId") != target:
                raise
            logger.info("Rollover of %s already done by another request", user_id)
        return state_from_doc(saved)
