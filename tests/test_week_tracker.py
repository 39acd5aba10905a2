"""
Tests for the Week Tracker: toggle / decrement / skip semantics, the
completion invariant, stats and points on completion.
"""
import logging
from datetime import datetime, timezone

import pytest

from dreamtrack.core.errors import NotFoundError, SkipNotAllowedError
from dreamtrack.schemas.domain import GoalInstance
from dreamtrack.services.week_tracker import decrement_instance, skip_instance, toggle_instance

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)   # Wednesday of 2025-W01
STAMP = "2025-01-01T09:00:00Z"
NEW_YEARS_EVE = datetime(2024, 12, 31, 20, 0, tzinfo=timezone.utc)   # also 2025-W01
JAN_2 = datetime(2025, 1, 2, 8, 0, tzinfo=timezone.utc)
MONDAY_W02 = datetime(2025, 1, 6, 7, 0, tzinfo=timezone.utc)
MONDAY_W03 = datetime(2025, 1, 13, 7, 0, tzinfo=timezone.utc)

TEMPLATES = [
    {
        "id": "tpl-run", "title": "Run 5k", "recurrence": "weekly",
        "frequency": 3, "targetWeeks": 12, "startDate": "2025-W01",
    },
    {
        "id": "tpl-call", "title": "Call mum", "recurrence": "weekly",
        "frequency": 1, "targetWeeks": 4, "startDate": "2025-W01",
    },
]


def make_goal(frequency: int = 1, **overrides) -> GoalInstance:
    data = dict(
        id="tpl-x_2025-W01", template_id="tpl-x", type="weekly_goal",
        frequency=frequency, week_id="2025-W01",
    )
    data.update(overrides)
    return GoalInstance(**data)


def assert_invariant(goal: GoalInstance):
    assert 0 <= goal.completion_count <= goal.frequency
    assert goal.completed == (goal.completion_count == goal.frequency)


@pytest.fixture()
def seeded(templates, tracker, user_id):
    templates.save(user_id, TEMPLATES, now=NOW)
    return tracker.current(user_id, now=NOW)


# ---------------------------------------------------------------------------
# Pure instance mutations
# ---------------------------------------------------------------------------

class TestInstanceMutations:
    def test_single_toggle_flips(self):
        goal = make_goal()
        assert toggle_instance(goal, STAMP) == (True, True)
        assert goal.completed and goal.completion_count == 1
        assert goal.completed_at == STAMP
        assert toggle_instance(goal, STAMP) == (True, False)
        assert not goal.completed and goal.completion_count == 0
        assert goal.completed_at is None
        assert goal.completion_dates == []

    def test_multi_toggle_counts_up_and_caps(self):
        goal = make_goal(frequency=3)
        for _ in range(5):
            toggle_instance(goal, STAMP)
            assert_invariant(goal)
        assert goal.completion_count == 3
        assert len(goal.completion_dates) == 3

    def test_toggle_at_cap_is_noop(self):
        goal = make_goal(frequency=2, completion_count=2, completed=True, completed_at=STAMP)
        assert toggle_instance(goal, STAMP) == (False, False)

    def test_decrement_at_zero_is_noop(self):
        goal = make_goal(frequency=3)
        assert decrement_instance(goal) == (False, False)
        assert goal.completion_count == 0

    def test_skip_requires_template(self):
        goal = make_goal(template_id=None, type="deadline")
        with pytest.raises(SkipNotAllowedError):
            skip_instance(goal)

    def test_skip_leaves_counter(self):
        goal = make_goal(frequency=3, completion_count=1)
        assert skip_instance(goal) == (True, False)
        assert goal.skipped is True
        assert goal.completion_count == 1
        assert skip_instance(goal) == (False, False)


# ---------------------------------------------------------------------------
# Tracker over the store
# ---------------------------------------------------------------------------

class TestTracker:
    def test_current_seeds_from_templates(self, seeded):
        assert seeded.week_id == "2025-W01"
        assert {g.id for g in seeded.goals} == {"tpl-run_2025-W01", "tpl-call_2025-W01"}
        assert seeded.stats.total_goals == 2
        assert seeded.stats.score == 0

    def test_toggle_three_then_decrement(self, seeded, tracker, user_id):
        for _ in range(3):
            result = tracker.toggle(user_id, "tpl-run_2025-W01", now=NOW)
        goal = result.goal
        assert goal.completion_count == 3
        assert goal.completed is True
        assert goal.completed_at is not None

        result = tracker.decrement(user_id, "tpl-run_2025-W01", now=NOW)
        goal = result.goal
        assert goal.completion_count == 2
        assert goal.completed is False
        assert goal.completed_at is None

    def test_mutation_is_persisted(self, seeded, tracker, user_id):
        tracker.toggle(user_id, "tpl-call_2025-W01", now=NOW)
        state = tracker.current(user_id, now=NOW)
        goal = next(g for g in state.goals if g.id == "tpl-call_2025-W01")
        assert goal.completed is True
        assert state.stats.completed_goals == 1
        assert state.stats.score == 50

    def test_decrement_at_zero_reports_unchanged(self, seeded, tracker, user_id):
        result = tracker.decrement(user_id, "tpl-run_2025-W01", now=NOW)
        assert result.changed is False
        assert result.goal.completion_count == 0

    def test_unknown_goal_not_found(self, seeded, tracker, user_id):
        with pytest.raises(NotFoundError):
            tracker.toggle(user_id, "nope_2025-W01", now=NOW)

    def test_skip_counts_in_stats(self, seeded, tracker, user_id):
        result = tracker.skip(user_id, "tpl-call_2025-W01", now=NOW)
        assert result.goal.skipped is True
        assert result.state.stats.skipped_goals == 1

    def test_standalone_goal_cannot_be_skipped(self, seeded, tracker, user_id):
        added = tracker.add_goal(user_id, "Book the venue", now=NOW)
        assert added.goal.type == "deadline"
        assert added.state.stats.total_goals == 3
        with pytest.raises(SkipNotAllowedError):
            tracker.skip(user_id, added.goal.id, now=NOW)

    def test_recompute_repairs_drifted_stats(self, seeded, tracker, store, user_id):
        doc = store.get("currentWeek", user_id, user_id)
        doc["stats"] = {"totalGoals": 99, "completedGoals": 42, "skippedGoals": 0, "score": 42}
        store.put("currentWeek", doc, if_match=doc["_etag"])
        state = tracker.recompute_stats(user_id, now=NOW)
        assert state.stats.total_goals == 2
        assert store.get("currentWeek", user_id, user_id)["stats"]["totalGoals"] == 2


class TestPoints:
    def test_completion_awards_once(self, seeded, tracker, scoring, user_id):
        first = tracker.toggle(user_id, "tpl-call_2025-W01", now=NOW)
        assert first.completed_now is True
        assert first.award is not None
        assert first.award.id == "goal_tpl-call_2025-W01"
        assert first.award.points == 5

        tracker.toggle(user_id, "tpl-call_2025-W01", now=NOW)          # un-complete
        again = tracker.toggle(user_id, "tpl-call_2025-W01", now=NOW)  # complete again
        assert again.completed_now is True
        assert again.award is None

        assert scoring.total_score(user_id, 2025) == 5
        assert len(scoring.entries(user_id, 2025)) == 1

    def test_partial_progress_awards_nothing(self, seeded, tracker, scoring, user_id):
        result = tracker.toggle(user_id, "tpl-run_2025-W01", now=NOW)
        assert result.completed_now is False
        assert result.award is None
        assert scoring.total_score(user_id, 2025) == 0

    def test_week_spanning_new_year_awards_once(self, templates, tracker, scoring, user_id):
        templates.save(user_id, TEMPLATES, now=NEW_YEARS_EVE)
        first = tracker.toggle(user_id, "tpl-call_2025-W01", now=NEW_YEARS_EVE)
        tracker.toggle(user_id, "tpl-call_2025-W01", now=NEW_YEARS_EVE)
        again = tracker.toggle(user_id, "tpl-call_2025-W01", now=JAN_2)

        assert first.award is not None
        assert first.award.date == "2024-12-31"
        assert again.award is None
        assert scoring.total_score(user_id) == 5
        assert scoring.total_score(user_id, 2025) == 5
        assert scoring.total_score(user_id, 2024) == 0


class TestQuarantine:
    def test_invalid_stored_goal_is_quarantined(self, seeded, tracker, store, user_id):
        doc = store.get("currentWeek", user_id, user_id)
        broken = dict(doc["goals"][0], completionCount=7)
        doc["goals"].append(dict(broken, id="broken_2025-W01"))
        store.put("currentWeek", doc, if_match=doc["_etag"])

        state = tracker.current(user_id, now=NOW)
        assert len(state.goals) == 2
        assert [q["id"] for q in state.quarantined] == ["broken_2025-W01"]
        assert state.stats.total_goals == 2


class TestOneOffTemplates:
    ONE_OFF = {
        "id": "tpl-book", "title": "Book the venue", "recurrence": "once",
        "frequency": 1, "targetWeeks": 4, "startDate": "2025-W01",
    }

    def test_met_deadline_does_not_return(self, templates, tracker, archiver, user_id):
        templates.save(user_id, [self.ONE_OFF], now=NOW)
        tracker.toggle(user_id, "tpl-book_2025-W01", now=NOW)

        assert archiver.ensure_current(user_id, now=MONDAY_W02).goals == []
        assert archiver.ensure_current(user_id, now=MONDAY_W03).goals == []
        [template] = templates.load(user_id).templates
        assert template["completed"] is True

    def test_reopened_deadline_expands_again(self, templates, tracker, archiver, user_id):
        templates.save(user_id, [self.ONE_OFF], now=NOW)
        tracker.toggle(user_id, "tpl-book_2025-W01", now=NOW)
        tracker.toggle(user_id, "tpl-book_2025-W01", now=NOW)

        [template] = templates.load(user_id).templates
        assert template["completed"] is False
        state = archiver.ensure_current(user_id, now=MONDAY_W02)
        assert [g.id for g in state.goals] == ["tpl-book_2025-W02"]

    def test_weekly_completion_leaves_template_alone(self, seeded, tracker, templates, user_id):
        tracker.toggle(user_id, "tpl-call_2025-W01", now=NOW)
        assert all(not t["completed"] for t in templates.load(user_id).templates)


class TestLogging:
    def test_debug_log_names_the_operation(self, seeded, tracker, user_id, caplog):
        caplog.set_level(logging.DEBUG, logger="dreamtrack.services.week_tracker")
        tracker.toggle(user_id, "tpl-run_2025-W01", now=NOW)
        tracker.decrement(user_id, "tpl-run_2025-W01", now=NOW)
        tracker.skip(user_id, "tpl-call_2025-W01", now=NOW)

        assert "toggle_instance on" in caplog.text
        assert "decrement_instance on" in caplog.text
        assert "skip_instance on" in caplog.text
        assert "<lambda>" not in caplog.text
