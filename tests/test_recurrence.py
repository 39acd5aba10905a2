"""
Tests for template expansion: countdown, idempotency, start boundaries,
monthly carry-forward and malformed templates.
"""
from datetime import datetime, timezone

import pytest

from dreamtrack.schemas.domain import GoalInstance, GoalTemplate
from dreamtrack.services.recurrence import countdown, expand, instance_id

NOW = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


def weekly(**overrides) -> dict:
    template = {
        "id": "tpl-run",
        "dreamId": "dream-marathon",
        "title": "Run 5k",
        "recurrence": "weekly",
        "frequency": 3,
        "targetWeeks": 12,
        "startDate": "2025-W01",
    }
    template.update(overrides)
    return template


def monthly(**overrides) -> dict:
    template = {
        "id": "tpl-budget",
        "title": "Review budget",
        "recurrence": "monthly",
        "frequency": 2,
        "targetMonths": 3,
        "startDate": "2025-02",
    }
    template.update(overrides)
    return template


class TestWeeklyExpansion:
    def test_first_week_instance(self):
        result = expand([weekly()], "2025-W01", now=NOW)
        assert len(result.instances) == 1
        goal = result.instances[0]
        assert goal.id == "tpl-run_2025-W01"
        assert goal.template_id == "tpl-run"
        assert goal.type == "weekly_goal"
        assert goal.completion_count == 0
        assert goal.completed is False
        assert goal.weeks_remaining == 11
        assert goal.week_id == "2025-W01"

    def test_instance_id_format(self):
        assert instance_id("tpl-run", "2025-W07") == "tpl-run_2025-W07"

    def test_final_week_is_zero(self):
        result = expand([weekly()], "2025-W12", now=NOW)
        assert result.instances[0].weeks_remaining == 0

    def test_lapsed_after_target(self):
        result = expand([weekly()], "2025-W13", now=NOW)
        assert result.instances == []
        assert result.lapsed == ["tpl-run"]

    def test_countdown_is_floored(self):
        template = GoalTemplate.model_validate(weekly())
        assert countdown(template, "2026-W30") == -1

    def test_never_retroactive(self):
        result = expand([weekly(startDate="2025-W05")], "2025-W03", now=NOW)
        assert result.instances == []
        assert result.not_started == ["tpl-run"]

    def test_midweek_start_begins_next_week(self):
        template = weekly(startDate="2025-01-08")
        assert expand([template], "2025-W02", now=NOW).instances == []
        goal = expand([template], "2025-W03", now=NOW).instances[0]
        assert goal.weeks_remaining == 11

    def test_denormalised_dream_fields_copied(self):
        result = expand([weekly(dreamTitle="Marathon", dreamCategory="Health")], "2025-W01", now=NOW)
        goal = result.instances[0]
        assert goal.dream_id == "dream-marathon"
        assert goal.dream_title == "Marathon"
        assert goal.dream_category == "Health"


class TestIdempotency:
    def test_expanding_twice_adds_nothing(self):
        first = expand([weekly()], "2025-W01", now=NOW)
        second = expand([weekly()], "2025-W01", existing=first.instances, now=NOW)
        assert second.instances == []

    def test_only_missing_templates_expand(self):
        first = expand([weekly()], "2025-W01", now=NOW)
        second = expand(
            [weekly(), weekly(id="tpl-read", title="Read")],
            "2025-W01",
            existing=first.instances,
            now=NOW,
        )
        assert [g.id for g in second.instances] == ["tpl-read_2025-W01"]


class TestFiltering:
    def test_inactive_template_skipped(self):
        assert expand([weekly(active=False)], "2025-W01", now=NOW).instances == []

    def test_completed_template_skipped(self):
        assert expand([weekly(completed=True)], "2025-W01", now=NOW).instances == []

    def test_completed_dream_skipped(self):
        result = expand(
            [weekly()], "2025-W01", completed_dream_ids={"dream-marathon"}, now=NOW
        )
        assert result.instances == []

    def test_one_off_becomes_deadline(self):
        template = weekly(id="tpl-book", recurrence="once", frequency=1, targetWeeks=2)
        goal = expand([template], "2025-W01", now=NOW).instances[0]
        assert goal.type == "deadline"
        assert goal.weeks_remaining == 1

    def test_one_off_met_last_week_not_repeated(self):
        template = weekly(id="tpl-book", recurrence="once", frequency=1, targetWeeks=4)
        done = GoalInstance(
            id="tpl-book_2025-W01", template_id="tpl-book", type="deadline",
            frequency=1, completion_count=1, completed=True, week_id="2025-W01",
        )
        result = expand([template], "2025-W02", previous=[done], now=NOW)
        assert result.instances == []


class TestMonthly:
    def test_first_month_countdown(self):
        goal = expand([monthly()], "2025-W06", now=NOW).instances[0]
        assert goal.type == "monthly_goal"
        assert goal.month_id == "2025-02"
        assert goal.months_remaining == 2
        assert goal.target_weeks == 13

    def test_counter_carries_within_month(self):
        earlier = expand([monthly()], "2025-W06", now=NOW).instances[0]
        earlier.completion_count = 1
        earlier.completion_dates = ["2025-02-04T10:00:00Z"]
        goal = expand([monthly()], "2025-W07", previous=[earlier], now=NOW).instances[0]
        assert goal.id == "tpl-budget_2025-W07"
        assert goal.completion_count == 1
        assert goal.completion_dates == ["2025-02-04T10:00:00Z"]
        assert goal.completed is False

    def test_counter_resets_in_new_month(self):
        earlier = expand([monthly()], "2025-W09", now=NOW).instances[0]
        earlier.completion_count = 2
        earlier.completed = True
        goal = expand([monthly()], "2025-W10", previous=[earlier], now=NOW).instances[0]
        assert goal.month_id == "2025-03"
        assert goal.completion_count == 0
        assert goal.completed is False
        assert goal.months_remaining == 1


class TestMalformedTemplates:
    def test_bad_template_skipped_with_warning(self):
        broken = {"id": "tpl-broken", "recurrence": "weekly", "startDate": "2025-W01"}
        result = expand([broken, weekly()], "2025-W01", now=NOW)
        assert [g.template_id for g in result.instances] == ["tpl-run"]
        assert len(result.warnings) == 1
        assert result.warnings[0].record_id == "tpl-broken"

    def test_unparseable_start_date_warns(self):
        result = expand([weekly(startDate="soon")], "2025-W01", now=NOW)
        assert result.instances == []
        assert result.warnings[0].record_id == "tpl-run"

    def test_duplicate_template_id_warns(self):
        result = expand([weekly(), weekly(title="Copy")], "2025-W01", now=NOW)
        assert len(result.instances) == 1
        assert len(result.warnings) == 1

    def test_monthly_without_target_months_rejected(self):
        with pytest.raises(ValueError):
            GoalTemplate.model_validate(monthly(targetMonths=None))
