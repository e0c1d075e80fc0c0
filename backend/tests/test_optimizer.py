"""Tests for ActionSequenceOptimizer — ranking, placement, calendar."""
from datetime import date

import pytest

from scenario_engine.models.simulation import ActionPlan, IntervalUnit, TimeHorizon
from scenario_engine.simulation.optimizer import (
    ActionSequenceOptimizer,
    HorizonCalendar,
    optimize_action_sequence,
)

_HORIZON = TimeHorizon(start=date(2024, 1, 1), end=date(2024, 9, 30))


def _plan(action_id, impact, effort, priority=0.0):
    return ActionPlan(
        action_id=action_id, priority=priority, estimated_impact=impact, estimated_effort=effort,
    )


# --- Calendar tests ---


def test_quarterly_calendar_bounds():
    calendar = HorizonCalendar(_HORIZON)
    assert calendar.size == 3
    assert calendar.bounds(0) == (date(2024, 1, 1), date(2024, 3, 31))
    assert calendar.bounds(2) == (date(2024, 7, 1), date(2024, 9, 30))
    assert calendar.bounds(3) == (date(2024, 10, 1), date(2024, 12, 31))


def test_monthly_calendar_bounds():
    horizon = TimeHorizon(start=date(2024, 1, 31), end=date(2024, 4, 15), intervals=IntervalUnit.monthly)
    calendar = HorizonCalendar(horizon)
    assert calendar.size == 3
    assert calendar.bounds(1) == (date(2024, 2, 29), date(2024, 3, 30))


# --- Placement tests ---


def test_highest_score_scheduled_first():
    timeline = optimize_action_sequence(
        [_plan("slow", 2, 4), _plan("quick_win", 9, 3)], _HORIZON, max_concurrent=1,
    )
    assert [a.action_id for a in timeline.actions] == ["quick_win", "slow"]
    assert timeline.actions[0].priority_score == pytest.approx(3.0)
    assert timeline.actions[0].start_interval == 0
    assert timeline.actions[1].start_interval == 3


def test_unbounded_concurrency_starts_everything_at_once():
    plans = [_plan("a", 3, 1), _plan("b", 2, 2), _plan("c", 1, 1)]
    timeline = optimize_action_sequence(plans, _HORIZON)
    assert all(a.start_interval == 0 for a in timeline.actions)
    assert timeline.peak_concurrency == 3
    assert timeline.overflow == []


def test_span_rounds_effort_up():
    timeline = optimize_action_sequence(
        [_plan("a", 5, 2.5), _plan("b", 1, 2.0)], _HORIZON, interval_capacity=1.0,
    )
    spans = {a.action_id: a.interval_count for a in timeline.actions}
    assert spans == {"a": 3, "b": 2}


def test_interval_capacity_shortens_span():
    timeline = optimize_action_sequence([_plan("a", 5, 4)], _HORIZON, interval_capacity=2.0)
    assert timeline.actions[0].interval_count == 2
    assert timeline.actions[0].end_date == date(2024, 6, 30)


def test_non_positive_effort_floored():
    timeline = optimize_action_sequence([_plan("free", 5, 0)], _HORIZON)
    action = timeline.actions[0]
    assert action.interval_count == 1
    assert action.estimated_effort > 0
    assert timeline.notes


def test_max_concurrent_fills_gaps():
    plans = [_plan("a", 10, 2), _plan("b", 8, 1), _plan("c", 6, 1)]
    timeline = optimize_action_sequence(plans, _HORIZON, max_concurrent=2)
    starts = {a.action_id: a.start_interval for a in timeline.actions}
    assert starts == {"b": 0, "c": 0, "a": 1}
    assert timeline.peak_concurrency == 2
    assert all(len(i.active_actions) <= 2 for i in timeline.intervals)


def test_critical_path_follows_queued_actions():
    plans = [_plan("a", 10, 2), _plan("b", 8, 1), _plan("c", 6, 1)]
    timeline = optimize_action_sequence(plans, _HORIZON, max_concurrent=2)
    # b and c fill interval 0, a waits for a slot and ends last
    assert timeline.critical_path == ["b", "a"]
    assert timeline.total_duration_days == 274


def test_critical_path_without_queueing_is_longest_action():
    plans = [_plan("short", 3, 1), _plan("long", 2, 3)]
    timeline = optimize_action_sequence(plans, _HORIZON)
    assert timeline.critical_path == ["long"]
    assert timeline.total_duration_days == 274


def test_alternative_orderings():
    plans = [_plan("a", 1, 3), _plan("b", 9, 2), _plan("c", 5, 1)]
    timeline = optimize_action_sequence(plans, _HORIZON)
    assert timeline.alternative_orderings["shortest_effort_first"] == ["c", "b", "a"]
    assert timeline.alternative_orderings["highest_impact_first"] == ["b", "c", "a"]
    assert timeline.total_effort == pytest.approx(6.0)


def test_empty_plan_list():
    timeline = ActionSequenceOptimizer().optimize([], _HORIZON)
    assert timeline.actions == []
    assert timeline.peak_concurrency == 0
    assert timeline.critical_path == []
    assert timeline.total_duration_days == 0
    assert len(timeline.intervals) == 3
