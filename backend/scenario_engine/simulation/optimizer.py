"""Greedy action scheduling over a time horizon.

Actions are ranked by impact / effort (stable, so equal scores keep input
order) and each is placed at the earliest interval where every interval it
spans still has a free slot.
"""
from __future__ import annotations

import logging
import math
from datetime import date, timedelta

import pandas as pd

from scenario_engine.config import settings
from scenario_engine.models.results import IntervalLoad, OptimizedTimeline, ScheduledAction
from scenario_engine.models.simulation import ActionPlan, IntervalUnit, TimeHorizon

logger = logging.getLogger(__name__)

_MIN_EFFORT = 0.01
_MONTHS = {IntervalUnit.monthly: 1, IntervalUnit.quarterly: 3}


class HorizonCalendar:
    """Interval i covers [start + i·step, start + (i+1)·step - 1 day]."""

    def __init__(self, horizon: TimeHorizon) -> None:
        self.start = pd.Timestamp(horizon.start)
        self.months = _MONTHS[horizon.intervals]
        end = pd.Timestamp(horizon.end)
        count = 0
        while self._offset(count) < end:
            count += 1
        self.size = max(count, 1)

    def _offset(self, index: int) -> pd.Timestamp:
        return self.start + pd.DateOffset(months=self.months * index)

    def bounds(self, index: int) -> tuple[date, date]:
        first = self._offset(index).date()
        last = self._offset(index + 1).date() - timedelta(days=1)
        return first, last


class ActionSequenceOptimizer:
    def __init__(self, interval_capacity: float | None = None, max_concurrent: int | None = None) -> None:
        self.interval_capacity = interval_capacity or settings.INTERVAL_CAPACITY
        self.max_concurrent = max_concurrent

    def optimize(self, actions: list[ActionPlan], horizon: TimeHorizon) -> OptimizedTimeline:
        notes: list[str] = []
        calendar = HorizonCalendar(horizon)

        efforts: dict[str, float] = {}
        for action in actions:
            effort = action.estimated_effort
            if effort <= 0:
                notes.append(f"action {action.action_id}: effort {effort} floored to {_MIN_EFFORT}")
                effort = _MIN_EFFORT
            efforts[action.action_id] = effort

        def score(action: ActionPlan) -> float:
            return action.estimated_impact / efforts[action.action_id]

        ranked = sorted(actions, key=score, reverse=True)

        occupancy: list[list[str]] = []
        scheduled: list[ScheduledAction] = []
        for rank, action in enumerate(ranked, start=1):
            span = max(1, math.ceil(efforts[action.action_id] / self.interval_capacity - 1e-9))
            start = self._earliest_slot(occupancy, span)
            end = start + span - 1
            while len(occupancy) <= end:
                occupancy.append([])
            for index in range(start, end + 1):
                occupancy[index].append(action.action_id)

            within = end < calendar.size
            if not within:
                logger.info("Action %s overflows the horizon (ends at interval %d)", action.action_id, end)
            scheduled.append(ScheduledAction(
                action_id=action.action_id,
                rank=rank,
                priority=action.priority,
                priority_score=score(action),
                estimated_effort=efforts[action.action_id],
                estimated_impact=action.estimated_impact,
                start_interval=start,
                end_interval=end,
                interval_count=span,
                start_date=calendar.bounds(start)[0],
                end_date=calendar.bounds(end)[1],
                within_horizon=within,
            ))

        while len(occupancy) < calendar.size:
            occupancy.append([])
        overflow = [a.action_id for a in scheduled if not a.within_horizon]
        if overflow:
            notes.append(f"{len(overflow)} action(s) extend past the horizon")

        return OptimizedTimeline(
            actions=scheduled,
            intervals=[
                IntervalLoad(
                    index=i,
                    start_date=calendar.bounds(i)[0],
                    end_date=calendar.bounds(i)[1],
                    active_actions=active,
                )
                for i, active in enumerate(occupancy)
            ],
            horizon_intervals=calendar.size,
            peak_concurrency=max((len(a) for a in occupancy), default=0),
            total_effort=sum(efforts.values()),
            overflow=overflow,
            critical_path=critical_path(scheduled),
            total_duration_days=(
                (max(a.end_date for a in scheduled) - min(a.start_date for a in scheduled)).days + 1
                if scheduled else 0
            ),
            alternative_orderings={
                "shortest_effort_first": [
                    a.action_id for a in sorted(actions, key=lambda a: efforts[a.action_id])
                ],
                "highest_impact_first": [
                    a.action_id for a in sorted(actions, key=lambda a: a.estimated_impact, reverse=True)
                ],
            },
            notes=notes,
        )

    def _earliest_slot(self, occupancy: list[list[str]], span: int) -> int:
        if self.max_concurrent is None:
            return 0
        start = 0
        while any(
            index < len(occupancy) and len(occupancy[index]) >= self.max_concurrent
            for index in range(start, start + span)
        ):
            start += 1
        return start


def critical_path(scheduled: list[ScheduledAction]) -> list[str]:
    """Chain of back-to-back actions that ends with the last one to finish.

    Walks back from the latest-ending action, each step taking the best
    ranked action that ends in the interval just before the current one
    starts. The chain stops at interval 0 or at a gap.
    """
    if not scheduled:
        return []
    current = max(scheduled, key=lambda a: (a.end_interval, -a.rank))
    path = [current.action_id]
    while current.start_interval > 0:
        before = [a for a in scheduled if a.end_interval == current.start_interval - 1]
        if not before:
            break
        current = min(before, key=lambda a: a.rank)
        path.append(current.action_id)
    return path[::-1]


def optimize_action_sequence(
    actions: list[ActionPlan],
    horizon: TimeHorizon,
    max_concurrent: int | None = None,
    interval_capacity: float | None = None,
) -> OptimizedTimeline:
    return ActionSequenceOptimizer(interval_capacity, max_concurrent).optimize(actions, horizon)
