# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Completion tracker — optimistic actions, rollback, deadline dual write."""

import asyncio
import threading

import pytest

from lifecycle.documents import WEEK_KEY, load_week
from lifecycle.events import Events
from lifecycle.rollover import RolloverEngine, RolloverGuard
from lifecycle.schemas import (
    Dream,
    Goal,
    LifecycleValidationError,
    NotFoundError,
    PersistenceFailure,
)
from lifecycle.store import MemoryDocumentStore
from lifecycle.templates import DREAMS_KEY, TemplateStore
from lifecycle.tracker import CompletionTracker
from lifecycle.workers import PersistencePool

RUN = "g1_2025-W47"
SIGN_UP = "g2_2025-W47"


class ControlledStore(MemoryDocumentStore):
    """Memory store whose writes can be refused or held."""

    def __init__(self):
        super().__init__()
        self.failures = {}
        self.gate = None

    def fail(self, key, times=1):
        self.failures[key] = times

    def upsert(self, user_id, key, document):
        if self.gate is not None and key == WEEK_KEY:
            self.gate.wait(2)
        if self.failures.get(key):
            self.failures[key] -= 1
            raise OSError(f"write to {key} refused")
        return super().upsert(user_id, key, document)


@pytest.fixture
def store():
    return ControlledStore()


@pytest.fixture
def templates(store):
    ts = TemplateStore(store, "ana")
    ts.sync_from_dreams([Dream(id="d1", title="Marathon", goals=[
        Goal(id="g1", title="Run 3x", recurrence="weekly", target_weeks=4, frequency=3),
        Goal(id="g2", title="Sign up", type="deadline", target_date="2025-12-31"),
    ])], "2025-W47")
    return ts


def make_tracker(store, templates, pool, bus, clock):
    rollover = RolloverEngine("ana", store, templates, pool, bus, RolloverGuard(), clock=clock)
    asyncio.run(rollover.check_and_rollover())
    return CompletionTracker(load_week(store, "ana"), store, templates, pool, bus)


@pytest.fixture
def tracker(store, templates, pool, bus, clock):
    return make_tracker(store, templates, pool, bus, clock)


def stored_goal(store, goal_id):
    return load_week(store, "ana").find_goal(goal_id)


class TestCounters:

    def test_increment(self, tracker, store, bus):
        goal = asyncio.run(tracker.increment(RUN))
        assert goal.completion_count == 1
        assert len(goal.completion_dates) == 1
        assert goal.completed is False
        assert stored_goal(store, RUN).completion_count == 1
        assert bus.history(Events.GOALS_CHANGED)

    def test_reaching_frequency_completes(self, tracker, store):
        for _ in range(3):
            goal = asyncio.run(tracker.increment(RUN))
        assert goal.completed is True
        assert goal.completed_at is not None
        assert load_week(store, "ana").stats.score == 3

    def test_capped_at_frequency(self, tracker):
        for _ in range(5):
            goal = asyncio.run(tracker.increment(RUN))
        assert goal.completion_count == 3

    def test_increment_then_decrement_restores(self, tracker, store):
        asyncio.run(tracker.increment(RUN))
        goal = asyncio.run(tracker.decrement(RUN))
        assert goal.completion_count == 0
        assert goal.completion_dates == []
        assert goal.completed is False
        assert stored_goal(store, RUN).completion_count == 0

    def test_decrement_uncompletes(self, tracker):
        for _ in range(3):
            asyncio.run(tracker.increment(RUN))
        goal = asyncio.run(tracker.decrement(RUN))
        assert goal.completed is False
        assert goal.completed_at is None

    def test_decrement_at_zero_is_noop(self, tracker, bus):
        changes = len(bus.history(Events.GOALS_CHANGED))
        goal = asyncio.run(tracker.decrement(RUN))
        assert goal.completion_count == 0
        assert len(bus.history(Events.GOALS_CHANGED)) == changes

    def test_counters_need_frequency(self, tracker):
        with pytest.raises(LifecycleValidationError):
            asyncio.run(tracker.increment(SIGN_UP))

    def test_toggle_rejected_on_counter(self, tracker):
        with pytest.raises(LifecycleValidationError):
            asyncio.run(tracker.toggle(RUN))

    def test_unknown_goal(self, tracker):
        with pytest.raises(NotFoundError):
            asyncio.run(tracker.increment("nope"))
        with pytest.raises(NotFoundError):
            asyncio.run(tracker.skip("nope"))


class TestSkip:

    def test_skip_hides_but_keeps(self, tracker, store):
        asyncio.run(tracker.skip(RUN))
        assert [g.id for g in tracker.visible_goals()] == [SIGN_UP]
        assert stored_goal(store, RUN).skipped is True
        assert load_week(store, "ana").stats.skipped_goals == 1

    def test_skip_leaves_template(self, tracker, templates):
        asyncio.run(tracker.skip(RUN))
        template = templates.load().find_template("g1")
        assert template.active is True
        assert template.weeks_remaining == 4


class TestOptimistic:

    def test_visible_before_write_returns(self, tracker, store):
        store.gate = threading.Event()

        async def run():
            task = asyncio.ensure_future(tracker.increment(RUN))
            await asyncio.sleep(0)
            seen = tracker.week.find_goal(RUN).completion_count
            store.gate.set()
            await task
            return seen

        assert asyncio.run(run()) == 1

    def test_failure_rolls_back(self, tracker, store, bus):
        changes = len(bus.history(Events.GOALS_CHANGED))
        store.fail(WEEK_KEY)
        with pytest.raises(PersistenceFailure):
            asyncio.run(tracker.increment(RUN))
        assert tracker.week.find_goal(RUN).completion_count == 0
        assert tracker.week.stats.completed_goals == 0
        assert stored_goal(store, RUN).completion_count == 0
        assert len(bus.history(Events.GOALS_CHANGED)) == changes

    def test_timeout_rolls_back(self, store, templates, pool, bus, clock):
        slow_pool = PersistencePool("slow", max_workers=1, timeout=0.05)
        try:
            tracker = make_tracker(store, templates, pool, bus, clock)
            tracker.pool = slow_pool
            store.gate = threading.Event()
            with pytest.raises(PersistenceFailure, match="timed out"):
                asyncio.run(tracker.increment(RUN))
            assert tracker.week.find_goal(RUN).completion_count == 0
        finally:
            store.gate.set()
            slow_pool.shutdown(wait=True)

    def test_failed_write_keeps_later_action(self, tracker, store):
        """Two increments in flight; only the one whose write failed is undone."""
        store.fail(WEEK_KEY)

        async def run():
            return await asyncio.gather(tracker.increment(RUN), tracker.increment(RUN),
                                        return_exceptions=True)

        first, second = asyncio.run(run())
        assert isinstance(first, PersistenceFailure)
        assert second.completion_count == 1
        assert second is tracker.week.find_goal(RUN)
        assert len(second.completion_dates) == 1
        assert stored_goal(store, RUN).completion_count == 1
        assert tracker.week.stats == load_week(store, "ana").stats

    def test_actions_in_flight_saved_in_order(self, tracker, store):
        async def run():
            return await asyncio.gather(tracker.increment(RUN), tracker.increment(RUN),
                                        tracker.decrement(RUN))

        asyncio.run(run())
        assert tracker.week.find_goal(RUN).completion_count == 1
        assert stored_goal(store, RUN).completion_count == 1

    def test_saves_full_stored_list(self, tracker, store):
        """An instance the tracker never saw survives its writes."""
        week = load_week(store, "ana")
        extra = week.goals[0].model_copy(update={"id": "other_2025-W47", "template_id": "other"})
        week.goals.append(extra)
        store.upsert("ana", WEEK_KEY, week.to_doc())

        asyncio.run(tracker.increment(RUN))
        ids = [g.id for g in load_week(store, "ana").goals]
        assert ids == [RUN, SIGN_UP, "other_2025-W47"]


class TestDeadline:

    def test_completion_dual_write(self, tracker, store, templates, bus):
        goal = asyncio.run(tracker.toggle(SIGN_UP))
        assert goal.completed is True
        assert stored_goal(store, SIGN_UP).completed is True

        doc = templates.load()
        template = doc.find_template("g2")
        dream_goal = doc.dreams[0].goals[1]
        for side in (template, dream_goal):
            assert side.active is False
            assert side.completed is True
            assert side.weeks_remaining == -1
        [event] = bus.history(Events.DEADLINE_GOAL_COMPLETED)
        assert event.data["goalId"] == "g2"

    def test_untoggle_reopens(self, tracker, templates):
        asyncio.run(tracker.toggle(SIGN_UP))
        goal = asyncio.run(tracker.toggle(SIGN_UP))
        assert goal.completed is False
        template = templates.load().find_template("g2")
        assert template.active is True
        assert template.completed is False
        assert template.weeks_remaining == 7

    def test_dual_write_failure_rolls_back_week(self, tracker, store, templates):
        store.fail(DREAMS_KEY)
        with pytest.raises(PersistenceFailure):
            asyncio.run(tracker.toggle(SIGN_UP))
        assert tracker.week.find_goal(SIGN_UP).completed is False
        assert stored_goal(store, SIGN_UP).completed is False
        assert templates.load().find_template("g2").active is True

    def test_week_moved_on_is_failure(self, tracker, store):
        week = load_week(store, "ana").to_doc()
        week["weekId"] = "2025-W48"
        store.upsert("ana", WEEK_KEY, week)
        with pytest.raises(PersistenceFailure):
            asyncio.run(tracker.toggle(SIGN_UP))
        assert tracker.week.find_goal(SIGN_UP).completed is False
