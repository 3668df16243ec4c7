# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Completion tracker — user actions on this week's goal instances.

    tracker = await engine.tracker()
    await tracker.increment("goal-1_2025-W47")
    tracker.visible_goals()

Every action is optimistic: the in-memory week changes before the first
await, so a caller reading `tracker.week` right after starting an action
already sees it. Persistence then runs on the worker pool, one action at a
time in call order. If a write fails or times out, only that action is
undone: the instance goes back to its last saved state with any later,
still-pending actions re-applied, and PersistenceFailure propagates.

Saving never writes back the in-memory goal list wholesale. The stored
week is re-read, the one changed instance is patched in, and that full
list (skipped instances included) is written. A stale copy in memory can
therefore never drop someone else's instance.

Completing a deadline instance also completes its goal and template (see
TemplateStore.complete_deadline_goal). If that dual write fails, the week
change is rolled back and re-saved as well.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from lifecycle.documents import load_week, save_week
from lifecycle.events import EventBus, Events
from lifecycle.schemas import (
    ConflictingWrite,
    GoalInstance,
    LifecycleValidationError,
    NotFoundError,
    PersistenceFailure,
    ScoringRules,
    WeekDocument,
)
from lifecycle.scoring import week_summary
from lifecycle.store import DocumentStore
from lifecycle.templates import TemplateStore
from lifecycle.workers import PersistencePool

logger = logging.getLogger("dreamweek.tracker")


class CompletionTracker:
    """Optimistic toggle / increment / decrement / skip on one user's week."""

    def __init__(
        self,
        week: WeekDocument,
        store: DocumentStore,
        templates: TemplateStore,
        pool: PersistencePool,
        bus: EventBus,
        rules: Optional[ScoringRules] = None,
    ):
        self.week = week
        self.user_id = week.user_id
        self.store = store
        self.templates = templates
        self.pool = pool
        self.bus = bus
        self.rules = rules or ScoringRules()
        self._write_lock = asyncio.Lock()
        # goal id -> actions applied in memory, not yet saved (call order)
        self._pending: Dict[str, List[Callable[[GoalInstance], None]]] = {}
        # goal id -> the instance as last saved, while actions are pending
        self._saved: Dict[str, GoalInstance] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def visible_goals(self) -> List[GoalInstance]:
        """Instances shown for the week. Skipped ones are hidden."""
        return [g for g in self.week.goals if not g.skipped]

    def _require(self, goal_id: str) -> GoalInstance:
        goal = self.week.find_goal(goal_id)
        if goal is None:
            raise NotFoundError(f"No goal {goal_id} in week {self.week.week_id}")
        return goal

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def toggle(self, goal_id: str) -> GoalInstance:
        """Flip a plain goal between done and not done."""
        goal = self._require(goal_id)
        if goal.is_counter:
            raise LifecycleValidationError(
                f"Goal {goal_id} counts completions; use increment/decrement"
            )
        now = datetime.now().isoformat()

        def flip(g: GoalInstance):
            g.completed = not g.completed
            g.completed_at = now if g.completed else None

        return await self._commit(goal_id, flip)

    async def increment(self, goal_id: str) -> GoalInstance:
        """Record one more completion. No-op once the frequency is reached."""
        goal = self._require_counter(goal_id)
        if goal.completion_count >= goal.frequency:
            return goal
        now = datetime.now().isoformat()

        def bump(g: GoalInstance):
            if (g.completion_count or 0) >= g.frequency:
                return
            g.completion_count = (g.completion_count or 0) + 1
            g.completion_dates = list(g.completion_dates or []) + [now]
            done = g.completion_count >= g.frequency
            if done and not g.completed:
                g.completed_at = now
            g.completed = done

        return await self._commit(goal_id, bump)

    async def decrement(self, goal_id: str) -> GoalInstance:
        """Take back the latest completion. No-op at zero."""
        goal = self._require_counter(goal_id)
        if goal.completion_count <= 0:
            return goal

        def drop(g: GoalInstance):
            if not g.completion_count:
                return
            g.completion_count -= 1
            g.completion_dates = list(g.completion_dates or [])[:-1]
            g.completed = g.completion_count >= g.frequency
            if not g.completed:
                g.completed_at = None

        return await self._commit(goal_id, drop)

    async def skip(self, goal_id: str) -> GoalInstance:
        """Hide the instance for this week. Its template is untouched."""
        goal = self._require(goal_id)
        if goal.skipped:
            return goal

        def hide(g: GoalInstance):
            g.skipped = True

        return await self._commit(goal_id, hide)

    def _require_counter(self, goal_id: str) -> GoalInstance:
        goal = self._require(goal_id)
        if not goal.is_counter:
            raise LifecycleValidationError(f"Goal {goal_id} has no frequency; use toggle")
        if goal.completion_count is None:
            goal.completion_count = 0
        return goal

    # ------------------------------------------------------------------
    # Optimistic commit
    # ------------------------------------------------------------------

    def _replace(self, instance: GoalInstance) -> None:
        self.week.goals = [instance if g.id == instance.id else g for g in self.week.goals]
        self.week.stats = week_summary(self.week.goals, self.rules)

    async def _commit(self, goal_id: str, mutate: Callable[[GoalInstance], None]) -> GoalInstance:
        goal = self._require(goal_id)
        queue = self._pending.setdefault(goal_id, [])
        if not queue:
            self._saved[goal_id] = goal.model_copy(deep=True)

        # applied before any await
        mutate(goal)
        self.week.stats = week_summary(self.week.goals, self.rules)
        queue.append(mutate)

        # actions reach the lock in call order, so `saved` already holds
        # every earlier action on this goal that went through
        async with self._write_lock:
            saved = self._saved[goal_id]
            changed = saved.model_copy(deep=True)
            mutate(changed)
            try:
                await self.pool.run(self._persist_instance, changed)
            except PersistenceFailure:
                self._drop_action(goal_id, mutate)
                logger.warning("%s: %s on %s rolled back", self.user_id, mutate.__name__, goal_id)
                raise

            if changed.type == "deadline" and changed.completed != saved.completed:
                try:
                    await self._sync_deadline(changed)
                except (PersistenceFailure, ConflictingWrite, NotFoundError):
                    self._drop_action(goal_id, mutate)
                    await self._restore(saved)
                    raise

            self._saved[goal_id] = changed
            self._settle(goal_id, mutate)

        self.bus.emit(Events.GOALS_CHANGED, source="tracker")
        return self._require(goal_id)

    def _settle(self, goal_id: str, mutate: Callable[[GoalInstance], None]) -> None:
        queue = self._pending[goal_id]
        queue.remove(mutate)
        if not queue:
            del self._pending[goal_id]
            del self._saved[goal_id]

    def _drop_action(self, goal_id: str, mutate: Callable[[GoalInstance], None]) -> None:
        """Undo one failed action: last saved state plus the actions still queued."""
        live = self._saved[goal_id].model_copy(deep=True)
        for other in self._pending[goal_id]:
            if other is not mutate:
                other(live)
        self._replace(live)
        self._settle(goal_id, mutate)

    def _persist_instance(self, instance: GoalInstance) -> WeekDocument:
        """Patch one instance into the stored week. Runs on the pool."""
        try:
            stored = load_week(self.store, self.user_id)
        except NotFoundError:
            stored = self.week.model_copy(deep=True)
        if stored.week_id != self.week.week_id:
            raise PersistenceFailure(
                f"Stored week is {stored.week_id}, tracker holds {self.week.week_id}"
            )
        if stored.find_goal(instance.id) is None:
            stored.goals.append(instance)
        else:
            stored.goals = [instance if g.id == instance.id else g for g in stored.goals]
        stored.stats = week_summary(stored.goals, self.rules)
        return save_week(self.store, stored)

    async def _sync_deadline(self, instance: GoalInstance) -> None:
        if instance.completed:
            await self.pool.run(
                self.templates.complete_deadline_goal,
                instance.template_id, instance.dream_id, instance.completed_at,
            )
            logger.info("%s: deadline goal %s completed", self.user_id, instance.template_id)
            self.bus.emit(Events.DEADLINE_GOAL_COMPLETED, {
                "userId": self.user_id,
                "goalId": instance.template_id,
                "dreamId": instance.dream_id,
            }, source="tracker")
        else:
            await self.pool.run(
                self.templates.reopen_deadline_goal,
                instance.template_id, instance.dream_id, instance.weeks_remaining,
            )

    async def _restore(self, snapshot: GoalInstance) -> None:
        """Write the pre-action instance back after a failed dual write."""
        try:
            await self.pool.run(self._persist_instance, snapshot)
        except PersistenceFailure as e:
            logger.error("%s: could not restore %s after failed dual write: %s",
                         self.user_id, snapshot.id, e)
