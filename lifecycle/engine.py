# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
WeekEngine — one user's weekly goal lifecycle behind a single object.

    engine = WeekEngine("user@example.com", JsonDocumentStore())
    await engine.check_rollover()              # once per session
    goals, stats = await engine.goals_for_week()
    tracker = await engine.tracker()
    await tracker.toggle(goals[0].id)

Collaborators are passed in: the document store, the event bus, the
rollover guard (share one across engines in a multi-user process) and a
clock returning today's date.
"""

import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from lifecycle.documents import load_connects, load_past_weeks, load_week, save_connect, save_week
from lifecycle.events import EventBus, Events, bus as default_bus
from lifecycle.materializer import materialize, merge_instances
from lifecycle.rollover import RolloverEngine, RolloverGuard, RolloverResult
from lifecycle.schemas import (
    Connect,
    Dream,
    DreamsDocument,
    EngineConfig,
    GoalInstance,
    NotFoundError,
    PastWeekArchive,
    ScoreResult,
    WeekDocument,
    WeekStats,
)
from lifecycle.scoring import score, score_by_year, week_summary
from lifecycle.store import DocumentStore
from lifecycle.templates import TemplateStore
from lifecycle.tracker import CompletionTracker
from lifecycle.weeks import current_iso_week
from lifecycle.workers import PersistencePool

logger = logging.getLogger("dreamweek.engine")


class WeekEngine:
    """Facade over templates, rollover, tracker and scoring for one user."""

    def __init__(
        self,
        user_id: str,
        store: DocumentStore,
        bus: Optional[EventBus] = None,
        config: Optional[EngineConfig] = None,
        guard: Optional[RolloverGuard] = None,
        pool: Optional[PersistencePool] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.user_id = user_id
        self.store = store
        self.config = config or EngineConfig()
        self.bus = bus if bus is not None else default_bus
        self.guard = guard or RolloverGuard()
        self.pool = pool or PersistencePool(
            name="store",
            max_workers=self.config.persist_workers,
            max_pending=self.config.max_pending_writes,
            timeout=self.config.persist_timeout,
        )
        self.clock = clock
        self.templates = TemplateStore(store, user_id, self.config.reconcile_retries)
        self.rollover = RolloverEngine(
            user_id, store, self.templates, self.pool, self.bus, self.guard,
            rules=self.config.scoring, clock=clock,
        )
        self._tracker: Optional[CompletionTracker] = None

    # ------------------------------------------------------------------
    # Weeks
    # ------------------------------------------------------------------

    async def current_week(self) -> WeekDocument:
        """The stored week document, opening the first week if there is none."""
        try:
            return await self.pool.run(load_week, self.store, self.user_id)
        except NotFoundError:
            logger.info("%s: no week document yet, opening one", self.user_id)
            return await self.rollover.open_week(current_iso_week(self.clock()))

    async def goals_for_week(self) -> Tuple[List[GoalInstance], WeekStats]:
        """Visible instances and stats, as the dashboard shows them."""
        week = await self.current_week()
        return [g for g in week.goals if not g.skipped], week.stats

    async def check_rollover(self, simulate: bool = False) -> RolloverResult:
        result = await self.rollover.check_and_rollover(simulate=simulate)
        if result.rolled_over or result.created:
            self._tracker = None
        return result

    async def tracker(self) -> CompletionTracker:
        """Tracker bound to the current week, rebuilt when the week changes."""
        if self._tracker is None:
            week = await self.current_week()
            self._tracker = CompletionTracker(
                week, self.store, self.templates, self.pool, self.bus, self.config.scoring,
            )
        return self._tracker

    async def past_weeks(self) -> List[PastWeekArchive]:
        """Archived weeks, oldest first."""
        doc = await self.pool.run(load_past_weeks, self.store, self.user_id)
        return [doc.week_history[k] for k in sorted(doc.week_history)]

    # ------------------------------------------------------------------
    # Dreams & connects
    # ------------------------------------------------------------------

    async def dreams(self) -> DreamsDocument:
        return await self.pool.run(self.templates.load)

    async def save_dreams(self, dreams: List[Dream]) -> DreamsDocument:
        """
        Store the user's dreams with templates in lockstep. Goals new to
        the current week get their instance right away.
        """
        try:
            week = await self.pool.run(load_week, self.store, self.user_id)
        except NotFoundError:
            week = None
        week_id = week.week_id if week else current_iso_week(self.clock())

        doc = await self.pool.run(self.templates.sync_from_dreams, dreams, week_id)
        if week is not None:
            added = materialize(doc.weekly_goal_templates, week,
                                self.templates.existing_dream_ids(doc))
            if added:
                week.goals = merge_instances(week.goals, added)
                week.stats = week_summary(week.goals, self.config.scoring)
                await self.pool.run(save_week, self.store, week)
                self._tracker = None
                logger.info("%s: %d new goal(s) added to %s", self.user_id, len(added), week_id)
        self.bus.emit(Events.GOALS_CHANGED, source="engine")
        return doc

    async def add_connect(self, connect: Connect) -> Connect:
        if connect.user_id != self.user_id:
            connect = connect.model_copy(update={"user_id": self.user_id})
        return await self.pool.run(save_connect, self.store, connect)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def _score_inputs(self):
        dreams = await self.pool.run(self.templates.load)
        connects = await self.pool.run(load_connects, self.store, self.user_id)
        archives = await self.past_weeks()
        return dreams.dreams, connects, archives

    async def score(self) -> ScoreResult:
        dreams, connects, archives = await self._score_inputs()
        return score(dreams, connects, archives, self.config.scoring)

    async def score_by_year(self) -> Dict[str, ScoreResult]:
        dreams, connects, archives = await self._score_inputs()
        return score_by_year(dreams, connects, archives, self.config.scoring)

    def close(self) -> None:
        self.pool.shutdown()
