# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Rollover — closes a finished week and opens the current one.

A user's week document is either CURRENT (its weekId is this ISO week) or
STALE. The only transition is STALE -> CURRENT:

    1. read the week document (none yet: first login, open a fresh week)
    2. summarize it: total / completed / skipped / score
    3. archive it under its weekId; weeks the user missed entirely get
       empty archives. Write-once: re-archiving a week is a no-op.
    4. count one week off every active template (and its goal)
    5. materialize the new week and persist it

Ordering is what makes retries safe. If 3 fails nothing else has changed.
If 4 or 5 fails, the next attempt finds the archive already there, and
templates already advanced to the target week are skipped.

Callers check once per session and treat a failed rollover as non-fatal:
check_and_rollover() logs, emits ROLLOVER_FAILED and returns a result with
success=False instead of raising.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from lifecycle.documents import archive_weeks, load_week, new_week_document, save_week
from lifecycle.events import EventBus, Events
from lifecycle.materializer import materialize
from lifecycle.schemas import (
    ConflictingWrite,
    NotFoundError,
    PastWeekArchive,
    PersistenceFailure,
    ScoringRules,
    WeekDocument,
    WeekStats,
)
from lifecycle.scoring import week_summary
from lifecycle.store import DocumentStore
from lifecycle.templates import TemplateStore
from lifecycle.weeks import current_iso_week, next_week_id, week_dates, week_monday, weeks_between
from lifecycle.workers import PersistencePool

logger = logging.getLogger("dreamweek.rollover")


class WeekState(str, Enum):
    CURRENT = "current"
    STALE = "stale"


def week_state(week_doc: WeekDocument, current_week_id: str) -> WeekState:
    """STALE only when the stored week lies before the current one."""
    if week_monday(week_doc.week_id) < week_monday(current_week_id):
        return WeekState.STALE
    return WeekState.CURRENT


class RolloverGuard:
    """
    Per-user in-flight rollover registry.

    A second check for the same user while one is running awaits the first
    one's result instead of starting its own. Other users are unaffected.
    Cancelling a caller abandons its wait, never the shared rollover.
    Share one guard between every engine serving the same users.
    """

    def __init__(self):
        self._inflight: Dict[str, asyncio.Future] = {}

    def in_flight(self, user_id: str) -> bool:
        return user_id in self._inflight

    async def run(self, user_id: str, factory: Callable[[], Awaitable]):
        task = self._inflight.get(user_id)
        if task is not None:
            logger.debug("%s: rollover already in flight, waiting on it", user_id)
            return await asyncio.shield(task)

        task = asyncio.ensure_future(factory())
        self._inflight[user_id] = task

        def _done(_):
            if self._inflight.get(user_id) is task:
                del self._inflight[user_id]

        task.add_done_callback(_done)
        return await asyncio.shield(task)


@dataclass
class RolloverResult:
    """What a rollover check did. Never raised, always returned."""
    user_id: str
    state: WeekState = WeekState.CURRENT
    success: bool = True
    rolled_over: bool = False
    from_week: Optional[str] = None
    to_week: Optional[str] = None
    summary: Optional[WeekStats] = None
    archived: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "state": self.state.value,
            "success": self.success,
            "rolledOver": self.rolled_over,
            "fromWeek": self.from_week,
            "toWeek": self.to_week,
            "summary": self.summary.to_doc() if self.summary else None,
            "archived": list(self.archived),
            "created": list(self.created),
            "error": self.error,
        }


class RolloverEngine:
    """Runs the STALE -> CURRENT transition for one user."""

    def __init__(
        self,
        user_id: str,
        store: DocumentStore,
        templates: TemplateStore,
        pool: PersistencePool,
        bus: EventBus,
        guard: RolloverGuard,
        rules: Optional[ScoringRules] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.user_id = user_id
        self.store = store
        self.templates = templates
        self.pool = pool
        self.bus = bus
        self.guard = guard
        self.rules = rules or ScoringRules()
        self.clock = clock

    async def check_and_rollover(self, simulate: bool = False) -> RolloverResult:
        """
        Bring the user's week up to date.

        simulate=True rolls the stored week forward by one week even when
        the calendar hasn't moved (manual testing hook).
        """
        return await self.guard.run(self.user_id, lambda: self._check(simulate))

    async def _check(self, simulate: bool) -> RolloverResult:
        try:
            return await self._rollover(simulate)
        except (PersistenceFailure, ConflictingWrite) as e:
            logger.error("%s: rollover failed, continuing on stale week: %s", self.user_id, e)
            self.bus.emit(Events.ROLLOVER_FAILED, {"userId": self.user_id, "error": str(e)},
                          source="rollover")
            return RolloverResult(user_id=self.user_id, state=WeekState.STALE,
                                  success=False, error=str(e))

    async def open_week(self, week_id: str, previous: Optional[WeekDocument] = None) -> WeekDocument:
        """Materialize and persist a week document for `week_id`."""
        dreams = await self.pool.run(self.templates.load)
        doc = new_week_document(self.user_id, week_id)
        doc.goals = materialize(
            dreams.weekly_goal_templates,
            doc,
            self.templates.existing_dream_ids(dreams),
            previous_goals=previous.goals if previous else None,
        )
        doc.stats = week_summary(doc.goals, self.rules)
        await self.pool.run(save_week, self.store, doc)
        return doc

    async def _rollover(self, simulate: bool) -> RolloverResult:
        current = current_iso_week(self.clock())
        result = RolloverResult(user_id=self.user_id)

        # 1. read
        try:
            old = await self.pool.run(load_week, self.store, self.user_id)
        except NotFoundError:
            doc = await self.open_week(current)
            logger.info("%s: first week %s opened with %d goal(s)",
                        self.user_id, current, len(doc.goals))
            result.to_week = current
            result.created = [g.id for g in doc.goals]
            self.bus.emit(Events.GOALS_CHANGED, source="rollover")
            return result

        if simulate:
            target = next_week_id(old.week_id)
        else:
            result.state = week_state(old, current)
            if result.state is WeekState.CURRENT:
                result.from_week = result.to_week = old.week_id
                return result
            target = current
        result.state = WeekState.STALE
        result.from_week, result.to_week = old.week_id, target
        logger.info("%s: rolling over %s -> %s", self.user_id, old.week_id, target)

        # 2. summarize
        summary = week_summary(old.goals, self.rules)
        result.summary = summary

        # 3. archive (write-once), including weeks nobody opened
        stamp = datetime.now().isoformat()
        archives = [PastWeekArchive(
            week_id=old.week_id,
            week_start_date=old.week_start_date,
            week_end_date=old.week_end_date,
            archived_at=stamp,
            **summary.model_dump(),
        )]
        for missed in weeks_between(next_week_id(old.week_id), target):
            start, end = week_dates(missed)
            archives.append(PastWeekArchive(
                week_id=missed, week_start_date=start, week_end_date=end, archived_at=stamp,
            ))
        result.archived = await self.pool.run(archive_weeks, self.store, self.user_id, archives)
        for week_id in result.archived:
            self.bus.emit(Events.WEEK_ARCHIVED, {"userId": self.user_id, "weekId": week_id},
                          source="rollover")
        if len(archives) > 1:
            logger.info("%s: %d missed week(s) archived empty", self.user_id, len(archives) - 1)

        # 4. templates (a skipped goal keeps its week)
        skipped = [g.template_id for g in old.goals if g.skipped]
        await self.pool.run(self.templates.advance_week, target, skipped)

        # 5. new week
        doc = await self.open_week(target, previous=old)
        result.rolled_over = True
        result.state = WeekState.CURRENT
        result.created = [g.id for g in doc.goals]
        logger.info("%s: week %s opened with %d goal(s)", self.user_id, target, len(doc.goals))

        self.bus.emit(Events.WEEK_ROLLED_OVER, {
            "userId": self.user_id,
            "fromWeek": old.week_id,
            "toWeek": target,
            "summary": summary.to_doc(),
        }, source="rollover")
        self.bus.emit(Events.GOALS_CHANGED, source="rollover")
        return result
