# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Template store — durable goal templates that outlive any single week.

Storage: the user's "dreams" document, which holds both the dreams (with
their embedded goals) and the weeklyGoalTemplates mirroring those goals.
A goal and its template always change together, in one upsert of that
document. That single write is the "dual write": there is never a moment
where the goal was saved and the template was not.

Deadline completion and reopening are read back after saving. If the
re-read disagrees with the intended state the whole transition is retried
from a fresh read; if it still disagrees, ConflictingWrite is raised.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set, Tuple

from lifecycle.schemas import (
    ConflictingWrite,
    Dream,
    DreamsDocument,
    Goal,
    NotFoundError,
    WeeklyGoalTemplate,
)
from lifecycle.store import DocumentStore
from lifecycle.weeks import months_to_weeks, weeks_until

logger = logging.getLogger("dreamweek.templates")

DREAMS_KEY = "dreams"

# Fields a template copies from its goal verbatim
_MIRRORED = (
    "title", "type", "recurrence", "target_weeks", "target_months", "target_date",
    "weeks_remaining", "active", "completed", "completed_at", "frequency",
)


def initial_weeks_remaining(goal: Goal, week_id: Optional[str] = None) -> Optional[int]:
    """Counter for a goal that has never been rolled over."""
    if goal.target_weeks is not None:
        return goal.target_weeks
    if goal.target_months is not None:
        return months_to_weeks(goal.target_months)
    if goal.type == "deadline" and goal.target_date and week_id:
        return weeks_until(goal.target_date, week_id)
    return None


def normalize_goal(goal: Goal, week_id: Optional[str] = None) -> None:
    """Fill derived counters on a freshly authored goal, in place."""
    if goal.type == "consistency" and goal.recurrence is None:
        goal.recurrence = "weekly"
    if goal.target_weeks is None and goal.target_months is not None:
        goal.target_weeks = months_to_weeks(goal.target_months)
    if goal.weeks_remaining is None:
        goal.weeks_remaining = initial_weeks_remaining(goal, week_id)
    if goal.completed:
        goal.active = False


def template_from_goal(goal: Goal, dream: Dream,
                       existing: Optional[WeeklyGoalTemplate] = None) -> WeeklyGoalTemplate:
    """Mirror a goal into its template. The goal is the source of truth."""
    fields = {name: getattr(goal, name) for name in _MIRRORED}
    return WeeklyGoalTemplate(
        id=goal.id,
        goal_id=goal.id,
        dream_id=dream.id,
        dream_title=dream.title,
        dream_category=dream.category,
        last_rolled_week_id=existing.last_rolled_week_id if existing else None,
        **fields,
    )


def derive_templates(dreams: Iterable[Dream], week_id: Optional[str] = None,
                     existing: Iterable[WeeklyGoalTemplate] = ()) -> List[WeeklyGoalTemplate]:
    """One template per goal, in dream order."""
    by_goal = {t.source_goal_id: t for t in existing}
    templates = []
    for dream in dreams:
        for goal in dream.goals:
            normalize_goal(goal, week_id)
            templates.append(template_from_goal(goal, dream, by_goal.get(goal.id)))
    return templates


def repair_legacy_templates(doc: DreamsDocument) -> int:
    """
    Fix templates written by older clients, in place. Returns the fix count.

    - missing dreamId: matched to a dream by dreamTitle
    - targetMonths without targetWeeks: converted to weeks
    - missing weeksRemaining: initialised from targetWeeks
    - goal completed/inactive but template still active: template follows goal
    """
    fixed = 0
    for template in doc.weekly_goal_templates:
        changed = False
        if not template.dream_id and template.dream_title:
            dream = next((d for d in doc.dreams if d.title == template.dream_title), None)
            if dream is not None:
                template.dream_id = dream.id
                changed = True
            else:
                logger.warning("No dream titled %r for template %s", template.dream_title, template.id)
        if template.target_weeks is None and template.target_months is not None:
            template.target_weeks = months_to_weeks(template.target_months)
            changed = True
        if template.weeks_remaining is None and template.target_weeks is not None:
            template.weeks_remaining = template.target_weeks
            changed = True

        dream = doc.find_dream(template.dream_id)
        goal = _find_goal(dream, template.source_goal_id) if dream else None
        if goal is not None and template.active and (goal.completed or not goal.active):
            template.active = False
            template.completed = goal.completed
            template.weeks_remaining = goal.weeks_remaining
            changed = True

        if changed:
            fixed += 1
    if fixed:
        logger.info("Repaired %d legacy template(s)", fixed)
    return fixed


def _find_goal(dream: Optional[Dream], goal_id: str) -> Optional[Goal]:
    if dream is None:
        return None
    for goal in dream.goals:
        if goal.id == goal_id:
            return goal
    return None


class TemplateStore:
    """Reads and writes the user's dreams document."""

    def __init__(self, store: DocumentStore, user_id: str, reconcile_retries: int = 1):
        self.store = store
        self.user_id = user_id
        self.reconcile_retries = reconcile_retries

    # ------------------------------------------------------------------
    # Plain reads and writes
    # ------------------------------------------------------------------

    def read_stored(self) -> DreamsDocument:
        """The document exactly as stored, without legacy repair."""
        raw = self.store.get_or_none(self.user_id, DREAMS_KEY)
        if raw is None:
            return DreamsDocument(id=f"{self.user_id}_dreams", user_id=self.user_id)
        return DreamsDocument.model_validate(raw)

    def load(self) -> DreamsDocument:
        """The dreams document; an empty one if the user has none yet."""
        doc = self.read_stored()
        repair_legacy_templates(doc)
        return doc

    def save(self, doc: DreamsDocument) -> DreamsDocument:
        doc.updated_at = datetime.now().isoformat()
        self.store.upsert(self.user_id, DREAMS_KEY, doc.to_doc())
        return doc

    @staticmethod
    def existing_dream_ids(doc: DreamsDocument) -> Set[str]:
        """Ids of dreams still open. Templates of other dreams are orphans."""
        return {d.id for d in doc.dreams if not d.completed}

    def sync_from_dreams(self, dreams: List[Dream], week_id: Optional[str] = None) -> DreamsDocument:
        """Replace the user's dreams and rebuild templates in lockstep."""
        doc = self.load()
        previous = {g.id: g for d in doc.dreams for g in d.goals}
        doc.dreams = [d.model_copy(deep=True) for d in dreams]
        for dream in doc.dreams:
            for goal in dream.goals:
                old = previous.get(goal.id)
                # an edit that omits the counters keeps the stored ones
                if old is not None and goal.weeks_remaining is None:
                    for name in ("weeks_remaining", "active", "completed", "completed_at"):
                        setattr(goal, name, getattr(old, name))
        doc.weekly_goal_templates = derive_templates(doc.dreams, week_id, doc.weekly_goal_templates)
        logger.info("%s: saved %d dream(s), %d template(s)",
                    self.user_id, len(doc.dreams), len(doc.weekly_goal_templates))
        return self.save(doc)

    # ------------------------------------------------------------------
    # Dual writes
    # ------------------------------------------------------------------

    def _locate(self, doc: DreamsDocument, goal_id: str,
                dream_id: Optional[str]) -> Tuple[Goal, Optional[WeeklyGoalTemplate]]:
        template = doc.find_template(goal_id)
        source_id = template.source_goal_id if template is not None else goal_id
        dreams = [doc.find_dream(dream_id)] if dream_id else doc.dreams
        for dream in dreams:
            goal = _find_goal(dream, source_id)
            if goal is not None:
                return goal, template
        raise NotFoundError(f"Goal {goal_id} not found in dream {dream_id}")

    def _dual_write(self, goal_id: str, dream_id: Optional[str],
                    apply: Callable[[object], None],
                    expected: dict) -> DreamsDocument:
        """Apply `apply` to goal and template in one upsert, then reconcile."""
        attempts = 1 + self.reconcile_retries
        for attempt in range(1, attempts + 1):
            doc = self.load()
            goal, template = self._locate(doc, goal_id, dream_id)
            apply(goal)
            if template is not None:
                apply(template)
            self.save(doc)

            confirmed = self.read_stored()
            goal, template = self._locate(confirmed, goal_id, dream_id)
            sides = [goal] + ([template] if template is not None else [])
            mismatched = [
                (type(side).__name__, name, getattr(side, name), value)
                for side in sides
                for name, value in expected.items()
                if getattr(side, name) != value
            ]
            if not mismatched:
                return confirmed
            logger.warning("%s: goal %s reconcile mismatch (attempt %d/%d): %s",
                           self.user_id, goal_id, attempt, attempts, mismatched)

        raise ConflictingWrite(
            f"Goal {goal_id} and its template disagree after {attempts} attempt(s)"
        )

    def complete_deadline_goal(self, goal_id: str, dream_id: Optional[str] = None,
                               completed_at: Optional[str] = None) -> DreamsDocument:
        """Mark a deadline goal done on both goal and template, atomically."""
        stamp = completed_at or datetime.now().isoformat()

        def apply(side):
            side.completed = True
            side.active = False
            side.weeks_remaining = -1
            side.completed_at = stamp

        doc = self._dual_write(goal_id, dream_id, apply,
                               {"completed": True, "active": False, "weeks_remaining": -1})
        logger.info("%s: deadline goal %s completed, goal and template inactive", self.user_id, goal_id)
        return doc

    def reopen_deadline_goal(self, goal_id: str, dream_id: Optional[str],
                             weeks_remaining: Optional[int]) -> DreamsDocument:
        """Undo complete_deadline_goal when the user un-checks it the same week."""

        def apply(side):
            side.completed = False
            side.active = True
            side.weeks_remaining = weeks_remaining
            side.completed_at = None

        doc = self._dual_write(goal_id, dream_id, apply,
                               {"completed": False, "active": True, "weeks_remaining": weeks_remaining})
        logger.info("%s: deadline goal %s reopened", self.user_id, goal_id)
        return doc

    # ------------------------------------------------------------------
    # Rollover
    # ------------------------------------------------------------------

    def advance_week(self, target_week_id: str, skipped: Iterable[str] = ()) -> DreamsDocument:
        """
        Count one week off every active template and its goal.

        A template already advanced to `target_week_id` is left alone, so
        retrying a half-finished rollover never decrements twice. Templates
        listed in `skipped` (their last instance was skipped) keep their
        counter. Consistency goals go inactive at 0; deadline goals keep
        their final week and go inactive below 0. `completed` is not touched.
        """
        doc = self.load()
        # goals without a template (older data) get one now
        doc.weekly_goal_templates = derive_templates(doc.dreams, target_week_id, doc.weekly_goal_templates)
        open_dreams = self.existing_dream_ids(doc)
        skipped = set(skipped)
        advanced = 0
        for template in doc.weekly_goal_templates:
            if template.last_rolled_week_id == target_week_id:
                continue
            if template.dream_id not in open_dreams:
                continue
            if not template.active or template.completed:
                continue
            floor = -1 if template.type == "deadline" else 0
            if template.weeks_remaining is None or template.weeks_remaining <= floor:
                continue
            if template.id in skipped:
                template.last_rolled_week_id = target_week_id
                logger.debug("%s: goal %s was skipped, counter kept", self.user_id, template.id)
                continue

            remaining = template.weeks_remaining - 1
            updates = {"weeks_remaining": remaining}
            if remaining <= floor:
                updates["active"] = False
            goal = _find_goal(doc.find_dream(template.dream_id), template.source_goal_id)
            for side in (template, goal):
                if side is not None:
                    for name, value in updates.items():
                        setattr(side, name, value)
            template.last_rolled_week_id = target_week_id
            advanced += 1
            if "active" in updates:
                logger.info("%s: goal %s (%s) finished its run, now inactive",
                            self.user_id, template.id, template.title)

        self.save(doc)
        logger.info("%s: advanced %d template(s) to %s", self.user_id, advanced, target_week_id)
        return doc
