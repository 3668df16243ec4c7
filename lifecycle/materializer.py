# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Instance materializer — templates in, this week's new goal instances out.

Pure: reads nothing, writes nothing. The caller merges the result into the
week document and persists once. Instance ids are "<templateId>_<weekId>",
so materializing the same week twice yields the same ids and, after the
existence check, no new instances at all.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Set

from lifecycle.schemas import GoalInstance, InstanceType, WeekDocument, WeeklyGoalTemplate
from lifecycle.weeks import month_id, parse_week_id, weeks_until

logger = logging.getLogger("dreamweek.materializer")

DEFAULT_FREQUENCY = {"weekly": 1, "monthly": 2}


def instance_id(template_id: str, week_id: str) -> str:
    return f"{template_id}_{week_id}"


def instance_type(template: WeeklyGoalTemplate) -> InstanceType:
    if template.type == "deadline":
        return "deadline"
    if template.recurrence == "monthly":
        return "monthly_goal"
    return "weekly_goal"


def is_eligible(template: WeeklyGoalTemplate, week_id: str, existing_dream_ids: Set[str]) -> bool:
    """Whether a template should have an instance in `week_id`."""
    if template.dream_id not in existing_dream_ids:
        return False
    if not template.active or template.completed:
        return False
    if template.weeks_remaining is not None:
        # a deadline keeps its final week (0); a consistency run ends at 0
        floor = -1 if template.type == "deadline" else 0
        if template.weeks_remaining <= floor:
            return False
    if template.type == "deadline" and template.target_date:
        if weeks_until(template.target_date, week_id) < 0:
            return False
    return True


def build_instance(template: WeeklyGoalTemplate, week_id: str,
                   previous: Optional[GoalInstance] = None) -> GoalInstance:
    """Fresh instance for one template. Monthly progress carries over within a month."""
    kind = instance_type(template)
    recurrence = template.recurrence if kind != "deadline" else None
    frequency = template.frequency
    if frequency is None and recurrence is not None:
        frequency = DEFAULT_FREQUENCY[recurrence]

    instance = GoalInstance(
        id=instance_id(template.id, week_id),
        template_id=template.id,
        type=kind,
        title=template.title,
        dream_id=template.dream_id,
        dream_title=template.dream_title or "",
        dream_category=template.dream_category or "",
        week_id=week_id,
        recurrence=recurrence,
        frequency=frequency,
        target_weeks=template.target_weeks,
        target_months=template.target_months,
        target_date=template.target_date,
        weeks_remaining=template.weeks_remaining,
        created_at=datetime.now().isoformat(),
    )
    if instance.is_counter:
        instance.completion_count = 0
        instance.completion_dates = []
    if kind == "monthly_goal":
        instance.month_id = month_id(week_id)
        if previous is not None and previous.month_id == instance.month_id:
            count = min(previous.completion_count or 0, instance.frequency)
            instance.completion_count = count
            instance.completion_dates = list(previous.completion_dates or [])[:count]
            instance.completed = count >= instance.frequency
            instance.completed_at = previous.completed_at if instance.completed else None
    return instance


def materialize(
    templates: Iterable[WeeklyGoalTemplate],
    week_doc: Optional[WeekDocument],
    existing_dream_ids: Set[str],
    week_id: Optional[str] = None,
    previous_goals: Optional[Iterable[GoalInstance]] = None,
) -> List[GoalInstance]:
    """
    New instances for the week, in template order.

    Rules, in order:
      1. template's dream must still exist (orphans are ignored)
      2. template must be active, not completed, weeksRemaining > 0
         (deadlines: >= 0)
      3. no instance for this template in the week yet (skipped ones count)
      4. build the instance with a deterministic id
      5. deadline templates whose target date has passed are dropped

    `previous_goals` (last week's instances) only feeds monthly carry-over.
    """
    if week_id is None:
        if week_doc is None:
            raise ValueError("materialize needs a week document or a week id")
        week_id = week_doc.week_id
    parse_week_id(week_id)

    present = set()
    if week_doc is not None and week_doc.week_id == week_id:
        present = {g.template_id for g in week_doc.goals} | {g.id for g in week_doc.goals}
    previous = {g.template_id: g for g in (previous_goals or [])}

    created = []
    for template in templates:
        if not is_eligible(template, week_id, existing_dream_ids):
            continue
        if template.id in present or instance_id(template.id, week_id) in present:
            continue
        instance = build_instance(template, week_id, previous.get(template.id))
        present.add(template.id)
        created.append(instance)

    if created:
        logger.debug("Materialized %d instance(s) for %s", len(created), week_id)
    return created


def merge_instances(existing: Iterable[GoalInstance],
                    new: Iterable[GoalInstance]) -> List[GoalInstance]:
    """Existing instances first, then new ones whose id isn't taken."""
    merged = list(existing)
    seen = {g.id for g in merged}
    for instance in new:
        if instance.id not in seen:
            merged.append(instance)
            seen.add(instance.id)
    return merged
