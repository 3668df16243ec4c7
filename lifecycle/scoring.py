# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Scoring — points ledger recomputed from dreams, connects and archived weeks.

Stateless. The same inputs always produce the same ledger in the same
order, so a total shown in the UI can always be audited line by line.

    Dream created         10 (once, dated by createdAt)
    Dream connect          5
    Archived week          the score recorded when the week was archived
                           (3 per weekly goal, 5 per monthly/deadline goal)
"""

from collections import OrderedDict
from typing import Dict, Iterable, Optional

from lifecycle.schemas import (
    Connect,
    Dream,
    GoalInstance,
    PastWeekArchive,
    ScoreResult,
    ScoringEntry,
    ScoringRules,
    WeekStats,
)
from lifecycle.weeks import week_dates

UNDATED = "undated"


def instance_points(instance: GoalInstance, rules: Optional[ScoringRules] = None) -> int:
    """Points a completed instance is worth."""
    rules = rules or ScoringRules()
    if instance.type == "monthly_goal":
        return rules.monthly_goal
    if instance.type == "deadline":
        return rules.deadline_goal
    return rules.weekly_goal


def week_summary(goals: Iterable[GoalInstance], rules: Optional[ScoringRules] = None) -> WeekStats:
    """Totals for one week's instances. Skipped instances never score."""
    rules = rules or ScoringRules()
    stats = WeekStats()
    for goal in goals:
        stats.total_goals += 1
        if goal.skipped:
            stats.skipped_goals += 1
        elif goal.completed:
            stats.completed_goals += 1
            stats.score += instance_points(goal, rules)
    return stats


def archive_points(archive: PastWeekArchive, rules: Optional[ScoringRules] = None) -> int:
    # archives written before scores were recorded only know the count
    if archive.score:
        return archive.score
    rules = rules or ScoringRules()
    return archive.completed_goals * rules.weekly_goal


def _day(value: Optional[str]) -> str:
    return value[:10] if value else ""


def score(
    dreams: Iterable[Dream],
    connects: Iterable[Connect],
    archives: Iterable[PastWeekArchive],
    rules: Optional[ScoringRules] = None,
) -> ScoreResult:
    """Full ledger plus total. Entries sorted by (date, source, activity)."""
    rules = rules or ScoringRules()
    entries = []

    for dream in dreams:
        entries.append(ScoringEntry(
            date=_day(dream.created_at),
            source="dream",
            points=rules.dream,
            activity=f"Created dream: {dream.title}",
            dream_id=dream.id,
        ))

    for connect in connects:
        who = connect.with_whom or "a teammate"
        entries.append(ScoringEntry(
            date=_day(connect.date),
            source="connect",
            points=rules.connect,
            activity=f"Dream connect with {who}",
            dream_id=connect.dream_id,
            connect_id=connect.id,
        ))

    for archive in archives:
        points = archive_points(archive, rules)
        if points <= 0:
            continue
        day = archive.week_end_date or week_dates(archive.week_id)[1]
        entries.append(ScoringEntry(
            date=_day(day),
            source="week",
            points=points,
            activity=f"Week {archive.week_id}: {archive.completed_goals}/{archive.total_goals} goals",
            week_id=archive.week_id,
        ))

    entries.sort(key=lambda e: (e.date, e.source, e.activity))
    return ScoreResult(total_score=sum(e.points for e in entries), entries=entries)


def score_by_year(
    dreams: Iterable[Dream],
    connects: Iterable[Connect],
    archives: Iterable[PastWeekArchive],
    rules: Optional[ScoringRules] = None,
) -> Dict[str, ScoreResult]:
    """The ledger split by calendar year, oldest year first."""
    ledger = score(dreams, connects, archives, rules)
    years: Dict[str, ScoreResult] = OrderedDict()
    for entry in ledger.entries:
        year = entry.date[:4] or UNDATED
        result = years.setdefault(year, ScoreResult())
        result.entries.append(entry)
        result.total_score += entry.points
    return years
