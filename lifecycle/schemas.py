# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
DreamWeek Schema Registry — Pydantic models for every stored document.

Single source of truth for the documents the lifecycle engine reads and
writes through the document store. Catches field drift, type mismatches
and malformed templates at load time.

Stored field names are camelCase (the wire format shared with the rest of
the application); Python code uses snake_case attributes:

    dream = Dream.model_validate({"id": "d1", "title": "Run", "goals": []})
    dream.goals                         # attribute access
    dream.to_doc()                      # {"id": "d1", "title": "Run", ...}

All models use extra="allow" so existing documents with unknown fields
won't break; they are carried through untouched on save.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# ============================================================================
# Base config: all models inherit this
# ============================================================================

class LifecycleModel(BaseModel):
    """Base for all DreamWeek schemas. camelCase on the wire, extra fields kept."""
    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_doc(self) -> Dict[str, Any]:
        """Serialize to the stored (camelCase, JSON-safe) representation."""
        return self.model_dump(by_alias=True, mode="json")


# ============================================================================
# Exceptions: standardized error handling across the engine
# ============================================================================

class LifecycleError(Exception):
    """Base for every error the lifecycle engine raises."""


class InvalidWeekId(LifecycleError, ValueError):
    """Week id does not match YYYY-Www or names a week that doesn't exist."""


class NotFoundError(LifecycleError):
    """A requested document, goal, template or instance doesn't exist."""


class ConflictingWrite(LifecycleError):
    """Goal and template still disagree after the reconciliation retry."""


class PersistenceFailure(LifecycleError):
    """Store transport failed or timed out. Recoverable: the caller may retry."""


class LifecycleValidationError(LifecycleError, ValueError):
    """Input fails validation (operation not valid for this goal, bad data)."""


# ============================================================================
# DREAMS & GOALS
# ============================================================================

GoalType = Literal["consistency", "deadline"]
Recurrence = Literal["weekly", "monthly"]


class Goal(LifecycleModel):
    """Goal embedded in a dream. Consistency goals recur; deadline goals end."""
    id: str
    title: str
    type: GoalType = "consistency"
    recurrence: Optional[Recurrence] = None
    target_weeks: Optional[int] = None
    target_months: Optional[int] = None
    target_date: Optional[str] = None  # ISO date, deadline goals
    weeks_remaining: Optional[int] = None
    active: bool = True
    completed: bool = False
    completed_at: Optional[str] = None
    frequency: Optional[int] = Field(default=None, ge=1)


class Dream(LifecycleModel):
    """A long-running dream owned by one user, with its goals embedded."""
    id: str
    title: str
    category: str = ""
    progress: int = Field(default=0, ge=0, le=100)
    goals: List[Goal] = Field(default_factory=list)
    completed: bool = False
    created_at: Optional[str] = None


class WeeklyGoalTemplate(LifecycleModel):
    """Separately persisted mirror of a Goal, for fast lookup across weeks."""
    id: str
    goal_id: Optional[str] = None
    dream_id: Optional[str] = None
    title: str
    type: GoalType = "consistency"
    recurrence: Optional[Recurrence] = None
    target_weeks: Optional[int] = None
    target_months: Optional[int] = None
    target_date: Optional[str] = None
    weeks_remaining: Optional[int] = None
    active: bool = True
    completed: bool = False
    completed_at: Optional[str] = None
    frequency: Optional[int] = Field(default=None, ge=1)
    dream_title: Optional[str] = None
    dream_category: Optional[str] = None
    # Target week of the last rollover that decremented this template
    last_rolled_week_id: Optional[str] = None

    @property
    def source_goal_id(self) -> str:
        return self.goal_id or self.id


class DreamsDocument(LifecycleModel):
    """Per-user dreams document: dreams plus their mirrored templates.

    Keeping both in one document makes the goal + template dual write a
    single upsert.
    """
    id: str
    user_id: str
    type: Literal["dreams"] = "dreams"
    dreams: List[Dream] = Field(default_factory=list)
    weekly_goal_templates: List[WeeklyGoalTemplate] = Field(default_factory=list)
    updated_at: Optional[str] = None

    def find_dream(self, dream_id: Optional[str]) -> Optional[Dream]:
        for dream in self.dreams:
            if dream.id == dream_id:
                return dream
        return None

    def find_template(self, goal_id: str) -> Optional[WeeklyGoalTemplate]:
        for template in self.weekly_goal_templates:
            if template.id == goal_id or template.goal_id == goal_id:
                return template
        return None


# ============================================================================
# WEEKS
# ============================================================================

InstanceType = Literal["weekly_goal", "monthly_goal", "deadline"]


class GoalInstance(LifecycleModel):
    """Per-week materialization of a template: the unit the user checks off."""
    id: str
    template_id: str
    type: InstanceType = "weekly_goal"
    title: str
    dream_id: Optional[str] = None
    dream_title: str = ""
    dream_category: str = ""
    week_id: str
    recurrence: Optional[Recurrence] = None
    completed: bool = False
    completed_at: Optional[str] = None
    skipped: bool = False
    frequency: Optional[int] = Field(default=None, ge=1)
    completion_count: Optional[int] = Field(default=None, ge=0)
    completion_dates: Optional[List[str]] = None
    target_weeks: Optional[int] = None
    target_months: Optional[int] = None
    target_date: Optional[str] = None
    weeks_remaining: Optional[int] = None
    month_id: Optional[str] = None
    created_at: Optional[str] = None

    @model_validator(mode="after")
    def _count_within_frequency(self):
        if self.completion_count is not None and self.frequency is not None:
            if self.completion_count > self.frequency:
                raise ValueError(
                    f"completionCount {self.completion_count} exceeds frequency {self.frequency}"
                )
        return self

    @property
    def is_counter(self) -> bool:
        """Frequency-based goal (increment/decrement) rather than a plain toggle."""
        return self.recurrence is not None and self.frequency is not None


class WeekStats(LifecycleModel):
    total_goals: int = 0
    completed_goals: int = 0
    skipped_goals: int = 0
    score: int = 0


class WeekDocument(LifecycleModel):
    """The user's single current-week document (key: currentWeek)."""
    id: str
    user_id: str
    type: Literal["currentWeek"] = "currentWeek"
    week_id: str
    week_start_date: str
    week_end_date: str
    goals: List[GoalInstance] = Field(default_factory=list)
    stats: WeekStats = Field(default_factory=WeekStats)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def find_goal(self, goal_id: str) -> Optional[GoalInstance]:
        for goal in self.goals:
            if goal.id == goal_id:
                return goal
        return None


class PastWeekArchive(LifecycleModel):
    """Immutable summary of one finished week."""
    model_config = ConfigDict(frozen=True)

    week_id: str
    total_goals: int = 0
    completed_goals: int = 0
    skipped_goals: int = 0
    score: int = 0
    week_start_date: Optional[str] = None
    week_end_date: Optional[str] = None
    archived_at: Optional[str] = None


class PastWeeksDocument(LifecycleModel):
    """Per-user archive history (key: pastWeeks), one entry per week id."""
    id: str
    user_id: str
    type: Literal["pastWeeks"] = "pastWeeks"
    week_history: Dict[str, PastWeekArchive] = Field(default_factory=dict)
    total_weeks_tracked: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ============================================================================
# CONNECTS & SCORING
# ============================================================================

class Connect(LifecycleModel):
    """A dream connect (conversation with a teammate). key: connect:<id>"""
    id: str
    user_id: str
    type: Literal["connect"] = "connect"
    date: str
    with_whom: Optional[str] = None
    dream_id: Optional[str] = None


class ScoringRules(LifecycleModel):
    """Points table. Weekly goals 3, monthly and deadline goals 5."""
    dream: int = 10
    connect: int = 5
    weekly_goal: int = 3
    monthly_goal: int = 5
    deadline_goal: int = 5


class ScoringEntry(LifecycleModel):
    """Single line of the append-only scoring ledger."""
    model_config = ConfigDict(frozen=True)

    date: str  # YYYY-MM-DD
    source: Literal["dream", "connect", "week"]
    points: int
    activity: str
    dream_id: Optional[str] = None
    week_id: Optional[str] = None
    connect_id: Optional[str] = None


class ScoreResult(LifecycleModel):
    total_score: int = 0
    entries: List[ScoringEntry] = Field(default_factory=list)


# ============================================================================
# CONFIG
# ============================================================================

class EngineConfig(LifecycleModel):
    """Engine config: <data_dir>/dreamweek-config.json"""
    persist_timeout: float = Field(default=5.0, gt=0)
    persist_workers: int = Field(default=2, ge=1)
    max_pending_writes: int = Field(default=32, ge=1)
    reconcile_retries: int = Field(default=1, ge=0)
    scoring: ScoringRules = Field(default_factory=ScoringRules)
