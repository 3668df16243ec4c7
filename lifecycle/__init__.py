"""DreamWeek lifecycle engine - goal templates, weekly instances, rollover, scoring."""
from .engine import WeekEngine
from .events import EventBus, Events
from .rollover import RolloverGuard, RolloverResult, WeekState
from .schemas import (
    ConflictingWrite,
    InvalidWeekId,
    LifecycleError,
    LifecycleValidationError,
    NotFoundError,
    PersistenceFailure,
)
from .store import DocumentStore, JsonDocumentStore, MemoryDocumentStore
