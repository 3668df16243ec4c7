# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
DreamWeek Event Bus — in-process notifications for UI refresh.

The engine never calls views directly. It emits:

    bus.emit(Events.WEEK_ROLLED_OVER, {"fromWeek": ..., "toWeek": ..., "summary": ...})
    bus.emit(Events.GOALS_CHANGED)          # no payload, a cue to re-fetch

and whoever renders the dashboard subscribes:

    bus.on(Events.GOALS_CHANGED, refresh_dashboard)
    bus.once(Events.WEEK_ROLLED_OVER, show_new_week_banner)

Contract: fire-and-forget. Handlers are called in priority order, a
failing handler is logged and never stops the others or the emitter,
async handlers are scheduled on the running loop. There is no
acknowledgment and no return value from subscribers.

Buses are plain objects: pass one into WeekEngine. The module-level
`bus` exists for hosts that want a single shared instance.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("dreamweek.events")

# Handlers that emit from inside a handler stop nesting here
_MAX_EMIT_DEPTH = 3


class Events:
    """Registry of event types. Use these constants, not raw strings."""

    # --- Notifications consumed by the UI ---
    WEEK_ROLLED_OVER = "week_rolled_over"
    GOALS_CHANGED = "goals_changed"

    # --- Lifecycle detail ---
    WEEK_ARCHIVED = "week_archived"
    ROLLOVER_FAILED = "rollover_failed"
    DEADLINE_GOAL_COMPLETED = "deadline_goal_completed"


@dataclass
class Event:
    """A single emitted event."""
    type: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    source: Optional[str] = None


@dataclass
class Subscriber:
    callback: Callable[[Event], Any]
    priority: int = 0  # higher = called first
    once: bool = False
    is_async: bool = False


class EventBus:
    """Priority-ordered pub/sub with bounded history. Thread-safe."""

    def __init__(self, history_size: int = 50):
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._history: List[Event] = []
        self._history_size = history_size
        self._lock = threading.Lock()
        self._depth = threading.local()

    def _add(self, event_type: str, callback: Callable, priority: int, once: bool) -> None:
        sub = Subscriber(
            callback=callback,
            priority=priority,
            once=once,
            is_async=asyncio.iscoroutinefunction(callback),
        )
        with self._lock:
            subs = self._subscribers.setdefault(event_type, [])
            subs.append(sub)
            # sort is stable: equal priorities keep subscription order
            subs.sort(key=lambda s: -s.priority)

    def on(self, event_type: str, callback: Callable, priority: int = 0) -> None:
        """Subscribe a sync or async callback."""
        self._add(event_type, callback, priority, once=False)

    def once(self, event_type: str, callback: Callable, priority: int = 0) -> None:
        """Subscribe, auto-remove after the first delivery."""
        self._add(event_type, callback, priority, once=True)

    def off(self, event_type: str, callback: Callable) -> bool:
        """Unsubscribe. Returns True if the callback was registered."""
        with self._lock:
            subs = self._subscribers.get(event_type, [])
            kept = [s for s in subs if s.callback is not callback]
            self._subscribers[event_type] = kept
            return len(kept) < len(subs)

    def emit(
        self,
        event_type: str,
        data: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ) -> Event:
        """Deliver an event to current subscribers and return it."""
        event = Event(type=event_type, data=data or {}, source=source)

        depth = getattr(self._depth, "value", 0)
        if depth >= _MAX_EMIT_DEPTH:
            logger.warning("Emit depth %d reached, dropping %s", depth, event_type)
            return event

        with self._lock:
            self._history.append(event)
            if len(self._history) > self._history_size:
                del self._history[: len(self._history) - self._history_size]
            subs = list(self._subscribers.get(event_type, []))
            # one-shot subscribers are removed before dispatch so a
            # re-entrant emit can't deliver to them twice
            once_subs = [s for s in subs if s.once]
            if once_subs:
                self._subscribers[event_type] = [s for s in self._subscribers[event_type] if not s.once]

        self._depth.value = depth + 1
        try:
            for sub in subs:
                self._dispatch(sub, event)
        finally:
            self._depth.value = depth
        return event

    def _dispatch(self, sub: Subscriber, event: Event) -> None:
        name = getattr(sub.callback, "__name__", repr(sub.callback))
        try:
            if sub.is_async:
                try:
                    loop = asyncio.get_running_loop()
                except RuntimeError:
                    logger.debug("No running loop for async handler %s on %s", name, event.type)
                    return
                loop.create_task(sub.callback(event))
            else:
                sub.callback(event)
        except Exception as e:
            logger.error("Event handler error: %s -> %s: %s", event.type, name, e)

    # --- Introspection ---

    def history(self, event_type: Optional[str] = None, limit: int = 20) -> List[Event]:
        """Most recent events, oldest first."""
        with self._lock:
            events = [e for e in self._history if event_type is None or e.type == event_type]
        return events[-limit:]

    def subscriber_count(self, event_type: str) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def reset(self) -> None:
        """Drop all subscribers and history. For testing."""
        with self._lock:
            self._subscribers.clear()
            self._history.clear()


bus = EventBus()
