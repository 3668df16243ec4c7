# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Test configuration — paths isolation and shared engine fixtures."""

from datetime import date, timedelta

import pytest

from core.paths import configure, reset
from lifecycle.events import EventBus
from lifecycle.store import MemoryDocumentStore
from lifecycle.workers import PersistencePool


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path):
    """Route all DreamWeek data to a temp directory for test isolation."""
    paths = configure(tmp_path)
    paths.ensure_dirs()
    yield paths
    reset()


class FakeClock:
    """Mutable 'today' for driving rollovers week by week."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, weeks: int = 1) -> None:
        self.today += timedelta(weeks=weeks)


@pytest.fixture
def clock():
    # Wednesday of 2025-W47
    return FakeClock(date(2025, 11, 19))


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def bus():
    return EventBus(history_size=50)


@pytest.fixture
def pool():
    p = PersistencePool("test", max_workers=2, timeout=2.0)
    yield p
    p.shutdown(wait=True)
