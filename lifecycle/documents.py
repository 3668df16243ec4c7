# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Per-user documents other than dreams: currentWeek, pastWeeks, connect:<id>.

Thin typed wrappers over DocumentStore. All synchronous; the engine runs
them through PersistencePool.
"""

import logging
from datetime import datetime
from typing import List, Optional

from lifecycle.schemas import (
    Connect,
    GoalInstance,
    PastWeekArchive,
    PastWeeksDocument,
    WeekDocument,
)
from lifecycle.store import DocumentStore
from lifecycle.weeks import week_dates

logger = logging.getLogger("dreamweek.documents")

WEEK_KEY = "currentWeek"
PAST_WEEKS_KEY = "pastWeeks"
CONNECT_PREFIX = "connect:"


# --- currentWeek ---

def new_week_document(user_id: str, week_id: str,
                      goals: Optional[List[GoalInstance]] = None) -> WeekDocument:
    start, end = week_dates(week_id)
    now = datetime.now().isoformat()
    return WeekDocument(
        id=f"{user_id}_{WEEK_KEY}",
        user_id=user_id,
        week_id=week_id,
        week_start_date=start,
        week_end_date=end,
        goals=list(goals or []),
        created_at=now,
        updated_at=now,
    )


def load_week(store: DocumentStore, user_id: str) -> WeekDocument:
    """The user's current week document. Raises NotFoundError on first login."""
    return WeekDocument.model_validate(store.get(user_id, WEEK_KEY))


def save_week(store: DocumentStore, doc: WeekDocument) -> WeekDocument:
    doc.updated_at = datetime.now().isoformat()
    store.upsert(doc.user_id, WEEK_KEY, doc.to_doc())
    return doc


# --- pastWeeks ---

def load_past_weeks(store: DocumentStore, user_id: str) -> PastWeeksDocument:
    raw = store.get_or_none(user_id, PAST_WEEKS_KEY)
    if raw is None:
        return PastWeeksDocument(
            id=f"{user_id}_{PAST_WEEKS_KEY}",
            user_id=user_id,
            created_at=datetime.now().isoformat(),
        )
    return PastWeeksDocument.model_validate(raw)


def archive_weeks(store: DocumentStore, user_id: str,
                  archives: List[PastWeekArchive]) -> List[str]:
    """
    Add archives to the user's history. Write-once: an archive whose week
    is already recorded is skipped. Returns the week ids actually added.
    """
    doc = load_past_weeks(store, user_id)
    added = []
    for archive in archives:
        if archive.week_id in doc.week_history:
            logger.debug("%s: week %s already archived", user_id, archive.week_id)
            continue
        doc.week_history[archive.week_id] = archive
        added.append(archive.week_id)
    if added:
        doc.total_weeks_tracked = len(doc.week_history)
        doc.updated_at = datetime.now().isoformat()
        store.upsert(user_id, PAST_WEEKS_KEY, doc.to_doc())
    return added


# --- connects ---

def load_connects(store: DocumentStore, user_id: str) -> List[Connect]:
    docs = store.query(user_id, lambda d: d.get("type") == "connect")
    return [Connect.model_validate(d) for d in docs]


def save_connect(store: DocumentStore, connect: Connect) -> Connect:
    store.upsert(connect.user_id, f"{CONNECT_PREFIX}{connect.id}", connect.to_doc())
    return connect
