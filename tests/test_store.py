# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Document store tests — memory and JSON-file implementations."""

import json

import pytest

from core.paths import get_paths
from lifecycle.documents import archive_weeks, load_past_weeks
from lifecycle.schemas import (
    LifecycleValidationError,
    NotFoundError,
    PastWeekArchive,
    PersistenceFailure,
)
from lifecycle.store import JsonDocumentStore, MemoryDocumentStore


def _doc(user="ana", doc_id="ana_currentWeek", type_="currentWeek", **extra):
    return {"id": doc_id, "userId": user, "type": type_, **extra}


@pytest.fixture(params=["memory", "json"])
def any_store(request):
    if request.param == "memory":
        return MemoryDocumentStore()
    return JsonDocumentStore()


class TestContract:

    def test_get_missing_raises(self, any_store):
        with pytest.raises(NotFoundError):
            any_store.get("ana", "currentWeek")
        assert any_store.get_or_none("ana", "currentWeek") is None

    def test_upsert_then_get(self, any_store):
        any_store.upsert("ana", "currentWeek", _doc(weekId="2025-W47"))
        assert any_store.get("ana", "currentWeek")["weekId"] == "2025-W47"

    def test_upsert_replaces(self, any_store):
        any_store.upsert("ana", "currentWeek", _doc(weekId="2025-W47"))
        any_store.upsert("ana", "currentWeek", _doc(weekId="2025-W48"))
        assert any_store.get("ana", "currentWeek")["weekId"] == "2025-W48"

    def test_users_are_separate(self, any_store):
        any_store.upsert("ana", "currentWeek", _doc())
        with pytest.raises(NotFoundError):
            any_store.get("bo", "currentWeek")

    def test_query(self, any_store):
        any_store.upsert("ana", "connect:c1", _doc(doc_id="c1", type_="connect"))
        any_store.upsert("ana", "connect:c2", _doc(doc_id="c2", type_="connect"))
        any_store.upsert("ana", "currentWeek", _doc())
        found = any_store.query("ana", lambda d: d["type"] == "connect")
        assert sorted(d["id"] for d in found) == ["c1", "c2"]
        assert any_store.query("nobody", lambda d: True) == []

    def test_delete(self, any_store):
        any_store.upsert("ana", "currentWeek", _doc())
        assert any_store.delete("ana", "currentWeek") is True
        assert any_store.delete("ana", "currentWeek") is False

    def test_envelope_required(self, any_store):
        with pytest.raises(LifecycleValidationError):
            any_store.upsert("ana", "currentWeek", {"id": "x", "userId": "ana"})

    def test_owner_must_match(self, any_store):
        with pytest.raises(LifecycleValidationError):
            any_store.upsert("ana", "currentWeek", _doc(user="bo"))

    def test_returned_copies_are_detached(self, any_store):
        any_store.upsert("ana", "currentWeek", _doc(goals=[]))
        first = any_store.get("ana", "currentWeek")
        first["goals"].append("sneaky")
        assert any_store.get("ana", "currentWeek")["goals"] == []


class TestJsonStore:

    def test_file_layout(self):
        store = JsonDocumentStore()
        store.upsert("ana@example.com", "connect:c1", _doc(user="ana@example.com", type_="connect"))
        files = list(get_paths().store_dir.rglob("*.json"))
        assert len(files) == 1
        assert not list(get_paths().store_dir.rglob("*.tmp"))

    def test_corrupt_file_is_persistence_failure(self):
        store = JsonDocumentStore()
        store.upsert("ana", "currentWeek", _doc())
        path = next(get_paths().store_dir.rglob("*.json"))
        path.write_text("{not json")
        with pytest.raises(PersistenceFailure):
            store.get("ana", "currentWeek")

    def test_explicit_root(self, tmp_path):
        store = JsonDocumentStore(tmp_path / "elsewhere")
        store.upsert("ana", "currentWeek", _doc())
        saved = json.loads((tmp_path / "elsewhere" / "ana" / "currentWeek.json").read_text())
        assert saved["userId"] == "ana"


class TestArchiveWriteOnce:

    def test_duplicate_archive_is_noop(self, store):
        first = PastWeekArchive(week_id="2025-W47", total_goals=3, completed_goals=2, score=6)
        again = PastWeekArchive(week_id="2025-W47", total_goals=3, completed_goals=0, score=0)
        assert archive_weeks(store, "ana", [first]) == ["2025-W47"]
        assert archive_weeks(store, "ana", [again]) == []
        history = load_past_weeks(store, "ana")
        assert history.week_history["2025-W47"].score == 6
        assert history.total_weeks_tracked == 1
