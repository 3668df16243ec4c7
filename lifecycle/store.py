# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Document store — the engine's only persistence collaborator.

Four operations over per-user, key-addressed JSON documents:

    store.get(user_id, "currentWeek")            # dict, or NotFoundError
    store.upsert(user_id, "currentWeek", doc)    # whole-document replace
    store.query(user_id, lambda d: d["type"] == "connect")
    store.delete(user_id, "connect:abc")

Every document carries "id", "userId" and a "type" discriminator.
Documents go in and come out as deep copies, so callers can never mutate
stored state by accident. Transport problems surface as PersistenceFailure.

MemoryDocumentStore backs tests and embedding; JsonDocumentStore keeps one
file per document under the data directory, written atomically.
"""

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from core.paths import get_paths, safe_name
from lifecycle.schemas import LifecycleValidationError, NotFoundError, PersistenceFailure

logger = logging.getLogger("dreamweek.store")

Document = Dict[str, Any]
Predicate = Callable[[Document], bool]

REQUIRED_FIELDS = ("id", "userId", "type")


def check_document(user_id: str, document: Document) -> None:
    """Reject documents missing the envelope fields or owned by someone else."""
    missing = [f for f in REQUIRED_FIELDS if not document.get(f)]
    if missing:
        raise LifecycleValidationError(f"Document missing {', '.join(missing)}")
    if document["userId"] != user_id:
        raise LifecycleValidationError(
            f"Document belongs to {document['userId']!r}, not {user_id!r}"
        )


class DocumentStore:
    """Interface. Subclasses implement the four operations."""

    def get(self, user_id: str, key: str) -> Document:
        raise NotImplementedError

    def upsert(self, user_id: str, key: str, document: Document) -> Document:
        raise NotImplementedError

    def query(self, user_id: str, predicate: Predicate) -> List[Document]:
        raise NotImplementedError

    def delete(self, user_id: str, key: str) -> bool:
        raise NotImplementedError

    def get_or_none(self, user_id: str, key: str) -> Optional[Document]:
        try:
            return self.get(user_id, key)
        except NotFoundError:
            return None


class MemoryDocumentStore(DocumentStore):
    """Dict-backed store. Thread-safe."""

    def __init__(self):
        self._docs: Dict[str, Dict[str, Document]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str, key: str) -> Document:
        with self._lock:
            doc = self._docs.get(user_id, {}).get(key)
            if doc is None:
                raise NotFoundError(f"{user_id}/{key} not found")
            return copy.deepcopy(doc)

    def upsert(self, user_id: str, key: str, document: Document) -> Document:
        check_document(user_id, document)
        with self._lock:
            self._docs.setdefault(user_id, {})[key] = copy.deepcopy(document)
        return copy.deepcopy(document)

    def query(self, user_id: str, predicate: Predicate) -> List[Document]:
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._docs.get(user_id, {}).values()]
        return [d for d in docs if predicate(d)]

    def delete(self, user_id: str, key: str) -> bool:
        with self._lock:
            return self._docs.get(user_id, {}).pop(key, None) is not None


def _atomic_rename(tmp: Path, dest: Path):
    """Flush, fsync, then rename. A crash leaves either the old or the new file."""
    fd = os.open(str(tmp), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
    os.replace(str(tmp), str(dest))


class JsonDocumentStore(DocumentStore):
    """One JSON file per document: <root>/<user>/<key>.json"""

    def __init__(self, root: Optional[Path] = None):
        self._root = Path(root) if root is not None else get_paths().store_dir
        self._lock = threading.Lock()

    def _path(self, user_id: str, key: str) -> Path:
        return self._root / safe_name(user_id) / f"{safe_name(key)}.json"

    def _read(self, path: Path) -> Document:
        try:
            return json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise PersistenceFailure(f"Corrupt document {path}: {e}") from e
        except OSError as e:
            raise PersistenceFailure(f"Cannot read {path}: {e}") from e

    def get(self, user_id: str, key: str) -> Document:
        path = self._path(user_id, key)
        with self._lock:
            if not path.exists():
                raise NotFoundError(f"{user_id}/{key} not found")
            return self._read(path)

    def upsert(self, user_id: str, key: str, document: Document) -> Document:
        check_document(user_id, document)
        path = self._path(user_id, key)
        content = json.dumps(document, indent=2)
        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp = path.with_suffix(path.suffix + ".tmp")
                tmp.write_text(content)
                _atomic_rename(tmp, path)
            except OSError as e:
                raise PersistenceFailure(f"Cannot write {path}: {e}") from e
        logger.debug("Wrote %s/%s (%d bytes)", user_id, key, len(content))
        return copy.deepcopy(document)

    def query(self, user_id: str, predicate: Predicate) -> List[Document]:
        user_dir = self._root / safe_name(user_id)
        with self._lock:
            if not user_dir.exists():
                return []
            docs = [self._read(p) for p in sorted(user_dir.glob("*.json"))]
        return [d for d in docs if predicate(d)]

    def delete(self, user_id: str, key: str) -> bool:
        path = self._path(user_id, key)
        with self._lock:
            try:
                path.unlink()
                return True
            except FileNotFoundError:
                return False
            except OSError as e:
                raise PersistenceFailure(f"Cannot delete {path}: {e}") from e
