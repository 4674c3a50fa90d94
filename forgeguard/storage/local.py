"""
Local storage implementations for development.

These are in-memory or filesystem-based implementations
that work without any external services.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from forgeguard.storage.base import (
    ContentStorage,
    MetadataStorage,
    Mutator,
    RelatedMutator,
    StorageProvider,
)


# =============================================================================
# Local Filesystem Content Storage
# =============================================================================


class LocalContentStorage(ContentStorage):
    """Store content on local filesystem."""

    def __init__(self, base_path: str = "./data/content"):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_to_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if self.base_path not in path.parents:
            raise ValueError(f"Content key escapes storage root: {key!r}")
        return path

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._key_to_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return str(path)

    async def get(self, key: str) -> bytes:
        path = self._key_to_path(key)
        if not path.exists():
            raise FileNotFoundError(f"Content not found: {key}")
        return path.read_bytes()

    async def delete(self, key: str) -> bool:
        path = self._key_to_path(key)
        if path.exists():
            path.unlink()
            return True
        return False


# =============================================================================
# In-Memory Metadata Storage
# =============================================================================


def _matches(doc: dict[str, Any], filters: dict[str, Any]) -> bool:
    return all(doc.get(key) == value for key, value in filters.items())


class InMemoryMetadataStorage(MetadataStorage):
    """
    In-memory record storage for development and tests.

    A single lock serializes every operation, which makes the atomic
    primitives atomic for both threads and coroutines.
    """

    def __init__(self):
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _stamp(self, record: dict[str, Any]) -> None:
        record["_updated_at"] = datetime.now(timezone.utc).isoformat()

    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        with self._lock:
            record = {**copy.deepcopy(data), "_id": id}
            self._stamp(record)
            self._data.setdefault(collection, {})[id] = record

    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._data.get(collection, {}).get(id)
            return copy.deepcopy(record) if record is not None else None

    async def delete(self, collection: str, id: str) -> bool:
        with self._lock:
            if id in self._data.get(collection, {}):
                del self._data[collection][id]
                return True
            return False

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        with self._lock:
            results = list(self._data.get(collection, {}).values())
            if filters:
                results = [doc for doc in results if _matches(doc, filters)]
            end = None if limit is None else offset + limit
            return copy.deepcopy(results[offset:end])

    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> bool:
        with self._lock:
            record = self._data.get(collection, {}).get(id)
            if record is None:
                return False
            record.update(copy.deepcopy(updates))
            self._stamp(record)
            return True

    async def modify(self, collection: str, id: str, mutator: Mutator) -> dict[str, Any] | None:
        with self._lock:
            record = self._data.get(collection, {}).get(id)
            if record is None:
                return None
            updates = mutator(copy.deepcopy(record))
            if updates:
                record.update(copy.deepcopy(updates))
                self._stamp(record)
            return copy.deepcopy(record)

    async def modify_related(
        self,
        collection: str,
        id: str,
        related: str,
        mutator: RelatedMutator,
        create: bool = False,
    ) -> dict[str, Any] | None:
        with self._lock:
            records = self._data.setdefault(collection, {})
            record = records.get(id)
            if record is None and not create:
                return None
            others = copy.deepcopy(list(self._data.get(related, {}).values()))
            updates = mutator(copy.deepcopy(record) if record is not None else {}, others)
            if record is None:
                record = {**copy.deepcopy(updates or {}), "_id": id}
                records[id] = record
            elif updates:
                record.update(copy.deepcopy(updates))
            self._stamp(record)
            return copy.deepcopy(record)

    async def update_where(
        self,
        collection: str,
        id: str,
        conditions: dict[str, Any],
        updates: dict[str, Any],
    ) -> bool:
        with self._lock:
            record = self._data.get(collection, {}).get(id)
            if record is None or not _matches(record, conditions):
                return False
            record.update(copy.deepcopy(updates))
            self._stamp(record)
            return True

    async def insert_unless(
        self,
        collection: str,
        id: str,
        data: dict[str, Any],
        conflict_filter: dict[str, Any],
    ) -> bool:
        with self._lock:
            existing = self._data.setdefault(collection, {})
            if id in existing or any(_matches(doc, conflict_filter) for doc in existing.values()):
                return False
            record = {**copy.deepcopy(data), "_id": id}
            self._stamp(record)
            existing[id] = record
            return True


# =============================================================================
# Factory
# =============================================================================


def create_local_storage(data_dir: str = "./data") -> StorageProvider:
    """Create a StorageProvider with local implementations."""
    return StorageProvider(
        content=LocalContentStorage(f"{data_dir}/content"),
        metadata=InMemoryMetadataStorage(),
    )
