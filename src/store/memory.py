"""In-memory record store.

For production the Postgres adapter is used; this implementation has the
same interface, unique constraints and hook semantics, and backs the test
suite and local development.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any

from src.store.base import (
    UNIQUE_CONSTRAINTS,
    DuplicateRecord,
    RecordNotFound,
    RecordStore,
    new_record_id,
    utcnow,
)

logger = logging.getLogger(__name__)


class MemoryRecordStore(RecordStore):
    """Thread-safe dict-of-dicts store."""

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self.write_count = 0

    def get(self, collection: str, record_id: str) -> dict[str, Any]:
        with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            if record is None:
                raise RecordNotFound(collection, record_id)
            return copy.deepcopy(record)

    def find_all(
        self,
        collection: str,
        *,
        sort: str = "",
        limit: int = 0,
        **filters: Any,
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                copy.deepcopy(r)
                for r in self._collections.get(collection, {}).values()
                if all(r.get(k) == v for k, v in filters.items())
            ]
        if sort:
            field = sort.lstrip("-")
            rows.sort(key=lambda r: (r.get(field) is None, r.get(field)), reverse=sort.startswith("-"))
        return rows[:limit] if limit else rows

    def insert(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        now = utcnow()
        record = {**copy.deepcopy(data), "id": data.get("id") or new_record_id(), "created": now, "updated": now}
        with self._lock:
            rows = self._collections.setdefault(collection, {})
            self._check_unique(collection, rows, record)
            rows[record["id"]] = record
            self.write_count += 1
        return copy.deepcopy(record)

    def _write(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            rows = self._collections.get(collection, {})
            if record_id not in rows:
                raise RecordNotFound(collection, record_id)
            record = {**rows[record_id], **copy.deepcopy(data), "id": record_id, "updated": utcnow()}
            self._check_unique(collection, rows, record)
            rows[record_id] = record
            self.write_count += 1
            return copy.deepcopy(record)

    @staticmethod
    def _check_unique(collection: str, rows: dict[str, dict[str, Any]], record: dict[str, Any]) -> None:
        for constraint in UNIQUE_CONSTRAINTS.get(collection, ()):
            if constraint.live_only and record.get("is_deleted"):
                continue
            key = tuple(record.get(f) for f in constraint.fields)
            for other in rows.values():
                if other["id"] == record["id"]:
                    continue
                if constraint.live_only and other.get("is_deleted"):
                    continue
                if tuple(other.get(f) for f in constraint.fields) == key:
                    raise DuplicateRecord(collection, constraint.fields)
