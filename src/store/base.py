"""Record store interface — durable keyed records with filtered lookups.

Contract every adapter honours:
- Single-record writes are atomic; there are no cross-record transactions
- Declared unique constraints raise DuplicateRecord instead of writing
- After-update callbacks run only once the write has committed, and their
  exceptions propagate to whoever called update()
- Records are plain dicts; ``id``, ``created`` and ``updated`` are assigned
  by the store
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)

AfterUpdateCallback = Callable[[dict[str, Any]], None]


class StoreError(Exception):
    """Persistence failed for a reason other than a missing record."""


class RecordNotFound(StoreError):
    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"{collection} record not found: {key}")


class DuplicateRecord(StoreError):
    def __init__(self, collection: str, fields: tuple[str, ...]):
        self.collection = collection
        self.fields = fields
        super().__init__(f"{collection} already has a record for {', '.join(fields)}")


@dataclass(frozen=True)
class UniqueConstraint:
    """Uniqueness over ``fields`` within a collection.

    ``live_only`` excludes soft-deleted records from the constraint.
    """

    name: str
    fields: tuple[str, ...]
    live_only: bool = False


UNIQUE_CONSTRAINTS: dict[str, tuple[UniqueConstraint, ...]] = {
    "conversations": (
        UniqueConstraint("idx_conversations_live_proposal", ("proposal_id",), live_only=True),
    ),
    "proposals": (
        UniqueConstraint("idx_proposals_project_freelancer", ("project_id", "freelancer_id")),
    ),
}


def new_record_id() -> str:
    return uuid.uuid4().hex[:15]


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordStore(ABC):
    """Generic record store with post-commit update callbacks."""

    def __init__(self) -> None:
        self._after_update: dict[str, list[AfterUpdateCallback]] = {}

    @abstractmethod
    def get(self, collection: str, record_id: str) -> dict[str, Any]:
        """Return the record or raise RecordNotFound."""

    @abstractmethod
    def find_all(
        self,
        collection: str,
        *,
        sort: str = "",
        limit: int = 0,
        **filters: Any,
    ) -> list[dict[str, Any]]:
        """Return records whose fields equal every filter value.

        ``sort`` names a field, prefixed with ``-`` for descending order.
        """

    @abstractmethod
    def insert(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Persist a new record and return it with its assigned id."""

    @abstractmethod
    def _write(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Replace the stored fields of an existing record."""

    def find_first(self, collection: str, **filters: Any) -> dict[str, Any] | None:
        rows = self.find_all(collection, limit=1, **filters)
        return rows[0] if rows else None

    def update(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Write ``data`` over the record, then run after-update callbacks."""
        record = self._write(collection, record_id, data)
        for callback in self._after_update.get(collection, []):
            callback(dict(record))
        return record

    def on_after_update(self, collection: str, callback: AfterUpdateCallback) -> None:
        self._after_update.setdefault(collection, []).append(callback)
        logger.debug("After-update hook registered on %s: %s", collection, getattr(callback, "__name__", callback))
