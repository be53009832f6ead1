"""Postgres record store: one JSONB row per record.

Each collection shares the ``records`` table keyed by (collection, id).
Unique constraints are partial unique indexes so the database, not the
application, has the last word on "one live conversation per proposal".
Every call opens an autocommit connection, so each write is its own
committed transaction.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg
from psycopg import errors, sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from src.store.base import (
    UNIQUE_CONSTRAINTS,
    DuplicateRecord,
    RecordNotFound,
    RecordStore,
    StoreError,
    new_record_id,
    utcnow,
)

logger = logging.getLogger(__name__)


class PostgresRecordStore(RecordStore):
    """RecordStore backed by a single Postgres JSONB table."""

    def __init__(self, database_url: str):
        super().__init__()
        self._database_url = database_url
        self._constraint_fields = {
            c.name: (collection, c.fields)
            for collection, constraints in UNIQUE_CONSTRAINTS.items()
            for c in constraints
        }

    def _get_conn(self) -> psycopg.Connection:
        return psycopg.connect(self._database_url, autocommit=True, row_factory=dict_row)

    def init_schema(self) -> None:
        """Create the records table and unique indexes if they don't exist.  Idempotent."""
        with self._get_conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    collection TEXT NOT NULL,
                    id         TEXT NOT NULL,
                    data       JSONB NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)
            for collection, constraints in UNIQUE_CONSTRAINTS.items():
                for c in constraints:
                    predicate = sql.SQL("collection = {}").format(sql.Literal(collection))
                    if c.live_only:
                        predicate = sql.SQL("{} AND NOT COALESCE((data->>'is_deleted')::boolean, false)").format(predicate)
                    conn.execute(
                        sql.SQL("CREATE UNIQUE INDEX IF NOT EXISTS {} ON records ({}) WHERE {}").format(
                            sql.Identifier(c.name),
                            sql.SQL(", ").join(
                                sql.SQL("(data->>{})").format(sql.Literal(f)) for f in c.fields
                            ),
                            predicate,
                        )
                    )
        logger.info("Record store schema initialized")

    def get(self, collection: str, record_id: str) -> dict[str, Any]:
        try:
            with self._get_conn() as conn:
                row = conn.execute(
                    "SELECT data FROM records WHERE collection = %s AND id = %s",
                    (collection, record_id),
                ).fetchone()
        except psycopg.Error as e:
            raise StoreError(f"failed to load {collection}/{record_id}") from e
        if row is None:
            raise RecordNotFound(collection, record_id)
        return row["data"]

    def find_all(
        self,
        collection: str,
        *,
        sort: str = "",
        limit: int = 0,
        **filters: Any,
    ) -> list[dict[str, Any]]:
        query = sql.SQL("SELECT data FROM records WHERE collection = %s AND data @> %s")
        params: list[Any] = [collection, Jsonb(filters)]
        if sort:
            direction = sql.SQL("DESC") if sort.startswith("-") else sql.SQL("ASC")
            query = sql.SQL("{} ORDER BY data->>%s {}").format(query, direction)
            params.append(sort.lstrip("-"))
        if limit:
            query = sql.SQL("{} LIMIT %s").format(query)
            params.append(limit)
        try:
            with self._get_conn() as conn:
                rows = conn.execute(query, params).fetchall()
        except psycopg.Error as e:
            raise StoreError(f"failed to query {collection}") from e
        return [r["data"] for r in rows]

    def insert(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        now = utcnow()
        record = {**data, "id": data.get("id") or new_record_id(), "created": now, "updated": now}
        try:
            with self._get_conn() as conn:
                conn.execute(
                    "INSERT INTO records (collection, id, data) VALUES (%s, %s, %s)",
                    (collection, record["id"], Jsonb(record)),
                )
        except errors.UniqueViolation as e:
            raise self._duplicate(collection, e) from e
        except psycopg.Error as e:
            raise StoreError(f"failed to insert into {collection}") from e
        return record

    def _write(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        patch = {**data, "id": record_id, "updated": utcnow()}
        try:
            with self._get_conn() as conn:
                row = conn.execute(
                    """UPDATE records SET data = data || %s
                       WHERE collection = %s AND id = %s
                       RETURNING data""",
                    (Jsonb(patch), collection, record_id),
                ).fetchone()
        except errors.UniqueViolation as e:
            raise self._duplicate(collection, e) from e
        except psycopg.Error as e:
            raise StoreError(f"failed to update {collection}/{record_id}") from e
        if row is None:
            raise RecordNotFound(collection, record_id)
        return row["data"]

    def _duplicate(self, collection: str, exc: errors.UniqueViolation) -> DuplicateRecord:
        name = exc.diag.constraint_name or ""
        _, fields = self._constraint_fields.get(name, (collection, ("id",)))
        return DuplicateRecord(collection, fields)
