"""
PostgreSQL Document Store.

Persists every collection into a single JSONB table keyed by
(collection, doc_id). Each public call runs in its own transaction;
batches and read-modify-write transactions commit or roll back as a unit.
"""

import logging
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2.extras import Json

from src.configs.settings import Settings
from src.exceptions import NotFoundError
from src.storage.base import (
    BatchOperation,
    DocumentStore,
    Filter,
    Mutator,
    deep_merge,
    matches_filters,
    set_path,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    seq         BIGSERIAL,
    collection  TEXT NOT NULL,
    doc_id      TEXT NOT NULL,
    data        JSONB NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (collection, doc_id)
);
CREATE INDEX IF NOT EXISTS documents_data_gin ON documents USING GIN (data);
"""

_UPSERT_SQL = """
    INSERT INTO documents (collection, doc_id, data)
    VALUES (%s, %s, %s)
    ON CONFLICT (collection, doc_id)
    DO UPDATE SET data = EXCLUDED.data, updated_at = NOW()
"""

# Serializes transactions on one key, including keys with no row yet
_KEY_LOCK_SQL = "SELECT pg_advisory_xact_lock(hashtext(%s), hashtext(%s))"

_INCREMENT_SQL = """
    UPDATE documents
    SET data = jsonb_set(
            data,
            %s::text[],
            to_jsonb(COALESCE((data #>> %s::text[])::numeric, 0) + %s),
            true
        ),
        updated_at = NOW()
    WHERE collection = %s AND doc_id = %s
"""


def _equality_containment(filters: List[Filter]) -> Dict[str, Any]:
    """Fold '==' filters into one nested dict usable with JSONB @>."""
    contained: Dict[str, Any] = {}
    for path, op, value in filters:
        if op == "==":
            set_path(contained, path, value)
    return contained


class PostgresDocumentStore(DocumentStore):
    """
    Document store backed by a psycopg2 connection.

    The connection is owned by the caller (or by `from_settings`); one
    store instance should not be shared across threads.
    """

    def __init__(self, db_connection) -> None:
        """Initialize with an active psycopg2 connection."""
        self.conn = db_connection

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresDocumentStore":
        conn = psycopg2.connect(**settings.get_psycopg2_params())
        store = cls(conn)
        store.ensure_schema()
        return store

    def ensure_schema(self) -> None:
        """Create the documents table and its index if missing."""
        try:
            with self.conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    # ------------------------------------------------------------------
    # Cursor-level operations (shared by direct calls and batches)
    # ------------------------------------------------------------------

    def _fetch(self, cur, collection: str, doc_id: str, for_update: bool = False):
        sql = "SELECT data FROM documents WHERE collection = %s AND doc_id = %s"
        if for_update:
            sql += " FOR UPDATE"
        cur.execute(sql, (collection, doc_id))
        row = cur.fetchone()
        return row[0] if row else None

    def _write(
        self, cur, collection: str, doc_id: str, data: Dict[str, Any], merge: bool
    ) -> None:
        if merge:
            existing = self._fetch(cur, collection, doc_id, for_update=True)
            if existing is not None:
                data = deep_merge(existing, data)
        cur.execute(_UPSERT_SQL, (collection, doc_id, Json(data)))

    def _remove(self, cur, collection: str, doc_id: str) -> bool:
        cur.execute(
            "DELETE FROM documents WHERE collection = %s AND doc_id = %s",
            (collection, doc_id),
        )
        return cur.rowcount > 0

    def _increment(
        self, cur, collection: str, doc_id: str, field_path: str, amount: float
    ) -> None:
        path = field_path.split(".")
        cur.execute(_INCREMENT_SQL, (path, path, amount, collection, doc_id))
        if cur.rowcount == 0:
            raise NotFoundError(collection, doc_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def _in_transaction(self, fn):
        try:
            with self.conn.cursor() as cur:
                result = fn(cur)
            self.conn.commit()
            return result
        except Exception:
            self.conn.rollback()
            raise

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return self._in_transaction(lambda cur: self._fetch(cur, collection, doc_id))

    def set(
        self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False
    ) -> None:
        self._in_transaction(
            lambda cur: self._write(cur, collection, doc_id, data, merge)
        )

    def delete(self, collection: str, doc_id: str) -> bool:
        return self._in_transaction(lambda cur: self._remove(cur, collection, doc_id))

    def increment(
        self, collection: str, doc_id: str, field_path: str, amount: float = 1
    ) -> None:
        self._in_transaction(
            lambda cur: self._increment(cur, collection, doc_id, field_path, amount)
        )

    def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters = filters or []
        contained = _equality_containment(filters)

        def run(cur):
            sql = "SELECT data FROM documents WHERE collection = %s"
            params: list = [collection]
            if contained:
                sql += " AND data @> %s"
                params.append(Json(contained))
            sql += " ORDER BY seq"
            cur.execute(sql, params)
            return [row[0] for row in cur.fetchall()]

        results = []
        for doc in self._in_transaction(run):
            if matches_filters(doc, filters):
                results.append(doc)
                if limit is not None and len(results) >= limit:
                    break
        return results

    def run_transaction(
        self, collection: str, doc_id: str, mutate: Mutator
    ) -> Optional[Dict[str, Any]]:
        def run(cur):
            cur.execute(_KEY_LOCK_SQL, (collection, doc_id))
            current = self._fetch(cur, collection, doc_id, for_update=True)
            updated = mutate(current)
            if updated is None:
                return current
            self._write(cur, collection, doc_id, updated, merge=False)
            return updated

        return self._in_transaction(run)

    def _apply_batch(self, operations: List[BatchOperation]) -> None:
        def run(cur):
            for op in operations:
                if op.kind == "set":
                    self._write(cur, op.collection, op.doc_id, op.data or {}, op.merge)
                elif op.kind == "delete":
                    self._remove(cur, op.collection, op.doc_id)
                elif op.kind == "increment":
                    self._increment(
                        cur, op.collection, op.doc_id, op.field_path, op.amount
                    )
                else:
                    raise ValueError(f"Unknown batch operation: {op.kind}")

        self._in_transaction(run)
        logger.debug(f"Committed batch of {len(operations)} operations")

    def close(self) -> None:
        try:
            self.conn.close()
        except psycopg2.Error as e:
            logger.warning(f"Error closing database connection: {e}")
