"""
In-memory document store.

Default backend for local runs and tests. A single re-entrant lock
serializes every call, which gives per-document atomicity, all-or-nothing
batches and exclusive transactions for free.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional

from src.exceptions import NotFoundError
from src.storage.base import (
    BatchOperation,
    DocumentStore,
    Filter,
    Mutator,
    deep_merge,
    get_path,
    matches_filters,
    set_path,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe dict-of-dicts store; documents are copied in and out."""

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(
        self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False
    ) -> None:
        with self._lock:
            docs = self._collection(collection)
            docs[doc_id] = self._merged(docs.get(doc_id), data, merge)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._collection(collection).pop(doc_id, None) is not None

    def increment(
        self, collection: str, doc_id: str, field_path: str, amount: float = 1
    ) -> None:
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise NotFoundError(collection, doc_id)
            _add_to_path(docs[doc_id], field_path, amount)

    def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            results = []
            for doc in self._collection(collection).values():
                if matches_filters(doc, filters or []):
                    results.append(copy.deepcopy(doc))
                    if limit is not None and len(results) >= limit:
                        break
            return results

    def run_transaction(
        self, collection: str, doc_id: str, mutate: Mutator
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            docs = self._collection(collection)
            current = docs.get(doc_id)
            updated = mutate(copy.deepcopy(current) if current is not None else None)
            if updated is None:
                return copy.deepcopy(current) if current is not None else None
            docs[doc_id] = copy.deepcopy(updated)
            return copy.deepcopy(updated)

    def _apply_batch(self, operations: List[BatchOperation]) -> None:
        with self._lock:
            # Stage every touched document first so a failing op leaves
            # the live collections untouched.
            staged: Dict[tuple, Optional[Dict[str, Any]]] = {}

            def current(op: BatchOperation) -> Optional[Dict[str, Any]]:
                key = (op.collection, op.doc_id)
                if key not in staged:
                    doc = self._collection(op.collection).get(op.doc_id)
                    staged[key] = copy.deepcopy(doc) if doc is not None else None
                return staged[key]

            for op in operations:
                key = (op.collection, op.doc_id)
                if op.kind == "set":
                    staged[key] = self._merged(current(op), op.data or {}, op.merge)
                elif op.kind == "delete":
                    current(op)
                    staged[key] = None
                elif op.kind == "increment":
                    doc = current(op)
                    if doc is None:
                        raise NotFoundError(op.collection, op.doc_id)
                    _add_to_path(doc, op.field_path, op.amount)
                else:
                    raise ValueError(f"Unknown batch operation: {op.kind}")

            for (collection, doc_id), doc in staged.items():
                docs = self._collection(collection)
                if doc is None:
                    docs.pop(doc_id, None)
                else:
                    docs[doc_id] = doc

        logger.debug(f"Applied batch of {len(operations)} operations")

    @staticmethod
    def _merged(
        existing: Optional[Dict[str, Any]], data: Dict[str, Any], merge: bool
    ) -> Dict[str, Any]:
        if merge and existing is not None:
            return deep_merge(existing, data)
        return copy.deepcopy(data)

    def clear(self) -> None:
        with self._lock:
            self._collections.clear()


def _add_to_path(doc: Dict[str, Any], field_path: str, amount: float) -> None:
    value = get_path(doc, field_path, 0) or 0
    set_path(doc, field_path, value + amount)
