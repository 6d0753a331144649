"""
Base Document Store.

Abstract interface for the document-oriented persistence the matchmaking
core runs on. Documents are plain JSON-compatible dicts keyed by
collection + id.

Primitives:
- get / set (optionally deep-merging) / delete
- atomic numeric increment on a dotted field path
- simple equality / membership / range queries
- multi-document write batches that apply all-or-nothing
- single-document read-modify-write transactions
- write-once claims of a key (built on transactions)
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

Filter = Tuple[str, str, Any]
Mutator = Callable[[Optional[dict]], Optional[dict]]

SUPPORTED_OPERATORS = ("==", "!=", "in", "array_contains", "<", "<=", ">", ">=")

_MISSING = object()


# ============================================================================
# DOCUMENT HELPERS
# ============================================================================


def get_path(doc: Dict[str, Any], path: str, default: Any = None) -> Any:
    """
    Read a dotted field path from a document.

    Example:
        >>> get_path({"source": {"badgeId": "B1"}}, "source.badgeId")
        'B1'
    """
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    """Write a dotted field path in place, creating parent dicts as needed."""
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Return a new dict with `patch` merged over `base`, recursing into dicts."""
    result = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _compare(actual: Any, op: str, expected: Any) -> bool:
    if op == "==":
        return actual == expected
    if op == "!=":
        return actual is not _MISSING and actual != expected
    if actual is _MISSING or actual is None:
        return False
    if op == "in":
        return actual in expected
    if op == "array_contains":
        return isinstance(actual, list) and expected in actual
    try:
        if op == "<":
            return actual < expected
        if op == "<=":
            return actual <= expected
        if op == ">":
            return actual > expected
        if op == ">=":
            return actual >= expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported query operator: {op}")


def matches_filters(doc: Dict[str, Any], filters: Iterable[Filter]) -> bool:
    """True when the document satisfies every (path, op, value) filter."""
    for path, op, expected in filters:
        if op not in SUPPORTED_OPERATORS:
            raise ValueError(f"Unsupported query operator: {op}")
        actual = get_path(doc, path, _MISSING)
        if op == "==" and actual is _MISSING:
            return False
        if not _compare(actual, op, expected):
            return False
    return True


# ============================================================================
# WRITE BATCH
# ============================================================================


@dataclass
class BatchOperation:
    """One staged write inside a batch."""

    kind: str  # 'set', 'delete', 'increment'
    collection: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False
    field_path: Optional[str] = None
    amount: float = 0


@dataclass
class WriteBatch:
    """
    Collects writes and applies them atomically on commit.

    Usage:
        with store.batch() as batch:
            batch.set("scans", scan_id, scan_doc)
            batch.increment("attendees", a_id, "scanStats.scansGiven")
    """

    store: "DocumentStore"
    operations: List[BatchOperation] = field(default_factory=list)
    committed: bool = False

    def set(
        self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False
    ) -> "WriteBatch":
        self.operations.append(
            BatchOperation("set", collection, doc_id, data=copy.deepcopy(data), merge=merge)
        )
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.operations.append(BatchOperation("delete", collection, doc_id))
        return self

    def increment(
        self, collection: str, doc_id: str, field_path: str, amount: float = 1
    ) -> "WriteBatch":
        self.operations.append(
            BatchOperation(
                "increment", collection, doc_id, field_path=field_path, amount=amount
            )
        )
        return self

    def commit(self) -> None:
        if self.committed:
            raise RuntimeError("Batch already committed")
        self.store._apply_batch(self.operations)
        self.committed = True

    def __enter__(self) -> "WriteBatch":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is None and not self.committed:
            self.commit()


# ============================================================================
# STORE INTERFACE
# ============================================================================


class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    Implementations must make every single call atomic with respect to the
    documents it touches, `_apply_batch` atomic across all its operations,
    and `run_transaction` exclusive for the document it mutates.
    """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the document, or None if it does not exist."""
        pass

    @abstractmethod
    def set(
        self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False
    ) -> None:
        """Write a document; with merge=True deep-merge into the existing one."""
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns True if it existed."""
        pass

    @abstractmethod
    def increment(
        self, collection: str, doc_id: str, field_path: str, amount: float = 1
    ) -> None:
        """
        Atomically add `amount` to a numeric field.

        Raises:
            NotFoundError: If the document does not exist
        """
        pass

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Optional[List[Filter]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return matching documents in insertion order."""
        pass

    @abstractmethod
    def run_transaction(
        self, collection: str, doc_id: str, mutate: Mutator
    ) -> Optional[Dict[str, Any]]:
        """
        Exclusive read-modify-write of one document.

        `mutate` receives the current document (or None) and returns the
        document to write, or None to leave it untouched. Exceptions raised
        by `mutate` abort the transaction with no write.

        Returns:
            The document as stored after the transaction
        """
        pass

    @abstractmethod
    def _apply_batch(self, operations: List[BatchOperation]) -> None:
        """Apply staged batch operations all-or-nothing."""
        pass

    def claim(
        self, collection: str, doc_id: str, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Write `data` only if the document does not exist yet.

        Returns the stored document: `data` for the first caller, the
        earlier claim for everyone after.
        """
        return self.run_transaction(
            collection, doc_id, lambda current: data if current is None else None
        )

    def batch(self) -> WriteBatch:
        """Start a new multi-document write batch."""
        return WriteBatch(store=self)

    def find_one(
        self, collection: str, filters: List[Filter]
    ) -> Optional[Dict[str, Any]]:
        """Return the first matching document or None."""
        results = self.query(collection, filters, limit=1)
        return results[0] if results else None

    def close(self) -> None:
        """Release any resources held by the store."""
        pass

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
