"""Document persistence backends."""

from src.storage.base import DocumentStore, WriteBatch, get_path, matches_filters
from src.storage.memory import InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "WriteBatch",
    "get_path",
    "matches_filters",
]
