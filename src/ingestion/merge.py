"""
Merge strategies for re-imported attendees.

When an uploaded row matches an existing attendee (by email, then badge id)
the configured strategy decides what gets persisted. Every strategy keeps
the existing id, creation time and scan counters.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List

from src.schemas.attendee import Attendee, _utc_now, split_list
from src.storage.base import deep_merge

LIST_FIELDS = (
    "role",
    "interests",
    "capabilities",
    "needs",
    "platforms",
    "markets",
    "tags",
)

# Wire fields an incoming record may never overwrite
PRESERVED_FIELDS = ("id", "createdAt", "scanStats")


class MergeStrategy(str, Enum):
    """Closed set of re-import behaviours."""

    REPLACE = "replace"
    MERGE = "merge"
    SKIP = "skip"


class AttendeeMerger(ABC):
    """
    Abstract base for merge strategies
    """

    # True when the strategy leaves the existing record untouched
    is_noop: bool = False

    @abstractmethod
    def merge(self, existing: Attendee, incoming: Attendee) -> Attendee:
        """
        Combine an existing attendee with an incoming one and return the result
        """
        pass


class ReplaceMerger(AttendeeMerger):
    """
    Incoming record wins entirely

    Fields absent from the incoming row fall back to defaults, not to the
    existing values.
    """

    def merge(self, existing: Attendee, incoming: Attendee) -> Attendee:
        return incoming.model_copy(
            update={
                "id": existing.id,
                "created_at": existing.created_at,
                "scan_stats": existing.scan_stats.model_copy(),
                "updated_at": _utc_now(),
            },
            deep=True,
        )


class UnionMerger(AttendeeMerger):
    """
    Union list fields, deep-merge everything else

    Only fields explicitly present in the incoming record are applied, so
    a row without consent columns never touches stored consent.
    """

    def merge(self, existing: Attendee, incoming: Attendee) -> Attendee:
        base = existing.to_document()
        patch = incoming.model_dump(mode="json", by_alias=True, exclude_unset=True)

        for key in PRESERVED_FIELDS:
            patch.pop(key, None)

        for key in LIST_FIELDS:
            if key in patch:
                patch[key] = _union(base.get(key, []), patch[key])

        merged = deep_merge(base, patch)
        merged["updatedAt"] = _utc_now().isoformat()
        return Attendee.from_document(merged)


class SkipMerger(AttendeeMerger):
    """
    Keep the existing record untouched
    """

    is_noop = True

    def merge(self, existing: Attendee, incoming: Attendee) -> Attendee:
        return existing


def _union(existing: List[Any], incoming: List[Any]) -> List[str]:
    """Ordered union, existing values first."""
    return split_list(list(existing or []) + list(incoming or []))


_MERGERS: Dict[MergeStrategy, type] = {
    MergeStrategy.REPLACE: ReplaceMerger,
    MergeStrategy.MERGE: UnionMerger,
    MergeStrategy.SKIP: SkipMerger,
}


def get_merger(strategy) -> AttendeeMerger:
    """
    Factory function to get a merger by strategy.

    Args:
        strategy: MergeStrategy or its string value

    Returns:
        AttendeeMerger instance
    """
    try:
        strategy = MergeStrategy(strategy)
    except ValueError:
        raise ValueError(
            f"Unknown merge strategy: {strategy}. "
            f"Available: {[s.value for s in MergeStrategy]}"
        ) from None
    return _MERGERS[strategy]()
