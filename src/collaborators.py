"""
External collaborator contracts.

The matchmaking core talks to the scoring engine, notification delivery
and the recompute queue only through these interfaces. Concrete
implementations here are the store-backed and log-only defaults used by
the CLI and tests; production wiring can pass its own.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from src.schemas.attendee import _utc_now
from src.schemas.meeting import Meeting
from src.storage.base import DocumentStore

logger = logging.getLogger(__name__)

MATCH_SCORES_COLLECTION = "matchScores"
RECOMPUTE_QUEUE_COLLECTION = "recomputeQueue"


def pair_key(actor_a: str, actor_b: str) -> str:
    """
    Order-independent key for an actor pair.

    Example:
        >>> pair_key("a-2", "a-1")
        'a-1__a-2'
    """
    return "__".join(sorted((actor_a, actor_b)))


# ============================================================================
# MATCH SCORES
# ============================================================================


class MatchScoreProvider(ABC):
    """Affinity score source for actor pairs."""

    @abstractmethod
    def score(
        self, actor_a: str, actor_b: str, profile_id: str = "default"
    ) -> Optional[float]:
        """Score for the unordered pair, or None if it has not been computed."""
        pass

    @abstractmethod
    def calculate_for_profile(
        self, actor_id: str, profile_id: str = "default"
    ) -> List[Dict]:
        """Scored candidates for one actor, best first."""
        pass


class StoreMatchScoreProvider(MatchScoreProvider):
    """
    Reads precomputed scores from the `matchScores` collection.

    Documents are keyed `<profile>__<pair_key>` and carry
    `{actorA, actorB, profileId, score}`.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    @staticmethod
    def doc_id(actor_a: str, actor_b: str, profile_id: str) -> str:
        return f"{profile_id}__{pair_key(actor_a, actor_b)}"

    def score(
        self, actor_a: str, actor_b: str, profile_id: str = "default"
    ) -> Optional[float]:
        doc = self.store.get(
            MATCH_SCORES_COLLECTION, self.doc_id(actor_a, actor_b, profile_id)
        )
        if doc is None or doc.get("score") is None:
            return None
        return float(doc["score"])

    def calculate_for_profile(
        self, actor_id: str, profile_id: str = "default"
    ) -> List[Dict]:
        candidates = []
        for side, other_side in (("actorA", "actorB"), ("actorB", "actorA")):
            for doc in self.store.query(
                MATCH_SCORES_COLLECTION,
                [(side, "==", actor_id), ("profileId", "==", profile_id)],
            ):
                candidates.append(
                    {"actorId": doc[other_side], "score": float(doc.get("score", 0))}
                )
        return sorted(candidates, key=lambda c: c["score"], reverse=True)

    def put_score(
        self, actor_a: str, actor_b: str, score: float, profile_id: str = "default"
    ) -> None:
        """Store a pair score (used by seeding scripts and tests)."""
        first, second = sorted((actor_a, actor_b))
        self.store.set(
            MATCH_SCORES_COLLECTION,
            self.doc_id(actor_a, actor_b, profile_id),
            {
                "actorA": first,
                "actorB": second,
                "profileId": profile_id,
                "score": score,
                "updatedAt": _utc_now().isoformat(),
            },
        )


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class NotificationSender(ABC):
    """Fire-and-forget delivery of meeting notifications."""

    @abstractmethod
    def notify(self, meeting: Meeting) -> None:
        pass


class LoggingNotificationSender(NotificationSender):
    def notify(self, meeting: Meeting) -> None:
        logger.info(
            f"Meeting {meeting.id} ({meeting.status.value}): "
            f"{meeting.from_actor_id} -> {meeting.to_actor_id}"
        )


# ============================================================================
# RECOMPUTE QUEUE
# ============================================================================


class RecomputeQueue(ABC):
    """Queue of actor pairs whose match score should be recomputed."""

    @abstractmethod
    def enqueue_pair_recompute(self, actor_a: str, actor_b: str) -> None:
        pass


class LoggingRecomputeQueue(RecomputeQueue):
    def enqueue_pair_recompute(self, actor_a: str, actor_b: str) -> None:
        logger.info(f"Recompute requested for pair {pair_key(actor_a, actor_b)}")


class StoreRecomputeQueue(RecomputeQueue):
    """Appends recompute jobs to the `recomputeQueue` collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def enqueue_pair_recompute(self, actor_a: str, actor_b: str) -> None:
        job_id = str(uuid.uuid4())
        self.store.set(
            RECOMPUTE_QUEUE_COLLECTION,
            job_id,
            {
                "jobId": job_id,
                "pairKey": pair_key(actor_a, actor_b),
                "actorA": actor_a,
                "actorB": actor_b,
                "status": "pending",
                "enqueuedAt": _utc_now().isoformat(),
            },
        )
