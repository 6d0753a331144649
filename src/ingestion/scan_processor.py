"""
Badge Scan Processor.

Records one actor scanning another ("introductions"): resolves free-form
identifiers to actor ids, enforces mutual matchmaking consent, then writes
the scan and both scan counters in a single atomic batch.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from src.collaborators import RecomputeQueue
from src.exceptions import ConsentError, NotFoundError, ValidationError
from src.ingestion.materialize import ACTORS_COLLECTION, ATTENDEES_COLLECTION
from src.ingestion.scan_decoders import Payload, decode_scanner_payload
from src.schemas.actor import ActorType
from src.schemas.meeting import BadgeScan
from src.storage.base import DocumentStore

logger = logging.getLogger(__name__)

SCANS_COLLECTION = "scans"

# Resolved identifier: (actor id, attendee document or None for non-attendee kinds)
ResolvedActor = Tuple[str, Optional[Dict[str, Any]]]


class ScanProcessor:
    """Turns badge scans into BadgeScan records and counter updates."""

    def __init__(
        self,
        store: DocumentStore,
        recompute_queue: Optional[RecomputeQueue] = None,
    ):
        self.store = store
        self.recompute_queue = recompute_queue

    # ------------------------------------------------------------------
    # Resolution & consent
    # ------------------------------------------------------------------

    def resolve_actor(self, identifier: str) -> ResolvedActor:
        """
        Resolve an actor id, badge id or QR token.

        Canonical actor ids must point at an existing record. Anything else
        is looked up as `source.badgeId`, then `source.qr`.

        Raises:
            NotFoundError: If nothing matches
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise NotFoundError("actor", identifier)

        actor_type = ActorType.from_id(identifier)
        if actor_type == ActorType.ATTENDEE:
            attendee = self.store.get(ATTENDEES_COLLECTION, identifier)
            if attendee is None:
                raise NotFoundError("attendee", identifier)
            return identifier, attendee
        if actor_type is not None:
            if self.store.get(ACTORS_COLLECTION, identifier) is None:
                raise NotFoundError(actor_type.value, identifier)
            return identifier, None

        for path in ("source.badgeId", "source.qr"):
            attendee = self.store.find_one(
                ATTENDEES_COLLECTION, [(path, "==", identifier)]
            )
            if attendee is not None:
                return attendee["id"], attendee

        raise NotFoundError("badge", identifier)

    @staticmethod
    def _check_consent(resolved: ResolvedActor) -> None:
        actor_id, attendee = resolved
        # Company and sponsor actors always consent
        if attendee is None:
            return
        if not (attendee.get("consent") or {}).get("matchmaking", False):
            raise ConsentError(actor_id)

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    def process_scan(
        self,
        from_identifier: str,
        to_identifier: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> BadgeScan:
        """
        Record a scan between two identifiers.

        Raises:
            NotFoundError: Either side cannot be resolved
            ConsentError: Either attendee side lacks matchmaking consent
            ValidationError: Both identifiers resolve to the same actor
        """
        from_resolved = self.resolve_actor(from_identifier)
        to_resolved = self.resolve_actor(to_identifier)

        from_id, from_attendee = from_resolved
        to_id, to_attendee = to_resolved
        if from_id == to_id:
            raise ValidationError("An actor cannot scan their own badge", field="to")

        self._check_consent(from_resolved)
        self._check_consent(to_resolved)

        scan = BadgeScan(from_actor_id=from_id, to_actor_id=to_id, context=context or {})

        with self.store.batch() as batch:
            batch.set(SCANS_COLLECTION, scan.scan_id, scan.to_document())
            if from_attendee is not None:
                batch.increment(ATTENDEES_COLLECTION, from_id, "scanStats.scansGiven")
            if to_attendee is not None:
                batch.increment(ATTENDEES_COLLECTION, to_id, "scanStats.scansReceived")

        logger.info(f"Scan processed: {from_id} -> {to_id}")
        self._enqueue_recompute(from_id, to_id)
        return scan

    def process_scanner_payload(
        self,
        scanner_actor_id: str,
        payload: Payload,
        context: Optional[Dict[str, Any]] = None,
    ) -> BadgeScan:
        """
        Decode a vendor scanner payload and record the scan.

        The scanner's owner is the "from" side; the decoded badge is "to".

        Raises:
            UnsupportedFormatError: If the payload shape is unknown
        """
        reading = decode_scanner_payload(payload)
        scan_context = {**reading.to_context(), **(context or {})}
        return self.process_scan(scanner_actor_id, reading.badge_id, scan_context)

    def _enqueue_recompute(self, actor_a: str, actor_b: str) -> None:
        if self.recompute_queue is None:
            return
        try:
            self.recompute_queue.enqueue_pair_recompute(actor_a, actor_b)
        except Exception as e:
            logger.warning(f"Failed to enqueue recompute for {actor_a}/{actor_b}: {e}")
