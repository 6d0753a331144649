"""
Meeting Scheduler.

Owns the meeting lifecycle (request -> accept / decline) and the auto-pack
pass that bulk-schedules a day's pending requests.

Auto-pack is a single greedy pass: pending meetings are ordered by match
score (highest first, arrival order on ties) and each takes the first of
its requested slots on that day that is free for both actors. It is
deterministic for stable scores and arrival order, and deliberately not
globally optimal. Occupancy is seeded from `busySlots` and the chosen slots
of scheduled meetings, then kept local to one call; concurrent passes over
the same day must be serialized by the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Set

from src.collaborators import MatchScoreProvider, NotificationSender, pair_key
from src.exceptions import (
    ConsentError,
    DuplicateMeetingError,
    InvalidStateTransitionError,
    NoAvailabilityError,
    NotFoundError,
    ValidationError,
)
from src.ingestion.materialize import ACTORS_COLLECTION, ATTENDEES_COLLECTION
from src.schemas.actor import ActorType
from src.schemas.attendee import Attendee, AvailabilitySlot, _utc_now
from src.schemas.meeting import ACTIVE_STATUSES, Meeting, MeetingStatus
from src.scheduling import ics
from src.scheduling.slots import (
    DEFAULT_SLOT_MINUTES,
    is_slot_available,
    parse_slot,
    slots_on_day,
)
from src.storage.base import DocumentStore

logger = logging.getLogger(__name__)

MEETINGS_COLLECTION = "meetings"
# One document per unordered actor pair, held by its active meeting
ACTIVE_PAIRS_COLLECTION = "activePairs"
BUSY_SLOTS_COLLECTION = "busySlots"

DECLINE_REASON_PREFIX = "Decline reason: "


@dataclass
class AutoPackResult:
    """Outcome of one auto-pack pass."""

    day: str
    scheduled: int = 0
    conflicts: int = 0
    total_requests: int = 0
    assignments: Dict[str, str] = field(default_factory=dict)
    conflict_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "scheduled": self.scheduled,
            "conflicts": self.conflicts,
            "totalRequests": self.total_requests,
            "assignments": dict(self.assignments),
            "conflictIds": list(self.conflict_ids),
        }


class MeetingScheduler:
    """Meeting lifecycle and auto-pack over a document store."""

    def __init__(
        self,
        store: DocumentStore,
        score_provider: MatchScoreProvider,
        notifier: Optional[NotificationSender] = None,
        default_slot_minutes: int = DEFAULT_SLOT_MINUTES,
        ics_prodid: str = ics.DEFAULT_PRODID,
        ics_uid_domain: str = ics.DEFAULT_UID_DOMAIN,
    ):
        self.store = store
        self.score_provider = score_provider
        self.notifier = notifier
        self.default_slot_minutes = default_slot_minutes
        self.ics_prodid = ics_prodid
        self.ics_uid_domain = ics_uid_domain

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def request_meeting(
        self,
        from_actor_id: str,
        to_actor_id: str,
        slots: List[str],
        message: str = "",
    ) -> Meeting:
        """
        Create a meeting request between two actors.

        Raises:
            ValidationError: Self-meeting or malformed slot token
            NotFoundError: Either actor does not exist
            ConsentError: An attendee-backed actor lacks matchmaking consent
            DuplicateMeetingError: An active meeting already exists for the pair
            NoAvailabilityError: No requested slot fits both availabilities
        """
        if from_actor_id == to_actor_id:
            raise ValidationError("Cannot request a meeting with yourself", field="toActorId")

        candidates: List[str] = []
        for token in slots:
            parse_slot(token, self.default_slot_minutes)
            if token not in candidates:
                candidates.append(token)

        from_availability = self._validate_actor(from_actor_id)
        to_availability = self._validate_actor(to_actor_id)

        existing = self.find_active_meeting(from_actor_id, to_actor_id)
        if existing is not None:
            raise DuplicateMeetingError(from_actor_id, to_actor_id, existing.id)

        overlapping = [
            token
            for token in candidates
            if is_slot_available(token, from_availability)
            and is_slot_available(token, to_availability)
        ]
        if not overlapping:
            raise NoAvailabilityError(from_actor_id, to_actor_id)

        meeting = Meeting(
            from_actor_id=from_actor_id,
            to_actor_id=to_actor_id,
            requested_slots=overlapping,
            notes=message or "",
        )
        self._claim_pair(meeting)
        try:
            self.store.set(MEETINGS_COLLECTION, meeting.id, meeting.to_document())
        except Exception:
            self._release_pair(meeting)
            raise
        logger.info(f"Meeting requested: {from_actor_id} -> {to_actor_id} ({meeting.id})")

        self._notify(meeting)
        return meeting

    def accept_meeting(self, meeting_id: str, chosen_slot: str) -> Meeting:
        """
        Schedule a requested meeting at one of its requested slots.

        The status check and the write happen in one store transaction, so
        a meeting can never be accepted twice.
        The `busySlots` entries are written after that transaction commits;
        auto-pack also reads scheduled meetings, so a slot is still seen as
        taken if that bookkeeping fails.

        Raises:
            NotFoundError: Unknown meeting
            InvalidStateTransitionError: Not requested, or slot not requested
        """

        def mutate(current: Optional[dict]) -> dict:
            if current is None:
                raise NotFoundError("meeting", meeting_id)
            meeting = Meeting.from_document(current)
            if meeting.status != MeetingStatus.REQUESTED:
                raise InvalidStateTransitionError(
                    meeting_id, f"cannot accept a {meeting.status.value} meeting"
                )
            if chosen_slot not in meeting.requested_slots:
                raise InvalidStateTransitionError(
                    meeting_id, f"slot '{chosen_slot}' was not requested"
                )
            scheduled = meeting.model_copy(
                update={
                    "status": MeetingStatus.SCHEDULED,
                    "chosen_slot": chosen_slot,
                    "updated_at": _utc_now(),
                }
            )
            return scheduled.to_document()

        doc = self.store.run_transaction(MEETINGS_COLLECTION, meeting_id, mutate)
        meeting = Meeting.from_document(doc)

        self._mark_busy(meeting.from_actor_id, chosen_slot)
        self._mark_busy(meeting.to_actor_id, chosen_slot)

        logger.info(f"Meeting accepted: {meeting_id} at {chosen_slot}")
        return meeting

    def decline_meeting(self, meeting_id: str, reason: Optional[str] = None) -> Meeting:
        """
        Decline a requested meeting, appending the reason to its notes.

        Raises:
            NotFoundError: Unknown meeting
            InvalidStateTransitionError: Meeting is not requested
        """

        def mutate(current: Optional[dict]) -> dict:
            if current is None:
                raise NotFoundError("meeting", meeting_id)
            meeting = Meeting.from_document(current)
            if meeting.status != MeetingStatus.REQUESTED:
                raise InvalidStateTransitionError(
                    meeting_id, f"cannot decline a {meeting.status.value} meeting"
                )
            notes = meeting.notes
            if reason:
                notes = f"{notes}\n{DECLINE_REASON_PREFIX}{reason}"
            declined = meeting.model_copy(
                update={
                    "status": MeetingStatus.DECLINED,
                    "notes": notes,
                    "updated_at": _utc_now(),
                }
            )
            return declined.to_document()

        doc = self.store.run_transaction(MEETINGS_COLLECTION, meeting_id, mutate)
        meeting = Meeting.from_document(doc)
        self._release_pair(meeting)
        logger.info(f"Meeting declined: {meeting_id}")
        return meeting

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_meeting(self, meeting_id: str) -> Meeting:
        doc = self.store.get(MEETINGS_COLLECTION, meeting_id)
        if doc is None:
            raise NotFoundError("meeting", meeting_id)
        return Meeting.from_document(doc)

    def get_meetings_for_actor(
        self, actor_id: str, status: Optional[MeetingStatus] = None
    ) -> List[Meeting]:
        """Meetings where the actor is either side, oldest first."""
        found: Dict[str, Meeting] = {}
        for side in ("fromActorId", "toActorId"):
            filters = [(side, "==", actor_id)]
            if status is not None:
                filters.append(("status", "==", MeetingStatus(status).value))
            for doc in self.store.query(MEETINGS_COLLECTION, filters):
                found[doc["id"]] = Meeting.from_document(doc)
        return sorted(found.values(), key=lambda m: m.created_at)

    def find_active_meeting(self, actor_a: str, actor_b: str) -> Optional[Meeting]:
        """Active (requested/scheduled) meeting for the unordered pair, if any."""
        active = [s.value for s in ACTIVE_STATUSES]
        for from_id, to_id in ((actor_a, actor_b), (actor_b, actor_a)):
            doc = self.store.find_one(
                MEETINGS_COLLECTION,
                [
                    ("fromActorId", "==", from_id),
                    ("toActorId", "==", to_id),
                    ("status", "in", active),
                ],
            )
            if doc is not None:
                return Meeting.from_document(doc)
        return None

    def busy_slots(self, actor_id: str) -> List[str]:
        doc = self.store.get(BUSY_SLOTS_COLLECTION, actor_id)
        return list(doc.get("slots", [])) if doc else []

    # ------------------------------------------------------------------
    # Auto-pack
    # ------------------------------------------------------------------

    def auto_pack_meetings(
        self, day: str, scoring_profile: str = "default"
    ) -> AutoPackResult:
        """
        Greedily schedule every pending meeting with a slot on `day`.

        Raises:
            ValidationError: If `day` is not an ISO date
        """
        try:
            day = date.fromisoformat(day).isoformat()
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid day '{day}'", field="day") from None

        result = AutoPackResult(day=day)

        pending = [
            Meeting.from_document(doc)
            for doc in self.store.query(
                MEETINGS_COLLECTION,
                [("status", "==", MeetingStatus.REQUESTED.value)],
            )
        ]
        candidates = sorted(
            (m for m in pending if slots_on_day(m.requested_slots, day)),
            key=lambda m: m.created_at,
        )
        result.total_requests = len(candidates)

        scored = [
            (self._pair_score(m, scoring_profile), m) for m in candidates
        ]
        # sorted() is stable: equal scores keep arrival order
        scored.sort(key=lambda item: item[0], reverse=True)

        booked = self._scheduled_slots()
        occupied: Dict[str, Set[str]] = {}
        for score, meeting in scored:
            for actor_id in (meeting.from_actor_id, meeting.to_actor_id):
                if actor_id not in occupied:
                    occupied[actor_id] = set(self.busy_slots(actor_id))
                    occupied[actor_id] |= booked.get(actor_id, set())

            slot = next(
                (
                    s
                    for s in slots_on_day(meeting.requested_slots, day)
                    if s not in occupied[meeting.from_actor_id]
                    and s not in occupied[meeting.to_actor_id]
                ),
                None,
            )
            if slot is None:
                result.conflicts += 1
                result.conflict_ids.append(meeting.id)
                continue

            try:
                self.accept_meeting(meeting.id, slot)
            except InvalidStateTransitionError as e:
                # Accepted or declined by someone else since we read it
                logger.warning(f"Auto-pack lost race on {meeting.id}: {e}")
                result.conflicts += 1
                result.conflict_ids.append(meeting.id)
                continue

            occupied[meeting.from_actor_id].add(slot)
            occupied[meeting.to_actor_id].add(slot)
            result.scheduled += 1
            result.assignments[meeting.id] = slot
            logger.debug(f"Packed {meeting.id} at {slot} (score={score})")

        logger.info(
            f"Auto-pack {day}: {result.scheduled} scheduled, "
            f"{result.conflicts} conflicts of {result.total_requests}"
        )
        return result

    # ------------------------------------------------------------------
    # ICS
    # ------------------------------------------------------------------

    def export_to_ics(self, meetings: List[Meeting]) -> str:
        """Render scheduled meetings as .ics, resolving display names."""
        names: Dict[str, str] = {}
        for meeting in meetings:
            for actor_id in (meeting.from_actor_id, meeting.to_actor_id):
                if actor_id not in names:
                    actor = self.store.get(ACTORS_COLLECTION, actor_id)
                    names[actor_id] = (actor or {}).get("name") or ics.UNKNOWN_NAME
        return ics.export_to_ics(
            meetings,
            names,
            prodid=self.ics_prodid,
            uid_domain=self.ics_uid_domain,
            default_minutes=self.default_slot_minutes,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_actor(self, actor_id: str) -> Optional[List[AvailabilitySlot]]:
        """
        Check existence and consent; return declared availability.

        Non-attendee actors have no declared availability.
        """
        if self.store.get(ACTORS_COLLECTION, actor_id) is None:
            raise NotFoundError("actor", actor_id)

        if ActorType.from_id(actor_id) != ActorType.ATTENDEE:
            return None

        doc = self.store.get(ATTENDEES_COLLECTION, actor_id)
        if doc is None:
            return None
        attendee = Attendee.from_document(doc)
        if not attendee.consent.matchmaking:
            raise ConsentError(actor_id)
        return attendee.preferences.availability

    def _pair_score(self, meeting: Meeting, profile_id: str) -> float:
        score = self.score_provider.score(
            meeting.from_actor_id, meeting.to_actor_id, profile_id
        )
        return float(score) if score is not None else 0.0

    def _claim_pair(self, meeting: Meeting) -> None:
        """
        Take the pair's write-once `activePairs` key for this meeting.

        A released key, or one left behind by a meeting that is no longer
        active, is taken over. A key whose meeting is active or not yet
        written is not.

        Raises:
            DuplicateMeetingError: Another meeting holds the pair
        """
        key = pair_key(meeting.from_actor_id, meeting.to_actor_id)
        held = self.store.get(ACTIVE_PAIRS_COLLECTION, key) or {}
        stale_id = held.get("meetingId")
        if stale_id is not None:
            held_meeting = self.store.get(MEETINGS_COLLECTION, stale_id)
            if held_meeting is None or MeetingStatus(held_meeting["status"]).is_active:
                raise DuplicateMeetingError(
                    meeting.from_actor_id, meeting.to_actor_id, stale_id
                )

        def mutate(current: Optional[dict]) -> dict:
            if current is not None and current.get("meetingId") != stale_id:
                raise DuplicateMeetingError(
                    meeting.from_actor_id, meeting.to_actor_id, current.get("meetingId")
                )
            return {
                "meetingId": meeting.id,
                "actorIds": sorted((meeting.from_actor_id, meeting.to_actor_id)),
                "claimedAt": _utc_now().isoformat(),
            }

        self.store.run_transaction(ACTIVE_PAIRS_COLLECTION, key, mutate)

    def _release_pair(self, meeting: Meeting) -> None:
        def mutate(current: Optional[dict]) -> Optional[dict]:
            if current is None or current.get("meetingId") != meeting.id:
                return None
            return {**current, "meetingId": None, "releasedAt": _utc_now().isoformat()}

        self.store.run_transaction(
            ACTIVE_PAIRS_COLLECTION,
            pair_key(meeting.from_actor_id, meeting.to_actor_id),
            mutate,
        )

    def _scheduled_slots(self) -> Dict[str, Set[str]]:
        """Chosen slots of scheduled meetings, per actor."""
        booked: Dict[str, Set[str]] = {}
        for doc in self.store.query(
            MEETINGS_COLLECTION, [("status", "==", MeetingStatus.SCHEDULED.value)]
        ):
            for side in ("fromActorId", "toActorId"):
                booked.setdefault(doc[side], set()).add(doc["chosenSlot"])
        return booked

    def _mark_busy(self, actor_id: str, slot: str) -> None:
        def mutate(current: Optional[dict]) -> Optional[dict]:
            doc = current or {"actorId": actor_id, "slots": []}
            if slot in doc.get("slots", []):
                return None
            doc["slots"] = list(doc.get("slots", [])) + [slot]
            doc["updatedAt"] = _utc_now().isoformat()
            return doc

        self.store.run_transaction(BUSY_SLOTS_COLLECTION, actor_id, mutate)

    def _notify(self, meeting: Meeting) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(meeting)
        except Exception as e:
            logger.warning(f"Notification failed for meeting {meeting.id}: {e}")
