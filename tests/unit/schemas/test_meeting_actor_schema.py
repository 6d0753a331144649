"""
Unit tests for the actor, meeting and badge scan schemas.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.schemas.actor import Actor, ActorType
from src.schemas.meeting import BadgeScan, Meeting, MeetingStatus


class TestActorType:
    """Tests for actor id prefixes."""

    @pytest.mark.parametrize(
        "actor_id,expected",
        [
            ("a-123", ActorType.ATTENDEE),
            ("c-acme", ActorType.COMPANY),
            ("s-gold", ActorType.SPONSOR),
            ("BADGE-42", None),
        ],
    )
    def test_from_id(self, actor_id, expected):
        assert ActorType.from_id(actor_id) == expected

    def test_id_prefix(self):
        assert ActorType.SPONSOR.id_prefix == "s-"


class TestActor:
    """Tests for the Actor document shape."""

    def test_document_fields(self):
        actor = Actor(id="a-1", name="Attendee 1", pii_ref="/attendees/a-1")
        doc = actor.to_document()

        assert doc["actorType"] == "attendee"
        assert doc["piiRef"] == "/attendees/a-1"
        assert "website" not in doc

    def test_reads_company_document(self):
        actor = Actor.from_document({"id": "c-acme", "actorType": "company", "name": "Acme"})
        assert actor.actor_type == ActorType.COMPANY


class TestMeeting:
    """Tests for meeting status invariants."""

    def test_defaults(self):
        meeting = Meeting(from_actor_id="a-1", to_actor_id="a-2", requested_slots=["x"])
        assert meeting.status == MeetingStatus.REQUESTED
        assert meeting.chosen_slot is None

    def test_scheduled_requires_chosen_slot(self):
        with pytest.raises(PydanticValidationError):
            Meeting(
                from_actor_id="a-1",
                to_actor_id="a-2",
                requested_slots=["2025-09-15T10:00/30m"],
                status="scheduled",
            )

    def test_chosen_slot_must_be_requested(self):
        with pytest.raises(PydanticValidationError):
            Meeting(
                from_actor_id="a-1",
                to_actor_id="a-2",
                requested_slots=["2025-09-15T10:00/30m"],
                status="scheduled",
                chosen_slot="2025-09-15T11:00/30m",
            )

    def test_requested_cannot_carry_chosen_slot(self):
        with pytest.raises(PydanticValidationError):
            Meeting(
                from_actor_id="a-1",
                to_actor_id="a-2",
                requested_slots=["2025-09-15T10:00/30m"],
                chosen_slot="2025-09-15T10:00/30m",
            )

    def test_active_statuses(self):
        assert MeetingStatus.REQUESTED.is_active
        assert MeetingStatus.SCHEDULED.is_active
        assert not MeetingStatus.DECLINED.is_active

    def test_document_round_trip(self):
        meeting = Meeting(
            from_actor_id="a-1",
            to_actor_id="a-2",
            requested_slots=["2025-09-15T10:00/30m"],
            status="scheduled",
            chosen_slot="2025-09-15T10:00/30m",
        )
        doc = meeting.to_document()

        assert doc["fromActorId"] == "a-1"
        assert doc["chosenSlot"] == "2025-09-15T10:00/30m"
        assert Meeting.from_document(doc) == meeting


class TestBadgeScan:
    def test_document_shape(self):
        scan = BadgeScan(from_actor_id="a-1", to_actor_id="c-acme", context={"booth": "B12"})
        doc = scan.to_document()

        assert doc["scanId"] == scan.scan_id
        assert doc["fromActorId"] == "a-1"
        assert doc["context"] == {"booth": "B12"}
        assert "ts" in doc
