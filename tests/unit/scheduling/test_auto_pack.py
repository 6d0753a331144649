"""
Unit tests for the greedy auto-pack pass.
"""

import pytest

from src.exceptions import ValidationError
from src.schemas.meeting import MeetingStatus
from src.scheduling.scheduler import BUSY_SLOTS_COLLECTION

DAY = "2025-09-15"
SLOT_10 = "2025-09-15T10:00/30m"
SLOT_11 = "2025-09-15T11:00/30m"
NEXT_DAY_10 = "2025-09-16T10:00/30m"


@pytest.fixture
def actors(create_attendee):
    return {
        name: create_attendee(f"{name.lower()}@studio.io", full_name=name).id
        for name in ("A", "B", "C", "D")
    }


class TestAutoPack:
    """Tests for MeetingScheduler.auto_pack_meetings."""

    def test_higher_score_wins_contested_slot(self, scheduler, score_provider, actors):
        a, b, c = actors["A"], actors["B"], actors["C"]
        ab = scheduler.request_meeting(a, b, [SLOT_10])
        ac = scheduler.request_meeting(a, c, [SLOT_10])
        score_provider.put_score(a, b, 0.4)
        score_provider.put_score(a, c, 0.9)

        result = scheduler.auto_pack_meetings(DAY)

        assert result.scheduled == 1
        assert result.conflicts == 1
        assert result.assignments == {ac.id: SLOT_10}
        assert result.conflict_ids == [ab.id]
        assert scheduler.get_meeting(ac.id).status == MeetingStatus.SCHEDULED
        assert scheduler.get_meeting(ab.id).status == MeetingStatus.REQUESTED

    def test_ties_keep_arrival_order(self, scheduler, actors):
        a, b, c = actors["A"], actors["B"], actors["C"]
        first = scheduler.request_meeting(a, b, [SLOT_10])
        scheduler.request_meeting(a, c, [SLOT_10])

        result = scheduler.auto_pack_meetings(DAY)

        assert list(result.assignments) == [first.id]

    def test_falls_back_to_next_free_slot(self, scheduler, score_provider, actors):
        a, b, c = actors["A"], actors["B"], actors["C"]
        ab = scheduler.request_meeting(a, b, [SLOT_10])
        ac = scheduler.request_meeting(a, c, [SLOT_10, SLOT_11])
        score_provider.put_score(a, b, 0.9)

        result = scheduler.auto_pack_meetings(DAY)

        assert result.assignments == {ab.id: SLOT_10, ac.id: SLOT_11}
        assert result.conflicts == 0

    def test_disjoint_pairs_share_a_slot(self, scheduler, actors):
        scheduler.request_meeting(actors["A"], actors["B"], [SLOT_10])
        scheduler.request_meeting(actors["C"], actors["D"], [SLOT_10])

        result = scheduler.auto_pack_meetings(DAY)

        assert result.scheduled == 2

    def test_existing_busy_slots_respected(self, store, scheduler, actors):
        a, b, c = actors["A"], actors["B"], actors["C"]
        booked = scheduler.request_meeting(a, b, [SLOT_10])
        scheduler.accept_meeting(booked.id, SLOT_10)
        pending = scheduler.request_meeting(a, c, [SLOT_10, SLOT_11])

        result = scheduler.auto_pack_meetings(DAY)

        assert result.assignments == {pending.id: SLOT_11}
        assert store.get(BUSY_SLOTS_COLLECTION, a)["slots"] == [SLOT_10, SLOT_11]

    def test_scheduled_meeting_without_busy_entry_respected(self, store, scheduler, actors):
        """A lost busySlots write does not free the slot for later passes."""
        a, b, c = actors["A"], actors["B"], actors["C"]
        booked = scheduler.request_meeting(a, b, [SLOT_10])
        scheduler.accept_meeting(booked.id, SLOT_10)
        store.delete(BUSY_SLOTS_COLLECTION, a)
        store.delete(BUSY_SLOTS_COLLECTION, b)
        pending = scheduler.request_meeting(a, c, [SLOT_10, SLOT_11])

        result = scheduler.auto_pack_meetings(DAY)

        assert result.assignments == {pending.id: SLOT_11}

    def test_only_meetings_on_day_considered(self, scheduler, actors):
        scheduler.request_meeting(actors["A"], actors["B"], [NEXT_DAY_10])

        result = scheduler.auto_pack_meetings(DAY)

        assert result.total_requests == 0
        assert result.scheduled == 0

    def test_only_slots_on_day_assigned(self, scheduler, actors):
        meeting = scheduler.request_meeting(actors["A"], actors["B"], [NEXT_DAY_10, SLOT_11])

        result = scheduler.auto_pack_meetings(DAY)

        assert result.assignments == {meeting.id: SLOT_11}

    def test_scheduled_plus_conflicts_equals_requests(self, scheduler, score_provider, actors):
        a, b, c, d = actors["A"], actors["B"], actors["C"], actors["D"]
        scheduler.request_meeting(a, b, [SLOT_10])
        scheduler.request_meeting(a, c, [SLOT_10])
        scheduler.request_meeting(a, d, [SLOT_10, SLOT_11])
        scheduler.request_meeting(b, c, [SLOT_10])
        score_provider.put_score(a, d, 0.7)

        result = scheduler.auto_pack_meetings(DAY)

        assert result.scheduled + result.conflicts == result.total_requests == 4
        assert result.scheduled == 2

    def test_second_pass_is_noop(self, scheduler, actors):
        scheduler.request_meeting(actors["A"], actors["B"], [SLOT_10])
        scheduler.auto_pack_meetings(DAY)

        result = scheduler.auto_pack_meetings(DAY)

        assert result.total_requests == 0

    def test_scoring_profile(self, scheduler, score_provider, actors):
        a, b, c = actors["A"], actors["B"], actors["C"]
        scheduler.request_meeting(a, b, [SLOT_10])
        ac = scheduler.request_meeting(a, c, [SLOT_10])
        score_provider.put_score(a, c, 0.8, profile_id="investors")

        result = scheduler.auto_pack_meetings(DAY, scoring_profile="investors")

        assert list(result.assignments) == [ac.id]

    def test_invalid_day(self, scheduler):
        with pytest.raises(ValidationError):
            scheduler.auto_pack_meetings("15/09/2025")

    def test_to_dict(self, scheduler, actors):
        meeting = scheduler.request_meeting(actors["A"], actors["B"], [SLOT_10])
        data = scheduler.auto_pack_meetings(DAY).to_dict()

        assert data == {
            "day": DAY,
            "scheduled": 1,
            "conflicts": 0,
            "totalRequests": 1,
            "assignments": {meeting.id: SLOT_10},
            "conflictIds": [],
        }
