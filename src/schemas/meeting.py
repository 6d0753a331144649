# src/schemas/meeting.py
"""
Meeting and Badge Scan schemas.

A Meeting is a negotiation between two actors. The lifecycle is
requested -> scheduled (accept) or requested -> declined (decline); both
targets are terminal here.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, model_validator

from src.schemas.attendee import DocumentModel, _utc_now


class MeetingStatus(str, Enum):
    """Status of a meeting request."""

    REQUESTED = "requested"
    SCHEDULED = "scheduled"
    DECLINED = "declined"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = (MeetingStatus.REQUESTED, MeetingStatus.SCHEDULED)


class Meeting(DocumentModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    from_actor_id: str
    to_actor_id: str
    requested_slots: List[str] = Field(default_factory=list)
    status: MeetingStatus = MeetingStatus.REQUESTED
    chosen_slot: Optional[str] = None
    notes: str = ""
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def validate_chosen_slot(self) -> "Meeting":
        """chosen_slot is set iff scheduled, and must be one of requested_slots."""
        if self.status == MeetingStatus.SCHEDULED:
            if not self.chosen_slot:
                raise ValueError("A scheduled meeting must have a chosen slot")
            if self.chosen_slot not in self.requested_slots:
                raise ValueError(
                    f"Chosen slot '{self.chosen_slot}' is not among requested slots"
                )
        elif self.chosen_slot is not None:
            raise ValueError(
                f"Only scheduled meetings carry a chosen slot (status={self.status.value})"
            )
        return self


class BadgeScan(DocumentModel):
    """Immutable record of one actor scanning another."""

    scan_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    from_actor_id: str
    to_actor_id: str
    context: Dict[str, Any] = Field(default_factory=dict)
    ts: datetime = Field(default_factory=_utc_now)
