"""
Slot tokens and availability checks.

A slot token is `<ISO8601 local datetime>/<N>m`, e.g. `2025-09-15T10:00/30m`.
Times are local to the event (no timezone). A token without a duration
suffix uses the default slot length.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from src.exceptions import ValidationError
from src.schemas.attendee import AvailabilitySlot

DEFAULT_SLOT_MINUTES = 30

_DURATION_PATTERN = re.compile(r"^(\d+)\s*(m|min|mins|minutes)?$", re.IGNORECASE)


@dataclass(frozen=True)
class Slot:
    """A parsed slot token."""

    token: str
    start: datetime
    duration_minutes: int

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def day(self) -> str:
        return self.start.date().isoformat()

    @property
    def time(self) -> str:
        return self.start.strftime("%H:%M")


def parse_slot(token: str, default_minutes: int = DEFAULT_SLOT_MINUTES) -> Slot:
    """
    Parse a slot token.

    Example:
        >>> parse_slot("2025-09-15T10:00/45m").end
        datetime.datetime(2025, 9, 15, 10, 45)

    Raises:
        ValidationError: If the token is malformed
    """
    if not isinstance(token, str) or not token.strip():
        raise ValidationError("Slot token must be a non-empty string", field="slot")

    raw_start, _, raw_duration = token.strip().partition("/")
    try:
        start = datetime.fromisoformat(raw_start)
    except ValueError:
        raise ValidationError(f"Invalid slot start '{raw_start}'", field="slot") from None
    if start.tzinfo is not None:
        start = start.replace(tzinfo=None)

    duration = default_minutes
    if raw_duration:
        match = _DURATION_PATTERN.match(raw_duration.strip())
        if not match or int(match.group(1)) <= 0:
            raise ValidationError(
                f"Invalid slot duration '{raw_duration}'", field="slot"
            )
        duration = int(match.group(1))

    return Slot(token=token, start=start, duration_minutes=duration)


def slot_day(token: str) -> Optional[str]:
    """ISO day of a slot token, or None if the token does not parse."""
    try:
        return parse_slot(token).day
    except ValidationError:
        return None


def slots_on_day(tokens: Iterable[str], day: str) -> List[str]:
    """Tokens falling on `day`, in their given order."""
    return [t for t in tokens if slot_day(t) == day]


def is_slot_available(
    token: str, availability: Optional[List[AvailabilitySlot]]
) -> bool:
    """
    True when the slot fits the declared availability.

    No declared availability means fully available. Otherwise one of the
    entries for the slot's day must mention its start time (entries may be
    "10:00" or ranges like "10:00-10:30"). A day may be declared more than
    once.
    """
    if not availability:
        return True

    slot = parse_slot(token)
    return any(
        slot.time in s
        for entry in availability
        if entry.day == slot.day
        for s in entry.slots
    )
