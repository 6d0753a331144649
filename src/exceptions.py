"""
Error taxonomy for the matchmaking core.

Batch ingestion records ValidationError per row and keeps going; every other
error is fatal to the single call that raised it.
"""

from typing import Optional


class MatchmakingError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(MatchmakingError):
    """A raw record or field failed validation."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}" if field else message)


class NotFoundError(MatchmakingError):
    """An actor, attendee or meeting reference could not be resolved."""

    def __init__(self, kind: str, ref: str):
        self.kind = kind
        self.ref = ref
        super().__init__(f"{kind} not found: {ref}")


class ConsentError(MatchmakingError):
    """An attendee has not granted matchmaking consent."""

    def __init__(self, actor_id: str):
        self.actor_id = actor_id
        super().__init__(f"Matchmaking consent not granted for {actor_id}")


class DuplicateMeetingError(MatchmakingError):
    """An active meeting already exists for the actor pair."""

    def __init__(self, actor_a: str, actor_b: str, meeting_id: str):
        self.actor_a = actor_a
        self.actor_b = actor_b
        self.meeting_id = meeting_id
        super().__init__(
            f"Active meeting {meeting_id} already exists between {actor_a} and {actor_b}"
        )


class NoAvailabilityError(MatchmakingError):
    """None of the requested slots fit both actors' availability."""

    def __init__(self, actor_a: str, actor_b: str):
        self.actor_a = actor_a
        self.actor_b = actor_b
        super().__init__(f"No overlapping availability for {actor_a} and {actor_b}")


class InvalidStateTransitionError(MatchmakingError):
    """A meeting transition is not allowed from its current state."""

    def __init__(self, meeting_id: str, message: str):
        self.meeting_id = meeting_id
        super().__init__(f"Meeting {meeting_id}: {message}")


class UnsupportedFormatError(MatchmakingError):
    """A file format or scanner payload shape is not supported."""


class FileParseError(MatchmakingError):
    """An uploaded file could not be read into rows."""
