# src/schemas/actor.py
"""
Actor Schema: the public, privacy-filtered directory entry.

Actors are never written directly. They are materialized from an Attendee
with matchmaking consent (or from a company/sponsor record, handled
elsewhere). The id prefix encodes the actor kind.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from src.schemas.attendee import DocumentModel, _utc_now


class ActorType(str, Enum):
    """Kind of entity an actor was projected from."""

    ATTENDEE = "attendee"
    COMPANY = "company"
    SPONSOR = "sponsor"

    @property
    def id_prefix(self) -> str:
        return ACTOR_ID_PREFIXES[self]

    @classmethod
    def from_id(cls, actor_id: str) -> Optional["ActorType"]:
        """
        Infer the actor kind from its id prefix.

        Example:
            >>> ActorType.from_id("a-123")
            <ActorType.ATTENDEE: 'attendee'>
            >>> ActorType.from_id("BADGE-42") is None
            True
        """
        for actor_type, prefix in ACTOR_ID_PREFIXES.items():
            if actor_id.startswith(prefix):
                return actor_type
        return None


ACTOR_ID_PREFIXES = {
    ActorType.ATTENDEE: "a-",
    ActorType.COMPANY: "c-",
    ActorType.SPONSOR: "s-",
}


class Actor(DocumentModel):
    """
    Public matchmaking profile.

    `name` is the real name only when the attendee chose to show a public
    card; otherwise it is a placeholder and `pii_ref` points back at the
    private record.
    """

    id: str
    actor_type: ActorType = ActorType.ATTENDEE
    name: str
    website: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    platforms: List[str] = Field(default_factory=list)
    markets: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)
    needs: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    role: List[str] = Field(default_factory=list)
    pii_ref: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utc_now)
