"""
Actor materialization.

Projects a private Attendee into its public, privacy-filtered Actor
directory entry. Matchmaking consent gates the projection entirely; the
public card flag decides whether the real name is shown.
"""

import logging
from typing import Optional

from src.schemas.actor import Actor, ActorType
from src.schemas.attendee import Attendee, _utc_now
from src.schemas.taxonomy import Taxonomy
from src.storage.base import DocumentStore

logger = logging.getLogger(__name__)

ACTORS_COLLECTION = "actors"
ATTENDEES_COLLECTION = "attendees"

PLACEHOLDER_NAME_PREFIX = "Attendee"
PLACEHOLDER_ID_CHARS = 6


def placeholder_name(actor_id: str) -> str:
    """
    Redacted display name derived from the id.

    Example:
        >>> placeholder_name("a-1234abcdef")
        'Attendee abcdef'
    """
    return f"{PLACEHOLDER_NAME_PREFIX} {actor_id[-PLACEHOLDER_ID_CHARS:]}"


def build_actor(attendee: Attendee, taxonomy: Taxonomy) -> Optional[Actor]:
    """
    Build the Actor projection, or None when matchmaking consent is missing.

    Pure: no store access.
    """
    if not attendee.consent.matchmaking:
        return None

    show_card = attendee.consent.show_public_card
    return Actor(
        id=attendee.id,
        actor_type=ActorType.ATTENDEE,
        name=attendee.full_name if show_card else placeholder_name(attendee.id),
        website=attendee.links.website,
        categories=taxonomy.derive_categories(attendee.role, attendee.interests),
        platforms=list(attendee.platforms),
        markets=list(attendee.markets),
        capabilities=list(attendee.capabilities),
        needs=list(attendee.needs),
        tags=list(attendee.tags),
        role=list(attendee.role),
        pii_ref=None if show_card else f"/{ATTENDEES_COLLECTION}/{attendee.id}",
        updated_at=_utc_now(),
    )


class ActorMaterializer:
    """
    Writes (or removes) the Actor projection for an attendee.

    The actor document is overwritten rather than merged so fields that
    should disappear (e.g. piiRef once the card is made public) do.
    """

    def __init__(
        self,
        store: DocumentStore,
        taxonomy: Taxonomy,
        delete_on_consent_revoke: bool = True,
    ):
        self.store = store
        self.taxonomy = taxonomy
        self.delete_on_consent_revoke = delete_on_consent_revoke

    def materialize(self, attendee: Attendee) -> Optional[Actor]:
        """
        Project the attendee into the directory.

        Returns:
            The written Actor, or None if consent is missing
        """
        actor = build_actor(attendee, self.taxonomy)
        if actor is None:
            if self.delete_on_consent_revoke and self.store.delete(
                ACTORS_COLLECTION, attendee.id
            ):
                logger.info(
                    f"Removed actor {attendee.id}: matchmaking consent revoked"
                )
            else:
                logger.debug(
                    f"Skipping actor materialization for {attendee.id} - no consent"
                )
            return None

        self.store.set(ACTORS_COLLECTION, actor.id, actor.to_document())
        logger.debug(f"Materialized actor {actor.id} ({len(actor.categories)} categories)")
        return actor
