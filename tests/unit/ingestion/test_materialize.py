"""
Unit tests for Actor materialization.
"""

from src.ingestion.materialize import (
    ACTORS_COLLECTION,
    ActorMaterializer,
    build_actor,
    placeholder_name,
)
from src.schemas.attendee import Attendee


def _attendee(matchmaking=True, show_public_card=True, **fields):
    data = {
        "id": "a-0000123456",
        "email": "dev@studio.io",
        "fullName": "Dana Dev",
        "role": ["Developer"],
        "interests": ["Funding"],
        "platforms": ["PC"],
        "links": {"website": "https://studio.io"},
        "consent": {"matchmaking": matchmaking, "showPublicCard": show_public_card},
    }
    data.update(fields)
    return Attendee.model_validate(data)


class TestBuildActor:
    """Tests for the pure projection."""

    def test_no_consent_no_actor(self, taxonomy):
        assert build_actor(_attendee(matchmaking=False), taxonomy) is None

    def test_public_card(self, taxonomy):
        actor = build_actor(_attendee(), taxonomy)

        assert actor.id == "a-0000123456"
        assert actor.name == "Dana Dev"
        assert actor.pii_ref is None
        assert actor.website == "https://studio.io"
        assert actor.platforms == ["PC"]
        assert actor.categories == [
            "Game Development",
            "Technology",
            "Investment",
            "Funding",
        ]

    def test_hidden_card_uses_placeholder(self, taxonomy):
        actor = build_actor(_attendee(show_public_card=False), taxonomy)

        assert actor.name == "Attendee 123456"
        assert actor.pii_ref == "/attendees/a-0000123456"
        doc = actor.to_document()
        assert "email" not in doc
        assert "Dana Dev" not in doc.values()

    def test_placeholder_name(self):
        assert placeholder_name("a-1234abcdef") == "Attendee abcdef"


class TestActorMaterializer:
    """Tests for writing and removing actor documents."""

    def test_writes_actor(self, store, taxonomy):
        ActorMaterializer(store, taxonomy).materialize(_attendee())
        assert store.get(ACTORS_COLLECTION, "a-0000123456")["name"] == "Dana Dev"

    def test_no_consent_writes_nothing(self, store, taxonomy):
        assert ActorMaterializer(store, taxonomy).materialize(_attendee(matchmaking=False)) is None
        assert store.get(ACTORS_COLLECTION, "a-0000123456") is None

    def test_consent_revoke_deletes_actor(self, store, taxonomy):
        materializer = ActorMaterializer(store, taxonomy)
        materializer.materialize(_attendee())
        materializer.materialize(_attendee(matchmaking=False))

        assert store.get(ACTORS_COLLECTION, "a-0000123456") is None

    def test_consent_revoke_can_keep_actor(self, store, taxonomy):
        materializer = ActorMaterializer(store, taxonomy, delete_on_consent_revoke=False)
        materializer.materialize(_attendee())
        materializer.materialize(_attendee(matchmaking=False))

        assert store.get(ACTORS_COLLECTION, "a-0000123456") is not None

    def test_making_card_public_clears_pii_ref(self, store, taxonomy):
        materializer = ActorMaterializer(store, taxonomy)
        materializer.materialize(_attendee(show_public_card=False))
        materializer.materialize(_attendee(show_public_card=True))

        doc = store.get(ACTORS_COLLECTION, "a-0000123456")
        assert "piiRef" not in doc
        assert doc["name"] == "Dana Dev"
