"""
Unit tests for the in-memory document store and shared document helpers.
"""

import pytest

from src.exceptions import NotFoundError
from src.storage.base import deep_merge, get_path, matches_filters, set_path


class TestDocumentHelpers:
    def test_get_path(self):
        doc = {"source": {"badgeId": "B-1"}}
        assert get_path(doc, "source.badgeId") == "B-1"
        assert get_path(doc, "source.qr", "none") == "none"
        assert get_path(doc, "source.badgeId.deeper") is None

    def test_set_path_creates_parents(self):
        doc = {}
        set_path(doc, "scanStats.scansGiven", 1)
        assert doc == {"scanStats": {"scansGiven": 1}}

    def test_deep_merge(self):
        base = {"consent": {"matchmaking": True, "marketing": False}, "tags": ["a"]}
        merged = deep_merge(base, {"consent": {"marketing": True}, "tags": ["b"]})

        assert merged == {"consent": {"matchmaking": True, "marketing": True}, "tags": ["b"]}
        assert base["consent"]["marketing"] is False

    @pytest.mark.parametrize(
        "filters,expected",
        [
            ([("email", "==", "a@studio.io")], True),
            ([("email", "!=", "a@studio.io")], False),
            ([("status", "in", ["requested", "scheduled"])], True),
            ([("role", "array_contains", "Developer")], True),
            ([("score", ">=", 0.5), ("score", "<", 1)], True),
            ([("missing", "==", None)], False),
            ([("missing", "!=", "x")], False),
        ],
    )
    def test_matches_filters(self, filters, expected):
        doc = {
            "email": "a@studio.io",
            "status": "requested",
            "role": ["Developer"],
            "score": 0.5,
        }
        assert matches_filters(doc, filters) is expected

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            matches_filters({"a": 1}, [("a", "~=", 1)])


class TestInMemoryDocumentStore:
    """Tests for the single-document primitives."""

    def test_set_get_copies(self, store):
        doc = {"id": "x", "tags": ["a"]}
        store.set("things", "x", doc)
        doc["tags"].append("mutated")

        fetched = store.get("things", "x")
        assert fetched == {"id": "x", "tags": ["a"]}
        fetched["tags"].append("again")
        assert store.get("things", "x")["tags"] == ["a"]

    def test_set_merge(self, store):
        store.set("things", "x", {"a": {"b": 1, "c": 2}})
        store.set("things", "x", {"a": {"c": 3}}, merge=True)
        assert store.get("things", "x") == {"a": {"b": 1, "c": 3}}

    def test_set_without_merge_overwrites(self, store):
        store.set("things", "x", {"a": 1, "b": 2})
        store.set("things", "x", {"a": 5})
        assert store.get("things", "x") == {"a": 5}

    def test_delete(self, store):
        store.set("things", "x", {})
        assert store.delete("things", "x") is True
        assert store.delete("things", "x") is False
        assert store.get("things", "x") is None

    def test_increment(self, store):
        store.set("things", "x", {"stats": {"n": 2}})
        store.increment("things", "x", "stats.n")
        store.increment("things", "x", "stats.m", 5)
        assert store.get("things", "x") == {"stats": {"n": 3, "m": 5}}

    def test_increment_missing_document(self, store):
        with pytest.raises(NotFoundError):
            store.increment("things", "ghost", "n")

    def test_query_insertion_order_and_limit(self, store):
        for i in range(5):
            store.set("things", f"t{i}", {"i": i, "even": i % 2 == 0})

        evens = store.query("things", [("even", "==", True)])
        assert [d["i"] for d in evens] == [0, 2, 4]
        assert len(store.query("things", limit=2)) == 2
        assert store.find_one("things", [("i", ">", 2)])["i"] == 3
        assert store.find_one("things", [("i", ">", 10)]) is None


class TestBatch:
    """Tests for multi-document write batches."""

    def test_commit_on_exit(self, store):
        store.set("attendees", "a-1", {"scanStats": {"scansGiven": 0}})
        with store.batch() as batch:
            batch.set("scans", "s-1", {"from": "a-1"})
            batch.increment("attendees", "a-1", "scanStats.scansGiven")

        assert store.get("scans", "s-1") == {"from": "a-1"}
        assert store.get("attendees", "a-1")["scanStats"]["scansGiven"] == 1

    def test_failing_op_applies_nothing(self, store):
        store.set("attendees", "a-1", {"n": 0})
        batch = store.batch()
        batch.set("scans", "s-1", {"from": "a-1"})
        batch.increment("attendees", "a-1", "n")
        batch.increment("attendees", "a-missing", "n")

        with pytest.raises(NotFoundError):
            batch.commit()

        assert store.get("scans", "s-1") is None
        assert store.get("attendees", "a-1") == {"n": 0}

    def test_exception_in_block_discards_batch(self, store):
        with pytest.raises(RuntimeError):
            with store.batch() as batch:
                batch.set("scans", "s-1", {})
                raise RuntimeError("boom")
        assert store.get("scans", "s-1") is None

    def test_ops_see_earlier_ops(self, store):
        with store.batch() as batch:
            batch.set("things", "x", {"n": 1})
            batch.increment("things", "x", "n")
            batch.delete("things", "y")
        assert store.get("things", "x") == {"n": 2}

    def test_double_commit(self, store):
        batch = store.batch()
        batch.commit()
        with pytest.raises(RuntimeError):
            batch.commit()


class TestRunTransaction:
    """Tests for single-document read-modify-write."""

    def test_mutates(self, store):
        store.set("things", "x", {"n": 1})
        result = store.run_transaction("things", "x", lambda doc: {**doc, "n": doc["n"] + 1})
        assert result == {"n": 2}
        assert store.get("things", "x") == {"n": 2}

    def test_creates_when_missing(self, store):
        store.run_transaction("things", "x", lambda doc: {"created": doc is None})
        assert store.get("things", "x") == {"created": True}

    def test_none_means_no_write(self, store):
        store.set("things", "x", {"n": 1})
        assert store.run_transaction("things", "x", lambda doc: None) == {"n": 1}

    def test_exception_aborts(self, store):
        store.set("things", "x", {"n": 1})

        def mutate(doc):
            doc["n"] = 99
            raise ValueError("nope")

        with pytest.raises(ValueError):
            store.run_transaction("things", "x", mutate)
        assert store.get("things", "x") == {"n": 1}

    def test_context_manager_and_clear(self, store):
        with store as s:
            s.set("things", "x", {})
        store.clear()
        assert store.query("things") == []
