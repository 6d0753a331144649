"""
Shared pytest fixtures for the matchmaking core test suite.

Provides an in-memory store, wired services and factory fixtures for
attendees, actors and roster files.
"""

import csv
import io
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from src.collaborators import NotificationSender, RecomputeQueue, StoreMatchScoreProvider
from src.ingestion.materialize import ACTORS_COLLECTION, ActorMaterializer
from src.ingestion.pipeline import AttendeeIngestionPipeline
from src.ingestion.scan_processor import ScanProcessor
from src.monitoring.logging import ROOT_LOGGER_NAME
from src.schemas.attendee import Attendee
from src.schemas.taxonomy import load_taxonomy
from src.scheduling.scheduler import MeetingScheduler
from src.storage.memory import InMemoryDocumentStore


@pytest.fixture
def store():
    """Fresh in-memory document store per test."""
    return InMemoryDocumentStore()


@pytest.fixture
def taxonomy():
    return load_taxonomy()


@pytest.fixture
def materializer(store, taxonomy):
    return ActorMaterializer(store, taxonomy)


@pytest.fixture
def pipeline(store, materializer):
    return AttendeeIngestionPipeline(store, materializer, max_rows=100)


@pytest.fixture
def recompute_queue():
    return MagicMock(spec=RecomputeQueue)


@pytest.fixture
def scan_processor(store, recompute_queue):
    return ScanProcessor(store, recompute_queue)


@pytest.fixture
def score_provider(store):
    return StoreMatchScoreProvider(store)


@pytest.fixture
def notifier():
    return MagicMock(spec=NotificationSender)


@pytest.fixture
def scheduler(store, score_provider, notifier):
    return MeetingScheduler(store, score_provider, notifier)


@pytest.fixture
def create_attendee(store, materializer):
    """
    Return a function that creates (and persists) attendees.

    Attendees get matchmaking consent and a public card unless overridden.
    Persisted attendees are also materialized into the actor directory.

    Example:
        alice = create_attendee("alice@studio.io", full_name="Alice")
    """

    def _create_attendee(
        email: str = "player@studio.io",
        full_name: str = "Test Attendee",
        matchmaking: bool = True,
        show_public_card: bool = True,
        availability: Optional[List[Dict]] = None,
        persist: bool = True,
        **kwargs,
    ) -> Attendee:
        data = {
            "email": email,
            "fullName": full_name,
            "consent": {
                "matchmaking": matchmaking,
                "showPublicCard": show_public_card,
            },
        }
        if availability is not None:
            data["preferences"] = {"availability": availability}
        data.update(kwargs)

        attendee = Attendee.model_validate(data)
        if persist:
            store.set("attendees", attendee.id, attendee.to_document())
            materializer.materialize(attendee)
        return attendee

    return _create_attendee


@pytest.fixture
def create_company_actor(store):
    """Return a function that writes a company/sponsor actor document."""

    def _create_company_actor(actor_id: str = "c-acme", name: str = "Acme Games") -> str:
        store.set(
            ACTORS_COLLECTION,
            actor_id,
            {"id": actor_id, "actorType": "company", "name": name},
        )
        return actor_id

    return _create_company_actor


@pytest.fixture
def make_csv():
    """Return a function that renders row dicts as CSV bytes."""

    def _make_csv(rows: List[Dict[str, str]], headers: Optional[List[str]] = None) -> bytes:
        headers = headers or list(rows[0].keys())
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=headers)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
        return buf.getvalue().encode("utf-8")

    return _make_csv


@pytest.fixture
def restore_package_logger():
    """Undo handler/level/propagation changes made by configure_logging."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate


class LockstepStore(InMemoryDocumentStore):
    """
    In-memory store that parks each thread right after its first lookup in
    one collection until every party has made that lookup.

    Check-then-write code run from several threads against this store sees
    the same "nothing there yet" answer in every thread.
    """

    def __init__(self, collection: str, parties: int = 2, timeout: float = 5.0):
        super().__init__()
        self.collection = collection
        self.timeout = timeout
        self._barrier = threading.Barrier(parties)
        self._arrived = set()

    def find_one(self, collection, filters):
        found = super().find_one(collection, filters)
        thread_id = threading.get_ident()
        if collection == self.collection and thread_id not in self._arrived:
            self._arrived.add(thread_id)
            self._barrier.wait(timeout=self.timeout)
        return found


@pytest.fixture
def run_in_threads():
    """
    Return a function that runs `fn` once per thread and collects outcomes.

    Example:
        results, errors = run_in_threads(lambda: scheduler.request_meeting(...), 2)
    """

    def _run_in_threads(fn: Callable[[], Any], threads: int = 2):
        results: List[Any] = []
        errors: List[BaseException] = []
        with ThreadPoolExecutor(max_workers=threads) as pool:
            futures = [pool.submit(fn) for _ in range(threads)]
            for future in futures:
                try:
                    results.append(future.result(timeout=30))
                except Exception as e:
                    errors.append(e)
        return results, errors

    return _run_in_threads


@pytest.fixture
def lockstep_store():
    """Return a function building a LockstepStore for a collection."""

    def _lockstep_store(collection: str, parties: int = 2) -> LockstepStore:
        return LockstepStore(collection, parties=parties)

    return _lockstep_store
