"""
Service wiring.

Builds the store and the three services from settings with explicit
dependency injection; nothing here is a module-level singleton.

Usage:
    from src.factory import create_services

    services = create_services()
    result = services.pipeline.process_upload(buf, "csv")
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from src.collaborators import (
    LoggingNotificationSender,
    MatchScoreProvider,
    NotificationSender,
    RecomputeQueue,
    StoreMatchScoreProvider,
    StoreRecomputeQueue,
)
from src.configs.config import Config
from src.configs.settings import Settings, get_settings
from src.ingestion.materialize import ActorMaterializer
from src.ingestion.pipeline import AttendeeIngestionPipeline
from src.ingestion.scan_processor import ScanProcessor
from src.schemas.taxonomy import load_taxonomy
from src.scheduling.scheduler import MeetingScheduler
from src.storage.base import DocumentStore
from src.storage.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class MatchmakingServices:
    """Everything an outer layer (CLI, HTTP handlers) needs."""

    store: DocumentStore
    pipeline: AttendeeIngestionPipeline
    scan_processor: ScanProcessor
    scheduler: MeetingScheduler
    score_provider: MatchScoreProvider

    def close(self) -> None:
        self.store.close()


def create_store(settings: Settings) -> DocumentStore:
    """Create the configured document store backend."""
    if settings.STORE_BACKEND == "postgres":
        # psycopg2 is only needed for this backend
        from src.storage.postgres import PostgresDocumentStore

        logger.info("Using PostgreSQL document store")
        return PostgresDocumentStore.from_settings(settings)

    logger.info("Using in-memory document store")
    return InMemoryDocumentStore()


def create_services(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
    score_provider: Optional[MatchScoreProvider] = None,
    notifier: Optional[NotificationSender] = None,
    recompute_queue: Optional[RecomputeQueue] = None,
) -> MatchmakingServices:
    """
    Wire the ingestion pipeline, scan processor and scheduler.

    Any collaborator not passed in is built from settings.
    """
    settings = settings or get_settings()
    store = store or create_store(settings)
    score_provider = score_provider or StoreMatchScoreProvider(store)
    notifier = notifier or LoggingNotificationSender()
    recompute_queue = recompute_queue or StoreRecomputeQueue(store)

    default_taxonomy = Path(settings.TAXONOMY_PATH) == Config.get_taxonomy_path()
    taxonomy = load_taxonomy(None if default_taxonomy else str(settings.TAXONOMY_PATH))

    column_aliases = None
    if Path(settings.INGESTION_CONFIG_PATH) != Config.INGESTION_CONFIG_PATH:
        column_aliases = Config.load_file(settings.INGESTION_CONFIG_PATH).get(
            "column_aliases", {}
        )

    materializer = ActorMaterializer(
        store,
        taxonomy,
        delete_on_consent_revoke=settings.DELETE_ACTOR_ON_CONSENT_REVOKE,
    )
    pipeline = AttendeeIngestionPipeline(
        store,
        materializer,
        list_delimiter=settings.LIST_DELIMITER,
        max_rows=settings.MAX_UPLOAD_ROWS,
        column_aliases=column_aliases,
    )
    scan_processor = ScanProcessor(store, recompute_queue)
    scheduler = MeetingScheduler(
        store,
        score_provider,
        notifier,
        default_slot_minutes=settings.DEFAULT_SLOT_MINUTES,
        ics_prodid=settings.ICS_PRODID,
        ics_uid_domain=settings.ICS_UID_DOMAIN,
    )
    return MatchmakingServices(
        store=store,
        pipeline=pipeline,
        scan_processor=scan_processor,
        scheduler=scheduler,
        score_provider=score_provider,
    )
