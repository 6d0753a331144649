"""
Attendee Ingestion Pipeline.

Turns an uploaded roster (CSV / XLSX / XLS) into validated, deduplicated
Attendee records and their consent-gated Actor projections.

Flow per upload:
1. Parse the buffer into header-keyed rows (fatal on failure)
2. Resolve a column mapping (explicit, or suggested from headers)
3. Per row: map -> validate -> claim email/badge id -> merge -> persist -> materialize
4. Write an audit document to `ingestLogs`

Row-level problems are collected into the result and never abort the batch.
"""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from src.exceptions import FileParseError, UnsupportedFormatError, ValidationError
from src.ingestion.field_mapper import FieldMapper, detect_columns, suggest_mapping
from src.ingestion.materialize import ATTENDEES_COLLECTION, ActorMaterializer
from src.ingestion.merge import AttendeeMerger, MergeStrategy, get_merger
from src.ingestion.parsers import parse_spreadsheet
from src.ingestion.schema_validator import validate_attendee
from src.monitoring.logging import with_context
from src.schemas.attendee import DEFAULT_LIST_DELIMITER, Attendee, _utc_now
from src.storage.base import DocumentStore

logger = logging.getLogger(__name__)

INGEST_LOGS_COLLECTION = "ingestLogs"
# Write-once dedup keys: email / badge id -> attendee id
EMAIL_KEYS_COLLECTION = "attendeeEmails"
BADGE_KEYS_COLLECTION = "attendeeBadges"
UPLOAD_TYPE = "attendees"


class RowOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class UploadConfig:
    """
    Options for one upload.

    `mapping` maps source column -> target wire field; when empty a mapping
    is suggested from the headers.
    """

    mapping: Dict[str, str] = field(default_factory=dict)
    dry_run: bool = False
    skip_duplicates: bool = False
    merge_strategy: MergeStrategy = MergeStrategy.MERGE
    file_name: Optional[str] = None
    uploaded_by: Optional[str] = None

    def __post_init__(self):
        self.merge_strategy = MergeStrategy(self.merge_strategy)


@dataclass
class UploadResult:
    """Summary of one upload."""

    upload_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False
    duplicates_found: int = 0
    detected_columns: List[Dict[str, Any]] = field(default_factory=list)
    field_mapping: Dict[str, str] = field(default_factory=dict)

    @property
    def total_rows(self) -> int:
        return self.success + self.failed + self.skipped

    @property
    def duration_seconds(self) -> float:
        """Calculate execution duration."""
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()

    def add_error(self, row: int, error: str, field_name: Optional[str] = None) -> None:
        self.failed += 1
        self.errors.append({"row": row, "field": field_name, "error": error})

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["ended_at"] = self.ended_at.isoformat() if self.ended_at else None
        data["total_rows"] = self.total_rows
        return data


class _DryRunIndex:
    """Attendees a dry run would have written, indexed like the store lookups."""

    def __init__(self):
        self.by_email: Dict[str, Attendee] = {}
        self.by_badge: Dict[str, Attendee] = {}

    def add(self, attendee: Attendee) -> None:
        self.by_email[attendee.email] = attendee
        if attendee.source.badge_id:
            self.by_badge[attendee.source.badge_id] = attendee


class AttendeeIngestionPipeline:
    """
    Bulk attendee import.

    Example:
        >>> pipeline = AttendeeIngestionPipeline(store, materializer)
        >>> result = pipeline.process_upload(buf, "csv", UploadConfig(dry_run=True))
        >>> result.success, result.failed
    """

    def __init__(
        self,
        store: DocumentStore,
        materializer: ActorMaterializer,
        list_delimiter: str = DEFAULT_LIST_DELIMITER,
        max_rows: Optional[int] = None,
        column_aliases: Optional[Dict[str, str]] = None,
    ):
        self.store = store
        self.materializer = materializer
        self.list_delimiter = list_delimiter
        self.max_rows = max_rows
        self.column_aliases = column_aliases

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def process_upload(
        self,
        file_buffer: Union[bytes, str],
        file_format: str,
        config: Optional[UploadConfig] = None,
    ) -> UploadResult:
        """
        Import one roster file.

        Raises:
            UnsupportedFormatError: Unknown file format
            FileParseError: Unreadable, empty or oversized file
        """
        config = config or UploadConfig()
        result = UploadResult(
            upload_id=str(uuid.uuid4()),
            started_at=_utc_now(),
            dry_run=config.dry_run,
        )
        log = with_context(logger, upload_id=result.upload_id, operation="upload")

        try:
            rows = parse_spreadsheet(file_buffer, file_format, max_rows=self.max_rows)
        except (UnsupportedFormatError, FileParseError) as e:
            result.ended_at = _utc_now()
            log.error(f"Upload rejected: {e}")
            self._write_audit_log(result, config, status="failed", error=str(e))
            raise

        detections = detect_columns(rows, self.column_aliases)
        result.detected_columns = [d.to_dict() for d in detections]
        result.field_mapping = dict(config.mapping) or suggest_mapping(detections)
        if not config.mapping:
            log.info(f"No mapping supplied; suggested {result.field_mapping}")

        mapper = FieldMapper(result.field_mapping)
        merger = get_merger(config.merge_strategy)
        dry_run_index = _DryRunIndex() if config.dry_run else None

        for row_number, row in enumerate(rows, start=1):
            try:
                raw = mapper.map_row(row)
                raw.setdefault("source", {}).setdefault("importedFrom", result.upload_id)
                attendee = validate_attendee(raw, delimiter=self.list_delimiter)
                outcome = self._ingest_attendee(
                    attendee, config, merger, result, dry_run_index
                )
            except ValidationError as e:
                log.debug(f"Row {row_number} invalid: {e}")
                result.add_error(row_number, e.message, e.field)
                continue
            except Exception as e:
                log.error(f"Row {row_number} failed: {e}")
                result.add_error(row_number, str(e))
                continue

            if outcome == RowOutcome.SKIPPED:
                result.skipped += 1
            else:
                result.success += 1

        result.ended_at = _utc_now()
        self._write_audit_log(result, config, status="completed")

        log.info(
            f"Upload finished: {result.success} ok, {result.failed} failed, "
            f"{result.skipped} skipped (dry_run={config.dry_run}) "
            f"in {result.duration_seconds:.2f}s"
        )
        return result

    # ------------------------------------------------------------------
    # Per-row steps
    # ------------------------------------------------------------------

    def _ingest_attendee(
        self,
        attendee: Attendee,
        config: UploadConfig,
        merger: AttendeeMerger,
        result: UploadResult,
        dry_run_index: Optional[_DryRunIndex],
    ) -> RowOutcome:
        if dry_run_index is not None:
            return self._simulate_attendee(attendee, config, merger, result, dry_run_index)

        target_id = self.claim_attendee_id(attendee)
        if target_id == attendee.id:
            saved = self._persist(target_id, attendee, merger)
            self.materializer.materialize(saved)
            return RowOutcome.CREATED

        result.duplicates_found += 1
        if config.skip_duplicates or merger.is_noop:
            existing = self.store.get(ATTENDEES_COLLECTION, target_id)
            if merger.is_noop and existing is not None:
                self.materializer.materialize(Attendee.from_document(existing))
            return RowOutcome.SKIPPED

        saved = self._persist(target_id, attendee, merger)
        self.materializer.materialize(saved)
        return RowOutcome.UPDATED

    def _simulate_attendee(
        self,
        attendee: Attendee,
        config: UploadConfig,
        merger: AttendeeMerger,
        result: UploadResult,
        dry_run_index: _DryRunIndex,
    ) -> RowOutcome:
        """Dry-run counterpart of `_ingest_attendee`: same outcome, no writes."""
        existing = self.find_existing(attendee, dry_run_index)
        if existing is None:
            dry_run_index.add(attendee)
            return RowOutcome.CREATED

        result.duplicates_found += 1
        if config.skip_duplicates or merger.is_noop:
            return RowOutcome.SKIPPED
        dry_run_index.add(merger.merge(existing, attendee))
        return RowOutcome.UPDATED

    def claim_attendee_id(self, attendee: Attendee) -> str:
        """
        Resolve the attendee id a row must be written under.

        Email and badge id are claimed as write-once keys, so concurrent
        uploads of the same person agree on one id. The email claim decides;
        a badge claim held by a different attendee redirects a new email to
        that attendee.
        """
        existing = self.find_existing(attendee)
        candidate = existing.id if existing else attendee.id

        badge_id = attendee.source.badge_id
        if badge_id and existing is None:
            candidate = self._claim_key(BADGE_KEYS_COLLECTION, badge_id, candidate)

        owner = self._claim_key(EMAIL_KEYS_COLLECTION, attendee.email, candidate)
        if badge_id:
            badge_owner = self._claim_key(BADGE_KEYS_COLLECTION, badge_id, owner)
            if badge_owner == attendee.id and owner != attendee.id:
                # Our badge claim lost to an email claimed concurrently
                self.store.set(BADGE_KEYS_COLLECTION, badge_id, {"attendeeId": owner})
        return owner

    def _claim_key(self, collection: str, key: str, attendee_id: str) -> str:
        stored = self.store.claim(collection, key, {"attendeeId": attendee_id})
        return stored["attendeeId"]

    def find_existing(
        self, attendee: Attendee, dry_run_index: Optional[_DryRunIndex] = None
    ) -> Optional[Attendee]:
        """Look up a stored attendee by email, then by badge id."""
        doc = self.store.find_one(
            ATTENDEES_COLLECTION, [("email", "==", attendee.email)]
        )
        if doc is not None:
            return Attendee.from_document(doc)
        if dry_run_index is not None and attendee.email in dry_run_index.by_email:
            return dry_run_index.by_email[attendee.email]

        badge_id = attendee.source.badge_id
        if badge_id:
            doc = self.store.find_one(
                ATTENDEES_COLLECTION, [("source.badgeId", "==", badge_id)]
            )
            if doc is not None:
                return Attendee.from_document(doc)
            if dry_run_index is not None and badge_id in dry_run_index.by_badge:
                return dry_run_index.by_badge[badge_id]

        return None

    def _persist(
        self, target_id: str, incoming: Attendee, merger: AttendeeMerger
    ) -> Attendee:
        """
        Write the attendee inside a store transaction.

        The merge runs against the document as read inside the transaction,
        so scan counters incremented since the duplicate lookup are kept.
        When the claimed id has no document yet (its creator is still
        running) the row is written under that id.
        """

        def mutate(current: Optional[dict]) -> dict:
            if current is None:
                return incoming.model_copy(update={"id": target_id}).to_document()
            return merger.merge(Attendee.from_document(current), incoming).to_document()

        doc = self.store.run_transaction(ATTENDEES_COLLECTION, target_id, mutate)
        return Attendee.from_document(doc)

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def _write_audit_log(
        self,
        result: UploadResult,
        config: UploadConfig,
        status: str,
        error: Optional[str] = None,
    ) -> None:
        doc = {
            "uploadId": result.upload_id,
            "fileName": config.file_name,
            "uploadedBy": config.uploaded_by,
            "type": UPLOAD_TYPE,
            "status": status,
            "mergeStrategy": config.merge_strategy.value,
            "result": {
                "success": result.success,
                "failed": result.failed,
                "skipped": result.skipped,
                "errors": result.errors,
                "dryRun": result.dry_run,
                "duplicatesFound": result.duplicates_found,
            },
            "timestamp": _utc_now().isoformat(),
        }
        if error:
            doc["error"] = error
        self.store.set(INGEST_LOGS_COLLECTION, result.upload_id, doc)
