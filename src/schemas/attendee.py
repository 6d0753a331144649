# src/schemas/attendee.py
"""
Attendee Schema for the matchmaking core.

An Attendee is the private record of a human registrant: contact details,
profile tags, consent flags, meeting preferences and import provenance.
Documents are persisted with camelCase field names (the interchange format
shared with existing stored data); Python code uses snake_case attributes.

Validation is lenient about shape and strict about meaning:
- list fields accept native lists or delimiter-joined strings
- consent flags accept boolean-like tokens and default to False
- a malformed availability block is dropped rather than rejected
"""

import json
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    ValidationInfo,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

ATTENDEE_ID_PREFIX = "a-"
DEFAULT_LIST_DELIMITER = "|"

TRUE_TOKENS = {"true", "t", "yes", "y", "1", "on", "x"}
FALSE_TOKENS = {"false", "f", "no", "n", "0", "off", ""}


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _new_attendee_id() -> str:
    return f"{ATTENDEE_ID_PREFIX}{uuid.uuid4()}"


def _delimiter(info: Optional[ValidationInfo]) -> str:
    if info is not None and info.context:
        return info.context.get("delimiter", DEFAULT_LIST_DELIMITER)
    return DEFAULT_LIST_DELIMITER


def split_list(value: Any, delimiter: str = DEFAULT_LIST_DELIMITER) -> List[str]:
    """
    Normalize a list-typed field.

    Accepts a native list or a single delimiter-joined string. Tokens are
    trimmed, empty tokens dropped and duplicates removed (first occurrence
    wins, so order is stable across re-imports).

    Example:
        >>> split_list(" Developer | Investor||Developer ")
        ['Developer', 'Investor']
    """
    if value is None:
        return []
    if isinstance(value, str):
        tokens = value.split(delimiter)
    elif isinstance(value, (list, tuple, set)):
        tokens = list(value)
    else:
        tokens = [value]

    result: List[str] = []
    for token in tokens:
        if token is None:
            continue
        cleaned = str(token).strip()
        if cleaned and cleaned not in result:
            result.append(cleaned)
    return result


def parse_bool_token(value: Any) -> bool:
    """Coerce a boolean-like token ('yes', 'TRUE', '1', '', ...) to bool."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value in (0, 1):
            return bool(value)
        raise ValueError(f"'{value}' is not a boolean-like value")
    token = str(value).strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    raise ValueError(f"'{value}' is not a boolean-like value")


class DocumentModel(BaseModel):
    """Base model for documents persisted with camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> dict:
        """Serialize to the persisted (camelCase, JSON-safe) shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, data: dict):
        """Rebuild a model from a persisted document."""
        return cls.model_validate(data)


# ============================================================================
# NESTED BLOCKS
# ============================================================================


class Consent(DocumentModel):
    """
    Independent consent flags.

    Nothing is implied: a flag absent from the incoming record is False.
    """

    marketing: bool = False
    matchmaking: bool = False
    show_public_card: bool = False

    @field_validator("marketing", "matchmaking", "show_public_card", mode="before")
    @classmethod
    def coerce_bool(cls, v: Any) -> bool:
        return parse_bool_token(v)


class Links(DocumentModel):
    website: Optional[str] = None
    linkedin: Optional[str] = None
    twitter: Optional[str] = None

    @field_validator("website", "linkedin", "twitter", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class AvailabilitySlot(DocumentModel):
    """A calendar day plus the slot tokens declared free on that day."""

    day: str = Field(description="ISO calendar day, e.g. '2025-09-15'")
    slots: List[str] = Field(default_factory=list)

    @field_validator("day", mode="before")
    @classmethod
    def validate_day(cls, v: Any) -> str:
        if isinstance(v, date):
            return v.isoformat()
        return date.fromisoformat(str(v).strip()).isoformat()

    @field_validator("slots", mode="before")
    @classmethod
    def normalize_slots(cls, v: Any, info: ValidationInfo) -> List[str]:
        return split_list(v, _delimiter(info))


_AVAILABILITY_ADAPTER = TypeAdapter(List[AvailabilitySlot])


class MeetingPreferences(DocumentModel):
    meeting_durations: List[int] = Field(default_factory=lambda: [15, 30])
    meeting_locations: List[str] = Field(default_factory=lambda: ["Expo Floor"])
    availability: Optional[List[AvailabilitySlot]] = None

    @field_validator("meeting_durations", mode="before")
    @classmethod
    def normalize_durations(cls, v: Any, info: ValidationInfo) -> List[int]:
        return [int(float(token)) for token in split_list(v, _delimiter(info))]

    @field_validator("meeting_locations", mode="before")
    @classmethod
    def normalize_locations(cls, v: Any, info: ValidationInfo) -> List[str]:
        return split_list(v, _delimiter(info))

    @field_validator("availability", mode="before")
    @classmethod
    def parse_availability(
        cls, v: Any, info: ValidationInfo
    ) -> Optional[List[AvailabilitySlot]]:
        """
        Parse availability, degrading to "fully available" on bad input.

        A string is decoded as JSON. Anything that does not decode, or does
        not have the {day, slots} shape, is dropped with a warning.
        """
        if v is None or v == "":
            return None
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except ValueError as e:
                logger.warning(f"Dropping unparseable availability block: {e}")
                return None
        if isinstance(v, dict):
            v = [v]
        try:
            return _AVAILABILITY_ADAPTER.validate_python(v, context=info.context)
        except PydanticValidationError as e:
            logger.warning(
                f"Dropping malformed availability block ({e.error_count()} errors)"
            )
            return None


class SourceInfo(DocumentModel):
    """Import provenance: upload batch, printed badge id, QR token."""

    imported_from: Optional[str] = None
    badge_id: Optional[str] = None
    qr: Optional[str] = None

    @field_validator("imported_from", "badge_id", "qr", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class ScanStats(DocumentModel):
    scans_given: int = Field(default=0, ge=0)
    scans_received: int = Field(default=0, ge=0)


# ============================================================================
# ATTENDEE
# ============================================================================


class Attendee(DocumentModel):
    """
    Private registrant record.

    Email is the primary dedup key and is stored stripped and lower-cased.
    """

    id: str = Field(default_factory=_new_attendee_id)
    email: EmailStr
    full_name: str = Field(min_length=1)
    org: str = ""
    title: str = ""

    role: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)
    needs: List[str] = Field(default_factory=list)
    platforms: List[str] = Field(default_factory=list)
    markets: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    bio: Optional[str] = None
    links: Links = Field(default_factory=Links)
    consent: Consent = Field(default_factory=Consent)
    preferences: MeetingPreferences = Field(default_factory=MeetingPreferences)
    source: SourceInfo = Field(default_factory=SourceInfo)
    scan_stats: ScanStats = Field(default_factory=ScanStats)

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    @field_validator("id", mode="before")
    @classmethod
    def prefix_id(cls, v: Any) -> str:
        v = str(v).strip()
        if not v:
            return _new_attendee_id()
        return v if v.startswith(ATTENDEE_ID_PREFIX) else f"{ATTENDEE_ID_PREFIX}{v}"

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("full_name", "org", "title", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator(
        "role",
        "interests",
        "capabilities",
        "needs",
        "platforms",
        "markets",
        "tags",
        mode="before",
    )
    @classmethod
    def normalize_list(cls, v: Any, info: ValidationInfo) -> List[str]:
        return split_list(v, _delimiter(info))

    @field_validator("bio", mode="before")
    @classmethod
    def blank_bio(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None
