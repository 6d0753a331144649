"""
Badge-scanner payload decoders.

Scanner hardware from different vendors emits different shapes. Each
decoder recognizes exactly one shape and returns a canonical
ScannerReading, or None when the payload is not its shape. Decoders are
tried in priority order; the first match wins.

Supported shapes (priority order):
- canonical JSON:       {"badgeId": "...", "scannerId": "...", "location": "..."}
- lead-retrieval JSON:  {"lead": {"badge_number": ..., "device_id": ..., "booth": ...}}
                        or the same keys flat
- URL / query string:   https://scan.example/s?badge=B1&scanner=S1&loc=Hall+A
- delimited text:       B1|S1|Hall A   (also ';' or tab separated)
- bare badge token:     B1
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import parse_qs, urlparse

from src.exceptions import UnsupportedFormatError

logger = logging.getLogger(__name__)

Payload = Union[str, bytes, Dict[str, Any]]

BADGE_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-:.]{1,127}$")


@dataclass(frozen=True)
class ScannerReading:
    """Canonical result of decoding one scanner payload."""

    badge_id: str
    scanner_id: Optional[str] = None
    location: Optional[str] = None
    payload_format: str = "unknown"

    def to_context(self) -> Dict[str, Any]:
        context: Dict[str, Any] = {"source": "scanner", "format": self.payload_format}
        if self.scanner_id:
            context["scannerId"] = self.scanner_id
        if self.location:
            context["location"] = self.location
        return context


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first(data: Dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = _clean(data.get(key))
        if value:
            return value
    return None


def _as_json_object(payload: Payload) -> Optional[Dict[str, Any]]:
    if isinstance(payload, dict):
        return payload
    text = payload.strip()
    if not text.startswith("{"):
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


# ============================================================================
# DECODERS
# ============================================================================


class ScannerPayloadDecoder(ABC):
    """Recognizes and decodes one payload shape."""

    name: str = "base"

    @abstractmethod
    def decode(self, payload: Payload) -> Optional[ScannerReading]:
        """Return a reading, or None if the payload is not this shape."""
        pass


class CanonicalJsonDecoder(ScannerPayloadDecoder):
    name = "canonical_json"

    def decode(self, payload: Payload) -> Optional[ScannerReading]:
        data = _as_json_object(payload)
        if data is None:
            return None
        badge_id = _clean(data.get("badgeId"))
        if not badge_id:
            return None
        return ScannerReading(
            badge_id=badge_id,
            scanner_id=_clean(data.get("scannerId")),
            location=_clean(data.get("location")),
            payload_format=self.name,
        )


class LeadRetrievalJsonDecoder(ScannerPayloadDecoder):
    """Lead-retrieval app exports (snake_case keys, optionally under 'lead')."""

    name = "lead_retrieval_json"

    BADGE_KEYS = ("badge_number", "badge_id", "registration_id", "attendee_code")
    SCANNER_KEYS = ("device_id", "scanner_id", "exhibitor_id")
    LOCATION_KEYS = ("booth", "station", "location")

    def decode(self, payload: Payload) -> Optional[ScannerReading]:
        data = _as_json_object(payload)
        if data is None:
            return None
        lead = data.get("lead")
        if isinstance(lead, dict):
            data = {**data, **lead}
        badge_id = _first(data, self.BADGE_KEYS)
        if not badge_id:
            return None
        return ScannerReading(
            badge_id=badge_id,
            scanner_id=_first(data, self.SCANNER_KEYS),
            location=_first(data, self.LOCATION_KEYS),
            payload_format=self.name,
        )


class QueryStringDecoder(ScannerPayloadDecoder):
    """QR codes that encode a URL or bare query string."""

    name = "query_string"

    BADGE_KEYS = ("badge", "badge_id", "badgeId", "b")
    SCANNER_KEYS = ("scanner", "scanner_id", "scannerId", "sid")
    LOCATION_KEYS = ("loc", "location", "booth")

    def decode(self, payload: Payload) -> Optional[ScannerReading]:
        if isinstance(payload, dict):
            return None
        text = payload.strip()
        if "=" not in text:
            return None
        query = urlparse(text).query if "?" in text else text
        params = {k: v[0] for k, v in parse_qs(query).items() if v}
        badge_id = _first(params, self.BADGE_KEYS)
        if not badge_id:
            return None
        return ScannerReading(
            badge_id=badge_id,
            scanner_id=_first(params, self.SCANNER_KEYS),
            location=_first(params, self.LOCATION_KEYS),
            payload_format=self.name,
        )


class DelimitedTextDecoder(ScannerPayloadDecoder):
    """`badge|scanner|location` with '|', ';' or tab separators."""

    name = "delimited_text"

    SEPARATORS = ("|", ";", "\t")

    def decode(self, payload: Payload) -> Optional[ScannerReading]:
        if isinstance(payload, dict):
            return None
        text = payload.strip()
        for sep in self.SEPARATORS:
            if sep not in text:
                continue
            parts = [p.strip() for p in text.split(sep)]
            if not 2 <= len(parts) <= 3 or not BADGE_TOKEN_PATTERN.match(parts[0]):
                return None
            return ScannerReading(
                badge_id=parts[0],
                scanner_id=parts[1] or None,
                location=(parts[2] or None) if len(parts) > 2 else None,
                payload_format=self.name,
            )
        return None


class BareTokenDecoder(ScannerPayloadDecoder):
    name = "bare_token"

    def decode(self, payload: Payload) -> Optional[ScannerReading]:
        if isinstance(payload, dict):
            return None
        text = payload.strip()
        if not BADGE_TOKEN_PATTERN.match(text):
            return None
        return ScannerReading(badge_id=text, payload_format=self.name)


DEFAULT_DECODERS: List[ScannerPayloadDecoder] = [
    CanonicalJsonDecoder(),
    LeadRetrievalJsonDecoder(),
    QueryStringDecoder(),
    DelimitedTextDecoder(),
    BareTokenDecoder(),
]


def decode_scanner_payload(
    payload: Payload,
    decoders: Optional[Sequence[ScannerPayloadDecoder]] = None,
) -> ScannerReading:
    """
    Decode a scanner payload with the first matching decoder.

    Raises:
        UnsupportedFormatError: If no decoder recognizes the payload
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UnsupportedFormatError(f"Scanner payload is not UTF-8 text: {e}") from e
    if not isinstance(payload, (str, dict)):
        raise UnsupportedFormatError(
            f"Unsupported scanner payload type: {type(payload).__name__}"
        )

    for decoder in decoders or DEFAULT_DECODERS:
        reading = decoder.decode(payload)
        if reading is not None:
            logger.debug(f"Scanner payload decoded as {decoder.name}")
            return reading

    preview = str(payload)[:40]
    raise UnsupportedFormatError(f"Unrecognized scanner payload: {preview!r}")
