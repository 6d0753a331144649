"""
Field Mapper for spreadsheet rows.

Maps raw upload rows (header -> cell) onto the attendee wire shape using a
source-column -> target-field mapping.
Supports:
- One level of dot-nesting in targets: "consent.matchmaking"
- Skipping blank cells so they never count as explicitly provided
- Mapping suggestions from header names when no mapping is supplied
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from src.configs.config import Config

logger = logging.getLogger(__name__)

EXACT_MATCH_CONFIDENCE = 100
PARTIAL_MATCH_CONFIDENCE = 80
KEYWORD_MATCH_CONFIDENCE = 60
UNKNOWN_CONFIDENCE = 20

# Minimum confidence for a suggestion to be used automatically
AUTO_MAPPING_THRESHOLD = 60

KEYWORD_HINTS = ("email", "name", "company", "title", "role", "interest", "badge", "consent")


def normalize_header(header: str) -> str:
    """
    Lower-case a header and replace non-alphanumerics with underscores.

    Example:
        >>> normalize_header(" E-mail Address ")
        'e_mail_address'
    """
    normalized = re.sub(r"[^a-z0-9]", "_", str(header).strip().lower())
    return normalized.strip("_")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class FieldMapper:
    """
    Maps raw upload rows to the nested attendee shape.

    Only mapped columns are carried over; unmapped columns are ignored.
    """

    def __init__(self, field_mappings: Dict[str, str]):
        """
        Initialize the field mapper.

        Args:
            field_mappings: Dict mapping source column names to target fields.
                Example: {"E-mail": "email", "Opt In": "consent.matchmaking"}
        """
        for source, target in field_mappings.items():
            if target.count(".") > 1:
                raise ValueError(
                    f"Target '{target}' for column '{source}' nests more than one level"
                )
        self.field_mappings = field_mappings

    def map_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply the mapping to one row.

        Args:
            row: Raw row dict keyed by spreadsheet header

        Returns:
            Dict with mapped (possibly nested) fields
        """
        mapped: Dict[str, Any] = {}

        for source, target in self.field_mappings.items():
            value = row.get(source)
            if _is_blank(value):
                continue
            if isinstance(value, str):
                value = value.strip()

            if "." in target:
                parent, child = target.split(".", 1)
                nested = mapped.setdefault(parent, {})
                if not isinstance(nested, dict):
                    logger.debug(f"Column '{source}' overrides scalar '{parent}'")
                    nested = {}
                    mapped[parent] = nested
                nested[child] = value
            else:
                mapped[target] = value

        return mapped


# ============================================================================
# COLUMN DETECTION & MAPPING SUGGESTIONS
# ============================================================================


@dataclass
class ColumnDetection:
    """What an upload column looks like and where it probably maps."""

    header: str
    suggested_field: str
    confidence: int
    data_type: str
    sample_values: List[str] = field(default_factory=list)
    unique_count: int = 0
    null_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _column_aliases(aliases: Optional[Dict[str, str]]) -> Dict[str, str]:
    if aliases is not None:
        return aliases
    return Config.load_ingestion_config().get("column_aliases", {})


def _contains_tokens(tokens: List[str], pattern: str) -> bool:
    wanted = pattern.split("_")
    width = len(wanted)
    return any(
        tokens[i : i + width] == wanted for i in range(len(tokens) - width + 1)
    )


def suggest_field(
    header: str, aliases: Optional[Dict[str, str]] = None
) -> Tuple[str, int]:
    """
    Suggest a target field and confidence for one header.

    Exact alias match first; otherwise the longest alias whose tokens appear
    as a contiguous run in the normalized header ("work_email" matches
    "email", but "id" does not match "badge_id").
    """
    aliases = _column_aliases(aliases)
    normalized = normalize_header(header)
    if not normalized:
        return normalized, UNKNOWN_CONFIDENCE

    if normalized in aliases:
        return aliases[normalized], EXACT_MATCH_CONFIDENCE

    tokens = [t for t in normalized.split("_") if t]
    partial = [pattern for pattern in aliases if _contains_tokens(tokens, pattern)]
    if partial:
        best = max(partial, key=len)
        return aliases[best], PARTIAL_MATCH_CONFIDENCE

    if any(hint in normalized for hint in KEYWORD_HINTS):
        return normalized, KEYWORD_MATCH_CONFIDENCE

    return normalized, UNKNOWN_CONFIDENCE


def _detect_data_type(values: List[Any]) -> str:
    if not values:
        return "string"
    texts = [str(v).strip() for v in values]

    if sum(1 for t in texts if "|" in t or ";" in t) > len(texts) * 0.3:
        return "array"

    def is_number(t: str) -> bool:
        try:
            float(t)
            return True
        except ValueError:
            return False

    if sum(1 for t in texts if is_number(t)) > len(texts) * 0.8:
        return "number"

    bool_tokens = {"true", "false", "yes", "no", "1", "0"}
    if sum(1 for t in texts if t.lower() in bool_tokens) > len(texts) * 0.8:
        return "boolean"

    return "string"


def detect_columns(
    rows: List[Dict[str, Any]], aliases: Optional[Dict[str, str]] = None
) -> List[ColumnDetection]:
    """Profile each column of the parsed rows (headers taken from the first row)."""
    if not rows:
        return []

    detections = []
    for header in rows[0].keys():
        values = [row.get(header) for row in rows if not _is_blank(row.get(header))]
        unique: List[str] = []
        for v in values:
            if str(v) not in unique:
                unique.append(str(v))
        suggested, confidence = suggest_field(header, aliases)
        detections.append(
            ColumnDetection(
                header=header,
                suggested_field=suggested,
                confidence=confidence,
                data_type=_detect_data_type(values),
                sample_values=unique[:5],
                unique_count=len(unique),
                null_count=len(rows) - len(values),
            )
        )
    return detections


def suggest_mapping(
    detections: Iterable[ColumnDetection],
    threshold: int = AUTO_MAPPING_THRESHOLD,
) -> Dict[str, str]:
    """
    Build a column mapping from detections above the confidence threshold.

    When two headers suggest the same target, the more confident one wins
    (first header on ties).
    """
    chosen: Dict[str, ColumnDetection] = {}
    for detection in detections:
        if detection.confidence < threshold:
            continue
        current = chosen.get(detection.suggested_field)
        if current is None or detection.confidence > current.confidence:
            chosen[detection.suggested_field] = detection

    return {d.header: target for target, d in chosen.items()}
