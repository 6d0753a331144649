"""
Schema validation for raw attendee records.

Thin boundary around the pydantic Attendee model: callers get either a
typed Attendee or a single ValidationError naming the offending wire field.
"""

from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from src.exceptions import ValidationError
from src.schemas.attendee import DEFAULT_LIST_DELIMITER, Attendee


def _field_path(loc: tuple) -> str:
    """Turn a pydantic error location into a dotted wire path."""
    return ".".join(str(part) for part in loc if not isinstance(part, int))


def validate_attendee(
    raw: Dict[str, Any], delimiter: str = DEFAULT_LIST_DELIMITER
) -> Attendee:
    """
    Validate and coerce a raw record into an Attendee.

    Args:
        raw: Raw key/value record (camelCase keys, possibly nested one level)
        delimiter: Separator for list fields given as a single string

    Returns:
        Validated Attendee

    Raises:
        ValidationError: With `field` set to the first offending wire path
    """
    try:
        return Attendee.model_validate(raw, context={"delimiter": delimiter})
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = _field_path(first.get("loc", ())) or None
        raise ValidationError(first.get("msg", "invalid value"), field=field) from e
