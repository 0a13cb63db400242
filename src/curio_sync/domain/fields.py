"""Typed values for the per-item metadata bag.

Items store their custom fields as a plain JSON mapping. At write boundaries
the mapping is validated against the owning collection's schema and turned
into an ordered mapping of tagged ``FieldValue`` objects.
"""

from collections import OrderedDict
from enum import Enum
from typing import Any, Dict, List, Mapping, Union

from pydantic import BaseModel, ConfigDict

from .models import FieldDefinition, FieldType
from .timestamps import parse_timestamp
from ..utils.logging import get_logger

logger = get_logger(__name__)

_TRUE_STRINGS = {"true", "yes", "y", "1", "on"}
_FALSE_STRINGS = {"false", "no", "n", "0", "off"}


class ValueKind(str, Enum):
    """Tag carried by every typed field value."""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    STRUCTURED = "structured"


class FieldValue(BaseModel):
    """A schema-checked field value."""
    model_config = ConfigDict(frozen=True)

    kind: ValueKind
    # Schema coercion never produces structured values.
    value: Union[bool, int, float, str, List[Any], Dict[str, Any]]


class FieldValidationError(ValueError):
    """Raised when an item field does not satisfy its definition."""

    def __init__(self, field_id: str, message: str):
        super().__init__(f"{field_id}: {message}")
        self.field_id = field_id


def _coerce_number(definition: FieldDefinition, raw: Any) -> Union[int, float]:
    if isinstance(raw, bool):
        raise FieldValidationError(definition.id, "expected a number, got a boolean")
    if isinstance(raw, (int, float)):
        number = raw
    elif isinstance(raw, str):
        try:
            number = float(raw.strip())
        except ValueError:
            raise FieldValidationError(definition.id, f"not a number: {raw!r}")
    else:
        raise FieldValidationError(definition.id, f"expected a number, got {type(raw).__name__}")

    if isinstance(number, float) and number.is_integer():
        number = int(number)
    if definition.type == FieldType.RATING and not 0 <= number <= 5:
        raise FieldValidationError(definition.id, "rating must be between 0 and 5")
    return number


def _coerce_boolean(definition: FieldDefinition, raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise FieldValidationError(definition.id, f"not a boolean: {raw!r}")


def coerce_field_value(definition: FieldDefinition, raw: Any) -> FieldValue:
    """Coerce a raw JSON value according to its field definition.

    Raises:
        FieldValidationError: If the value cannot represent the field type
    """
    field_type = definition.type

    if field_type in (FieldType.NUMBER, FieldType.RATING):
        return FieldValue(kind=ValueKind.NUMBER, value=_coerce_number(definition, raw))

    if field_type == FieldType.BOOLEAN:
        return FieldValue(kind=ValueKind.BOOLEAN, value=_coerce_boolean(definition, raw))

    if isinstance(raw, (dict, list, tuple, set)):
        raise FieldValidationError(definition.id, f"expected a scalar, got {type(raw).__name__}")

    text = raw if isinstance(raw, str) else str(raw)

    if field_type == FieldType.DATE:
        if parse_timestamp(text) is None:
            raise FieldValidationError(definition.id, f"not a date: {raw!r}")
        return FieldValue(kind=ValueKind.DATE, value=text.strip())

    if field_type == FieldType.SELECT:
        if definition.options and text not in definition.options:
            raise FieldValidationError(
                definition.id, f"{text!r} is not one of {definition.options}"
            )
        return FieldValue(kind=ValueKind.ENUM, value=text)

    return FieldValue(kind=ValueKind.TEXT, value=text)


def infer_field_value(raw: Any) -> FieldValue:
    """Tag a value that has no (valid) schema definition."""
    if isinstance(raw, bool):
        return FieldValue(kind=ValueKind.BOOLEAN, value=raw)
    if isinstance(raw, (int, float)):
        return FieldValue(kind=ValueKind.NUMBER, value=raw)
    if isinstance(raw, dict):
        return FieldValue(kind=ValueKind.STRUCTURED, value=dict(raw))
    if isinstance(raw, (list, tuple)):
        return FieldValue(kind=ValueKind.STRUCTURED, value=list(raw))
    return FieldValue(kind=ValueKind.TEXT, value=raw if isinstance(raw, str) else str(raw))


def _is_empty(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def validate_item_data(
    data: Mapping[str, Any],
    schema: List[FieldDefinition],
    strict: bool = True
) -> "OrderedDict[str, FieldValue]":
    """Validate an item's metadata bag against a collection schema.

    Schema fields come first in schema order, followed by any extra keys in
    their original order. Empty values are omitted.

    Args:
        data: Raw field-id -> value mapping
        schema: The owning collection's field definitions
        strict: Raise on invalid values instead of logging and keeping them

    Returns:
        Ordered mapping of field id to typed value

    Raises:
        FieldValidationError: In strict mode, on the first invalid or missing required field
    """
    typed: "OrderedDict[str, FieldValue]" = OrderedDict()
    definitions = {definition.id: definition for definition in schema}

    for definition in schema:
        raw = data.get(definition.id)
        if _is_empty(raw):
            if definition.required and strict:
                raise FieldValidationError(definition.id, "required field is missing")
            continue
        try:
            typed[definition.id] = coerce_field_value(definition, raw)
        except FieldValidationError as e:
            if strict:
                raise
            logger.warning("Keeping invalid field value", field_id=definition.id, error=str(e))
            typed[definition.id] = infer_field_value(raw)

    for field_id, raw in data.items():
        if field_id in definitions or _is_empty(raw):
            continue
        typed[field_id] = infer_field_value(raw)

    return typed


def dump_field_values(values: Mapping[str, FieldValue]) -> Dict[str, Any]:
    """Convert typed values back to the JSON mapping stored on items."""
    return {field_id: field_value.value for field_id, field_value in values.items()}
