"""
Column-level value transformations applied by the field mapper.

Every transformation is a pure function value -> value. None passes through
all of them untouched.
"""

from collections.abc import Callable, Iterable
from typing import Any

from dataprep.core.dates import format_datetime, parse_datetime
from dataprep.core.models.mapping import (
    DateFormatTransformation,
    Transformation,
    TransformationType,
    ValueMapTransformation,
)


def stringify(value: Any) -> str:
    """
    Render a scalar the way it appears in a text export.

    Booleans become "true"/"false" and integral floats lose their ".0", so a
    value read from JSON stringifies the same as the same cell read from CSV.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _lowercase(value: Any, _: Transformation) -> Any:
    return stringify(value).lower()


def _uppercase(value: Any, _: Transformation) -> Any:
    return stringify(value).upper()


def _trim(value: Any, _: Transformation) -> Any:
    return stringify(value).strip()


def _date_format(value: Any, transformation: DateFormatTransformation) -> Any:
    parsed = parse_datetime(value)
    if parsed is None:
        return value
    return format_datetime(parsed, transformation.format or "YYYY-MM-DD")


def _value_map(value: Any, transformation: ValueMapTransformation) -> Any:
    if not transformation.value_map:
        return value
    mapped = transformation.value_map.get(stringify(value))
    return value if mapped is None else mapped


TRANSFORMATION_REGISTRY: dict[TransformationType, Callable[[Any, Any], Any]] = {
    TransformationType.LOWERCASE: _lowercase,
    TransformationType.UPPERCASE: _uppercase,
    TransformationType.TRIM: _trim,
    TransformationType.DATE_FORMAT: _date_format,
    TransformationType.VALUE_MAP: _value_map,
}


def apply_transformation(value: Any, transformation: Transformation) -> Any:
    """
    Apply a single transformation.

    Args:
        value: Input value
        transformation: Transformation variant

    Returns:
        Transformed value (None stays None)
    """
    if value is None:
        return None
    handler = TRANSFORMATION_REGISTRY[TransformationType(transformation.type)]
    return handler(value, transformation)


def apply_transformations(value: Any, transformations: Iterable[Transformation]) -> Any:
    """Pipe a value through transformations in list order."""
    for transformation in transformations:
        value = apply_transformation(value, transformation)
    return value
