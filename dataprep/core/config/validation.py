"""
Configuration validation against a source's column set.

Structural problems (wrong types, a custom rule without a pattern, a date
range ending before it starts) are caught by the pydantic models; the checks
here need the source's columns and therefore run at configuration time.
"""

from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from dataprep.core.errors import ValidationError
from dataprep.core.models.deidentification import DeidentificationConfig, RuleType
from dataprep.core.models.filter_config import FilterConfig
from dataprep.core.models.mapping import MappingEntry
from dataprep.core.models.processing_run import PipelineConfig
from dataprep.core.pii.detector import compile_pattern

M = TypeVar("M", bound=BaseModel)


def from_pydantic_error(exc: PydanticValidationError, message: str = "Invalid configuration") -> ValidationError:
    """Convert a pydantic validation failure into a ValidationError with per-field messages."""
    fields: dict[str, list[str]] = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "__root__"
        fields.setdefault(location, []).append(error["msg"])
    return ValidationError(message, fields=fields)


def parse_model(model: type[M], data: Any, message: str = "Invalid configuration") -> M:
    """
    Validate raw data into a model.

    Raises:
        ValidationError: If the data does not fit the model
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise from_pydantic_error(e, message) from e


def validate_mapping(entries: Sequence[MappingEntry], columns: Iterable[str]) -> None:
    """
    Every mapping must read an existing source column.

    Raises:
        ValidationError: Naming the first unknown column
    """
    known = set(columns)
    for index, entry in enumerate(entries):
        if entry.source_column not in known:
            raise ValidationError(
                f'Source column "{entry.source_column}" does not exist',
                fields={f"mappings.{index}.sourceColumn": ["Unknown source column"]},
            )


def validate_deidentification_config(config: DeidentificationConfig, columns: Iterable[str]) -> None:
    """
    Custom patterns must compile and scanned columns must exist.

    Raises:
        PatternError: If a custom rule's pattern is not a valid regex
        ValidationError: If a column to scan is unknown
    """
    for rule in config.rules:
        if rule.type == RuleType.CUSTOM and rule.pattern:
            compile_pattern(rule.pattern)

    known = set(columns)
    for column in config.columns_to_scan:
        if column not in known:
            raise ValidationError(
                f'Column "{column}" does not exist in source',
                fields={"columnsToScan": [f"Unknown column: {column}"]},
            )


def validate_filter_config(config: FilterConfig) -> None:
    # Bounds are checked when the model is built; re-run for configs built with model_construct
    if config.date_range is not None:
        parse_model(type(config.date_range), config.date_range.model_dump(), "Invalid date range")


def validate_pipeline_config(config: PipelineConfig, columns: Sequence[str]) -> None:
    """Run every column-dependent check on a full pipeline configuration."""
    validate_mapping(config.mappings, columns)
    validate_deidentification_config(config.deidentification, columns)
    validate_filter_config(config.filters)
