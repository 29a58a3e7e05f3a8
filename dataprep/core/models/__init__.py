"""
Core data models for the training-data preparation pipeline.

All models use Pydantic for runtime validation and accept the camelCase
shape used at the web boundary as well as snake_case.
"""

from .audit_log import AuditEvent
from .deidentification import (
    DEFAULT_DEIDENTIFICATION_RULES,
    DeidentificationConfig,
    DeidentificationRule,
    RuleType,
    default_deidentification_config,
)
from .filter_config import DateRange, FilterConfig
from .mapping import (
    DateFormatTransformation,
    LowercaseTransformation,
    MappingEntry,
    TrimTransformation,
    Transformation,
    TransformationType,
    UppercaseTransformation,
    ValueMapTransformation,
)
from .output_artifact import OutputArtifact
from .processing_run import (
    ACTIVE_RUN_STATUSES,
    TERMINAL_RUN_STATUSES,
    OutputFormat,
    PipelineConfig,
    ProcessingRun,
    RunStatus,
)
from .record import DataSource, SourceRecord

__all__ = [
    "SourceRecord",
    "DataSource",
    "MappingEntry",
    "Transformation",
    "TransformationType",
    "LowercaseTransformation",
    "UppercaseTransformation",
    "TrimTransformation",
    "DateFormatTransformation",
    "ValueMapTransformation",
    "RuleType",
    "DeidentificationRule",
    "DeidentificationConfig",
    "DEFAULT_DEIDENTIFICATION_RULES",
    "default_deidentification_config",
    "DateRange",
    "FilterConfig",
    "OutputFormat",
    "RunStatus",
    "ACTIVE_RUN_STATUSES",
    "TERMINAL_RUN_STATUSES",
    "PipelineConfig",
    "ProcessingRun",
    "OutputArtifact",
    "AuditEvent",
]
