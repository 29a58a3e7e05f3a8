"""
ProcessingRun model: one execution of the pipeline over a source with a frozen configuration.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .deidentification import DeidentificationConfig
from .filter_config import FilterConfig
from .mapping import MappingEntry


class RunStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_RUN_STATUSES


ACTIVE_RUN_STATUSES = frozenset({RunStatus.PENDING, RunStatus.PROCESSING})
TERMINAL_RUN_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED})


class OutputFormat(str, Enum):
    CONVERSATIONAL_JSONL = "conversational_jsonl"
    QA_PAIRS_JSONL = "qa_pairs_jsonl"
    RAW_JSON = "raw_json"

    @property
    def extension(self) -> str:
        return "json" if self is OutputFormat.RAW_JSON else "jsonl"

    @property
    def mime_type(self) -> str:
        return "application/json" if self is OutputFormat.RAW_JSON else "application/x-ndjson"


class PipelineConfig(BaseModel):
    """
    The three live configuration objects of a source.

    A deep copy of this model is frozen into every ProcessingRun as its
    configuration snapshot.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mappings: list[MappingEntry] = Field(default_factory=list)
    deidentification: DeidentificationConfig = Field(default_factory=DeidentificationConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)

    def snapshot(self) -> "PipelineConfig":
        return self.model_copy(deep=True)


class ProcessingRun(BaseModel):
    """
    One execution of filter -> map -> de-identify -> format over a source.

    Attributes:
        run_id: Identifier assigned by the store
        source_id: Source being processed
        status: pending -> processing -> completed | failed | cancelled
        output_format: Requested output encoding
        config_snapshot: Configuration frozen at start time
        processed_count: Records mapped and de-identified so far (monotonic)
        total_count: Records surviving the quality filter; fixed once filtering completes
        error_message: Captured failure reason for failed runs
        started_by: Who started the run
        started_at: Start time
        completed_at: When the run reached a terminal state
    """

    run_id: int | None = None
    source_id: str = Field(..., min_length=1)
    status: RunStatus = RunStatus.PENDING
    output_format: OutputFormat
    config_snapshot: PipelineConfig = Field(default_factory=PipelineConfig)
    processed_count: int = Field(0, ge=0)
    total_count: int | None = Field(None, ge=0)
    error_message: str | None = None
    started_by: str | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active
