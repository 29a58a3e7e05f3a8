"""
Transform pipeline: filter -> map -> de-identify -> format.

Pure with respect to storage: it receives rows and a configuration snapshot
and returns serialized output. The orchestrator owns persistence.
"""

import os
from collections import Counter
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, Field

from dataprep.core.filters import FilterSummary, filter_with_summary
from dataprep.core.mapping import map_record
from dataprep.core.models import OutputFormat, PipelineConfig, SourceRecord
from dataprep.core.output import FormattedOutput, format_records, parse_output
from dataprep.core.output.formatter import resolve_format
from dataprep.core.pii import deidentify_record
from dataprep.observability.logger import get_logger

from .cancellation import CancellationToken

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 100

ProgressCallback = Callable[[int, int], None]


def default_batch_size() -> int:
    return int(os.getenv("PROCESSING_BATCH_SIZE", str(DEFAULT_BATCH_SIZE)))


class PipelineResult(BaseModel):
    """
    Outcome of one full pipeline pass.

    Attributes:
        output: Serialized output and its unit count
        total_count: Records surviving the quality filter
        processed_count: Records mapped and de-identified
        filter_summary: Sequential per-rule filter accounting
        replacement_counts: Replaced spans per entity type
    """

    output: FormattedOutput
    total_count: int
    processed_count: int
    filter_summary: FilterSummary
    replacement_counts: dict[str, int] = Field(default_factory=dict)


class OutputPreview(BaseModel):
    format: OutputFormat
    preview: list[Any]
    record_count: int


class TransformPipeline:
    """
    Runs the transformation steps over records with a frozen configuration.

    De-identification scans every mapped field, since only mapped fields
    reach the output.
    """

    def __init__(self, config: PipelineConfig, batch_size: int | None = None):
        self.config = config
        self.batch_size = batch_size or default_batch_size()
        self.rules = [rule for rule in config.deidentification.rules if rule.enabled]

    def transform_record(self, record: SourceRecord, replacement_counts: Counter | None = None) -> dict[str, Any]:
        """Map one record and de-identify the mapped fields."""
        mapped = map_record(record.data, self.config.mappings)
        if not self.rules:
            return mapped

        result = deidentify_record(mapped, list(mapped.keys()), self.rules)
        if replacement_counts is not None:
            replacement_counts.update(highlight.type for highlight in result.pii_highlights)
        return result.deidentified

    def run(
        self,
        records: Sequence[SourceRecord],
        output_format: OutputFormat | str,
        token: CancellationToken | None = None,
        on_filtered: Callable[[int], None] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """
        Execute filter -> map -> de-identify -> format.

        Args:
            records: Source rows ordered by row_index
            output_format: Target encoding
            token: Checked before every batch; cancellation raises RunCancelled
            on_filtered: Called once with the post-filter record count
            on_progress: Called with (processed, total) after every batch

        Returns:
            PipelineResult
        """
        fmt = resolve_format(output_format)

        if token:
            token.raise_if_cancelled()
        kept, summary = filter_with_summary(records, self.config.filters)
        total = len(kept)
        if on_filtered:
            on_filtered(total)

        logger.info(
            "Quality filter applied",
            extra={
                "total_count": summary.total_count,
                "filtered_count": summary.filtered_count,
                "excluded_count": summary.excluded_count,
            },
        )

        outputs: list[dict[str, Any]] = []
        replacement_counts: Counter = Counter()
        for offset in range(0, total, self.batch_size):
            if token:
                token.raise_if_cancelled()
            for record in kept[offset : offset + self.batch_size]:
                outputs.append(self.transform_record(record, replacement_counts))
            if on_progress:
                on_progress(len(outputs), total)

        if token:
            token.raise_if_cancelled()
        output = format_records(outputs, fmt)

        return PipelineResult(
            output=output,
            total_count=total,
            processed_count=len(outputs),
            filter_summary=summary,
            replacement_counts=dict(replacement_counts),
        )


def preview_output(
    records: Sequence[SourceRecord],
    config: PipelineConfig,
    output_format: OutputFormat | str,
    limit: int = 5,
) -> OutputPreview:
    """
    Preview the output of a configuration on a sample.

    Reads at most 2 * limit rows, keeps the first `limit` surviving the
    filter, and returns the formatted units.
    """
    fmt = resolve_format(output_format)
    sample = list(records[: limit * 2])
    kept, _ = filter_with_summary(sample, config.filters)

    pipeline = TransformPipeline(config)
    transformed = [pipeline.transform_record(record) for record in kept[:limit]]
    output = format_records(transformed, fmt)

    return OutputPreview(
        format=fmt,
        preview=parse_output(output.content, fmt, limit),
        record_count=output.record_count,
    )
