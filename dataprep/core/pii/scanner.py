"""
Source-level PII scanning, custom pattern dry runs and de-identification previews.

None of these functions mutate configuration; they read records and report.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from itertools import islice

from pydantic import BaseModel, Field

from dataprep.core.errors import PatternError
from dataprep.core.models.deidentification import DeidentificationConfig, DeidentificationRule, RuleType
from dataprep.core.models.record import SourceRecord
from dataprep.observability.logger import get_logger

from .detector import compile_pattern, detect, detect_custom_pattern
from .patterns import EntityType
from .replacer import RecordDeidentification, apply_deidentification, compile_rule_pattern, deidentify_record

logger = get_logger(__name__)

MAX_SAMPLES_PER_TYPE = 10
MAX_PATTERN_TEST_MATCHES = 10
DEFAULT_PATTERN_TEST_ROWS = 1000


class PiiSample(BaseModel):
    type: str
    column: str
    original_value: str
    row_index: int


class PiiScanResult(BaseModel):
    """
    Aggregate PII findings over a set of records.

    Attributes:
        summary: Entity type (including "custom") to number of detections
        by_column: Column to per-type detection counts
        samples: Up to ten example detections per type
        total_pii_instances: Sum of summary
        records_with_pii: Records with at least one detection
        percentage_of_records: records_with_pii as a percentage of scanned records
        scanned_at: When the scan ran
    """

    summary: dict[str, int]
    by_column: dict[str, dict[str, int]] = Field(default_factory=dict)
    samples: list[PiiSample] = Field(default_factory=list)
    total_pii_instances: int = 0
    records_with_pii: int = 0
    percentage_of_records: float = 0.0
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PatternTestMatch(BaseModel):
    row_index: int
    column: str
    original: str
    replaced: str


class PatternTestResult(BaseModel):
    valid: bool
    error: str | None = None
    matches: list[PatternTestMatch] = Field(default_factory=list)
    match_count: int = 0


class DeidentificationPreviewRow(RecordDeidentification):
    row_index: int


def _string_cells(records: Iterable[SourceRecord], columns: Sequence[str]):
    for record in records:
        for column in columns:
            value = record.get(column)
            if value and isinstance(value, str):
                yield record, column, value


def scan_for_pii(
    records: Iterable[SourceRecord],
    columns_to_scan: Sequence[str],
    rules: Iterable[DeidentificationRule] = (),
) -> PiiScanResult:
    """
    Count built-in detections and enabled custom-rule matches per type and column.

    Built-in types are always scanned regardless of rule state, so the report
    shows what the source contains rather than what the rules would remove.
    Invalid custom patterns are skipped.

    Args:
        records: Records to scan
        columns_to_scan: Columns inspected in each record
        rules: Rule set; only enabled custom rules contribute

    Returns:
        PiiScanResult
    """
    records = list(records)
    custom_patterns = []
    for rule in rules:
        if rule.enabled and rule.type == RuleType.CUSTOM and rule.pattern:
            regex = compile_rule_pattern(rule.pattern)
            if regex is not None:
                custom_patterns.append(regex)

    summary = {entity_type.value: 0 for entity_type in EntityType}
    summary[RuleType.CUSTOM.value] = 0
    by_column: dict[str, dict[str, int]] = {}
    samples: list[PiiSample] = []
    sample_counts: dict[str, int] = {}
    rows_with_pii: set[int] = set()

    def add_sample(entity_type: str, column: str, value: str, row_index: int) -> None:
        if sample_counts.get(entity_type, 0) < MAX_SAMPLES_PER_TYPE:
            samples.append(PiiSample(type=entity_type, column=column, original_value=value, row_index=row_index))
            sample_counts[entity_type] = sample_counts.get(entity_type, 0) + 1

    for record, column, value in _string_cells(records, columns_to_scan):
        column_counts = by_column.setdefault(column, {})
        detection = detect(value)

        for entity_type, count in detection.counts.items():
            if count <= 0:
                continue
            summary[entity_type] += count
            column_counts[entity_type] = column_counts.get(entity_type, 0) + count
            rows_with_pii.add(record.row_index)
            first = next(m for m in detection.matches if m.type == entity_type)
            add_sample(entity_type, column, first.value, record.row_index)

        for regex in custom_patterns:
            found = detect_custom_pattern(value, regex)
            if not found:
                continue
            summary[RuleType.CUSTOM.value] += len(found)
            column_counts[RuleType.CUSTOM.value] = column_counts.get(RuleType.CUSTOM.value, 0) + len(found)
            rows_with_pii.add(record.row_index)
            add_sample(RuleType.CUSTOM.value, column, found[0].value, record.row_index)

    total = sum(summary.values())
    percentage = round(len(rows_with_pii) / len(records) * 100, 1) if records else 0.0

    logger.info(
        "PII scan complete",
        extra={
            "records_scanned": len(records),
            "total_pii_instances": total,
            "records_with_pii": len(rows_with_pii),
        },
    )

    return PiiScanResult(
        summary=summary,
        by_column=by_column,
        samples=samples,
        total_pii_instances=total,
        records_with_pii=len(rows_with_pii),
        percentage_of_records=percentage,
    )


def test_custom_pattern(
    records: Iterable[SourceRecord],
    columns_to_scan: Sequence[str],
    pattern: str,
    replacement: str,
    sample_limit: int = DEFAULT_PATTERN_TEST_ROWS,
) -> PatternTestResult:
    """
    Dry-run a custom pattern over the first sample_limit records.

    An invalid pattern is reported in the result rather than raised.

    Returns:
        PatternTestResult with the total match count and up to ten example rows
    """
    try:
        regex = compile_pattern(pattern)
    except PatternError as e:
        return PatternTestResult(valid=False, error=f"Invalid regex: {e.reason}")

    rule = DeidentificationRule(id="pattern-test", type=RuleType.CUSTOM, pattern=pattern, replacement=replacement)
    matches: list[PatternTestMatch] = []
    match_count = 0

    for record, column, value in _string_cells(islice(records, sample_limit), columns_to_scan):
        found = detect_custom_pattern(value, regex)
        match_count += len(found)
        if found and len(matches) < MAX_PATTERN_TEST_MATCHES:
            matches.append(
                PatternTestMatch(
                    row_index=record.row_index,
                    column=column,
                    original=value,
                    replaced=apply_deidentification(value, [rule]).replaced,
                )
            )

    return PatternTestResult(valid=True, matches=matches, match_count=match_count)


# Not a pytest test despite the name
test_custom_pattern.__test__ = False


def preview_deidentification(
    records: Iterable[SourceRecord],
    config: DeidentificationConfig,
    limit: int = 10,
) -> list[DeidentificationPreviewRow]:
    """De-identify the first `limit` records with the given configuration."""
    preview: list[DeidentificationPreviewRow] = []
    for record in records:
        if len(preview) >= limit:
            break
        result = deidentify_record(record.data, config.columns_to_scan, config.rules)
        preview.append(DeidentificationPreviewRow(row_index=record.row_index, **result.model_dump()))
    return preview
