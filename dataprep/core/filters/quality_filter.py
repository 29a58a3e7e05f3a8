"""
Quality filter for source records.

Rules run in a fixed order, each narrowing the candidate set left by the
previous one. Exclusion counts are therefore sequential deltas: a record
removed by an earlier rule is never counted against a later one.
"""

import math
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel, Field

from dataprep.core.dates import parse_datetime
from dataprep.core.models.filter_config import FilterConfig
from dataprep.core.models.record import SourceRecord


CONVERSATION_KEY_FIELDS = ("conversation_id", "ticket_id", "thread_id")
CONTENT_FIELDS = ("content", "body", "message", "text", "description")
STATUS_FIELDS = ("status", "state", "ticket_status")
DATE_FIELDS = ("date", "created_at", "timestamp", "created", "datetime")
CATEGORY_FIELDS = ("category", "type", "ticket_type")

HIGH_EXCLUSION_THRESHOLD = 0.9


class FilterWarning(BaseModel):
    code: str
    message: str


class ProgressiveCount(BaseModel):
    rule: str
    remaining: int


class FilterBreakdown(BaseModel):
    by_rule: dict[str, int] = Field(default_factory=dict)
    progressive_counts: list[ProgressiveCount] = Field(default_factory=list)


class FilterSummary(BaseModel):
    """
    Sequential accounting of a filter configuration over a record set.

    Attributes:
        total_count: Records before filtering
        filtered_count: Records surviving every rule
        excluded_count: total_count - filtered_count
        filter_breakdown: Per-rule exclusions and remaining counts after each rule
        warnings: NO_RECORDS_MATCH / HIGH_EXCLUSION_RATE advisories
    """

    total_count: int
    filtered_count: int
    excluded_count: int
    filter_breakdown: FilterBreakdown = Field(default_factory=FilterBreakdown)
    warnings: list[FilterWarning] = Field(default_factory=list)


def _fields(record) -> Mapping[str, Any]:
    return record.data if isinstance(record, SourceRecord) else record


def _first_string(record, candidates: Sequence[str]) -> str | None:
    fields = _fields(record)
    for name in candidates:
        value = fields.get(name)
        if isinstance(value, str):
            return value
    return None


def _conversation_key(record) -> str | None:
    fields = _fields(record)
    for name in CONVERSATION_KEY_FIELDS:
        value = fields.get(name)
        if value is not None and value != "":
            return str(value)
    return None


# =======================
# RULE STEPS
# =======================

def _min_conversation_length(records: list, config: FilterConfig) -> list:
    sizes = Counter(key for key in map(_conversation_key, records) if key is not None)
    threshold = config.min_conversation_length

    def keep(record) -> bool:
        key = _conversation_key(record)
        return key is None or sizes[key] >= threshold

    return [r for r in records if keep(r)]


def _min_content_length(records: list, config: FilterConfig) -> list:
    def keep(record) -> bool:
        content = _first_string(record, CONTENT_FIELDS)
        return content is None or len(content) >= config.min_content_length

    return [r for r in records if keep(r)]


def _status_include(records: list, config: FilterConfig) -> list:
    allowed = {s.lower() for s in config.status_include}

    def keep(record) -> bool:
        status = _first_string(record, STATUS_FIELDS)
        return status is None or status.lower() in allowed

    return [r for r in records if keep(r)]


def _status_exclude(records: list, config: FilterConfig) -> list:
    denied = {s.lower() for s in config.status_exclude}

    def keep(record) -> bool:
        status = _first_string(record, STATUS_FIELDS)
        return status is None or status.lower() not in denied

    return [r for r in records if keep(r)]


def _date_range(records: list, config: FilterConfig) -> list:
    start = config.date_range.start_datetime
    end = config.date_range.end_datetime

    def keep(record) -> bool:
        fields = _fields(record)
        for name in DATE_FIELDS:
            value = fields.get(name)
            if not value:
                continue
            parsed = parse_datetime(value)
            if parsed is None:
                continue
            if start and parsed < start:
                return False
            if end and parsed > end:
                return False
            return True
        return True

    return [r for r in records if keep(r)]


def _category_include(records: list, config: FilterConfig) -> list:
    allowed = {c.lower() for c in config.category_include}

    def keep(record) -> bool:
        category = _first_string(record, CATEGORY_FIELDS)
        return category is None or category.lower() in allowed

    return [r for r in records if keep(r)]


# (reported rule name, is-configured check, step) in application order
FILTER_STEPS: list[tuple[str, Callable[[FilterConfig], bool], Callable[[list, FilterConfig], list]]] = [
    ("minConversationLength", lambda c: bool(c.min_conversation_length), _min_conversation_length),
    ("minContentLength", lambda c: bool(c.min_content_length), _min_content_length),
    ("status", lambda c: bool(c.status_include), _status_include),
    ("statusExclude", lambda c: bool(c.status_exclude), _status_exclude),
    ("dateRange", lambda c: c.date_range is not None and c.date_range.is_bounded, _date_range),
    ("category", lambda c: bool(c.category_include), _category_include),
]


def _run_steps(records: list, config: FilterConfig, on_step: Callable[[str, int, int], None] | None = None) -> list:
    remaining = records
    for rule, is_configured, step in FILTER_STEPS:
        if not is_configured(config):
            continue
        before = len(remaining)
        remaining = step(remaining, config)
        if on_step:
            on_step(rule, before, len(remaining))
    return remaining


def apply_filters(records: Iterable, filter_config: FilterConfig | None) -> list:
    """
    Return the records passing every configured rule, in input order.

    Records lacking the field a rule inspects pass that rule.

    Args:
        records: SourceRecords or plain field mappings
        filter_config: Filter configuration; None means no filtering

    Returns:
        Surviving records
    """
    records = list(records)
    if filter_config is None:
        return records
    return _run_steps(records, filter_config)


def filter_with_summary(records: Iterable, filter_config: FilterConfig | None) -> tuple[list, FilterSummary]:
    """
    Apply the filter and report sequential per-rule exclusion counts.

    Args:
        records: SourceRecords or plain field mappings
        filter_config: Filter configuration; None means no filtering

    Returns:
        Tuple of (surviving records, FilterSummary)
    """
    records = list(records)
    total = len(records)
    breakdown = FilterBreakdown()

    def record_step(rule: str, before: int, after: int) -> None:
        breakdown.by_rule[rule] = before - after
        breakdown.progressive_counts.append(ProgressiveCount(rule=rule, remaining=after))

    remaining = _run_steps(records, filter_config or FilterConfig(), record_step)
    filtered = len(remaining)
    excluded = total - filtered

    warnings: list[FilterWarning] = []
    if filtered == 0:
        warnings.append(FilterWarning(code="NO_RECORDS_MATCH", message="No records match current filter criteria."))
    elif excluded / total > HIGH_EXCLUSION_THRESHOLD:
        percent = math.floor(excluded / total * 100 + 0.5)
        warnings.append(
            FilterWarning(
                code="HIGH_EXCLUSION_RATE",
                message=f"Filters exclude {percent}% of records. Consider adjusting criteria.",
            )
        )

    summary = FilterSummary(
        total_count=total,
        filtered_count=filtered,
        excluded_count=excluded,
        filter_breakdown=breakdown,
        warnings=warnings,
    )
    return remaining, summary


def get_filter_summary(records: Iterable, filter_config: FilterConfig | None) -> FilterSummary:
    """Summary-only form of filter_with_summary, used for previews."""
    _, summary = filter_with_summary(records, filter_config)
    return summary
