"""
De-identification engine.

Applies enabled rules to a text or a record, substituting detected spans with
their rule's replacement template. Name templates containing the ``_N``
placeholder receive a per-distinct-name counter so that one person keeps the
same pseudonym throughout a single call.
"""

import re
from collections.abc import Iterable, Mapping
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field

from dataprep.core.errors import PatternError
from dataprep.core.models.deidentification import DeidentificationRule, RuleType
from dataprep.observability.logger import get_logger
from dataprep.observability.metrics import custom_patterns_skipped_total, increment_counter

from .detector import PiiMatch, compile_pattern, detect, detect_custom_pattern

logger = get_logger(__name__)

NAME_COUNTER_PLACEHOLDER = "_N"


class Replacement(BaseModel):
    """One substituted span; offsets refer to the original text."""

    type: str
    original: str
    replacement: str
    start: int
    end: int
    rule_id: str | None = None


class ReplacementResult(BaseModel):
    original: str
    replaced: str
    replacements: list[Replacement] = Field(default_factory=list)


class PiiHighlight(BaseModel):
    type: str
    start: int
    end: int
    column: str


class RecordDeidentification(BaseModel):
    """
    Result of de-identifying one record.

    Attributes:
        original: The input record (never modified)
        deidentified: Copy of the record with scanned string fields replaced
        pii_highlights: Replaced spans, offsets into the original column value
    """

    original: dict[str, Any]
    deidentified: dict[str, Any]
    pii_highlights: list[PiiHighlight] = Field(default_factory=list)


class NameCounter:
    """
    Pseudonym numbering scoped to one de-identification call.

    Keys are lower-cased names; numbers start at 1 in first-seen order.
    """

    def __init__(self):
        self._numbers: dict[str, int] = {}

    def number_for(self, name: str) -> int:
        key = name.lower()
        if key not in self._numbers:
            self._numbers[key] = len(self._numbers) + 1
        return self._numbers[key]

    def render(self, template: str, name: str) -> str:
        if NAME_COUNTER_PLACEHOLDER not in template:
            return template
        return template.replace(NAME_COUNTER_PLACEHOLDER, f"_{self.number_for(name)}", 1)


@lru_cache(maxsize=256)
def _compile_cached(pattern: str) -> re.Pattern | None:
    # The warning is logged once per distinct pattern, not once per text
    try:
        return compile_pattern(pattern)
    except PatternError as e:
        logger.warning(
            "Skipping invalid custom pattern",
            extra={"pattern": pattern, "reason": e.reason},
        )
        return None


def compile_rule_pattern(pattern: str) -> re.Pattern | None:
    """Compile a custom rule pattern, counting every skip of an invalid one."""
    regex = _compile_cached(pattern)
    if regex is None:
        increment_counter(custom_patterns_skipped_total)
    return regex


class _Candidate:
    __slots__ = ("type", "value", "start", "end", "replacement", "rule_id")

    def __init__(self, type: str, value: str, start: int, end: int, replacement: str, rule_id: str):
        self.type = type
        self.value = value
        self.start = start
        self.end = end
        self.replacement = replacement
        self.rule_id = rule_id

    def overlaps(self, other: "_Candidate") -> bool:
        return self.start < other.end and self.end > other.start


def _collect_candidates(text: str, rules: list[DeidentificationRule]) -> list[_Candidate]:
    counter = NameCounter()
    detected: list[PiiMatch] | None = None
    candidates: list[_Candidate] = []

    for rule in rules:
        if rule.type == RuleType.CUSTOM:
            regex = compile_rule_pattern(rule.pattern) if rule.pattern else None
            if regex is None:
                continue
            for match in detect_custom_pattern(text, regex):
                candidates.append(
                    _Candidate(RuleType.CUSTOM.value, match.value, match.start, match.end, rule.replacement, rule.id)
                )
            continue

        if detected is None:
            detected = detect(text).matches

        for match in detected:
            if match.type != rule.type.value:
                continue
            replacement = rule.replacement
            if rule.type == RuleType.NAME:
                replacement = counter.render(replacement, match.value)
            candidates.append(_Candidate(match.type, match.value, match.start, match.end, replacement, rule.id))

    return candidates


def apply_deidentification(text: str, rules: Iterable[DeidentificationRule]) -> ReplacementResult:
    """
    Replace every span matched by an enabled rule.

    Candidates from all rules are pooled and ordered by start offset
    descending; among overlapping candidates the first one encountered in
    that order is kept. Replacements are spliced in right to left so earlier
    offsets stay valid.

    Args:
        text: Text to de-identify
        rules: Rules in priority order; disabled rules are ignored

    Returns:
        ReplacementResult with replacements listed in ascending offset order
    """
    if not text or not isinstance(text, str):
        return ReplacementResult(original=text or "", replaced=text or "", replacements=[])

    active = [rule for rule in rules if rule.enabled]
    if not active:
        return ReplacementResult(original=text, replaced=text, replacements=[])

    candidates = sorted(_collect_candidates(text, active), key=lambda c: c.start, reverse=True)

    kept: list[_Candidate] = []
    for candidate in candidates:
        if not any(candidate.overlaps(existing) for existing in kept):
            kept.append(candidate)

    replaced = text
    replacements: list[Replacement] = []
    for candidate in kept:
        replaced = replaced[: candidate.start] + candidate.replacement + replaced[candidate.end :]
        replacements.append(
            Replacement(
                type=candidate.type,
                original=candidate.value,
                replacement=candidate.replacement,
                start=candidate.start,
                end=candidate.end,
                rule_id=candidate.rule_id,
            )
        )
    replacements.reverse()

    return ReplacementResult(original=text, replaced=replaced, replacements=replacements)


def deidentify_record(
    record: Mapping[str, Any],
    columns_to_scan: Iterable[str],
    rules: Iterable[DeidentificationRule],
) -> RecordDeidentification:
    """
    De-identify the string fields of a record listed in columns_to_scan.

    Non-string, empty and absent fields are copied untouched. Each column is
    an independent call, so pseudonym numbering restarts per column.
    """
    rules = list(rules)
    original = dict(record)
    deidentified = dict(record)
    highlights: list[PiiHighlight] = []

    for column in columns_to_scan:
        value = original.get(column)
        if not value or not isinstance(value, str):
            continue

        result = apply_deidentification(value, rules)
        deidentified[column] = result.replaced
        highlights.extend(
            PiiHighlight(type=r.type, start=r.start, end=r.end, column=column) for r in result.replacements
        )

    return RecordDeidentification(original=original, deidentified=deidentified, pii_highlights=highlights)
