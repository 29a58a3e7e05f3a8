"""
Pattern-based entity detection.

Scans free text for PII-like spans and resolves overlaps so that every
returned match covers a distinct region of the input.
"""

import re
from collections.abc import Iterator

from pydantic import BaseModel, Field

from dataprep.core.errors import PatternError

from .patterns import (
    ADDRESS_PATTERNS,
    COMPANY_PREFIX_PATTERN,
    COMPANY_SUFFIX_PATTERN,
    EMAIL_PATTERN,
    MIN_PHONE_DIGITS,
    NAME_FOLLOWER_PATTERN,
    NAME_INDICATORS,
    PHONE_PATTERN,
    EntityType,
)


class PiiMatch(BaseModel):
    """A detected span; ``text[start:end] == value``."""

    type: str
    value: str
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)

    def overlaps(self, other: "PiiMatch") -> bool:
        return self.start < other.end and self.end > other.start


class CustomMatch(BaseModel):
    value: str
    start: int
    end: int


class DetectionResult(BaseModel):
    matches: list[PiiMatch] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=dict)


def _detect_emails(text: str) -> Iterator[PiiMatch]:
    for m in EMAIL_PATTERN.finditer(text):
        yield PiiMatch(type=EntityType.EMAIL.value, value=m.group(0), start=m.start(), end=m.end())


def _detect_phones(text: str) -> Iterator[PiiMatch]:
    for m in PHONE_PATTERN.finditer(text):
        digits = re.sub(r"\D", "", m.group(0))
        if len(digits) >= MIN_PHONE_DIGITS:
            yield PiiMatch(type=EntityType.PHONE.value, value=m.group(0), start=m.start(), end=m.end())


def _detect_names(text: str) -> Iterator[PiiMatch]:
    for indicator in NAME_INDICATORS:
        for m in indicator.finditer(text):
            name = NAME_FOLLOWER_PATTERN.match(text, m.end())
            if name:
                yield PiiMatch(type=EntityType.NAME.value, value=name.group(0), start=name.start(), end=name.end())


def _detect_addresses(text: str) -> Iterator[PiiMatch]:
    for pattern in ADDRESS_PATTERNS:
        for m in pattern.finditer(text):
            yield PiiMatch(type=EntityType.ADDRESS.value, value=m.group(0), start=m.start(), end=m.end())


def _detect_companies(text: str) -> Iterator[PiiMatch]:
    for m in COMPANY_SUFFIX_PATTERN.finditer(text):
        prefix = COMPANY_PREFIX_PATTERN.search(text, 0, m.start())
        if prefix:
            start = prefix.start(1)
            yield PiiMatch(type=EntityType.COMPANY.value, value=text[start:m.end()], start=start, end=m.end())


# Detection order doubles as the tie-break for matches starting at the same offset
_DETECTORS = [
    _detect_emails,
    _detect_phones,
    _detect_names,
    _detect_addresses,
    _detect_companies,
]


def resolve_overlaps(matches: list[PiiMatch]) -> list[PiiMatch]:
    """
    Keep the earliest-starting match and drop anything intersecting a kept one.

    First match wins, not the longest. Matches with equal start keep their
    detection order.
    """
    kept: list[PiiMatch] = []
    for match in sorted(matches, key=lambda m: m.start):
        if not any(match.overlaps(existing) for existing in kept):
            kept.append(match)
    return kept


def detect(text: str) -> DetectionResult:
    """
    Detect built-in entity types in a text.

    Args:
        text: Free text to scan

    Returns:
        DetectionResult with non-overlapping matches sorted by start offset
        and per-type counts of those matches
    """
    counts = {entity_type.value: 0 for entity_type in EntityType}
    if not text or not isinstance(text, str):
        return DetectionResult(matches=[], counts=counts)

    candidates: list[PiiMatch] = []
    for detector in _DETECTORS:
        candidates.extend(detector(text))

    matches = resolve_overlaps(candidates)
    for match in matches:
        counts[match.type] += 1

    return DetectionResult(matches=matches, counts=counts)


def compile_pattern(pattern: str) -> re.Pattern:
    """
    Compile a caller-supplied pattern.

    Raises:
        PatternError: If the pattern is not a valid regular expression
    """
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternError(pattern, str(e)) from e


def detect_custom_pattern(text: str, pattern: str | re.Pattern) -> list[CustomMatch]:
    """
    Find every non-empty match of a custom pattern.

    Args:
        text: Text to scan
        pattern: Regular expression source or compiled pattern

    Returns:
        Matches in order of appearance

    Raises:
        PatternError: If the pattern does not compile
    """
    regex = pattern if isinstance(pattern, re.Pattern) else compile_pattern(pattern)
    return [
        CustomMatch(value=m.group(0), start=m.start(), end=m.end())
        for m in regex.finditer(text)
        if m.end() > m.start()
    ]
