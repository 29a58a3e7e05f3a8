"""
Mapping suggestions derived from column names.

Each standard target field has a list of column-name patterns; the first
column matching a field wins that field. Anchored patterns are more specific
and score higher, and an exact normalized name match scores highest.
"""

import re
from collections.abc import Iterable

from pydantic import BaseModel, Field

STANDARD_TARGET_FIELDS: tuple[str, ...] = (
    "conversation_id",
    "timestamp",
    "role",
    "content",
    "subject",
    "status",
    "category",
    "customer_email",
    "agent_name",
)

ANCHORED_CONFIDENCE = 0.95
PARTIAL_CONFIDENCE = 0.85
EXACT_MATCH_CONFIDENCE = 0.98


class MappingSuggestion(BaseModel):
    source_column: str
    target_field: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str


def _patterns(*sources: str) -> list[re.Pattern]:
    return [re.compile(source, re.IGNORECASE) for source in sources]


# (patterns, target field, reason) in priority order
SUGGESTION_PATTERNS: list[tuple[list[re.Pattern], str, str]] = [
    (
        _patterns(r"ticket[_-]?id", r"conversation[_-]?id", r"thread[_-]?id", r"^id$"),
        "conversation_id",
        "Column name contains ID-like pattern",
    ),
    (
        _patterns(r"timestamp", r"created[_-]?at", r"date[_-]?time", r"^date$"),
        "timestamp",
        "Column name suggests date/time",
    ),
    (
        _patterns(r"^role$", r"sender[_-]?type", r"author[_-]?type", r"user[_-]?type"),
        "role",
        "Column name suggests user role",
    ),
    (
        _patterns(r"body", r"content", r"message", r"text", r"description"),
        "content",
        "Column name suggests message content",
    ),
    (
        _patterns(r"subject", r"title", r"summary"),
        "subject",
        "Column name suggests subject/title",
    ),
    (
        _patterns(r"^status$", r"ticket[_-]?status", r"state"),
        "status",
        "Column name suggests status",
    ),
    (
        _patterns(r"category", r"type", r"tag", r"classification"),
        "category",
        "Column name suggests category",
    ),
    (
        _patterns(r"customer[_-]?email", r"user[_-]?email", r"email"),
        "customer_email",
        "Column name contains email",
    ),
    (
        _patterns(r"agent[_-]?name", r"assignee", r"handler"),
        "agent_name",
        "Column name suggests agent",
    ),
]


def _normalize(name: str) -> str:
    return re.sub(r"[_-]", "", name.lower())


def suggest_mappings(columns: Iterable[str]) -> list[MappingSuggestion]:
    """
    Suggest a mapping entry per target field from source column names.

    Args:
        columns: Column set of the source, in order

    Returns:
        At most one suggestion per target field, highest confidence first
    """
    suggestions: dict[str, MappingSuggestion] = {}

    for column in columns:
        for patterns, target_field, reason in SUGGESTION_PATTERNS:
            for pattern in patterns:
                if pattern.search(column):
                    if target_field not in suggestions:
                        confidence = ANCHORED_CONFIDENCE if "^" in pattern.pattern else PARTIAL_CONFIDENCE
                        suggestions[target_field] = MappingSuggestion(
                            source_column=column,
                            target_field=target_field,
                            confidence=confidence,
                            reason=reason,
                        )
                    break

        normalized = _normalize(column)
        for target_field in STANDARD_TARGET_FIELDS:
            if normalized == _normalize(target_field) and target_field not in suggestions:
                suggestions[target_field] = MappingSuggestion(
                    source_column=column,
                    target_field=target_field,
                    confidence=EXACT_MATCH_CONFIDENCE,
                    reason="Exact match",
                )

    return sorted(suggestions.values(), key=lambda s: s.confidence, reverse=True)
