"""
Field mapper: projects source records onto the target schema.

Only mapped fields survive; unmapped source columns are dropped from the
output entirely.
"""

from collections.abc import Iterable, Mapping, Sequence
from itertools import islice
from typing import Any

from pydantic import BaseModel

from dataprep.core.models.mapping import MappingEntry
from dataprep.core.models.record import SourceRecord

from .transformations import apply_transformations


class MappingPreviewRow(BaseModel):
    original: dict[str, Any]
    mapped: dict[str, Any]


def map_record(record: Mapping[str, Any], mapping_entries: Sequence[MappingEntry]) -> dict[str, Any]:
    """
    Map one record through every entry in order.

    A missing source column maps to None. When several entries target the
    same field the last one wins.

    Args:
        record: Column name to value
        mapping_entries: Mapping table

    Returns:
        New dictionary holding only the target fields
    """
    mapped: dict[str, Any] = {}
    for entry in mapping_entries:
        mapped[entry.target_field] = apply_transformations(record.get(entry.source_column), entry.transformations)
    return mapped


def map_records(records: Iterable[SourceRecord], mapping_entries: Sequence[MappingEntry]) -> list[dict[str, Any]]:
    return [map_record(record.data, mapping_entries) for record in records]


def preview_mapping(
    records: Iterable[SourceRecord],
    mapping_entries: Sequence[MappingEntry],
    limit: int = 10,
) -> list[MappingPreviewRow]:
    """Map the first `limit` records, pairing each with its original."""
    return [
        MappingPreviewRow(original=dict(record.data), mapped=map_record(record.data, mapping_entries))
        for record in islice(records, limit)
    ]
