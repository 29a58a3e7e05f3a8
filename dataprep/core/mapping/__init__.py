"""
Field mapping, column transformations and mapping suggestions.
"""

from .field_mapper import MappingPreviewRow, map_record, map_records, preview_mapping
from .suggestions import STANDARD_TARGET_FIELDS, MappingSuggestion, suggest_mappings
from .transformations import apply_transformation, apply_transformations

__all__ = [
    "map_record",
    "map_records",
    "preview_mapping",
    "MappingPreviewRow",
    "apply_transformation",
    "apply_transformations",
    "STANDARD_TARGET_FIELDS",
    "MappingSuggestion",
    "suggest_mappings",
]
