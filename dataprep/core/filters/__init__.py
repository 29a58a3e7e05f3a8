"""
Quality filtering with sequential per-rule accounting.
"""

from .quality_filter import FilterSummary, apply_filters, filter_with_summary, get_filter_summary

__all__ = [
    "FilterSummary",
    "apply_filters",
    "filter_with_summary",
    "get_filter_summary",
]
