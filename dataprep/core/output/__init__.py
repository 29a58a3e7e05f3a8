"""
Training-data output formats.
"""

from .formatter import FormattedOutput, build_filename, format_records, parse_output, preview_artifact

__all__ = [
    "FormattedOutput",
    "format_records",
    "build_filename",
    "parse_output",
    "preview_artifact",
]
