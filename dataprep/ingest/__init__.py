"""
Source file readers.
"""

from .readers import CSVReader, ExcelReader, FileReader, JSONLReader, JSONReader, ParsedSource

__all__ = [
    "CSVReader",
    "ExcelReader",
    "FileReader",
    "JSONLReader",
    "JSONReader",
    "ParsedSource",
]
