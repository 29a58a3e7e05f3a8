"""
File readers turning uploaded exports (CSV, JSON, JSONL, Excel) into source records.
"""

import io
import json
import zipfile
from pathlib import Path
from typing import Any

import pandas as pd
from pydantic import BaseModel, Field

from dataprep.core.errors import BadRequestError
from dataprep.core.models import SourceRecord
from dataprep.observability.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_FORMATS = ("csv", "json", "jsonl", "xlsx")
BINARY_FORMATS = ("xlsx",)


class ParsedSource(BaseModel):
    """
    Result of parsing one file.

    Attributes:
        columns: Ordered, distinct column names in first-seen order
        records: Parsed rows with sequential row_index
    """

    columns: list[str] = Field(default_factory=list)
    records: list[SourceRecord] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.records)


def _collect_columns(rows: list[dict[str, Any]]) -> list[str]:
    columns: dict[str, None] = {}
    for row in rows:
        for key in row:
            columns.setdefault(key, None)
    return list(columns)


def _to_source(rows: list[dict[str, Any]]) -> ParsedSource:
    return ParsedSource(
        columns=_collect_columns(rows),
        records=[SourceRecord(row_index=i, data=row) for i, row in enumerate(rows)],
    )


def _cell(value: Any) -> Any:
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == "":
        return None
    return value


class CSVReader:
    """
    Reads CSV exports with pandas, keeping every cell as text.

    Empty cells become None rather than NaN, and header names are trimmed.
    """

    def __init__(self, delimiter: str = ","):
        self.delimiter = delimiter

    def read_text(self, text: str) -> ParsedSource:
        if not text.strip():
            return ParsedSource()
        try:
            df = pd.read_csv(
                io.StringIO(text),
                sep=self.delimiter,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise BadRequestError("Failed to parse CSV file", details=str(e)) from e

        df.columns = [str(column).strip() for column in df.columns]
        rows = [
            {column: (value if value != "" else None) for column, value in row.items()}
            for row in df.to_dict(orient="records")
        ]
        return ParsedSource(
            columns=list(dict.fromkeys(df.columns)),
            records=[SourceRecord(row_index=i, data=row) for i, row in enumerate(rows)],
        )


class JSONReader:
    """
    Reads a JSON array of objects, or an object wrapping one.

    For a wrapping object, the first property holding a non-empty array of
    objects is used, e.g. {"tickets": [...]}.
    """

    def read_text(self, text: str) -> ParsedSource:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise BadRequestError("Failed to parse JSON file", details=str(e)) from e

        if isinstance(payload, dict):
            payload = next(
                (
                    value
                    for value in payload.values()
                    if isinstance(value, list) and value and isinstance(value[0], dict)
                ),
                [payload],
            )
        if not isinstance(payload, list):
            raise BadRequestError("JSON file must contain an array of objects")

        rows = [row for row in payload if isinstance(row, dict)]
        if len(rows) != len(payload):
            logger.warning(f"Skipped {len(payload) - len(rows)} non-object JSON entries")
        return _to_source(rows)


class JSONLReader:
    """Reads one JSON object per line; blank lines are ignored."""

    def read_text(self, text: str) -> ParsedSource:
        rows = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                row = json.loads(line)
            except json.JSONDecodeError as e:
                raise BadRequestError(f"Invalid JSON on line {line_number}", details=str(e)) from e
            if not isinstance(row, dict):
                raise BadRequestError(f"Line {line_number} is not a JSON object")
            rows.append(row)
        return _to_source(rows)


class ExcelReader:
    """
    Reads the first sheet of an .xlsx workbook with pandas and openpyxl.

    The first row holds the headers; blank headers are named Column_<n>
    (1-based). Missing cells become None and rows with no values are skipped.
    """

    def read_bytes(self, content: bytes) -> ParsedSource:
        try:
            df = pd.read_excel(
                io.BytesIO(content),
                sheet_name=0,
                header=None,
                dtype=str,
                engine="openpyxl",
            )
        except (ValueError, KeyError, zipfile.BadZipFile) as e:
            raise BadRequestError("Failed to parse Excel file", details=str(e)) from e

        if df.empty:
            raise BadRequestError("Excel sheet is empty")

        headers = df.iloc[0].tolist()
        columns = [
            str(header).strip() if _cell(header) is not None and str(header).strip() else f"Column_{i + 1}"
            for i, header in enumerate(headers)
        ]

        rows = []
        for values in df.iloc[1:].itertuples(index=False):
            row = {column: _cell(value) for column, value in zip(columns, values)}
            if any(value is not None for value in row.values()):
                rows.append(row)

        return ParsedSource(
            columns=list(dict.fromkeys(columns)),
            records=[SourceRecord(row_index=i, data=row) for i, row in enumerate(rows)],
        )


class FileReader:
    """
    Generic file reader dispatching on format.
    """

    def __init__(self, delimiter: str = ","):
        self._readers = {
            "csv": CSVReader(delimiter),
            "json": JSONReader(),
            "jsonl": JSONLReader(),
        }
        self._excel = ExcelReader()

    def read(self, file_path: str | Path, file_format: str | None = None) -> ParsedSource:
        """
        Read a file into records.

        Args:
            file_path: Path to the file
            file_format: csv, json, jsonl or xlsx (defaults to the file extension)

        Returns:
            ParsedSource

        Raises:
            FileNotFoundError: If the file does not exist
            BadRequestError: If the format is unsupported or the content cannot be parsed
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {path}")

        fmt = (file_format or path.suffix.lstrip(".")).lower()
        if fmt in BINARY_FORMATS:
            parsed = self._excel.read_bytes(path.read_bytes())
        else:
            parsed = self.read_text(path.read_text(encoding="utf-8-sig"), fmt)
        logger.info(
            "File parsed",
            extra={"file": str(path), "file_format": fmt, "row_count": parsed.row_count, "columns": len(parsed.columns)},
        )
        return parsed

    def read_text(self, text: str, file_format: str) -> ParsedSource:
        reader = self._readers.get(file_format.lower())
        if reader is None:
            raise BadRequestError(
                f"Unsupported file format: {file_format}",
                details=f"supported={', '.join(SUPPORTED_FORMATS)}",
            )
        return reader.read_text(text)
