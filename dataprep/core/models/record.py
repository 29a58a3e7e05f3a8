"""
SourceRecord and DataSource models: the rows handed to the pipeline and their origin.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class SourceRecord(BaseModel):
    """
    One parsed row of a source (immutable).

    The pipeline never mutates a SourceRecord; mapping and de-identification
    produce new dictionaries instead.

    Attributes:
        row_index: Position of the row within its source (unique, non-negative)
        data: Column name to scalar value (None for missing cells)
    """

    model_config = ConfigDict(frozen=True)

    row_index: int = Field(..., ge=0)
    data: dict[str, Any]

    def get(self, column: str, default: Any = None) -> Any:
        return self.data.get(column, default)


class DataSource(BaseModel):
    """
    A source of support records registered with the pipeline.

    Attributes:
        source_id: Unique identifier for the source
        name: Human-readable name
        status: Lifecycle status; only "ready" sources can be processed
        columns: Ordered, distinct column names discovered while parsing
        row_count: Number of parsed rows
        created_at: When the source was registered
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "source_id": "zendesk_export_2024",
                "name": "Zendesk export (2024)",
                "status": "ready",
                "columns": ["ticket_id", "body", "status", "created_at"],
                "row_count": 1250,
            }
        }
    )

    source_id: str = Field(..., min_length=1, max_length=255)
    name: str = ""
    status: Literal["pending", "processing", "ready", "error"] = "ready"
    columns: list[str] = Field(default_factory=list)
    row_count: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
