"""
Quality filter configuration models.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from dataprep.core.dates import parse_datetime


class DateRange(BaseModel):
    """
    Inclusive date window; either bound may be omitted.

    Bounds are kept as the strings the caller supplied and parsed on demand.
    """

    model_config = ConfigDict(frozen=True)

    start: str | None = None
    end: str | None = None

    @model_validator(mode="after")
    def check_bounds(self) -> "DateRange":
        """Bounds must parse and end must not precede start."""
        if self.start and parse_datetime(self.start) is None:
            raise ValueError(f"Invalid start date: {self.start!r}")
        if self.end and parse_datetime(self.end) is None:
            raise ValueError(f"Invalid end date: {self.end!r}")
        if self.start and self.end and parse_datetime(self.end) < parse_datetime(self.start):
            raise ValueError("End date must be after start date")
        return self

    @property
    def start_datetime(self) -> datetime | None:
        return parse_datetime(self.start) if self.start else None

    @property
    def end_datetime(self) -> datetime | None:
        return parse_datetime(self.end) if self.end else None

    @property
    def is_bounded(self) -> bool:
        return bool(self.start or self.end)


class FilterConfig(BaseModel):
    """
    Inclusion/exclusion predicates for the quality filter.

    Every field is optional; an absent (or zero/empty) field imposes no constraint.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "minContentLength": 20,
                "statusInclude": ["solved", "closed"],
                "dateRange": {"start": "2024-01-01", "end": "2024-12-31"},
            }
        },
    )

    min_conversation_length: int | None = Field(None, ge=0)
    min_content_length: int | None = Field(None, ge=0)
    status_include: list[str] = Field(default_factory=list)
    status_exclude: list[str] = Field(default_factory=list)
    category_include: list[str] = Field(default_factory=list)
    date_range: DateRange | None = None
