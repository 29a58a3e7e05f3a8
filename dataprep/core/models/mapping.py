"""
Field mapping models: mapping entries and the closed set of column transformations.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class TransformationType(str, Enum):
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"
    TRIM = "trim"
    DATE_FORMAT = "date_format"
    VALUE_MAP = "value_map"


class _TransformationBase(BaseModel):
    """
    Common base for transformations.

    Accepts the nested ``{"type": ..., "config": {...}}`` shape used by stored
    configurations and lifts the config keys onto the model.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @model_validator(mode="before")
    @classmethod
    def lift_config(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("config"), dict):
            lifted = {k: v for k, v in data.items() if k != "config"}
            for key, value in data["config"].items():
                lifted.setdefault(key, value)
            return lifted
        return data


class LowercaseTransformation(_TransformationBase):
    type: Literal["lowercase"] = "lowercase"


class UppercaseTransformation(_TransformationBase):
    type: Literal["uppercase"] = "uppercase"


class TrimTransformation(_TransformationBase):
    type: Literal["trim"] = "trim"


class DateFormatTransformation(_TransformationBase):
    type: Literal["date_format"] = "date_format"
    format: str = "YYYY-MM-DD"


class ValueMapTransformation(_TransformationBase):
    type: Literal["value_map"] = "value_map"
    value_map: dict[str, Any] | None = None


Transformation = Annotated[
    Union[
        LowercaseTransformation,
        UppercaseTransformation,
        TrimTransformation,
        DateFormatTransformation,
        ValueMapTransformation,
    ],
    Field(discriminator="type"),
]


class MappingEntry(BaseModel):
    """
    Projects one source column onto one target field.

    Attributes:
        source_column: Column read from the source record
        target_field: Field written into the mapped record
        transformations: Applied in list order
        suggested: Entry came from the suggestion heuristics
        confirmed: Entry was confirmed by a user
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "sourceColumn": "Ticket Status",
                "targetField": "status",
                "transformations": [{"type": "trim"}, {"type": "lowercase"}],
                "confirmed": True,
            }
        },
    )

    source_column: str = Field(..., min_length=1)
    target_field: str = Field(..., min_length=1)
    transformations: list[Transformation] = Field(default_factory=list)
    suggested: bool = False
    confirmed: bool = False
