"""
De-identification rule models.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class RuleType(str, Enum):
    """Detection type a rule acts on. Every type except CUSTOM maps to a built-in detector."""

    NAME = "name"
    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"
    COMPANY = "company"
    CUSTOM = "custom"


class DeidentificationRule(BaseModel):
    """
    A single de-identification directive.

    Attributes:
        id: Rule identifier (unique within a configuration)
        type: Detection type
        pattern: Regular expression, required for custom rules only
        replacement: Replacement template; "_N" in a name rule becomes a
            per-distinct-name counter
        enabled: Only enabled rules participate
        is_default: Rule was seeded with the source
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "ticket-refs",
                "type": "custom",
                "pattern": "TCK-[0-9]{6}",
                "replacement": "[TICKET]",
                "enabled": True,
            }
        },
    )

    id: str = Field(..., min_length=1)
    type: RuleType
    pattern: str | None = None
    replacement: str
    enabled: bool = True
    is_default: bool = False

    @model_validator(mode="after")
    def check_custom_pattern(self) -> "DeidentificationRule":
        """Custom rules need a pattern to match anything."""
        if self.type == RuleType.CUSTOM and not self.pattern:
            raise ValueError(f"Custom rule '{self.id}' requires a pattern")
        return self


class DeidentificationConfig(BaseModel):
    """Rules plus the columns a scan or preview inspects."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    rules: list[DeidentificationRule] = Field(default_factory=list)
    columns_to_scan: list[str] = Field(default_factory=list)

    @property
    def enabled_rules(self) -> list[DeidentificationRule]:
        return [rule for rule in self.rules if rule.enabled]


DEFAULT_DEIDENTIFICATION_RULES: tuple[DeidentificationRule, ...] = (
    DeidentificationRule(id="default-email", type=RuleType.EMAIL, replacement="[EMAIL]", enabled=True, is_default=True),
    DeidentificationRule(id="default-phone", type=RuleType.PHONE, replacement="[PHONE]", enabled=True, is_default=True),
    DeidentificationRule(id="default-name", type=RuleType.NAME, replacement="[PERSON_N]", enabled=True, is_default=True),
    DeidentificationRule(id="default-address", type=RuleType.ADDRESS, replacement="[ADDRESS]", enabled=False, is_default=True),
    DeidentificationRule(id="default-company", type=RuleType.COMPANY, replacement="[COMPANY]", enabled=False, is_default=True),
)


def default_deidentification_config(columns: list[str]) -> DeidentificationConfig:
    """Seed configuration for a newly parsed source: default rules, scan every column."""
    return DeidentificationConfig(
        rules=[rule.model_copy() for rule in DEFAULT_DEIDENTIFICATION_RULES],
        columns_to_scan=list(columns),
    )
