"""
Pipeline configuration management.

Loads mappings, de-identification rules and filters from YAML files and
provides a builder for assembling configurations in code.
"""

from pathlib import Path
from typing import Any

import yaml

from dataprep.core.errors import ValidationError
from dataprep.core.models.deidentification import (
    DEFAULT_DEIDENTIFICATION_RULES,
    DeidentificationConfig,
    DeidentificationRule,
    RuleType,
)
from dataprep.core.models.filter_config import FilterConfig
from dataprep.core.models.mapping import MappingEntry
from dataprep.core.models.processing_run import PipelineConfig

from .validation import parse_model


class PipelineConfigLoader:
    """
    Loads a pipeline configuration from a YAML file.

    Expected YAML format:
    ```yaml
    mappings:
      - sourceColumn: body
        targetField: content
        transformations:
          - type: trim
      - sourceColumn: Ticket Status
        targetField: status
        transformations:
          - type: value_map
            config:
              valueMap: {Open: open, Closed: solved}

    deidentification:
      useDefaultRules: true
      rules:
        - id: ticket-refs
          type: custom
          pattern: "TCK-[0-9]{6}"
          replacement: "[TICKET]"
      columnsToScan: [body]

    filters:
      minContentLength: 20
      statusInclude: [solved]
      dateRange: {start: "2024-01-01"}
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Pipeline configuration file not found: {config_path}")

    def load(self) -> PipelineConfig:
        """
        Load and validate the configuration.

        Returns:
            PipelineConfig

        Raises:
            ValidationError: If the YAML is malformed or does not describe a valid configuration
        """
        try:
            with open(self.config_path) as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValidationError(f"Invalid YAML in {self.config_path}", details=str(e)) from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValidationError("Configuration file must contain a mapping at the top level")

        return self.parse(raw)

    @staticmethod
    def parse(raw: dict[str, Any]) -> PipelineConfig:
        """Build a PipelineConfig from already-decoded data."""
        deidentification = dict(raw.get("deidentification") or {})
        use_defaults = deidentification.pop("useDefaultRules", deidentification.pop("use_default_rules", False))

        if use_defaults:
            explicit = deidentification.get("rules") or []
            explicit_ids = {rule.get("id") for rule in explicit if isinstance(rule, dict)}
            defaults = [
                rule.model_dump(by_alias=True)
                for rule in DEFAULT_DEIDENTIFICATION_RULES
                if rule.id not in explicit_ids
            ]
            deidentification["rules"] = defaults + list(explicit)

        data = {
            "mappings": raw.get("mappings") or [],
            "deidentification": deidentification,
            "filters": raw.get("filters") or {},
        }
        return parse_model(PipelineConfig, data, "Invalid pipeline configuration")


class PipelineConfigBuilder:
    """
    Programmatically build pipeline configurations (for tests and the CLI).
    """

    def __init__(self):
        """Initialize an empty configuration."""
        self.mappings: list[MappingEntry] = []
        self.rules: list[DeidentificationRule] = []
        self.columns_to_scan: list[str] = []
        self.filters: dict[str, Any] = {}

    def map(self, source_column: str, target_field: str, *transformations: dict[str, Any] | str) -> "PipelineConfigBuilder":
        """Add a mapping entry; transformations may be given as type names or dicts."""
        specs = [{"type": t} if isinstance(t, str) else t for t in transformations]
        self.mappings.append(
            MappingEntry(source_column=source_column, target_field=target_field, transformations=specs)
        )
        return self

    def with_default_rules(self) -> "PipelineConfigBuilder":
        """Add the default rule set (email, phone, name enabled; address, company disabled)."""
        self.rules.extend(rule.model_copy() for rule in DEFAULT_DEIDENTIFICATION_RULES)
        return self

    def add_rule(
        self,
        rule_type: RuleType | str,
        replacement: str,
        pattern: str | None = None,
        rule_id: str | None = None,
        enabled: bool = True,
    ) -> "PipelineConfigBuilder":
        """Add a de-identification rule."""
        rule_type = RuleType(rule_type)
        self.rules.append(
            DeidentificationRule(
                id=rule_id or f"{rule_type.value}-{len(self.rules) + 1}",
                type=rule_type,
                pattern=pattern,
                replacement=replacement,
                enabled=enabled,
            )
        )
        return self

    def add_custom_rule(self, pattern: str, replacement: str, rule_id: str | None = None) -> "PipelineConfigBuilder":
        return self.add_rule(RuleType.CUSTOM, replacement, pattern=pattern, rule_id=rule_id)

    def scan_columns(self, *columns: str) -> "PipelineConfigBuilder":
        self.columns_to_scan.extend(columns)
        return self

    def min_content_length(self, length: int) -> "PipelineConfigBuilder":
        self.filters["min_content_length"] = length
        return self

    def min_conversation_length(self, length: int) -> "PipelineConfigBuilder":
        self.filters["min_conversation_length"] = length
        return self

    def include_status(self, *statuses: str) -> "PipelineConfigBuilder":
        self.filters.setdefault("status_include", []).extend(statuses)
        return self

    def exclude_status(self, *statuses: str) -> "PipelineConfigBuilder":
        self.filters.setdefault("status_exclude", []).extend(statuses)
        return self

    def include_category(self, *categories: str) -> "PipelineConfigBuilder":
        self.filters.setdefault("category_include", []).extend(categories)
        return self

    def date_range(self, start: str | None = None, end: str | None = None) -> "PipelineConfigBuilder":
        self.filters["date_range"] = {"start": start, "end": end}
        return self

    def build(self) -> PipelineConfig:
        """Build and return the configuration."""
        return PipelineConfig(
            mappings=list(self.mappings),
            deidentification=DeidentificationConfig(rules=list(self.rules), columns_to_scan=list(self.columns_to_scan)),
            filters=parse_model(FilterConfig, self.filters, "Invalid filter configuration"),
        )
