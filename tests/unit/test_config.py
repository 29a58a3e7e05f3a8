"""
Unit tests for pipeline configuration loading, building and validation.
"""

import tempfile
from pathlib import Path

import pytest

from dataprep.core.config import (
    PipelineConfigBuilder,
    PipelineConfigLoader,
    validate_deidentification_config,
    validate_mapping,
    validate_pipeline_config,
)
from dataprep.core.errors import PatternError, ValidationError
from dataprep.core.models import (
    DateFormatTransformation,
    DeidentificationConfig,
    DeidentificationRule,
    RuleType,
    ValueMapTransformation,
)


FIXTURE_CONFIG = Path(__file__).parent.parent / "fixtures" / "pipeline.yaml"


def _write_yaml(content: str) -> Path:
    handle = tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False)
    with handle:
        handle.write(content)
    return Path(handle.name)


class TestPipelineConfigLoader:
    """Tests for PipelineConfigLoader"""

    def test_load_fixture(self):
        """Test the sample configuration loads with defaults merged in"""
        config = PipelineConfigLoader(FIXTURE_CONFIG).load()

        assert [m.target_field for m in config.mappings] == [
            "conversation_id", "role", "content", "status", "timestamp",
        ]
        timestamp = config.mappings[-1].transformations[0]
        assert isinstance(timestamp, DateFormatTransformation)
        assert timestamp.format == "YYYY-MM-DD HH:mm"

        rule_ids = [rule.id for rule in config.deidentification.rules]
        assert rule_ids[:5] == [
            "default-email", "default-phone", "default-name", "default-address", "default-company",
        ]
        assert rule_ids[-1] == "ticket-refs"
        assert config.deidentification.columns_to_scan == ["body", "subject"]

        assert config.filters.min_content_length == 10
        assert config.filters.status_exclude == ["spam"]
        assert config.filters.date_range.start == "2024-01-01"

    def test_explicit_rule_overrides_default_with_same_id(self):
        """Test a rule listed explicitly replaces the default with the same id"""
        config = PipelineConfigLoader.parse({
            "deidentification": {
                "useDefaultRules": True,
                "rules": [{"id": "default-address", "type": "address", "replacement": "[ADDR]", "enabled": True}],
            }
        })

        address = [r for r in config.deidentification.rules if r.id == "default-address"]
        assert len(address) == 1
        assert address[0].enabled is True
        assert address[0].replacement == "[ADDR]"

    def test_snake_case_keys_accepted(self):
        """Test snake_case keys work as well as camelCase"""
        config = PipelineConfigLoader.parse({
            "mappings": [{"source_column": "s", "target_field": "t",
                          "transformations": [{"type": "value_map", "value_map": {"a": "b"}}]}],
            "filters": {"min_content_length": 3},
        })

        assert isinstance(config.mappings[0].transformations[0], ValueMapTransformation)
        assert config.filters.min_content_length == 3

    def test_empty_file_gives_empty_config(self):
        """Test an empty YAML document is an empty configuration"""
        config = PipelineConfigLoader(_write_yaml("")).load()

        assert config.mappings == []
        assert config.deidentification.rules == []

    def test_missing_file(self):
        """Test a missing file raises FileNotFoundError"""
        with pytest.raises(FileNotFoundError):
            PipelineConfigLoader("/nonexistent/pipeline.yaml")

    def test_malformed_yaml(self):
        """Test YAML syntax errors become ValidationError"""
        path = _write_yaml("mappings: [unclosed")

        with pytest.raises(ValidationError):
            PipelineConfigLoader(path).load()

    def test_invalid_structure_reports_fields(self):
        """Test structural errors carry per-field messages"""
        with pytest.raises(ValidationError) as exc_info:
            PipelineConfigLoader.parse({"deidentification": {"rules": [{"id": "x", "type": "custom", "replacement": "[X]"}]}})

        assert exc_info.value.fields

    def test_reversed_date_range_rejected(self):
        """Test an end before the start is a ValidationError"""
        with pytest.raises(ValidationError):
            PipelineConfigLoader.parse({"filters": {"dateRange": {"start": "2024-05-01", "end": "2024-01-01"}}})

    def test_unparseable_date_bound_rejected(self):
        """Test a bound that is not a date is a ValidationError"""
        with pytest.raises(ValidationError):
            PipelineConfigLoader.parse({"filters": {"dateRange": {"start": "someday"}}})


class TestPipelineConfigBuilder:
    """Tests for PipelineConfigBuilder"""

    def test_build_full_config(self):
        """Test the fluent builder assembles every section"""
        config = (
            PipelineConfigBuilder()
            .map("body", "content", "trim")
            .map("created", "timestamp", {"type": "date_format", "config": {"format": "YYYY"}})
            .with_default_rules()
            .add_custom_rule(r"TCK-\d+", "[TICKET]", rule_id="tickets")
            .scan_columns("body")
            .min_content_length(5)
            .min_conversation_length(2)
            .include_status("solved")
            .exclude_status("spam")
            .include_category("billing")
            .date_range(start="2024-01-01")
            .build()
        )

        assert config.mappings[1].transformations[0].format == "YYYY"
        assert len(config.deidentification.rules) == 6
        assert config.deidentification.rules[-1].type == RuleType.CUSTOM
        assert config.deidentification.columns_to_scan == ["body"]
        assert config.filters.min_conversation_length == 2
        assert config.filters.status_include == ["solved"]
        assert config.filters.category_include == ["billing"]
        assert config.filters.date_range.start == "2024-01-01"

    def test_builder_invalid_date_range(self):
        """Test the builder validates the date range on build"""
        with pytest.raises(ValidationError):
            PipelineConfigBuilder().date_range(start="2024-02-01", end="2024-01-01").build()


class TestValidation:
    """Tests for column-dependent validation"""

    def test_unknown_mapping_column(self):
        """Test mapping a column the source does not have"""
        config = PipelineConfigBuilder().map("nope", "content").build()

        with pytest.raises(ValidationError) as exc_info:
            validate_mapping(config.mappings, ["body"])

        assert "nope" in exc_info.value.message
        assert "mappings.0.sourceColumn" in exc_info.value.fields

    def test_invalid_custom_pattern(self):
        """Test an invalid custom regex is a PatternError"""
        config = DeidentificationConfig(
            rules=[DeidentificationRule(id="bad", type="custom", pattern="[a-", replacement="[X]")],
        )

        with pytest.raises(PatternError):
            validate_deidentification_config(config, ["body"])

    def test_unknown_scan_column(self):
        """Test scanning a column the source does not have"""
        config = DeidentificationConfig(columns_to_scan=["body", "ghost"])

        with pytest.raises(ValidationError) as exc_info:
            validate_deidentification_config(config, ["body"])

        assert "ghost" in exc_info.value.message

    def test_valid_pipeline_config(self):
        """Test the fixture configuration validates against its columns"""
        config = PipelineConfigLoader(FIXTURE_CONFIG).load()

        validate_pipeline_config(config, ["ticket_id", "author", "subject", "body", "status", "created_at"])

    def test_error_serialization(self):
        """Test errors serialize with code and fields"""
        error = ValidationError("Bad", fields={"x": ["y"]})

        assert error.to_dict() == {"code": "VALIDATION_ERROR", "message": "Bad", "fields": {"x": ["y"]}}
        assert error.status_code == 422
