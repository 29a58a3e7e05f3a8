"""
Pipeline configuration loading and validation.
"""

from .loader import PipelineConfigBuilder, PipelineConfigLoader
from .validation import (
    validate_deidentification_config,
    validate_filter_config,
    validate_mapping,
    validate_pipeline_config,
)

__all__ = [
    "PipelineConfigLoader",
    "PipelineConfigBuilder",
    "validate_mapping",
    "validate_deidentification_config",
    "validate_filter_config",
    "validate_pipeline_config",
]
