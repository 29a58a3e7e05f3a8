"""
PII detection and de-identification.
"""

from .detector import CustomMatch, DetectionResult, PiiMatch, detect, detect_custom_pattern
from .patterns import EntityType
from .replacer import (
    PiiHighlight,
    RecordDeidentification,
    Replacement,
    ReplacementResult,
    apply_deidentification,
    deidentify_record,
)
from .scanner import PatternTestResult, PiiScanResult, preview_deidentification, scan_for_pii, test_custom_pattern

__all__ = [
    "EntityType",
    "PiiMatch",
    "CustomMatch",
    "DetectionResult",
    "detect",
    "detect_custom_pattern",
    "Replacement",
    "ReplacementResult",
    "PiiHighlight",
    "RecordDeidentification",
    "apply_deidentification",
    "deidentify_record",
    "PiiScanResult",
    "PatternTestResult",
    "scan_for_pii",
    "test_custom_pattern",
    "preview_deidentification",
]
