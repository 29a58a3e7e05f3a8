"""
Regular expressions used by the built-in entity detectors.

These are heuristics tuned for English-language support tickets; they are not
an NLP model and will both miss and over-match on unusual text.
"""

import re
from enum import Enum


class EntityType(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    NAME = "name"
    ADDRESS = "address"
    COMPANY = "company"


EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

# US-style numbers; candidates with fewer than MIN_PHONE_DIGITS digits are discarded
PHONE_PATTERN = re.compile(r"(?:\+?1[-.\s]?)?\(?[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}")
MIN_PHONE_DIGITS = 10

# Phrases that usually precede a person's name
NAME_INDICATORS = [
    re.compile(r"\bMr\.?\s", re.IGNORECASE),
    re.compile(r"\bMrs\.?\s", re.IGNORECASE),
    re.compile(r"\bMs\.?\s", re.IGNORECASE),
    re.compile(r"\bDr\.?\s", re.IGNORECASE),
    re.compile(r"\bmy name is\s", re.IGNORECASE),
    re.compile(r"\bI am\s", re.IGNORECASE),
    re.compile(r"\bthis is\s", re.IGNORECASE),
    re.compile(r"\bsigned,?\s", re.IGNORECASE),
    re.compile(r"\bregards,?\s", re.IGNORECASE),
    re.compile(r"\bthanks,?\s", re.IGNORECASE),
    re.compile(r"\bsincerely,?\s", re.IGNORECASE),
]

# One or two capitalized words directly after an indicator
NAME_FOLLOWER_PATTERN = re.compile(r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?")

ADDRESS_PATTERNS = [
    # 123 Main Street
    re.compile(
        r"\d+\s+[A-Za-z]+\s+(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Drive|Dr|Lane|Ln|Way|Court|Ct|Place|Pl)",
        re.IGNORECASE,
    ),
    # City, ST 12345(-6789)
    re.compile(r"\b[A-Z][a-z]+,?\s+[A-Z]{2}\s+\d{5}(?:-\d{4})?\b"),
]

COMPANY_SUFFIX_PATTERN = re.compile(
    r"\b(?:Inc|Corp|LLC|Ltd|Co|Company|Corporation|Incorporated|Limited)\b\.?",
    re.IGNORECASE,
)

# Capitalized phrase immediately before a legal suffix
COMPANY_PREFIX_PATTERN = re.compile(r"([A-Z][a-zA-Z]*(?:\s+[A-Z][a-zA-Z]*)*)\s*$")
