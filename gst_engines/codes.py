"""
HSN/SAC code helpers.

Normalization, validation, classification and pattern matching for the
Harmonized System of Nomenclature (goods) and Services Accounting Code
(services) identifiers that key the notified-rule registry.

    HSN  -- 4, 6 or 8 digits (chapter, heading, tariff item)
    SAC  -- 4 or 6 digits, services chapter 99

Every function here is total: malformed input returns False, INVALID or
None rather than raising.
"""

from __future__ import annotations

import re
from enum import Enum

_SEPARATORS = re.compile(r"[\s\-.]")
_DIGITS = re.compile(r"^\d+$")

HSN_LENGTHS = frozenset({4, 6, 8})
SAC_LENGTHS = frozenset({4, 6})
SERVICES_CHAPTER = 99


class CodeType(str, Enum):
    HSN = "HSN"
    SAC = "SAC"
    INVALID = "INVALID"


def normalize_code(code: str | None) -> str:
    """Strip spaces, dashes and dots; uppercase.  ``None`` becomes ``""``."""
    if not code or not isinstance(code, str):
        return ""
    return _SEPARATORS.sub("", code.strip()).upper()


def validate_hsn_code(code: str | None) -> bool:
    """True for a purely numeric 4, 6 or 8 digit code (not normalized)."""
    if not code or not isinstance(code, str):
        return False
    trimmed = code.strip()
    return bool(_DIGITS.match(trimmed)) and len(trimmed) in HSN_LENGTHS


def validate_sac_code(code: str | None) -> bool:
    """True for a purely numeric 4 or 6 digit code (not normalized)."""
    if not code or not isinstance(code, str):
        return False
    trimmed = code.strip()
    return bool(_DIGITS.match(trimmed)) and len(trimmed) in SAC_LENGTHS


def get_code_type(code: str | None) -> CodeType:
    """
    Classify a code as HSN (goods) or SAC (services).

    Codes of 4 to 8 digits whose first two digits are 99 or above are SAC,
    except 8-digit codes which are always HSN tariff items.  Anything
    non-numeric or outside 4 to 8 digits is INVALID.
    """
    if not code or not isinstance(code, str):
        return CodeType.INVALID
    trimmed = code.strip()
    if not _DIGITS.match(trimmed):
        return CodeType.INVALID
    if not 4 <= len(trimmed) <= 8:
        return CodeType.INVALID
    if len(trimmed) == 8:
        return CodeType.HSN
    if int(trimmed[:2]) >= SERVICES_CHAPTER:
        return CodeType.SAC
    return CodeType.HSN


def is_partial_match(full_code: str, partial_code: str) -> bool:
    """True when ``full_code`` begins with ``partial_code`` after normalization."""
    full = normalize_code(full_code)
    partial = normalize_code(partial_code)
    if not full or not partial or len(partial) > len(full):
        return False
    return full.startswith(partial)


def codes_overlap(code: str, pattern: str) -> bool:
    """Exact match, or either normalized code is a prefix of the other."""
    a = normalize_code(code)
    b = normalize_code(pattern)
    if not a or not b:
        return False
    return a == b or a.startswith(b) or b.startswith(a)


def match_code_pattern(code: str, patterns: list[str] | tuple[str, ...]) -> str | None:
    """
    Match ``code`` against ``patterns``.

    Exact matches are tried first.  Failing that, the first pattern that
    prefixes the code (or is prefixed by it) wins, and the shorter of the
    two normalized codes is returned.
    """
    normalized = normalize_code(code)
    if not normalized or not patterns:
        return None

    normalized_patterns = [normalize_code(p) for p in patterns]
    for pattern in normalized_patterns:
        if pattern and normalized == pattern:
            return pattern

    for pattern in normalized_patterns:
        if pattern and (normalized.startswith(pattern) or pattern.startswith(normalized)):
            return normalized if len(normalized) <= len(pattern) else pattern

    return None
