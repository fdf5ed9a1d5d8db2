"""
Analysis Diagnostics
====================

Warning codes and the structural error raised by the field analysis pipeline.

Every per-field anomaly degrades to an absent/default value plus a warning
string of the form ``"<CODE>: <message>"``. Only input that cannot be parsed
at all raises, via MalformedInputError.
"""

from enum import Enum
from typing import Optional


class WarningCode(str, Enum):
    """Recoverable conditions recorded in AnalysisResult.warnings."""
    EMPTY_INPUT = "EMPTY_INPUT"
    DEGENERATE_REGION = "DEGENERATE_REGION"
    UNPOSITIONED_FIELD = "UNPOSITIONED_FIELD"
    UNKNOWN_FONT_FAMILY = "UNKNOWN_FONT_FAMILY"
    CROSS_PAGE_REGION = "CROSS_PAGE_REGION"
    REGION_CLIPPED = "REGION_CLIPPED"
    CAPACITY_OVERFLOW = "CAPACITY_OVERFLOW"
    CAPACITY_UNAVAILABLE = "CAPACITY_UNAVAILABLE"


class MalformedInputError(ValueError):
    """Raised when the raw analysis payload is not a recognizable primitive list."""

    def __init__(self, message: str, details: Optional[list] = None):
        super().__init__(message)
        self.details = details or []


def format_warning(code: WarningCode, message: str, field_id: Optional[str] = None) -> str:
    """Render a warning string, prefixed with its code and optional field id."""
    if field_id:
        return f"{code.value}: [{field_id}] {message}"
    return f"{code.value}: {message}"
