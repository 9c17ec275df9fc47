"""Pattern detection: data-driven definitions scored by one generic routine."""

from .builtins import BUILTIN_PATTERNS
from .classifier import PatternClassifier, score_pattern
from .models import (
    ClassificationResult,
    Indicator,
    IndicatorKind,
    PatternDefinition,
    PatternFamily,
    PatternMatch,
    PatternScope,
)
from .registry import PatternRegistry

__all__ = [
    "BUILTIN_PATTERNS",
    "ClassificationResult",
    "Indicator",
    "IndicatorKind",
    "PatternClassifier",
    "PatternDefinition",
    "PatternFamily",
    "PatternMatch",
    "PatternRegistry",
    "PatternScope",
    "score_pattern",
]
