"""Rule-based security evaluation."""

from .engine import SecurityRuleEngine
from .models import (
    RemediationDirective,
    RemediationKind,
    SecurityFinding,
    SecurityReport,
    Severity,
)
from .rules import SECURITY_RULES, SecurityRule

__all__ = [
    "SecurityRuleEngine",
    "RemediationDirective",
    "RemediationKind",
    "SecurityFinding",
    "SecurityReport",
    "Severity",
    "SECURITY_RULES",
    "SecurityRule",
]
