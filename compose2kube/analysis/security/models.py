"""Security findings, remediation directives and the engine's report."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from compose2kube.core.options import Severity


class RemediationKind(str, Enum):
    """Closed set of remediation actions the synthesizer knows how to apply."""

    EXTRACT_SECRET = "ExtractSecret"
    ADD_NETWORK_POLICY = "AddNetworkPolicy"
    SET_POD_SECURITY_CONTEXT = "SetPodSecurityContext"
    REQUIRE_RESOURCE_LIMITS = "RequireResourceLimits"
    DISALLOW_HOST_PATH_VOLUME = "DisallowHostPathVolume"
    FLAG_INSECURE_TAG = "FlagInsecureTag"
    FLAG_INSECURE_PORT = "FlagInsecurePort"


class RemediationDirective(BaseModel):
    """
    Advisory instruction attached to a finding.

    ``field`` is a dotted IR path (``services.db.environment.DB_PASSWORD``)
    that always resolves inside the model the finding was produced from.
    """

    kind: RemediationKind = Field(..., description="Action to apply.")
    service_id: str = Field(..., description="Service the action targets.")
    field: str = Field(..., description="IR path the action refers to.")
    params: dict[str, Any] = Field(
        default_factory=dict, description="Action parameters (names, ports, ...)."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)


class SecurityFinding(BaseModel):
    """One detected issue."""

    rule_id: str = Field(..., description="Rule identifier, e.g. *IMG-001*.")
    severity: Severity = Field(..., description="Severity.")
    category: str = Field(..., description="Rule category.")
    title: str = Field(..., description="Short title.")
    description: str = Field(..., description="What was detected and where.")
    service_id: str = Field(..., description="Affected service.")
    field: str = Field(..., description="Affected IR path.")
    cwe: Optional[str] = Field(None, description="CWE reference.")
    remediation: RemediationDirective = Field(..., description="Directive.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    def __str__(self) -> str:
        return f"[{self.severity.value.upper()}] {self.rule_id} {self.field}: {self.title}"


class SecurityReport(BaseModel):
    """
    Output of the rule engine.

    ``findings`` is the reported view (after the severity filter);
    ``directives`` covers every finding regardless of that filter.
    """

    findings: list[SecurityFinding] = Field(
        default_factory=list, description="Reported findings, ordered."
    )
    directives: list[RemediationDirective] = Field(
        default_factory=list, description="All directives, unfiltered."
    )
    suppressed: int = Field(0, ge=0, description="Findings hidden by the filter.")
    min_severity: Severity = Field(Severity.LOW, description="Report filter used.")
    compliance_score: float = Field(
        100.0, ge=0.0, le=100.0, description="0..100, higher is better."
    )
    recommendations: list[str] = Field(
        default_factory=list, description="Per-category advice."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    def directives_for(
        self, service_id: str, kind: RemediationKind | None = None
    ) -> list[RemediationDirective]:
        return [
            d
            for d in self.directives
            if d.service_id == service_id and (kind is None or d.kind is kind)
        ]

    def count_by_severity(self) -> dict[Severity, int]:
        counts = {s: 0 for s in Severity}
        for finding in self.findings:
            counts[finding.severity] += 1
        return counts


__all__ = [
    "Severity",
    "RemediationKind",
    "RemediationDirective",
    "SecurityFinding",
    "SecurityReport",
]
