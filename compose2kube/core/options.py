"""
Run options consumed by the conversion pipeline.

The CLI (or any other host) produces one :class:`PipelineOptions` object; every
stage reads it and none of them mutates it.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from ruamel.yaml import YAML

from compose2kube.exceptions import ParseError

logger = logging.getLogger(__name__)

_yaml_parser = YAML(typ="safe")

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Environment(str, Enum):
    """Deployment target environment."""

    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    TESTING = "testing"

    @property
    def requires_external_exposure(self) -> bool:
        return self in (Environment.PRODUCTION, Environment.STAGING)


class CloudProvider(str, Enum):
    AWS = "aws"
    GCP = "gcp"
    AZURE = "azure"
    DIGITALOCEAN = "digitalocean"
    ON_PREMISE = "on_premise"


class SecurityLevel(str, Enum):
    """Baseline security posture applied to generated workloads."""

    BASIC = "basic"
    ENHANCED = "enhanced"
    STRICT = "strict"
    CUSTOM = "custom"

    @property
    def effective(self) -> SecurityLevel:
        """``custom`` has no table of its own and resolves to ``enhanced``."""
        return SecurityLevel.ENHANCED if self is SecurityLevel.CUSTOM else self


class BudgetLevel(str, Enum):
    MINIMAL = "minimal"
    STANDARD = "standard"
    PERFORMANCE = "performance"
    ENTERPRISE = "enterprise"


class Severity(str, Enum):
    """Security finding severity, also used as the report filter."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """4 for critical down to 1 for low."""
        return {"critical": 4, "high": 3, "medium": 2, "low": 1}[self.value]

    def at_least(self, other: Severity) -> bool:
        return self.rank >= other.rank


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class AutoscalingOptions(BaseModel):
    """Autoscaling preferences. ``enabled=None`` means default by environment."""

    enabled: bool | None = Field(
        None, description="Force autoscaling on/off; None defers to the environment."
    )
    min_replicas: int | None = Field(None, ge=1, description="Lower replica bound.")
    max_replicas: int | None = Field(None, ge=1, description="Upper replica bound.")
    target_cpu: int = Field(70, ge=1, le=100, description="Target CPU utilization %.")
    target_memory: int = Field(
        80, ge=1, le=100, description="Target memory utilization %."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @model_validator(mode="after")
    def _bounds_ordered(self) -> Self:
        if (
            self.min_replicas is not None
            and self.max_replicas is not None
            and self.min_replicas > self.max_replicas
        ):
            raise ValueError(
                f"min_replicas ({self.min_replicas}) must not exceed "
                f"max_replicas ({self.max_replicas})"
            )
        return self


class PipelineOptions(BaseModel):
    """Structured options object for a single conversion run."""

    environment: Environment = Field(
        Environment.DEVELOPMENT, description="Target deployment environment."
    )
    provider: CloudProvider = Field(
        CloudProvider.AWS, description="Cloud provider used for cost estimation."
    )
    region: str = Field("us-east-1", description="Provider region.")
    security_level: SecurityLevel = Field(
        SecurityLevel.ENHANCED, description="Baseline security-context policy."
    )
    budget: BudgetLevel = Field(
        BudgetLevel.STANDARD, description="Resource budget tier."
    )
    autoscaling: AutoscalingOptions = Field(
        default_factory=AutoscalingOptions, description="Autoscaling preferences."
    )
    namespace: str = Field(
        "default",
        pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$",
        description="Target namespace for every generated resource.",
    )
    strict_validation: bool = Field(
        False, description="Reject unpinned tags, missing limits and host paths."
    )
    min_severity: Severity = Field(
        Severity.LOW, description="Minimum severity of reported findings."
    )
    custom_patterns: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Custom pattern definitions (same shape as built-ins).",
    )
    fail_on_cycle: bool = Field(
        False, description="Refuse generation when dependencies form a cycle."
    )
    enable_ingress: bool = Field(
        True, description="Emit Ingress resources for exposed web workloads."
    )
    domain: str | None = Field(None, description="Base domain for Ingress hosts.")
    tls: bool = Field(True, description="Request TLS on generated Ingresses.")
    monitoring: bool = Field(
        False, description="Emit ServiceMonitor resources and price monitoring."
    )
    backup: bool = Field(False, description="Include backup storage in estimates.")
    egress_gb_per_exposed_service: float = Field(
        100.0, ge=0, description="Monthly egress heuristic per exposed service (GB)."
    )
    hostpath_allow_list: list[str] = Field(
        default_factory=list,
        description="Host path prefixes allowed to remain hostPath volumes.",
    )
    max_workers: int = Field(
        1, ge=1, description="Worker threads for per-service evaluation."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def requires_explicit_limits(self) -> bool:
        """Whether resource limits must come from the input, not defaults."""
        return (
            self.strict_validation
            or self.security_level.effective is SecurityLevel.STRICT
        )

    @property
    def ingress_domain(self) -> str:
        return self.domain or "example.com"

    @classmethod
    def from_yaml(cls, path: str | Path) -> PipelineOptions:
        """
        Load options from a YAML file.

        Args:
            path: Path to a YAML mapping of option values

        Returns:
            Validated PipelineOptions

        Raises:
            ParseError: If the file cannot be read, is not a mapping or
                holds invalid values
        """
        file_path = Path(path)
        try:
            data = _yaml_parser.load(file_path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ParseError(f"Cannot read options file {file_path}: {exc}") from exc
        except Exception as exc:
            raise ParseError(f"Cannot parse options file {file_path}: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ParseError("Options file must contain a mapping")

        try:
            options = cls.model_validate(data)
        except ValidationError as exc:
            raise ParseError(f"Invalid options in {file_path}: {exc}") from exc

        logger.debug("Options loaded from %s (%d keys)", file_path, len(data))
        return options


__all__ = [
    "Environment",
    "CloudProvider",
    "SecurityLevel",
    "BudgetLevel",
    "Severity",
    "AutoscalingOptions",
    "PipelineOptions",
]
