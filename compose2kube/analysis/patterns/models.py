"""
Pattern definitions are plain data.

A :class:`PatternDefinition` is a list of weighted :class:`Indicator` records
plus a threshold. Built-ins and user-supplied custom patterns share this
exact shape; the classifier evaluates all of them with one routine.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class PatternScope(str, Enum):
    """What a pattern is evaluated against."""

    SERVICE = "service"
    APPLICATION = "application"


class PatternFamily(str, Enum):
    """Workload family, used to index the policy tables."""

    WEB = "web"
    DATABASE = "database"
    CACHE = "cache"
    MESSAGE_QUEUE = "message_queue"
    LOAD_BALANCER = "load_balancer"
    STORAGE = "storage"
    GENERIC = "generic"


class IndicatorKind(str, Enum):
    """Predicate types an indicator can use."""

    # service scope
    IMAGE_KEYWORD = "image_keyword"
    PORT = "port"
    ENV_NAME = "env_name"
    VOLUME_TARGET = "volume_target"
    COMMAND_KEYWORD = "command_keyword"
    STATELESS = "stateless"
    PERSISTENT_VOLUME = "persistent_volume"
    HEALTHCHECK = "healthcheck"
    MIN_DEPENDENTS = "min_dependents"
    # application scope
    MIN_SERVICES = "min_services"
    MAX_SERVICES = "max_services"
    MIN_DISTINCT_PATTERNS = "min_distinct_patterns"
    HAS_DEPENDENCIES = "has_dependencies"
    PATTERN_PRESENT = "pattern_present"
    PATTERN_COUNT = "pattern_count"
    PATTERN_DEPENDENTS = "pattern_dependents"


SERVICE_KINDS = frozenset(
    {
        IndicatorKind.IMAGE_KEYWORD,
        IndicatorKind.PORT,
        IndicatorKind.ENV_NAME,
        IndicatorKind.VOLUME_TARGET,
        IndicatorKind.COMMAND_KEYWORD,
        IndicatorKind.STATELESS,
        IndicatorKind.PERSISTENT_VOLUME,
        IndicatorKind.HEALTHCHECK,
        IndicatorKind.MIN_DEPENDENTS,
    }
)
_VALUE_KINDS = frozenset(
    {
        IndicatorKind.IMAGE_KEYWORD,
        IndicatorKind.PORT,
        IndicatorKind.ENV_NAME,
        IndicatorKind.VOLUME_TARGET,
        IndicatorKind.COMMAND_KEYWORD,
        IndicatorKind.PATTERN_PRESENT,
        IndicatorKind.PATTERN_COUNT,
        IndicatorKind.PATTERN_DEPENDENTS,
    }
)
_COUNT_KINDS = frozenset(
    {
        IndicatorKind.MIN_DEPENDENTS,
        IndicatorKind.MIN_SERVICES,
        IndicatorKind.MAX_SERVICES,
        IndicatorKind.MIN_DISTINCT_PATTERNS,
        IndicatorKind.PATTERN_COUNT,
        IndicatorKind.PATTERN_DEPENDENTS,
    }
)

# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


class Indicator(BaseModel):
    """One ``(predicate, weight)`` pair."""

    kind: IndicatorKind = Field(..., description="Predicate type.")
    weight: float = Field(..., ge=0.0, description="Contribution when matched.")
    values: list[Any] = Field(
        default_factory=list,
        description="Keywords, ports, path prefixes or pattern ids to look for.",
    )
    count: Optional[int] = Field(
        None, ge=0, description="Threshold for counting predicates."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @model_validator(mode="after")
    def _parameters_present(self) -> Self:
        if self.kind in _VALUE_KINDS and not self.values:
            raise ValueError(f"indicator '{self.kind.value}' requires 'values'")
        if self.kind in _COUNT_KINDS and self.count is None:
            raise ValueError(f"indicator '{self.kind.value}' requires 'count'")
        if self.kind is IndicatorKind.PORT:
            for value in self.values:
                if isinstance(value, bool) or not isinstance(value, int):
                    raise ValueError(f"port indicator values must be ints: {value!r}")
        return self

    @property
    def scope(self) -> PatternScope:
        return (
            PatternScope.SERVICE
            if self.kind in SERVICE_KINDS
            else PatternScope.APPLICATION
        )

    def describe(self) -> str:
        if self.values:
            return f"{self.kind.value}({', '.join(str(v) for v in self.values)})"
        if self.count is not None:
            return f"{self.kind.value}({self.count})"
        return self.kind.value


class PatternDefinition(BaseModel):
    """A named workload/architecture archetype."""

    id: str = Field(
        ..., pattern=r"^[a-z][a-z0-9_]*$", description="Stable identifier."
    )
    name: str = Field(..., description="Display name.")
    description: str = Field("", description="What the pattern represents.")
    scope: PatternScope = Field(PatternScope.SERVICE, description="Evaluation scope.")
    family: PatternFamily = Field(
        PatternFamily.GENERIC, description="Policy-table family."
    )
    indicators: list[Indicator] = Field(..., min_length=1, description="Predicates.")
    confidence_threshold: float = Field(
        ..., gt=0.0, le=1.0, description="Minimum normalized score to match."
    )
    stateful: bool = Field(False, description="Workload keeps durable state.")
    recommendations: list[str] = Field(
        default_factory=list, description="Advice surfaced when matched."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @model_validator(mode="after")
    def _indicators_fit_scope(self) -> Self:
        for indicator in self.indicators:
            if indicator.scope is not self.scope:
                raise ValueError(
                    f"indicator '{indicator.kind.value}' cannot be used in a "
                    f"{self.scope.value}-scoped pattern"
                )
        return self

    @property
    def total_weight(self) -> float:
        return sum(i.weight for i in self.indicators)


class PatternMatch(BaseModel):
    """Outcome of scoring one pattern against one scope."""

    pattern_id: str = Field(..., description="Matched pattern id.")
    scope: PatternScope = Field(..., description="Service or whole application.")
    service_id: Optional[str] = Field(
        None, description="Scored service (None for application scope)."
    )
    family: PatternFamily = Field(PatternFamily.GENERIC, description="Family.")
    stateful: bool = Field(False, description="Copied from the definition.")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Normalized score.")
    matched_indicators: list[str] = Field(
        default_factory=list, description="Descriptions of matched indicators."
    )
    declaration_index: int = Field(
        0, ge=0, description="Position of the definition (tie-break)."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("confidence")
    @classmethod
    def _rounded(cls, v: float) -> float:
        return round(v, 6)


class ClassificationResult(BaseModel):
    """All pattern matches of a run."""

    service_matches: dict[str, list[PatternMatch]] = Field(
        default_factory=dict, description="service id ➜ matches (best first)."
    )
    application_matches: list[PatternMatch] = Field(
        default_factory=list, description="Aggregate matches (best first)."
    )
    primary: dict[str, Optional[PatternMatch]] = Field(
        default_factory=dict, description="service id ➜ primary match or None."
    )
    recommendations: list[str] = Field(
        default_factory=list, description="Advice from matched patterns."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    def primary_for(self, service_id: str) -> Optional[PatternMatch]:
        return self.primary.get(service_id)

    def matched(self, service_id: str, pattern_id: str) -> bool:
        return any(
            m.pattern_id == pattern_id for m in self.service_matches.get(service_id, [])
        )

    def matched_family(self, service_id: str, family: PatternFamily) -> bool:
        return any(m.family is family for m in self.service_matches.get(service_id, []))


__all__ = [
    "PatternScope",
    "PatternFamily",
    "IndicatorKind",
    "Indicator",
    "PatternDefinition",
    "PatternMatch",
    "ClassificationResult",
]
