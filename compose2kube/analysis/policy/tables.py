"""
Base tables for policy resolution.

Resource profiles are expressed for the ``standard`` budget and scaled per
budget level once, at import time; lookups are plain dictionary reads.
"""

from __future__ import annotations

from decimal import Decimal
from typing import NamedTuple

from compose2kube.analysis.patterns.models import PatternFamily
from compose2kube.core.common.quantities import (
    format_cpu,
    format_memory,
    parse_cpu,
    parse_memory_gib,
)
from compose2kube.core.options import BudgetLevel, Environment, SecurityLevel

from .models import SecurityContextPolicy

__all__ = [
    "ResourceProfile",
    "RESOURCE_TABLE",
    "BUDGET_FACTORS",
    "STATELESS_REPLICAS",
    "CLUSTERED_REPLICAS",
    "STORAGE_SIZES",
    "SECURITY_BASELINES",
    "CLUSTERING_ENV_KEYWORDS",
    "CLUSTERING_COMMAND_KEYWORDS",
    "TCP_PROBE_FAMILIES",
    "DEFAULT_STORAGE_SIZE",
    "IMAGE_STORAGE_SIZES",
    "resource_profile",
]


class ResourceProfile(NamedTuple):
    cpu_request: str
    memory_request: str
    cpu_limit: str
    memory_limit: str


_STANDARD_PROFILES: dict[PatternFamily, ResourceProfile] = {
    PatternFamily.WEB: ResourceProfile("100m", "128Mi", "500m", "512Mi"),
    PatternFamily.DATABASE: ResourceProfile("500m", "1Gi", "2", "4Gi"),
    PatternFamily.CACHE: ResourceProfile("100m", "256Mi", "500m", "1Gi"),
    PatternFamily.MESSAGE_QUEUE: ResourceProfile("200m", "512Mi", "1", "2Gi"),
    PatternFamily.LOAD_BALANCER: ResourceProfile("100m", "128Mi", "500m", "256Mi"),
    PatternFamily.STORAGE: ResourceProfile("250m", "512Mi", "1", "2Gi"),
    PatternFamily.GENERIC: ResourceProfile("50m", "64Mi", "200m", "256Mi"),
}

BUDGET_FACTORS: dict[BudgetLevel, Decimal] = {
    BudgetLevel.MINIMAL: Decimal("0.5"),
    BudgetLevel.STANDARD: Decimal("1"),
    BudgetLevel.PERFORMANCE: Decimal("2"),
    BudgetLevel.ENTERPRISE: Decimal("4"),
}


def _scale(profile: ResourceProfile, factor: Decimal) -> ResourceProfile:
    return ResourceProfile(
        format_cpu(parse_cpu(profile.cpu_request) * factor),
        format_memory(parse_memory_gib(profile.memory_request) * factor),
        format_cpu(parse_cpu(profile.cpu_limit) * factor),
        format_memory(parse_memory_gib(profile.memory_limit) * factor),
    )


RESOURCE_TABLE: dict[tuple[PatternFamily, BudgetLevel], ResourceProfile] = {
    (family, budget): _scale(profile, factor)
    for family, profile in _STANDARD_PROFILES.items()
    for budget, factor in BUDGET_FACTORS.items()
}


def resource_profile(family: PatternFamily, budget: BudgetLevel) -> ResourceProfile:
    return RESOURCE_TABLE[(family, budget)]


# (min, max) replicas for stateless tiers per environment
STATELESS_REPLICAS: dict[Environment, tuple[int, int]] = {
    Environment.PRODUCTION: (2, 10),
    Environment.STAGING: (1, 5),
    Environment.DEVELOPMENT: (1, 3),
    Environment.TESTING: (1, 2),
}

# stateful tiers with clustering indicators
CLUSTERED_REPLICAS: dict[Environment, int] = {
    Environment.PRODUCTION: 3,
    Environment.STAGING: 3,
    Environment.DEVELOPMENT: 1,
    Environment.TESTING: 1,
}

CLUSTERING_ENV_KEYWORDS = ("CLUSTER", "REPLICA", "REPLSET", "QUORUM", "SEEDS")
CLUSTERING_COMMAND_KEYWORDS = ("--replset", "cluster", "--seeds")

STORAGE_SIZES: dict[PatternFamily, str] = {
    PatternFamily.DATABASE: "10Gi",
    PatternFamily.STORAGE: "50Gi",
    PatternFamily.MESSAGE_QUEUE: "10Gi",
    PatternFamily.CACHE: "2Gi",
}
DEFAULT_STORAGE_SIZE = "1Gi"
# image keyword ➜ storage size override
IMAGE_STORAGE_SIZES: dict[str, str] = {"postgres": "20Gi", "elasticsearch": "30Gi"}

TCP_PROBE_FAMILIES = frozenset(
    {
        PatternFamily.DATABASE,
        PatternFamily.CACHE,
        PatternFamily.MESSAGE_QUEUE,
        PatternFamily.STORAGE,
        PatternFamily.LOAD_BALANCER,
    }
)

SECURITY_BASELINES: dict[SecurityLevel, SecurityContextPolicy] = {
    SecurityLevel.BASIC: SecurityContextPolicy(),
    SecurityLevel.ENHANCED: SecurityContextPolicy(
        drop_capabilities=["NET_RAW"],
        seccomp_profile="RuntimeDefault",
        network_isolation=True,
    ),
    SecurityLevel.STRICT: SecurityContextPolicy(
        run_as_non_root=True,
        allow_privilege_escalation=False,
        drop_capabilities=["ALL"],
        seccomp_profile="RuntimeDefault",
        network_isolation=True,
    ),
}
