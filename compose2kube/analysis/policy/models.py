"""Resolved, frozen generation policy for one service."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from compose2kube.analysis.patterns.models import PatternFamily


class ProbeKind(str, Enum):
    HTTP = "http"
    TCP = "tcp"
    EXEC = "exec"


class WorkloadKind(str, Enum):
    DEPLOYMENT = "Deployment"
    STATEFULSET = "StatefulSet"


class ServiceType(str, Enum):
    CLUSTER_IP = "ClusterIP"
    LOAD_BALANCER = "LoadBalancer"


class ReplicaBounds(BaseModel):
    """Replica range; ``min`` is also the initial replica count."""

    min: int = Field(..., ge=0, description="Minimum / initial replicas.")
    max: int = Field(..., ge=1, description="Maximum replicas.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @model_validator(mode="after")
    def _ordered(self) -> Self:
        if self.min > self.max:
            raise ValueError(f"min replicas ({self.min}) > max replicas ({self.max})")
        return self


class ResourcePolicy(BaseModel):
    """CPU/memory requests and limits as Kubernetes quantities."""

    cpu_request: str = Field(..., description="CPU request, e.g. *100m*.")
    memory_request: str = Field(..., description="Memory request, e.g. *128Mi*.")
    cpu_limit: Optional[str] = Field(None, description="CPU limit.")
    memory_limit: Optional[str] = Field(None, description="Memory limit.")
    default_cpu_limit: str = Field(..., description="Table default CPU limit.")
    default_memory_limit: str = Field(..., description="Table default memory limit.")
    limits_declared: bool = Field(
        False, description="Limits came from the input document."
    )
    explicit_limits_required: bool = Field(
        False, description="Defaults must not fill in missing limits."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def has_limits(self) -> bool:
        return self.cpu_limit is not None and self.memory_limit is not None


class AutoscalingPolicy(BaseModel):
    enabled: bool = Field(False, description="Emit an autoscaler.")
    target_cpu: int = Field(70, ge=1, le=100, description="CPU utilization %.")
    target_memory: int = Field(80, ge=1, le=100, description="Memory utilization %.")

    model_config = ConfigDict(extra="forbid", frozen=True)


class ProbeSpec(BaseModel):
    """One liveness/readiness probe."""

    kind: ProbeKind = Field(..., description="Probe mechanism.")
    port: Optional[int] = Field(None, description="Target port (http/tcp).")
    path: Optional[str] = Field(None, description="HTTP path.")
    command: list[str] = Field(default_factory=list, description="Exec command.")
    initial_delay_s: int = Field(0, ge=0)
    period_s: int = Field(10, ge=1)
    timeout_s: int = Field(1, ge=1)
    failure_threshold: int = Field(3, ge=1)

    model_config = ConfigDict(extra="forbid", frozen=True)


class ProbePolicy(BaseModel):
    liveness: Optional[ProbeSpec] = None
    readiness: Optional[ProbeSpec] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class SecurityContextPolicy(BaseModel):
    """Baseline container security context derived from the security level."""

    run_as_non_root: Optional[bool] = None
    allow_privilege_escalation: Optional[bool] = None
    read_only_root_filesystem: Optional[bool] = None
    drop_capabilities: list[str] = Field(default_factory=list)
    seccomp_profile: Optional[str] = None
    network_isolation: bool = Field(
        False, description="Emit a NetworkPolicy for every service."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)


class VolumeClaimPolicy(BaseModel):
    """Claim to create for one persistent volume mount."""

    volume: str = Field(..., description="Compose volume name.")
    mount_path: str = Field(..., description="Container mount path.")
    size: str = Field(..., description="Requested storage, e.g. *10Gi*.")
    access_mode: str = Field("ReadWriteOnce", description="PVC access mode.")
    storage_class: str = Field("standard", description="StorageClass name.")
    read_only: bool = Field(False)

    model_config = ConfigDict(extra="forbid", frozen=True)


class GenerationPolicy(BaseModel):
    """Concrete generation parameters for one service."""

    service_id: str = Field(..., description="Owning service id.")
    pattern_id: Optional[str] = Field(None, description="Primary pattern, if any.")
    family: PatternFamily = Field(PatternFamily.GENERIC, description="Family.")
    workload_kind: WorkloadKind = Field(WorkloadKind.DEPLOYMENT)
    replicas: ReplicaBounds
    resources: ResourcePolicy
    autoscaling: AutoscalingPolicy = Field(default_factory=AutoscalingPolicy)
    probes: ProbePolicy = Field(default_factory=ProbePolicy)
    security_context: SecurityContextPolicy = Field(
        default_factory=SecurityContextPolicy
    )
    namespace: str = Field("default")
    labels: dict[str, str] = Field(
        default_factory=dict, description="Identity labels for every resource."
    )
    service_type: ServiceType = Field(ServiceType.CLUSTER_IP)
    expose_externally: bool = Field(
        False, description="Reachable from outside the cluster."
    )
    ingress: bool = Field(False, description="Emit an Ingress.")
    volumes: list[VolumeClaimPolicy] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", frozen=True)


__all__ = [
    "ProbeKind",
    "WorkloadKind",
    "ServiceType",
    "ReplicaBounds",
    "ResourcePolicy",
    "AutoscalingPolicy",
    "ProbeSpec",
    "ProbePolicy",
    "SecurityContextPolicy",
    "VolumeClaimPolicy",
    "GenerationPolicy",
]
