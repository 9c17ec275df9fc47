"""
Per-service synthesis context.

The synthesizer computes one :class:`ServiceContext` per service before any
builder runs. Builders read names and labels from the context's
:class:`ServiceIdentity` instead of recomputing them, so every resource a
service owns carries the same identity.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field

from compose2kube.analysis.policy.models import GenerationPolicy
from compose2kube.analysis.security.models import (
    RemediationDirective,
    RemediationKind,
)
from compose2kube.core.common.naming import (
    identity_labels,
    resource_name,
    to_dns_label,
)
from compose2kube.core.options import PipelineOptions
from compose2kube.ir.models import EnvEntry, MountType, ServiceSpec, VolumeMount

ANNOTATION_PREFIX = "compose2kube.io"


class ServiceIdentity(BaseModel):
    """Name stem and label set shared by every resource of one service."""

    service_id: str = Field(..., description="Compose service id.")
    dns_id: str = Field(..., description="DNS-1123 form of the id.")
    labels: dict[str, str] = Field(..., description="Identity labels.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def for_service(cls, service_id: str) -> ServiceIdentity:
        return cls(
            service_id=service_id,
            dns_id=to_dns_label(service_id),
            labels=identity_labels(service_id),
        )

    def name(self, suffix: str) -> str:
        return resource_name(self.service_id, suffix)

    @property
    def selector(self) -> dict[str, str]:
        return dict(self.labels)

    # ----- well-known names --------------------------------------------------
    @property
    def secret_name(self) -> str:
        return self.name("secret")

    @property
    def config_name(self) -> str:
        return self.name("config")

    @property
    def service_name(self) -> str:
        return self.name("service")

    def claim_name(self, volume: str) -> str:
        return self.name(f"{to_dns_label(volume)}-pvc")


@dataclass(frozen=True)
class ServiceContext:
    """Everything a resource builder may read for one service."""

    service: ServiceSpec
    policy: GenerationPolicy
    identity: ServiceIdentity
    options: PipelineOptions
    directives: tuple[RemediationDirective, ...] = ()
    dependents: tuple[ServiceIdentity, ...] = ()
    extracted_env: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def create(
        cls,
        service: ServiceSpec,
        policy: GenerationPolicy,
        options: PipelineOptions,
        directives: list[RemediationDirective] | tuple[RemediationDirective, ...] = (),
        dependents: list[ServiceIdentity] | tuple[ServiceIdentity, ...] = (),
    ) -> ServiceContext:
        extracted = frozenset(
            d.params["name"]
            for d in directives
            if d.kind is RemediationKind.EXTRACT_SECRET and "name" in d.params
        )
        return cls(
            service=service,
            policy=policy,
            identity=ServiceIdentity.for_service(service.id),
            options=options,
            directives=tuple(directives),
            dependents=tuple(dependents),
            extracted_env=extracted,
        )

    @property
    def namespace(self) -> str:
        return self.policy.namespace

    def has_directive(self, kind: RemediationKind) -> bool:
        return any(d.kind is kind for d in self.directives)

    def directives_of(self, kind: RemediationKind) -> list[RemediationDirective]:
        return [d for d in self.directives if d.kind is kind]

    # ----- environment -------------------------------------------------------

    @property
    def secret_env(self) -> list[EnvEntry]:
        """Entries that go to the Secret: name heuristic or extraction directive."""
        return [
            e
            for e in self.service.environment
            if e.sensitive or e.name in self.extracted_env
        ]

    @property
    def config_env(self) -> list[EnvEntry]:
        secret = {e.name for e in self.secret_env}
        return [e for e in self.service.environment if e.name not in secret]

    # ----- ports -------------------------------------------------------------

    @property
    def container_ports(self) -> list[tuple[int, str]]:
        """Unique ``(container_port, protocol)`` pairs in declaration order."""
        seen: list[tuple[int, str]] = []
        for port in self.service.ports:
            pair = (port.container_port, port.protocol.value)
            if pair not in seen:
                seen.append(pair)
        return seen

    @property
    def published_ports(self) -> list[tuple[int, str]]:
        seen: list[tuple[int, str]] = []
        for port in self.service.ports:
            pair = (port.container_port, port.protocol.value)
            if port.published and pair not in seen:
                seen.append(pair)
        return seen

    @staticmethod
    def port_name(port: int, protocol: str) -> str:
        return f"{protocol.lower()}-{port}"

    # ----- security directives -----------------------------------------------

    @property
    def hardened(self) -> bool:
        return self.has_directive(RemediationKind.SET_POD_SECURITY_CONTEXT)

    @property
    def removed_capabilities(self) -> list[str]:
        caps: set[str] = set()
        for d in self.directives_of(RemediationKind.SET_POD_SECURITY_CONTEXT):
            caps.update(d.params.get("capabilities", []))
        return sorted(caps)

    @property
    def needs_network_policy(self) -> bool:
        return self.policy.security_context.network_isolation or self.has_directive(
            RemediationKind.ADD_NETWORK_POLICY
        )

    @property
    def pull_always(self) -> bool:
        return self.has_directive(RemediationKind.FLAG_INSECURE_TAG)

    def is_host_path_allowed(self, path: str) -> bool:
        return any(
            path == p or path.startswith(p.rstrip("/") + "/")
            for p in self.options.hostpath_allow_list
        )

    def blocks_host_path(self, index: int, mount: VolumeMount) -> bool:
        """A bind mount flagged by a directive and not on the allow-list."""
        if mount.mount_type is not MountType.BIND:
            return False
        if self.is_host_path_allowed(mount.source or ""):
            return False
        target = f"services.{self.service.id}.volumes[{index}]"
        return any(
            d.field == target
            for d in self.directives_of(RemediationKind.DISALLOW_HOST_PATH_VOLUME)
        )

    @property
    def annotations(self) -> dict[str, str]:
        """Annotations recording advisory directives on the workload."""
        result: dict[str, str] = {}
        if self.pull_always:
            result[f"{ANNOTATION_PREFIX}/image-review"] = "required"
        ports: set[int] = set()
        protocols: set[str] = set()
        for d in self.directives_of(RemediationKind.FLAG_INSECURE_PORT):
            if "port" in d.params:
                ports.add(int(d.params["port"]))
            if "protocol" in d.params:
                protocols.add(str(d.params["protocol"]))
        if ports:
            result[f"{ANNOTATION_PREFIX}/insecure-ports"] = ",".join(
                str(p) for p in sorted(ports)
            )
        if protocols:
            result[f"{ANNOTATION_PREFIX}/insecure-protocols"] = ",".join(
                sorted(protocols)
            )
        return result

    # ----- resources ---------------------------------------------------------

    @property
    def limits(self) -> dict[str, str]:
        res = self.policy.resources
        cpu, memory = res.cpu_limit, res.memory_limit
        if (
            self.has_directive(RemediationKind.REQUIRE_RESOURCE_LIMITS)
            and not res.explicit_limits_required
        ):
            cpu = cpu or res.default_cpu_limit
            memory = memory or res.default_memory_limit
        limits = {}
        if cpu is not None:
            limits["cpu"] = cpu
        if memory is not None:
            limits["memory"] = memory
        return limits


__all__ = ["ANNOTATION_PREFIX", "ServiceIdentity", "ServiceContext"]
