from __future__ import annotations

"""
models.py – Intermediate Representation (IR)
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Normalized, immutable model of a multi-service compose application. Built
once by the normalizer and only read afterwards.
"""

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

SCHEMA_VERSION: str = "1.0.0"

SENSITIVE_NAME_RE = re.compile(r"PASSWORD|SECRET|KEY|TOKEN", re.IGNORECASE)

_REPOSITORY_RE = re.compile(
    r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*$"
)
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-fA-F0-9]{32,}$")
_FIELD_INDEX_RE = re.compile(r"^(\w+)\[(\d+)\]$")

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MountType(str, Enum):
    """How a service volume entry is backed."""

    VOLUME = "volume"
    BIND = "bind"
    TMPFS = "tmpfs"


class PortProtocol(str, Enum):
    TCP = "TCP"
    UDP = "UDP"


# ---------------------------------------------------------------------------
# Core building blocks
# ---------------------------------------------------------------------------


class ImageRef(BaseModel):
    """Container image reference split into registry/repository/tag parts."""

    raw: str = Field(..., description="Reference exactly as written in the input.")
    registry: Optional[str] = Field(
        None, description="Registry host (None means Docker Hub)."
    )
    repository: str = Field(..., description="Repository path, e.g. *library/nginx*.")
    tag: Optional[str] = Field(None, description="Tag, None when omitted.")
    digest: Optional[str] = Field(None, description="Content digest, if pinned.")
    built_locally: bool = Field(
        False, description="True when derived from a `build` section."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def parse(cls, raw: str, built_locally: bool = False) -> ImageRef:
        """
        Split a reference such as ``ghcr.io/org/app:1.2@sha256:...``.

        Raises:
            ValueError: If the reference is empty or malformed
        """
        text = (raw or "").strip()
        if not text:
            raise ValueError("image reference is empty")

        digest = None
        if "@" in text:
            text, digest = text.split("@", 1)
            if not _DIGEST_RE.match(digest):
                raise ValueError(f"malformed digest '{digest}'")

        tag = None
        last_segment = text.rsplit("/", 1)[-1]
        if ":" in last_segment:
            text, tag = text.rsplit(":", 1)
            if not _TAG_RE.match(tag):
                raise ValueError(f"malformed tag '{tag}'")

        registry = None
        parts = text.split("/")
        if len(parts) > 1 and (
            "." in parts[0] or ":" in parts[0] or parts[0] == "localhost"
        ):
            registry = parts[0]
            parts = parts[1:]
        repository = "/".join(parts)
        if not _REPOSITORY_RE.match(repository):
            raise ValueError(f"malformed repository '{repository}'")

        return cls(
            raw=raw.strip(),
            registry=registry,
            repository=repository,
            tag=tag,
            digest=digest,
            built_locally=built_locally,
        )

    @property
    def name(self) -> str:
        """Last repository component, e.g. ``postgres`` for ``bitnami/postgres``."""
        return self.repository.rsplit("/", 1)[-1]

    @property
    def is_unpinned(self) -> bool:
        """Missing or ``latest`` tag and no digest."""
        return self.digest is None and self.tag in (None, "latest")

    @property
    def is_official(self) -> bool:
        """Docker Hub library image (no registry, no namespace)."""
        return self.registry is None and (
            "/" not in self.repository or self.repository.startswith("library/")
        )

    @property
    def reference(self) -> str:
        ref = f"{self.registry}/{self.repository}" if self.registry else self.repository
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@{self.digest}"
        return ref


class PortSpec(BaseModel):
    """A container port, optionally published on the host."""

    container_port: int = Field(..., ge=1, le=65535, description="Port in container.")
    host_port: Optional[int] = Field(
        None, ge=1, le=65535, description="Published host port, if any."
    )
    host_ip: Optional[str] = Field(None, description="Host interface binding.")
    protocol: PortProtocol = Field(PortProtocol.TCP, description="L4 protocol.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def published(self) -> bool:
        return self.host_port is not None


class EnvEntry(BaseModel):
    """One environment variable."""

    name: str = Field(..., min_length=1, description="Variable name.")
    value: str = Field("", description="Literal value (may be empty).")
    sensitive: bool = Field(
        False, description="True when the name looks like a credential."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def create(cls, name: str, value: Any) -> EnvEntry:
        text = "" if value is None else str(value)
        if isinstance(value, bool):
            text = "true" if value else "false"
        return cls(
            name=name, value=text, sensitive=bool(SENSITIVE_NAME_RE.search(name))
        )


class VolumeMount(BaseModel):
    """A service-level volume entry."""

    source: Optional[str] = Field(
        None, description="Named volume or host path; None for anonymous volumes."
    )
    target: str = Field(..., description="Mount path in the container.")
    mount_type: MountType = Field(MountType.VOLUME, description="Backing type.")
    read_only: bool = Field(False, description="Mounted read-only.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @field_validator("target")
    @classmethod
    def _absolute_target(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"mount target '{v}' must be an absolute path")
        return v

    @property
    def is_persistent(self) -> bool:
        return self.mount_type is MountType.VOLUME and self.source is not None


class HealthcheckSpec(BaseModel):
    """Declared container healthcheck."""

    test: List[str] = Field(default_factory=list, description="Check command.")
    interval_s: Optional[int] = Field(None, ge=0, description="Interval (s).")
    timeout_s: Optional[int] = Field(None, ge=0, description="Timeout (s).")
    retries: Optional[int] = Field(None, ge=0, description="Consecutive failures.")
    start_period_s: Optional[int] = Field(None, ge=0, description="Grace period (s).")
    disabled: bool = Field(False, description="`disable: true` or test NONE.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def command(self) -> List[str]:
        """Executable form of ``test`` (``CMD``/``CMD-SHELL`` prefixes removed)."""
        if not self.test or self.disabled:
            return []
        head, rest = self.test[0], self.test[1:]
        if head == "CMD":
            return list(rest)
        if head == "CMD-SHELL":
            return ["/bin/sh", "-c", " ".join(rest)]
        return list(self.test)


class ResourceHints(BaseModel):
    """Resources declared in the input (already Kubernetes quantities)."""

    cpu_limit: Optional[str] = Field(None, description="CPU limit, e.g. *500m*.")
    memory_limit: Optional[str] = Field(None, description="Memory limit, e.g. *1Gi*.")
    cpu_request: Optional[str] = Field(None, description="CPU reservation.")
    memory_request: Optional[str] = Field(None, description="Memory reservation.")
    replicas: Optional[int] = Field(None, ge=0, description="`deploy.replicas`.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def has_limits(self) -> bool:
        return self.cpu_limit is not None and self.memory_limit is not None


class ServiceSpec(BaseModel):
    """A single compose service."""

    id: str = Field(..., description="Service key in the compose document.")
    image: ImageRef = Field(..., description="Normalized image reference.")
    ports: List[PortSpec] = Field(default_factory=list, description="Ports.")
    environment: List[EnvEntry] = Field(
        default_factory=list, description="Environment in declaration order."
    )
    volumes: List[VolumeMount] = Field(default_factory=list, description="Mounts.")
    entrypoint: List[str] = Field(
        default_factory=list, description="Entrypoint override."
    )
    command: List[str] = Field(default_factory=list, description="Command override.")
    depends_on: List[str] = Field(
        default_factory=list, description="Services this one depends on."
    )
    resources: ResourceHints = Field(
        default_factory=ResourceHints, description="Declared resource hints."
    )
    healthcheck: Optional[HealthcheckSpec] = Field(
        None, description="Declared healthcheck."
    )
    networks: List[str] = Field(
        default_factory=list, description="Network memberships."
    )
    privileged: bool = Field(False, description="`privileged: true`.")
    cap_add: List[str] = Field(default_factory=list, description="Added capabilities.")
    user: Optional[str] = Field(None, description="Container user override.")
    restart: Optional[str] = Field(None, description="Restart policy.")
    labels: Dict[str, str] = Field(default_factory=dict, description="Labels.")
    extensions: Dict[str, Any] = Field(
        default_factory=dict,
        description="Unrecognized keys, retained opaquely and never interpreted.",
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @field_validator("depends_on")
    @classmethod
    def _unique_dependencies(cls, v: List[str]) -> List[str]:
        seen: list[str] = []
        for dep in v:
            if dep not in seen:
                seen.append(dep)
        return seen

    @model_validator(mode="after")
    def _no_self_dependency(self) -> Self:
        if self.id in self.depends_on:
            raise ValueError(f"Service '{self.id}' cannot depend on itself")
        return self

    @model_validator(mode="after")
    def _unique_env_names(self) -> Self:
        names = [e.name for e in self.environment]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate environment entries: {duplicates}")
        return self

    # ----- helpers -----------------------------------------------------------
    @property
    def primary_port(self) -> Optional[int]:
        return self.ports[0].container_port if self.ports else None

    @property
    def persistent_volumes(self) -> List[VolumeMount]:
        return [v for v in self.volumes if v.is_persistent]

    @property
    def bind_mounts(self) -> List[VolumeMount]:
        return [v for v in self.volumes if v.mount_type is MountType.BIND]

    @property
    def sensitive_env(self) -> List[EnvEntry]:
        return [e for e in self.environment if e.sensitive]

    def env(self, name: str) -> Optional[EnvEntry]:
        for entry in self.environment:
            if entry.name == name:
                return entry
        return None


class VolumeSpec(BaseModel):
    """Top-level named volume."""

    name: str = Field(..., description="Volume key.")
    driver: Optional[str] = Field(None, description="Volume driver.")
    driver_opts: Dict[str, str] = Field(default_factory=dict, description="Options.")
    external: bool = Field(False, description="Managed outside the application.")

    model_config = ConfigDict(extra="forbid", frozen=True)


class NetworkSpec(BaseModel):
    """Top-level network."""

    name: str = Field(..., description="Network key.")
    driver: Optional[str] = Field(None, description="Network driver.")
    internal: bool = Field(False, description="No external connectivity.")
    external: bool = Field(False, description="Managed outside the application.")

    model_config = ConfigDict(extra="forbid", frozen=True)


class SecretSpec(BaseModel):
    """Top-level secret or config reference (file or external)."""

    name: str = Field(..., description="Secret/config key.")
    file: Optional[str] = Field(None, description="Source file path.")
    external: bool = Field(False, description="Managed outside the application.")

    model_config = ConfigDict(extra="forbid", frozen=True)


class ComposeModel(BaseModel):
    """Root of the IR: a whole compose application."""

    schema_version: str = Field(
        SCHEMA_VERSION,
        frozen=True,
        description="IR schema semantic version for compatibility checks.",
    )
    name: Optional[str] = Field(None, description="Compose project name.")
    services: Dict[str, ServiceSpec] = Field(
        default_factory=dict, description="Services keyed by id."
    )
    volumes: Dict[str, VolumeSpec] = Field(
        default_factory=dict, description="Named volumes keyed by name."
    )
    networks: Dict[str, NetworkSpec] = Field(
        default_factory=dict, description="Networks keyed by name."
    )
    secrets: Dict[str, SecretSpec] = Field(
        default_factory=dict, description="Secrets keyed by name."
    )
    configs: Dict[str, SecretSpec] = Field(
        default_factory=dict, description="Configs keyed by name."
    )
    extensions: Dict[str, Any] = Field(
        default_factory=dict, description="Unrecognized top-level keys."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @model_validator(mode="after")
    def _keys_match_ids(self) -> Self:
        for key, service in self.services.items():
            if key != service.id:
                raise ValueError(f"Service key '{key}' != id '{service.id}'")
        for key, volume in self.volumes.items():
            if key != volume.name:
                raise ValueError(f"Volume key '{key}' != name '{volume.name}'")
        for key, network in self.networks.items():
            if key != network.name:
                raise ValueError(f"Network key '{key}' != name '{network.name}'")
        return self

    @model_validator(mode="after")
    def _dependencies_refer_valid_services(self) -> Self:
        for service in self.services.values():
            for dep in service.depends_on:
                if dep not in self.services:
                    raise ValueError(
                        f"Service '{service.id}' depends on unknown service '{dep}'"
                    )
        return self

    @model_validator(mode="after")
    def _named_volumes_declared(self) -> Self:
        for service in self.services.values():
            for mount in service.persistent_volumes:
                if mount.source not in self.volumes:
                    raise ValueError(
                        f"Service '{service.id}' mounts undeclared volume "
                        f"'{mount.source}'"
                    )
        return self

    # ----- helpers -----------------------------------------------------------
    @property
    def service_ids(self) -> List[str]:
        """Service ids in stable (sorted) order."""
        return sorted(self.services)

    def ordered_services(self) -> List[ServiceSpec]:
        return [self.services[sid] for sid in self.service_ids]

    @property
    def complexity_score(self) -> int:
        """Rough deployment-complexity indicator used in summaries."""
        stateful_images = ("postgres", "mysql", "mariadb", "mongo", "minio")
        score = (
            len(self.services) * 10 + len(self.volumes) * 5 + len(self.networks) * 3
        )
        for service in self.services.values():
            score += len(service.depends_on) * 2
            score += len(service.ports) + len(service.volumes)
            if service.healthcheck is not None:
                score += 5
            if any(k in service.image.name for k in stateful_images):
                score += 10
        return score

    def has_field(self, path: str) -> bool:
        """
        Check whether a dotted field path resolves inside this model.

        Supported paths: ``services.<id>``, ``services.<id>.<attr>``,
        ``services.<id>.<list>[i]``, ``services.<id>.environment.<NAME>``,
        ``volumes.<name>``, ``networks.<name>``, ``secrets.<name>``.

        Args:
            path: Dotted path such as ``services.web.ports[0]``

        Returns:
            True if the path points at an existing element
        """
        head, _, rest = path.partition(".")
        if head in ("volumes", "networks", "secrets", "configs"):
            return rest in getattr(self, head)
        if head != "services":
            return False

        # compose ids may contain dots, so match the longest known id
        service_id = next(
            (
                sid
                for sid in sorted(self.services, key=len, reverse=True)
                if rest == sid or rest.startswith(f"{sid}.")
            ),
            None,
        )
        if service_id is None:
            return False
        service = self.services[service_id]
        tail = rest[len(service_id) + 1 :]
        if not tail:
            return True

        if tail.startswith("environment."):
            return service.env(tail.split(".", 1)[1]) is not None

        indexed = _FIELD_INDEX_RE.match(tail)
        if indexed:
            attr, idx = indexed.group(1), int(indexed.group(2))
            value = getattr(service, attr, None)
            return isinstance(value, list) and idx < len(value)

        return tail in ServiceSpec.model_fields


__all__ = [
    "SCHEMA_VERSION",
    "SENSITIVE_NAME_RE",
    "MountType",
    "PortProtocol",
    "ImageRef",
    "PortSpec",
    "EnvEntry",
    "VolumeMount",
    "HealthcheckSpec",
    "ResourceHints",
    "ServiceSpec",
    "VolumeSpec",
    "NetworkSpec",
    "SecretSpec",
    "ComposeModel",
]
