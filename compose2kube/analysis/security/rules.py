"""
Built-in security rules.

Every rule is a :class:`SecurityRule` record: a predicate over one service
(plus its resolved policy), a severity, a category and the remediation kind it
proposes. The engine evaluates every record with the same routine; adding a
rule means appending a record to :data:`SECURITY_RULES`.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from compose2kube.analysis.patterns.models import PatternFamily
from compose2kube.analysis.policy.models import GenerationPolicy
from compose2kube.core.options import Severity
from compose2kube.ir.models import MountType, ServiceSpec

from .models import RemediationKind

# ---------------------------------------------------------------------------
# Shared tables
# ---------------------------------------------------------------------------

OFFICIAL_IMAGES = frozenset(
    {
        "nginx", "apache", "httpd", "postgres", "mysql", "mariadb", "mongo",
        "mongodb", "redis", "memcached", "rabbitmq", "kafka", "elasticsearch",
        "node", "python", "java", "php", "ruby", "golang", "alpine", "ubuntu",
        "debian", "centos", "busybox",
    }
)  # fmt: skip

DANGEROUS_PORTS = frozenset({22, 23, 25, 53, 135, 139, 445, 3389})
SENSITIVE_HOST_PATHS = ("/etc", "/var/run/docker.sock", "/proc", "/sys", "/root", "/boot")
DANGEROUS_CAPABILITIES = frozenset({"SYS_ADMIN", "NET_ADMIN", "ALL"})
WEAK_PASSWORDS = frozenset(
    {"password", "admin", "root", "123456", "changeme", "secret", "default",
     "test", "postgres", "mysql", "pass", "qwerty"}
)  # fmt: skip

_SECRET_VALUE_RE = re.compile(
    r"^(?:AKIA[0-9A-Z]{16}"  # AWS access key id
    r"|gh[pousr]_[A-Za-z0-9]{36,}"  # GitHub token
    r"|sk_(?:live|test)_[A-Za-z0-9]{16,}"  # Stripe key
    r"|-----BEGIN [A-Z ]*PRIVATE KEY-----.*"
    r"|eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}"  # JWT
    r")$",
    re.DOTALL,
)
_INSECURE_URL_RE = re.compile(r"\b(http|ftp|telnet|ldap)://([^/\s:@]+@)?([^/\s:]+)")
_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0"})
_REFERENCE_RE = re.compile(r"^\$\{?[A-Za-z_][A-Za-z0-9_]*")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleContext:
    """Read-only inputs a predicate may consult besides the service itself."""

    policy: GenerationPolicy | None = None
    hostpath_allow_list: tuple[str, ...] = ()


class RuleHit(NamedTuple):
    """One predicate match: where it fired and what to tell the synthesizer."""

    field: str
    detail: str
    params: dict[str, Any]


@dataclass(frozen=True)
class SecurityRule:
    """A ``(predicate, severity, description, remediation)`` record."""

    id: str
    category: str
    severity: Severity
    title: str
    remediation: RemediationKind
    check: Callable[[ServiceSpec, RuleContext], list[RuleHit]]
    cwe: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def _path(service: ServiceSpec, tail: str = "") -> str:
    return f"services.{service.id}{'.' + tail if tail else ''}"


def _unpinned_tag(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    image = service.image
    if image.built_locally or not image.is_unpinned:
        return []
    return [
        RuleHit(
            _path(service, "image"),
            f"image '{image.raw}' uses {'tag latest' if image.tag else 'no tag'}",
            {"image": image.raw},
        )
    ]


def _untrusted_image(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    image = service.image
    if image.built_locally or (image.is_official and image.name in OFFICIAL_IMAGES):
        return []
    return [
        RuleHit(
            _path(service, "image"),
            f"image '{image.raw}' is not an official image",
            {"image": image.raw},
        )
    ]


def _hardcoded_secret(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    return [
        RuleHit(
            _path(service, f"environment.{e.name}"),
            f"credential '{e.name}' is set in plain text",
            {"name": e.name},
        )
        for e in service.environment
        if e.sensitive and e.value and not _REFERENCE_RE.match(e.value)
    ]


def _secret_looking_value(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    return [
        RuleHit(
            _path(service, f"environment.{e.name}"),
            f"value of '{e.name}' looks like a credential",
            {"name": e.name},
        )
        for e in service.environment
        if not e.sensitive and _SECRET_VALUE_RE.match(e.value.strip())
    ]


def _weak_password(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    return [
        RuleHit(
            _path(service, f"environment.{e.name}"),
            f"'{e.name}' uses a default or weak value",
            {"name": e.name},
        )
        for e in service.environment
        if e.sensitive and e.value.strip().lower() in WEAK_PASSWORDS
    ]


def _insecure_url(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    hits = []
    for entry in service.environment:
        match = _INSECURE_URL_RE.search(entry.value)
        if match and match.group(3).lower() not in _LOCAL_HOSTS:
            hits.append(
                RuleHit(
                    _path(service, f"environment.{entry.name}"),
                    f"'{entry.name}' points at an unencrypted {match.group(1)} URL",
                    {"name": entry.name, "protocol": match.group(1)},
                )
            )
    return hits


def _privileged_host_port(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    return [
        RuleHit(
            _path(service, f"ports[{i}]"),
            f"host port {p.host_port} is a privileged port",
            {"port": p.host_port},
        )
        for i, p in enumerate(service.ports)
        if p.host_port is not None and p.host_port < 1024
    ]


def _dangerous_port(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    hits = []
    for i, port in enumerate(service.ports):
        exposed = {port.container_port, port.host_port} & DANGEROUS_PORTS
        for number in sorted(exposed):
            hits.append(
                RuleHit(
                    _path(service, f"ports[{i}]"),
                    f"port {number} exposes a commonly attacked service",
                    {"port": number},
                )
            )
    return hits


def _is_sensitive_host_path(path: str) -> bool:
    return any(path == p or path.startswith(p + "/") for p in SENSITIVE_HOST_PATHS)


def _is_allowed(path: str, ctx: RuleContext) -> bool:
    return any(
        path == p or path.startswith(p.rstrip("/") + "/")
        for p in ctx.hostpath_allow_list
    )


def _host_path(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    return [
        RuleHit(
            _path(service, f"volumes[{i}]"),
            f"host path '{v.source}' is mounted into the container",
            {"path": v.source, "target": v.target},
        )
        for i, v in enumerate(service.volumes)
        if v.mount_type is MountType.BIND
        and not _is_sensitive_host_path(v.source or "")
        and not _is_allowed(v.source or "", ctx)
    ]


def _sensitive_host_path(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    return [
        RuleHit(
            _path(service, f"volumes[{i}]"),
            f"sensitive host path '{v.source}' is mounted",
            {"path": v.source, "target": v.target},
        )
        for i, v in enumerate(service.volumes)
        if v.mount_type is MountType.BIND
        and _is_sensitive_host_path(v.source or "")
        and not _is_allowed(v.source or "", ctx)
    ]


def _writable_etc(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    return [
        RuleHit(
            _path(service, f"volumes[{i}]"),
            f"'{v.target}' is mounted writable",
            {"path": v.source, "target": v.target},
        )
        for i, v in enumerate(service.volumes)
        if v.mount_type is MountType.BIND
        and (v.target == "/etc" or v.target.startswith("/etc/"))
        and not v.read_only
    ]


def _privileged(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    if not service.privileged:
        return []
    return [
        RuleHit(
            _path(service, "privileged"),
            "container runs in privileged mode",
            {"privileged": False},
        )
    ]


def _dangerous_capabilities(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    caps = sorted({c.upper() for c in service.cap_add} & DANGEROUS_CAPABILITIES)
    if not caps:
        return []
    return [
        RuleHit(
            _path(service, "cap_add"),
            f"dangerous capabilities added: {', '.join(caps)}",
            {"capabilities": caps},
        )
    ]


def _missing_memory_limit(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    if service.resources.memory_limit is not None:
        return []
    return [
        RuleHit(
            _path(service, "resources"),
            "no memory limit declared",
            {"resource": "memory"},
        )
    ]


def _missing_cpu_limit(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    if service.resources.cpu_limit is not None:
        return []
    return [
        RuleHit(_path(service, "resources"), "no CPU limit declared", {"resource": "cpu"})
    ]


def _open_data_store(service: ServiceSpec, ctx: RuleContext) -> list[RuleHit]:
    policy = ctx.policy
    if policy is None or policy.family not in (
        PatternFamily.DATABASE,
        PatternFamily.CACHE,
    ):
        return []
    if policy.security_context.network_isolation:
        return []
    return [
        RuleHit(
            _path(service),
            f"{policy.family.value} is reachable from every pod",
            {"family": policy.family.value},
        )
    ]


# ---------------------------------------------------------------------------
# Rule table (declaration order is the secondary sort key)
# ---------------------------------------------------------------------------

SECURITY_RULES: tuple[SecurityRule, ...] = (
    SecurityRule("IMG-001", "image", Severity.MEDIUM, "Unpinned image tag",
                 RemediationKind.FLAG_INSECURE_TAG, _unpinned_tag, "CWE-1104"),
    SecurityRule("IMG-002", "image", Severity.LOW, "Non-official base image",
                 RemediationKind.FLAG_INSECURE_TAG, _untrusted_image, "CWE-829"),
    SecurityRule("ENV-001", "secrets", Severity.HIGH, "Hardcoded credential",
                 RemediationKind.EXTRACT_SECRET, _hardcoded_secret, "CWE-200"),
    SecurityRule("ENV-002", "secrets", Severity.CRITICAL, "Secret-looking value",
                 RemediationKind.EXTRACT_SECRET, _secret_looking_value, "CWE-798"),
    SecurityRule("ENV-003", "secrets", Severity.CRITICAL, "Default or weak password",
                 RemediationKind.EXTRACT_SECRET, _weak_password, "CWE-521"),
    SecurityRule("NET-001", "network", Severity.HIGH, "Unencrypted protocol",
                 RemediationKind.FLAG_INSECURE_PORT, _insecure_url, "CWE-319"),
    SecurityRule("PORT-001", "network", Severity.MEDIUM, "Privileged host port",
                 RemediationKind.FLAG_INSECURE_PORT, _privileged_host_port, "CWE-250"),
    SecurityRule("PORT-002", "network", Severity.HIGH, "Insecure service port",
                 RemediationKind.FLAG_INSECURE_PORT, _dangerous_port, "CWE-284"),
    SecurityRule("VOL-001", "storage", Severity.MEDIUM, "Host path volume",
                 RemediationKind.DISALLOW_HOST_PATH_VOLUME, _host_path, "CWE-668"),
    SecurityRule("VOL-002", "storage", Severity.HIGH, "Sensitive host path",
                 RemediationKind.DISALLOW_HOST_PATH_VOLUME, _sensitive_host_path,
                 "CWE-668"),
    SecurityRule("VOL-003", "storage", Severity.MEDIUM, "Writable /etc mount",
                 RemediationKind.DISALLOW_HOST_PATH_VOLUME, _writable_etc, "CWE-732"),
    SecurityRule("PRIV-001", "privileges", Severity.CRITICAL, "Privileged container",
                 RemediationKind.SET_POD_SECURITY_CONTEXT, _privileged, "CWE-250"),
    SecurityRule("PRIV-002", "privileges", Severity.HIGH, "Dangerous capabilities",
                 RemediationKind.SET_POD_SECURITY_CONTEXT, _dangerous_capabilities,
                 "CWE-250"),
    SecurityRule("RES-001", "resources", Severity.MEDIUM, "Missing memory limit",
                 RemediationKind.REQUIRE_RESOURCE_LIMITS, _missing_memory_limit,
                 "CWE-400"),
    SecurityRule("RES-002", "resources", Severity.LOW, "Missing CPU limit",
                 RemediationKind.REQUIRE_RESOURCE_LIMITS, _missing_cpu_limit,
                 "CWE-400"),
    SecurityRule("NET-002", "network", Severity.MEDIUM, "Unrestricted data store",
                 RemediationKind.ADD_NETWORK_POLICY, _open_data_store, "CWE-284"),
)  # fmt: skip

CATEGORY_RECOMMENDATIONS: dict[str, str] = {
    "image": "Pin images to an explicit version or digest and prefer official images.",
    "secrets": "Move credentials into Secrets and rotate default passwords.",
    "network": "Use TLS-protected protocols and avoid exposing administrative ports.",
    "storage": "Replace host path mounts with PersistentVolumeClaims.",
    "privileges": "Drop privileged mode and added capabilities.",
    "resources": "Declare CPU and memory limits for every workload.",
}

SEVERITY_WEIGHTS: dict[Severity, int] = {s: s.rank for s in Severity}


__all__ = [
    "OFFICIAL_IMAGES",
    "DANGEROUS_PORTS",
    "SENSITIVE_HOST_PATHS",
    "WEAK_PASSWORDS",
    "RuleContext",
    "RuleHit",
    "SecurityRule",
    "SECURITY_RULES",
    "CATEGORY_RECOMMENDATIONS",
    "SEVERITY_WEIGHTS",
]
