"""
Compose document → IR normalization.

Every service is normalized independently and problems are collected as
:class:`ParseIssue` records; a single :class:`ParseError` listing all of
them is raised at the end, so one malformed service never hides the
problems of another.
"""

from __future__ import annotations

import logging
import math
import re
import shlex
from collections.abc import Callable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from pydantic import ValidationError

from compose2kube.core.common.quantities import compose_memory_to_quantity, format_cpu
from compose2kube.exceptions import ParseError, ParseIssue
from compose2kube.ir.models import (
    ComposeModel,
    EnvEntry,
    HealthcheckSpec,
    ImageRef,
    MountType,
    NetworkSpec,
    PortProtocol,
    PortSpec,
    ResourceHints,
    SecretSpec,
    ServiceSpec,
    VolumeMount,
    VolumeSpec,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

KNOWN_TOP_LEVEL_KEYS = frozenset(
    {"version", "name", "services", "volumes", "networks", "secrets", "configs"}
)
KNOWN_SERVICE_KEYS = frozenset(
    {
        "image",
        "build",
        "ports",
        "expose",
        "environment",
        "volumes",
        "entrypoint",
        "command",
        "depends_on",
        "deploy",
        "healthcheck",
        "networks",
        "privileged",
        "cap_add",
        "user",
        "restart",
        "labels",
        "mem_limit",
        "mem_reservation",
        "cpus",
    }
)

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(us|ms|s|m|h)")
_DURATION_UNITS = {"us": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0}
_BIND_PREFIXES = ("/", ".", "~")


# ---------------------------------------------------------------------------
# Scalar parsers (raise ValueError on malformed input)
# ---------------------------------------------------------------------------


def parse_duration(value: Any) -> int:
    """
    Parse a compose duration (``1m30s``, ``500ms``, ``10``) into whole seconds.

    Fractions round up so a short non-zero interval never becomes 0.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return math.ceil(value)
    text = str(value).strip()
    if not text:
        raise ValueError("empty duration")
    pos, total = 0, 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration '{text}'")
    return math.ceil(total)


def _port_number(text: str) -> list[int]:
    """Parse ``8080`` or a range ``8000-8002`` into port numbers."""
    text = text.strip()
    if "-" in text:
        low, _, high = text.partition("-")
        if not (low.isdigit() and high.isdigit()) or int(low) > int(high):
            raise ValueError(f"invalid port range '{text}'")
        return list(range(int(low), int(high) + 1))
    if not text.isdigit():
        raise ValueError(f"invalid port '{text}'")
    return [int(text)]


def parse_port(value: Any) -> list[PortSpec]:
    """
    Parse one entry of ``ports``.

    Accepts ``C``, ``H:C``, ``IP:H:C`` (each optionally ``/tcp|/udp`` and
    ranges of equal length) and the long mapping syntax.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid port {value!r}")
    if isinstance(value, int):
        return [PortSpec(container_port=value)]
    if isinstance(value, Mapping):
        if "target" not in value:
            raise ValueError("long port syntax requires 'target'")
        published = value.get("published")
        return [
            PortSpec(
                container_port=int(value["target"]),
                host_port=int(published) if published not in (None, "") else None,
                host_ip=value.get("host_ip"),
                protocol=_protocol(value.get("protocol", "tcp")),
            )
        ]

    text = str(value).strip()
    spec, _, proto = text.partition("/")
    protocol = _protocol(proto or "tcp")

    host_ip = None
    if spec.startswith("["):
        end = spec.find("]")
        if end < 0:
            raise ValueError(f"invalid port '{text}'")
        host_ip, spec = spec[1:end], spec[end + 1 :].lstrip(":")

    parts = spec.split(":")
    if len(parts) == 3:
        host_ip, host, container = parts
    elif len(parts) == 2:
        host, container = parts
    elif len(parts) == 1:
        host, container = "", parts[0]
    else:
        raise ValueError(f"invalid port '{text}'")

    containers = _port_number(container)
    hosts: list[int | None] = _port_number(host) if host else [None] * len(containers)
    if len(hosts) != len(containers):
        raise ValueError(f"host and container ranges differ in '{text}'")

    return [
        PortSpec(
            container_port=c, host_port=h, host_ip=host_ip or None, protocol=protocol
        )
        for h, c in zip(hosts, containers)
    ]


def _protocol(value: Any) -> PortProtocol:
    try:
        return PortProtocol(str(value).upper())
    except ValueError:
        raise ValueError(f"unsupported protocol '{value}'") from None


def parse_environment(value: Any) -> list[EnvEntry]:
    """Parse ``environment`` given as a mapping or a list of ``K=V``."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [EnvEntry.create(str(k), v) for k, v in value.items()]
    if isinstance(value, list):
        entries = []
        for item in value:
            name, sep, val = str(item).partition("=")
            if not name.strip():
                raise ValueError(f"invalid environment entry '{item}'")
            entries.append(EnvEntry.create(name.strip(), val if sep else ""))
        return entries
    raise ValueError("environment must be a mapping or a list")


def parse_volume(value: Any) -> VolumeMount:
    """Parse a service volume in short (``src:dst[:mode]``) or long syntax."""
    if isinstance(value, Mapping):
        kind = str(value.get("type", "volume"))
        if kind not in ("volume", "bind", "tmpfs"):
            raise ValueError(f"unsupported volume type '{kind}'")
        if "target" not in value:
            raise ValueError("long volume syntax requires 'target'")
        return VolumeMount(
            source=value.get("source"),
            target=str(value["target"]),
            mount_type=MountType(kind),
            read_only=bool(value.get("read_only", False)),
        )

    parts = str(value).strip().split(":")
    if len(parts) == 1:
        return VolumeMount(source=None, target=parts[0])
    if len(parts) > 3 or not parts[0] or not parts[1]:
        raise ValueError(f"invalid volume '{value}'")

    source, target = parts[0], parts[1]
    modes = parts[2].split(",") if len(parts) == 3 else []
    mount_type = (
        MountType.BIND if source.startswith(_BIND_PREFIXES) else MountType.VOLUME
    )
    return VolumeMount(
        source=source, target=target, mount_type=mount_type, read_only="ro" in modes
    )


def parse_command(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list):
        return [str(v) for v in value]
    raise ValueError("command must be a string or a list")


def parse_name_list(value: Any, what: str) -> list[str]:
    """Parse ``depends_on``/``networks`` given as a list or a mapping."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [str(k) for k in value]
    if isinstance(value, list):
        return [str(v) for v in value]
    raise ValueError(f"{what} must be a list or a mapping")


def parse_labels(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return {str(k): "" if v is None else str(v) for k, v in value.items()}
    if isinstance(value, list):
        labels = {}
        for item in value:
            key, _, val = str(item).partition("=")
            labels[key] = val
        return labels
    raise ValueError("labels must be a mapping or a list")


def parse_healthcheck(value: Any) -> HealthcheckSpec:
    if not isinstance(value, Mapping):
        raise ValueError("healthcheck must be a mapping")
    test = value.get("test", [])
    if isinstance(test, str):
        test = ["CMD-SHELL", test]
    test = [str(t) for t in test]
    disabled = bool(value.get("disable", False)) or test[:1] == ["NONE"]

    def seconds(key: str) -> int | None:
        return parse_duration(value[key]) if value.get(key) is not None else None

    return HealthcheckSpec(
        test=test,
        interval_s=seconds("interval"),
        timeout_s=seconds("timeout"),
        retries=int(value["retries"]) if value.get("retries") is not None else None,
        start_period_s=seconds("start_period"),
        disabled=disabled,
    )


def _cpus(value: Any) -> str:
    try:
        cores = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"invalid cpus value '{value}'") from None
    if cores <= 0:
        raise ValueError(f"cpus must be positive, got '{value}'")
    return format_cpu(cores)


def parse_resources(service: Mapping[str, Any]) -> ResourceHints:
    """Collect resource hints from ``deploy`` and the legacy top-level keys."""
    deploy = service.get("deploy") or {}
    if not isinstance(deploy, Mapping):
        raise ValueError("deploy must be a mapping")
    resources = deploy.get("resources") or {}
    limits = resources.get("limits") or {}
    reservations = resources.get("reservations") or {}

    cpu_limit = limits.get("cpus", service.get("cpus"))
    mem_limit = limits.get("memory", service.get("mem_limit"))
    cpu_request = reservations.get("cpus")
    mem_request = reservations.get("memory", service.get("mem_reservation"))
    replicas = deploy.get("replicas")

    return ResourceHints(
        cpu_limit=_cpus(cpu_limit) if cpu_limit is not None else None,
        memory_limit=(
            compose_memory_to_quantity(mem_limit) if mem_limit is not None else None
        ),
        cpu_request=_cpus(cpu_request) if cpu_request is not None else None,
        memory_request=(
            compose_memory_to_quantity(mem_request) if mem_request is not None else None
        ),
        replicas=int(replicas) if replicas is not None else None,
    )


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


class ComposeNormalizer:
    """Builds a :class:`ComposeModel` from a loaded compose mapping."""

    def __init__(self) -> None:
        self._logger = logger.getChild(self.__class__.__name__)

    def normalize(self, data: Mapping[str, Any]) -> ComposeModel:
        """
        Normalize a compose mapping.

        Args:
            data: Loaded compose document

        Returns:
            Immutable ComposeModel

        Raises:
            ParseError: Listing every issue found across all services
        """
        if not isinstance(data, Mapping):
            raise ParseError("Top-level object must be a mapping")
        services_raw = data.get("services")
        if not isinstance(services_raw, Mapping) or not services_raw:
            raise ParseError("Document must define a non-empty 'services' mapping")

        issues: list[ParseIssue] = []
        volumes = self._top_level(data.get("volumes"), "volumes", self._volume, issues)
        networks = self._top_level(
            data.get("networks"), "networks", self._network, issues
        )
        secrets = self._top_level(data.get("secrets"), "secrets", self._secret, issues)
        configs = self._top_level(data.get("configs"), "configs", self._secret, issues)

        services: dict[str, ServiceSpec] = {}
        for key, raw in services_raw.items():
            service = self._service(str(key), raw, issues)
            if service is not None:
                services[service.id] = service

        self._check_references(services, volumes, networks, issues)

        if issues:
            for issue in issues:
                self._logger.debug(f"Parse issue: {issue}")
            raise ParseError(f"{len(issues)} problem(s) in compose document", issues)

        extensions = {
            str(k): v for k, v in data.items() if k not in KNOWN_TOP_LEVEL_KEYS
        }
        try:
            model = ComposeModel(
                name=data.get("name"),
                services=services,
                volumes=volumes,
                networks=networks,
                secrets=secrets,
                configs=configs,
                extensions=extensions,
            )
        except ValidationError as exc:
            raise ParseError("Invalid compose model", [ParseIssue(str(exc))]) from exc

        self._logger.info(
            f"Normalized {len(services)} service(s), {len(volumes)} volume(s), "
            f"{len(networks)} network(s)"
        )
        return model

    # ----- services ----------------------------------------------------------

    def _service(
        self, service_id: str, raw: Any, issues: list[ParseIssue]
    ) -> ServiceSpec | None:
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            issues.append(ParseIssue("service definition must be a mapping", service_id))
            return None

        before = len(issues)

        def field(name: str, parser: Callable[[], T], default: T) -> T:
            try:
                return parser()
            except (ValueError, TypeError, ValidationError) as exc:
                issues.append(ParseIssue(_reason(exc), service_id, name))
                return default

        image = field("image", lambda: self._image(service_id, raw), None)

        ports: list[PortSpec] = []
        for i, entry in enumerate(_as_list(raw.get("ports"))):
            ports.extend(field(f"ports[{i}]", lambda e=entry: parse_port(e), []))
        for i, entry in enumerate(_as_list(raw.get("expose"))):
            ports.extend(field(f"expose[{i}]", lambda e=entry: _expose(e), []))

        mounts = [
            field(f"volumes[{i}]", lambda e=entry: parse_volume(e), None)
            for i, entry in enumerate(_as_list(raw.get("volumes")))
        ]

        spec: dict[str, Any] = {
            "id": service_id,
            "image": image,
            "ports": ports,
            "environment": field(
                "environment", lambda: parse_environment(raw.get("environment")), []
            ),
            "volumes": [m for m in mounts if m is not None],
            "entrypoint": field(
                "entrypoint", lambda: parse_command(raw.get("entrypoint")), []
            ),
            "command": field("command", lambda: parse_command(raw.get("command")), []),
            "depends_on": field(
                "depends_on",
                lambda: parse_name_list(raw.get("depends_on"), "depends_on"),
                [],
            ),
            "resources": field(
                "deploy", lambda: parse_resources(raw), ResourceHints()
            ),
            "healthcheck": field(
                "healthcheck",
                lambda: (
                    parse_healthcheck(raw["healthcheck"])
                    if raw.get("healthcheck") is not None
                    else None
                ),
                None,
            ),
            "networks": field(
                "networks", lambda: parse_name_list(raw.get("networks"), "networks"), []
            ),
            "privileged": bool(raw.get("privileged", False)),
            "cap_add": [str(c) for c in _as_list(raw.get("cap_add"))],
            "user": str(raw["user"]) if raw.get("user") is not None else None,
            "restart": str(raw["restart"]) if raw.get("restart") is not None else None,
            "labels": field("labels", lambda: parse_labels(raw.get("labels")), {}),
            "extensions": {
                str(k): v for k, v in raw.items() if k not in KNOWN_SERVICE_KEYS
            },
        }

        if len(issues) > before:
            return None
        if spec["extensions"]:
            self._logger.debug(
                f"Service '{service_id}' keeps unrecognized keys: "
                f"{sorted(spec['extensions'])}"
            )
        return field("", lambda: ServiceSpec(**spec), None)

    @staticmethod
    def _image(service_id: str, raw: Mapping[str, Any]) -> ImageRef:
        if raw.get("image"):
            return ImageRef.parse(str(raw["image"]), built_locally="build" in raw)
        if "build" in raw:
            local_name = re.sub(r"[^a-z0-9._-]+", "-", service_id.lower()).strip("-._")
            return ImageRef.parse(local_name or "app", built_locally=True)
        raise ValueError("service needs either 'image' or 'build'")

    # ----- top-level sections ------------------------------------------------

    @staticmethod
    def _top_level(
        section: Any,
        what: str,
        factory: Callable[[str, Any], T],
        issues: list[ParseIssue],
    ) -> dict[str, T]:
        if section is None:
            return {}
        if not isinstance(section, Mapping):
            issues.append(ParseIssue(f"'{what}' must be a mapping", field=what))
            return {}
        result: dict[str, T] = {}
        for key, value in section.items():
            if value is not None and not isinstance(value, Mapping):
                issues.append(
                    ParseIssue("definition must be a mapping", field=f"{what}.{key}")
                )
                continue
            try:
                result[str(key)] = factory(str(key), value or {})
            except (ValueError, TypeError, ValidationError) as exc:
                issues.append(ParseIssue(_reason(exc), field=f"{what}.{key}"))
        return result

    @staticmethod
    def _volume(name: str, raw: Mapping[str, Any]) -> VolumeSpec:
        return VolumeSpec(
            name=name,
            driver=raw.get("driver"),
            driver_opts={str(k): str(v) for k, v in (raw.get("driver_opts") or {}).items()},
            external=bool(raw.get("external", False)),
        )

    @staticmethod
    def _network(name: str, raw: Mapping[str, Any]) -> NetworkSpec:
        return NetworkSpec(
            name=name,
            driver=raw.get("driver"),
            internal=bool(raw.get("internal", False)),
            external=bool(raw.get("external", False)),
        )

    @staticmethod
    def _secret(name: str, raw: Mapping[str, Any]) -> SecretSpec:
        return SecretSpec(
            name=name, file=raw.get("file"), external=bool(raw.get("external", False))
        )

    # ----- cross references --------------------------------------------------

    @staticmethod
    def _check_references(
        services: dict[str, ServiceSpec],
        volumes: dict[str, VolumeSpec],
        networks: dict[str, NetworkSpec],
        issues: list[ParseIssue],
    ) -> None:
        for service in services.values():
            for dep in service.depends_on:
                if dep not in services:
                    issues.append(
                        ParseIssue(
                            f"depends on undefined service '{dep}'",
                            service.id,
                            "depends_on",
                        )
                    )
            for i, mount in enumerate(service.volumes):
                if mount.is_persistent and mount.source not in volumes:
                    issues.append(
                        ParseIssue(
                            f"refers to undefined volume '{mount.source}'",
                            service.id,
                            f"volumes[{i}]",
                        )
                    )
            for network in service.networks:
                if network != "default" and network not in networks:
                    issues.append(
                        ParseIssue(
                            f"refers to undefined network '{network}'",
                            service.id,
                            "networks",
                        )
                    )


def _expose(value: Any) -> list[PortSpec]:
    text = str(value).strip()
    number, _, proto = text.partition("/")
    return [
        PortSpec(container_port=p, protocol=_protocol(proto or "tcp"))
        for p in _port_number(number)
    ]


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _reason(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "; ".join(err["msg"] for err in exc.errors())
    return str(exc)


__all__ = [
    "ComposeNormalizer",
    "parse_duration",
    "parse_port",
    "parse_environment",
    "parse_volume",
    "parse_healthcheck",
    "parse_resources",
]
