"""
Resource builders.

:class:`ResourceDocumentBuilder` is a fluent builder for one resource
document. The per-kind builders below implement the ``ResourceBuilder``
protocol: each decides whether a service needs its kind and emits it from the
service's :class:`ServiceContext`.
"""

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from typing import Any

from compose2kube.analysis.policy.models import ProbeKind, ProbeSpec, WorkloadKind
from compose2kube.core.common.naming import to_dns_label
from compose2kube.ir.models import MountType

from .context import ServiceContext
from .models import ManifestResource

logger = logging.getLogger(__name__)

INGRESS_CLASS = "nginx"
CLUSTER_ISSUER = "letsencrypt-prod"


class ResourceDocumentBuilder:
    """Fluent builder for a single resource document."""

    def __init__(self, api_version: str, kind: str, name: str):
        self.kind = kind
        self.name = name
        self._metadata: dict[str, Any] = {"name": name}
        self._data: dict[str, Any] = {"apiVersion": api_version, "kind": kind}
        self._namespace = "default"

    def in_namespace(self, namespace: str) -> ResourceDocumentBuilder:
        """Sets metadata.namespace"""
        self._namespace = namespace
        self._metadata["namespace"] = namespace
        return self

    def with_labels(self, labels: dict[str, str]) -> ResourceDocumentBuilder:
        """Adds labels to metadata"""
        self._metadata.setdefault("labels", {}).update(labels)
        return self

    def with_annotations(self, annotations: dict[str, str]) -> ResourceDocumentBuilder:
        """Adds annotations to metadata (ignored when empty)"""
        if annotations:
            self._metadata.setdefault("annotations", {}).update(
                dict(sorted(annotations.items()))
            )
        return self

    def with_field(self, key: str, value: Any) -> ResourceDocumentBuilder:
        """Sets a top-level field such as ``type`` or ``data``"""
        self._data[key] = value
        return self

    def with_spec(self, spec: dict[str, Any]) -> ResourceDocumentBuilder:
        """Sets the spec"""
        return self.with_field("spec", spec)

    def build(self, service_id: str) -> ManifestResource:
        """Builds the final ManifestResource owned by ``service_id``"""
        payload = {
            "apiVersion": self._data["apiVersion"],
            "kind": self._data["kind"],
            "metadata": self._metadata,
        }
        payload.update((k, v) for k, v in self._data.items() if k not in payload)
        return ManifestResource(
            kind=self.kind,
            name=self.name,
            namespace=self._namespace,
            service_id=service_id,
            payload=payload,
        )


def _document(
    ctx: ServiceContext, api_version: str, kind: str, name: str
) -> ResourceDocumentBuilder:
    return (
        ResourceDocumentBuilder(api_version, kind, name)
        .in_namespace(ctx.namespace)
        .with_labels(ctx.identity.labels)
    )


class BaseKindBuilder(ABC):
    """Shared plumbing of the per-kind builders."""

    kind = ""

    def __init__(self) -> None:
        self._logger = logger.getChild(self.__class__.__name__)

    def can_build(self, context: ServiceContext) -> bool:
        return True

    @abstractmethod
    def build(self, context: ServiceContext) -> list[ManifestResource]:
        """
        Emit this builder's resources for one service.

        Args:
            context: The service's synthesis context

        Returns:
            Zero or more resources of ``kind``
        """
        pass


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class SecretBuilder(BaseKindBuilder):
    """Opaque Secret holding every sensitive or extracted variable."""

    kind = "Secret"

    def can_build(self, context: ServiceContext) -> bool:
        return bool(context.secret_env)

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        data = {
            e.name: base64.b64encode(e.value.encode("utf-8")).decode("ascii")
            for e in context.secret_env
        }
        doc = (
            _document(context, "v1", self.kind, context.identity.secret_name)
            .with_field("type", "Opaque")
            .with_field("data", data)
        )
        self._logger.debug(
            f"Secret for '{context.service.id}' with {len(data)} key(s)"
        )
        return [doc.build(context.service.id)]


class ConfigMapBuilder(BaseKindBuilder):
    kind = "ConfigMap"

    def can_build(self, context: ServiceContext) -> bool:
        return bool(context.config_env)

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        data = {e.name: e.value for e in context.config_env}
        doc = _document(context, "v1", self.kind, context.identity.config_name)
        return [doc.with_field("data", data).build(context.service.id)]


class VolumeClaimBuilder(BaseKindBuilder):
    """One PersistentVolumeClaim per distinct named volume."""

    kind = "PersistentVolumeClaim"

    def can_build(self, context: ServiceContext) -> bool:
        return bool(context.policy.volumes)

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        resources = []
        seen: set[str] = set()
        for claim in context.policy.volumes:
            if claim.volume in seen:
                continue
            seen.add(claim.volume)
            spec = {
                "accessModes": [claim.access_mode],
                "storageClassName": claim.storage_class,
                "resources": {"requests": {"storage": claim.size}},
            }
            doc = _document(
                context, "v1", self.kind, context.identity.claim_name(claim.volume)
            )
            resources.append(doc.with_spec(spec).build(context.service.id))
        return resources


# ---------------------------------------------------------------------------
# Workload
# ---------------------------------------------------------------------------


def _probe(probe: ProbeSpec) -> dict[str, Any]:
    if probe.kind is ProbeKind.HTTP:
        handler: dict[str, Any] = {
            "httpGet": {"path": probe.path or "/", "port": probe.port}
        }
    elif probe.kind is ProbeKind.TCP:
        handler = {"tcpSocket": {"port": probe.port}}
    else:
        handler = {"exec": {"command": list(probe.command)}}
    handler.update(
        {
            "initialDelaySeconds": probe.initial_delay_s,
            "periodSeconds": probe.period_s,
            "timeoutSeconds": probe.timeout_s,
            "failureThreshold": probe.failure_threshold,
        }
    )
    return handler


class WorkloadBuilder(BaseKindBuilder):
    """Deployment, or StatefulSet for stateful services with persistent volumes."""

    kind = "Workload"

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        policy = context.policy
        identity = context.identity
        is_stateful = policy.workload_kind is WorkloadKind.STATEFULSET
        name = identity.name("statefulset" if is_stateful else "deployment")

        volumes, mounts = self._volumes(context)
        pod_spec: dict[str, Any] = {"containers": [self._container(context, mounts)]}
        if volumes:
            pod_spec["volumes"] = volumes
        pod_security = self._pod_security_context(context)
        if pod_security:
            pod_spec["securityContext"] = pod_security

        template_metadata: dict[str, Any] = {"labels": identity.selector}
        if context.annotations:
            template_metadata["annotations"] = dict(sorted(context.annotations.items()))

        spec: dict[str, Any] = {"replicas": policy.replicas.min}
        if is_stateful:
            spec["serviceName"] = identity.service_name
        spec["selector"] = {"matchLabels": identity.selector}
        spec["template"] = {"metadata": template_metadata, "spec": pod_spec}

        doc = (
            _document(context, "apps/v1", policy.workload_kind.value, name)
            .with_annotations(context.annotations)
            .with_spec(spec)
        )
        return [doc.build(context.service.id)]

    def _container(
        self, context: ServiceContext, mounts: list[dict[str, Any]]
    ) -> dict[str, Any]:
        service = context.service
        policy = context.policy
        container: dict[str, Any] = {
            "name": context.identity.dns_id,
            "image": service.image.reference,
            "imagePullPolicy": "Always" if context.pull_always else "IfNotPresent",
        }
        if service.entrypoint:
            container["command"] = list(service.entrypoint)
        if service.command:
            container["args"] = list(service.command)
        if context.container_ports:
            container["ports"] = [
                {
                    "name": context.port_name(port, proto),
                    "containerPort": port,
                    "protocol": proto,
                }
                for port, proto in context.container_ports
            ]

        env = [
            {
                "name": e.name,
                "valueFrom": {
                    "secretKeyRef": {
                        "name": context.identity.secret_name,
                        "key": e.name,
                    }
                },
            }
            for e in context.secret_env
        ]
        if env:
            container["env"] = env
        if context.config_env:
            container["envFrom"] = [
                {"configMapRef": {"name": context.identity.config_name}}
            ]

        resources: dict[str, Any] = {
            "requests": {
                "cpu": policy.resources.cpu_request,
                "memory": policy.resources.memory_request,
            }
        }
        if context.limits:
            resources["limits"] = context.limits
        container["resources"] = resources

        if policy.probes.liveness is not None:
            container["livenessProbe"] = _probe(policy.probes.liveness)
        if policy.probes.readiness is not None:
            container["readinessProbe"] = _probe(policy.probes.readiness)
        if mounts:
            container["volumeMounts"] = mounts

        security = self._container_security_context(context)
        if security:
            container["securityContext"] = security
        return container

    @staticmethod
    def _container_security_context(context: ServiceContext) -> dict[str, Any]:
        baseline = context.policy.security_context
        service = context.service
        result: dict[str, Any] = {}

        if service.privileged and not context.hardened:
            result["privileged"] = True
        elif context.hardened:
            result["privileged"] = False

        escalation = baseline.allow_privilege_escalation
        if context.hardened:
            escalation = False
        if escalation is not None:
            result["allowPrivilegeEscalation"] = escalation
        if baseline.run_as_non_root is not None:
            result["runAsNonRoot"] = baseline.run_as_non_root
        if baseline.read_only_root_filesystem is not None:
            result["readOnlyRootFilesystem"] = baseline.read_only_root_filesystem

        removed = set(context.removed_capabilities)
        added = [c.upper() for c in service.cap_add if c.upper() not in removed]
        dropped = list(baseline.drop_capabilities)
        for cap in sorted(removed):
            if cap not in dropped and "ALL" not in dropped:
                dropped.append(cap)
        capabilities: dict[str, Any] = {}
        if added:
            capabilities["add"] = added
        if dropped:
            capabilities["drop"] = dropped
        if capabilities:
            result["capabilities"] = capabilities
        return result

    @staticmethod
    def _pod_security_context(context: ServiceContext) -> dict[str, Any]:
        baseline = context.policy.security_context
        if baseline.seccomp_profile is None:
            return {}
        return {"seccompProfile": {"type": baseline.seccomp_profile}}

    def _volumes(
        self, context: ServiceContext
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        volumes: list[dict[str, Any]] = []
        mounts: list[dict[str, Any]] = []
        declared: set[str] = set()

        for index, mount in enumerate(context.service.volumes):
            if mount.is_persistent:
                name = to_dns_label(mount.source or "")
                source: dict[str, Any] = {
                    "persistentVolumeClaim": {
                        "claimName": context.identity.claim_name(mount.source or "")
                    }
                }
            elif mount.mount_type is MountType.BIND:
                name = f"host-{index}"
                if context.blocks_host_path(index, mount):
                    self._logger.info(
                        f"Replacing host path '{mount.source}' of "
                        f"'{context.service.id}' with an emptyDir"
                    )
                    source = {"emptyDir": {}}
                else:
                    source = {"hostPath": {"path": mount.source}}
            elif mount.mount_type is MountType.TMPFS:
                name = f"tmp-{index}"
                source = {"emptyDir": {"medium": "Memory"}}
            else:
                name = f"scratch-{index}"
                source = {"emptyDir": {}}

            if name not in declared:
                declared.add(name)
                volumes.append({"name": name, **source})
            volume_mount: dict[str, Any] = {"name": name, "mountPath": mount.target}
            if mount.read_only:
                volume_mount["readOnly"] = True
            mounts.append(volume_mount)
        return volumes, mounts


# ---------------------------------------------------------------------------
# Networking
# ---------------------------------------------------------------------------


class ServiceResourceBuilder(BaseKindBuilder):
    """Networking Service selecting the workload's pods."""

    kind = "Service"

    def can_build(self, context: ServiceContext) -> bool:
        return bool(context.service.ports)

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        ports = []
        seen: set[tuple[int, str]] = set()
        for port in context.service.ports:
            key = (port.host_port or port.container_port, port.protocol.value)
            if key in seen:
                continue
            seen.add(key)
            ports.append(
                {
                    "name": context.port_name(port.container_port, port.protocol.value),
                    "port": key[0],
                    "targetPort": port.container_port,
                    "protocol": port.protocol.value,
                }
            )
        # port names must be unique within a Service
        names: set[str] = set()
        for entry in ports:
            if entry["name"] in names:
                entry["name"] = f"{entry['name']}-{entry['port']}"
            names.add(entry["name"])

        spec = {
            "type": context.policy.service_type.value,
            "selector": context.identity.selector,
            "ports": ports,
        }
        doc = _document(context, "v1", self.kind, context.identity.service_name)
        return [doc.with_spec(spec).build(context.service.id)]


def first_service_port(context: ServiceContext) -> int:
    port = context.service.ports[0]
    return port.host_port or port.container_port


class IngressBuilder(BaseKindBuilder):
    kind = "Ingress"

    def can_build(self, context: ServiceContext) -> bool:
        return context.policy.ingress and bool(context.service.ports)

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        identity = context.identity
        host = f"{identity.dns_id}.{context.options.ingress_domain}"
        spec: dict[str, Any] = {
            "ingressClassName": INGRESS_CLASS,
            "rules": [
                {
                    "host": host,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {
                                        "name": identity.service_name,
                                        "port": {
                                            "number": first_service_port(context)
                                        },
                                    }
                                },
                            }
                        ]
                    },
                }
            ],
        }
        annotations: dict[str, str] = {}
        if context.options.tls:
            spec["tls"] = [{"hosts": [host], "secretName": identity.name("tls")}]
            annotations["cert-manager.io/cluster-issuer"] = CLUSTER_ISSUER
        doc = (
            _document(context, "networking.k8s.io/v1", self.kind, identity.name("ingress"))
            .with_annotations(annotations)
            .with_spec(spec)
        )
        return [doc.build(context.service.id)]


class AutoscalerBuilder(BaseKindBuilder):
    kind = "HorizontalPodAutoscaler"

    def can_build(self, context: ServiceContext) -> bool:
        return context.policy.autoscaling.enabled

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        policy = context.policy
        workload = policy.workload_kind
        target = context.identity.name(
            "statefulset" if workload is WorkloadKind.STATEFULSET else "deployment"
        )
        spec = {
            "scaleTargetRef": {
                "apiVersion": "apps/v1",
                "kind": workload.value,
                "name": target,
            },
            "minReplicas": max(policy.replicas.min, 1),
            "maxReplicas": policy.replicas.max,
            "metrics": [
                self._utilization("cpu", policy.autoscaling.target_cpu),
                self._utilization("memory", policy.autoscaling.target_memory),
            ],
        }
        doc = _document(
            context, "autoscaling/v2", self.kind, context.identity.name("hpa")
        )
        return [doc.with_spec(spec).build(context.service.id)]

    @staticmethod
    def _utilization(resource: str, target: int) -> dict[str, Any]:
        return {
            "type": "Resource",
            "resource": {
                "name": resource,
                "target": {"type": "Utilization", "averageUtilization": target},
            },
        }


class NetworkPolicyBuilder(BaseKindBuilder):
    """
    Ingress isolation: the service's dependents may reach its ports, and
    published ports stay reachable from anywhere. Everything else is denied.
    """

    kind = "NetworkPolicy"

    def can_build(self, context: ServiceContext) -> bool:
        return context.needs_network_policy

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        ports = [
            {"protocol": proto, "port": port} for port, proto in context.container_ports
        ]
        rules: list[dict[str, Any]] = []
        if context.dependents:
            rule: dict[str, Any] = {
                "from": [
                    {"podSelector": {"matchLabels": dep.selector}}
                    for dep in context.dependents
                ]
            }
            if ports:
                rule["ports"] = ports
            rules.append(rule)
        if context.published_ports:
            rules.append(
                {
                    "ports": [
                        {"protocol": proto, "port": port}
                        for port, proto in context.published_ports
                    ]
                }
            )
        spec = {
            "podSelector": {"matchLabels": context.identity.selector},
            "policyTypes": ["Ingress"],
            "ingress": rules,
        }
        doc = _document(
            context, "networking.k8s.io/v1", self.kind, context.identity.name("netpol")
        )
        return [doc.with_spec(spec).build(context.service.id)]


class ServiceMonitorBuilder(BaseKindBuilder):
    kind = "ServiceMonitor"

    def can_build(self, context: ServiceContext) -> bool:
        return context.options.monitoring and bool(context.service.ports)

    def build(self, context: ServiceContext) -> list[ManifestResource]:
        port, proto = context.container_ports[0]
        spec = {
            "selector": {"matchLabels": context.identity.selector},
            "endpoints": [
                {"port": context.port_name(port, proto), "interval": "30s"}
            ],
        }
        doc = _document(
            context,
            "monitoring.coreos.com/v1",
            self.kind,
            context.identity.name("monitor"),
        )
        return [doc.with_spec(spec).build(context.service.id)]


DEFAULT_BUILDERS: tuple[type[BaseKindBuilder], ...] = (
    SecretBuilder,
    ConfigMapBuilder,
    VolumeClaimBuilder,
    WorkloadBuilder,
    ServiceResourceBuilder,
    IngressBuilder,
    AutoscalerBuilder,
    NetworkPolicyBuilder,
    ServiceMonitorBuilder,
)


__all__ = [
    "ResourceDocumentBuilder",
    "BaseKindBuilder",
    "SecretBuilder",
    "ConfigMapBuilder",
    "VolumeClaimBuilder",
    "WorkloadBuilder",
    "ServiceResourceBuilder",
    "IngressBuilder",
    "AutoscalerBuilder",
    "NetworkPolicyBuilder",
    "ServiceMonitorBuilder",
    "DEFAULT_BUILDERS",
]
