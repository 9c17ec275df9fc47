"""
Structural and policy validation of a synthesized ManifestSet.

The validator never changes resources. It returns a copy of the set with the
:class:`ValidationReport` attached.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterator, Sequence
from typing import Any

from compose2kube.core.common.quantities import parse_cpu, parse_memory_gib
from compose2kube.core.options import Environment, PipelineOptions

from .models import (
    IssueLevel,
    ManifestResource,
    ManifestSet,
    ValidationIssue,
    ValidationReport,
)

logger = logging.getLogger(__name__)

WORKLOAD_KINDS = ("Deployment", "StatefulSet")

# kind ➜ dotted paths that must be present and non-empty
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "Deployment": (
        "spec.selector.matchLabels",
        "spec.template.metadata.labels",
        "spec.template.spec.containers",
    ),
    "StatefulSet": (
        "spec.serviceName",
        "spec.selector.matchLabels",
        "spec.template.metadata.labels",
        "spec.template.spec.containers",
    ),
    "Service": ("spec.selector",),
    "PersistentVolumeClaim": ("spec.accessModes", "spec.resources.requests.storage"),
    "Ingress": ("spec.rules",),
    "HorizontalPodAutoscaler": ("spec.scaleTargetRef.name", "spec.maxReplicas"),
    "NetworkPolicy": ("spec.podSelector",),
    "ServiceMonitor": ("spec.selector", "spec.endpoints"),
}


def _lookup(document: dict[str, Any], path: str) -> Any:
    node: Any = document
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _containers(resource: ManifestResource) -> list[dict[str, Any]]:
    return list(_lookup(resource.payload, "spec.template.spec.containers") or [])


def _is_unpinned(image: str) -> bool:
    if "@" in image:
        return False
    last = image.rsplit("/", 1)[-1]
    return ":" not in last or last.endswith(":latest")


class ManifestValidator:
    """
    Checks a ManifestSet for structural and policy consistency.

    Errors make the report fail. In strict mode unpinned images, missing
    limits and host paths outside the allow-list are errors; otherwise they
    are reported as warnings.
    """

    def __init__(
        self,
        strict: bool = False,
        hostpath_allow_list: Sequence[str] = (),
        environment: Environment = Environment.DEVELOPMENT,
    ):
        self.strict = strict
        self.hostpath_allow_list = tuple(hostpath_allow_list)
        self.environment = environment
        self._logger = logger.getChild(self.__class__.__name__)

    @classmethod
    def from_options(cls, options: PipelineOptions) -> ManifestValidator:
        return cls(
            strict=options.strict_validation,
            hostpath_allow_list=options.hostpath_allow_list,
            environment=options.environment,
        )

    def validate(self, manifest_set: ManifestSet) -> ManifestSet:
        """
        Validate and annotate.

        Args:
            manifest_set: Set produced by the synthesizer

        Returns:
            Copy of ``manifest_set`` with ``validation`` populated
        """
        report = self.report(manifest_set)
        return manifest_set.model_copy(update={"validation": report})

    def report(self, manifest_set: ManifestSet) -> ValidationReport:
        """Run all checks and build the report without annotating the set."""
        self._logger.info(
            f"Validating {len(manifest_set)} resource(s)"
            f"{' in strict mode' if self.strict else ''}"
        )
        issues = list(self._check(manifest_set))
        errors = [i for i in issues if i.level is IssueLevel.ERROR]
        warnings = [i for i in issues if i.level is IssueLevel.WARNING]

        for issue in errors:
            self._logger.error(str(issue))
        for issue in warnings:
            self._logger.warning(str(issue))

        codes = Counter(i.code for i in issues)
        report = ValidationReport(
            passed=not errors,
            strict=self.strict,
            errors=errors,
            warnings=warnings,
            score=self._score(manifest_set, errors, warnings),
            common_issues=sorted(code for code, n in codes.items() if n > 1),
        )
        self._logger.info(
            f"Validation {report.status}: {len(errors)} error(s), "
            f"{len(warnings)} warning(s), score {report.score}"
        )
        return report

    # ----- checks ------------------------------------------------------------

    def _check(self, mset: ManifestSet) -> Iterator[ValidationIssue]:
        for resource in mset.resources:
            yield from self._required_fields(resource)
            if resource.kind in WORKLOAD_KINDS:
                yield from self._workload(mset, resource)
            elif resource.kind == "Service":
                yield from self._service(mset, resource)
            elif resource.kind == "HorizontalPodAutoscaler":
                yield from self._autoscaler(mset, resource)
            elif resource.kind == "Ingress":
                yield from self._ingress(mset, resource)
            elif resource.kind in ("ConfigMap", "Secret"):
                if not resource.payload.get("data"):
                    yield self._issue(
                        IssueLevel.WARNING,
                        "empty-data",
                        f"{resource.kind} has no data",
                        resource,
                    )

    def _required_fields(self, resource: ManifestResource) -> Iterator[ValidationIssue]:
        for path in ("apiVersion", "kind", "metadata.name"):
            if not _lookup(resource.payload, path):
                yield self._issue(
                    IssueLevel.ERROR, "missing-field", f"missing '{path}'", resource
                )
        for path in REQUIRED_FIELDS.get(resource.kind, ()):
            if _lookup(resource.payload, path) in (None, "", [], {}):
                yield self._issue(
                    IssueLevel.ERROR, "missing-field", f"missing '{path}'", resource
                )
        if resource.kind in WORKLOAD_KINDS:
            for container in _containers(resource):
                for key in ("name", "image"):
                    if not container.get(key):
                        yield self._issue(
                            IssueLevel.ERROR,
                            "missing-field",
                            f"container is missing '{key}'",
                            resource,
                        )

    def _workload(
        self, mset: ManifestSet, resource: ManifestResource
    ) -> Iterator[ValidationIssue]:
        selector = _lookup(resource.payload, "spec.selector.matchLabels") or {}
        template = _lookup(resource.payload, "spec.template.metadata.labels") or {}
        if selector != template:
            yield self._issue(
                IssueLevel.ERROR,
                "selector-mismatch",
                "selector does not equal pod template labels",
                resource,
            )

        replicas = resource.spec.get("replicas", 1)
        if self.environment is Environment.PRODUCTION and replicas == 1:
            yield self._issue(
                IssueLevel.WARNING,
                "single-replica",
                "runs a single replica in production",
                resource,
            )

        policy_level = IssueLevel.ERROR if self.strict else IssueLevel.WARNING
        for container in _containers(resource):
            yield from self._references(mset, resource, container)
            yield from self._resources(resource, container, policy_level)
            image = container.get("image", "")
            if image and _is_unpinned(image):
                yield self._issue(
                    policy_level,
                    "unpinned-image",
                    f"image '{image}' is not pinned to a version",
                    resource,
                )

        for volume in _lookup(resource.payload, "spec.template.spec.volumes") or []:
            claim = (volume.get("persistentVolumeClaim") or {}).get("claimName")
            if claim and mset.get("PersistentVolumeClaim", claim) is None:
                yield self._issue(
                    IssueLevel.ERROR,
                    "dangling-claim",
                    f"volume references missing claim '{claim}'",
                    resource,
                )
            host_path = (volume.get("hostPath") or {}).get("path")
            if host_path and not self._allowed(host_path):
                yield self._issue(
                    policy_level,
                    "host-path",
                    f"host path '{host_path}' is not on the allow-list",
                    resource,
                )

    def _references(
        self, mset: ManifestSet, resource: ManifestResource, container: dict[str, Any]
    ) -> Iterator[ValidationIssue]:
        for env in container.get("env") or []:
            ref = (env.get("valueFrom") or {}).get("secretKeyRef")
            if not ref:
                continue
            secret = mset.get("Secret", ref.get("name", ""))
            if secret is None or ref.get("key") not in (secret.payload.get("data") or {}):
                yield self._issue(
                    IssueLevel.ERROR,
                    "dangling-secret-ref",
                    f"env '{env.get('name')}' references missing secret key "
                    f"'{ref.get('name')}/{ref.get('key')}'",
                    resource,
                )
        for source in container.get("envFrom") or []:
            ref = source.get("configMapRef")
            if ref and mset.get("ConfigMap", ref.get("name", "")) is None:
                yield self._issue(
                    IssueLevel.ERROR,
                    "dangling-config-ref",
                    f"envFrom references missing ConfigMap '{ref.get('name')}'",
                    resource,
                )

    def _resources(
        self, resource: ManifestResource, container: dict[str, Any], level: IssueLevel
    ) -> Iterator[ValidationIssue]:
        block = container.get("resources") or {}
        requests = block.get("requests") or {}
        limits = block.get("limits") or {}
        if "cpu" not in limits or "memory" not in limits:
            yield self._issue(
                level,
                "missing-limits",
                f"container '{container.get('name')}' has no "
                f"{'cpu and memory' if not limits else 'complete'} resource limits",
                resource,
            )
        for key, parse in (("cpu", parse_cpu), ("memory", parse_memory_gib)):
            if key in requests and key in limits:
                try:
                    exceeded = parse(requests[key]) > parse(limits[key])
                except ValueError:
                    yield self._issue(
                        IssueLevel.ERROR,
                        "invalid-quantity",
                        f"unparsable {key} quantity",
                        resource,
                    )
                    continue
                if exceeded:
                    yield self._issue(
                        IssueLevel.ERROR,
                        "requests-exceed-limits",
                        f"{key} request {requests[key]} exceeds limit {limits[key]}",
                        resource,
                    )

    def _service(
        self, mset: ManifestSet, resource: ManifestResource
    ) -> Iterator[ValidationIssue]:
        selector = resource.spec.get("selector") or {}
        matching = [
            w
            for kind in WORKLOAD_KINDS
            for w in mset.by_kind(kind)
            if _lookup(w.payload, "spec.template.metadata.labels") == selector
        ]
        if len(matching) != 1:
            yield self._issue(
                IssueLevel.ERROR,
                "selector-mismatch",
                f"selector matches {len(matching)} workloads, expected exactly 1",
                resource,
            )
        if not resource.spec.get("ports"):
            yield self._issue(
                IssueLevel.WARNING,
                "service-without-ports",
                "Service has no ports",
                resource,
            )

    def _autoscaler(
        self, mset: ManifestSet, resource: ManifestResource
    ) -> Iterator[ValidationIssue]:
        target = resource.spec.get("scaleTargetRef") or {}
        if mset.get(target.get("kind", ""), target.get("name", "")) is None:
            yield self._issue(
                IssueLevel.ERROR,
                "dangling-hpa-target",
                f"scale target {target.get('kind')}/{target.get('name')} not found",
                resource,
            )

    def _ingress(
        self, mset: ManifestSet, resource: ManifestResource
    ) -> Iterator[ValidationIssue]:
        for rule in resource.spec.get("rules") or []:
            for path in _lookup(rule, "http.paths") or []:
                backend = _lookup(path, "backend.service") or {}
                service = mset.get("Service", backend.get("name", ""))
                port = _lookup(backend, "port.number")
                declared = (service.spec.get("ports") if service else None) or []
                ports = [p.get("port") for p in declared]
                if service is None or port not in ports:
                    yield self._issue(
                        IssueLevel.ERROR,
                        "dangling-ingress-backend",
                        f"backend {backend.get('name')}:{port} not found",
                        resource,
                    )

    # ----- helpers -----------------------------------------------------------

    def _allowed(self, path: str) -> bool:
        return any(
            path == p or path.startswith(p.rstrip("/") + "/")
            for p in self.hostpath_allow_list
        )

    @staticmethod
    def _issue(
        level: IssueLevel, code: str, message: str, resource: ManifestResource
    ) -> ValidationIssue:
        return ValidationIssue(
            level=level,
            code=code,
            message=message,
            kind=resource.kind,
            name=resource.name,
            service_id=resource.service_id,
        )

    @staticmethod
    def _score(
        mset: ManifestSet,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> float:
        total = len(mset)
        if total == 0:
            return 100.0
        failing = {(e.kind, e.name) for e in errors}
        valid = sum(1 for r in mset.resources if r.key not in failing)
        score = valid / total * 70 + 30 - len(warnings) / total * 10
        return round(min(100.0, max(0.0, score)), 2)


__all__ = ["ManifestValidator", "REQUIRED_FIELDS"]
