"""Manifest synthesis: IR + policies + remediation directives → ManifestSet."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from compose2kube.analysis.policy.models import GenerationPolicy
from compose2kube.analysis.security.models import SecurityReport
from compose2kube.core.common.base_synthesizer import BaseManifestSynthesizer
from compose2kube.core.options import PipelineOptions
from compose2kube.exceptions import GenerationError
from compose2kube.ir.graph import DependencyGraph, build_dependency_graph
from compose2kube.ir.models import ComposeModel

from .builders import DEFAULT_BUILDERS
from .context import ServiceContext, ServiceIdentity
from .models import ManifestSet

logger = logging.getLogger(__name__)


class ManifestSynthesizer(BaseManifestSynthesizer):
    """
    Emits the resources of every service.

    Services are processed in sorted id order, and within a service resources
    follow builder registration order: Secret, ConfigMap, claims, workload,
    Service, Ingress, autoscaler, NetworkPolicy, ServiceMonitor.
    """

    def __init__(self):
        super().__init__()
        for builder_cls in DEFAULT_BUILDERS:
            self.register_builder(builder_cls())

    def synthesize(
        self,
        model: ComposeModel,
        policies: Mapping[str, GenerationPolicy],
        security: SecurityReport | None = None,
        options: PipelineOptions | None = None,
        graph: DependencyGraph | None = None,
    ) -> ManifestSet:
        """
        Build the complete, unvalidated ManifestSet.

        Args:
            model: Normalized compose model
            policies: Frozen policies for every service
            security: Report whose directives are applied (all of them,
                regardless of the report's severity filter)
            options: Run options
            graph: Dependency graph; built from ``model`` when omitted

        Returns:
            ManifestSet without a validation report

        Raises:
            GenerationError: On a missing policy or a resource name collision
        """
        options = options or PipelineOptions()
        graph = graph or build_dependency_graph(model)
        self._logger.info(f"Synthesizing manifests for {len(model.services)} service(s)")

        contexts = self._contexts(model, policies, security, options, graph)
        resources = self.build_resources(contexts)

        manifest_set = ManifestSet(resources=resources)
        self._logger.info(f"Synthesized {len(manifest_set)} resource(s)")
        return manifest_set

    def _contexts(
        self,
        model: ComposeModel,
        policies: Mapping[str, GenerationPolicy],
        security: SecurityReport | None,
        options: PipelineOptions,
        graph: DependencyGraph,
    ) -> list[ServiceContext]:
        identities = {sid: ServiceIdentity.for_service(sid) for sid in model.service_ids}
        contexts = []
        for service in model.ordered_services():
            policy = policies.get(service.id)
            if policy is None:
                raise GenerationError(f"No generation policy for service '{service.id}'")
            directives = security.directives_for(service.id) if security else []
            dependents = [identities[d] for d in graph.dependents_of(service.id)]
            contexts.append(
                ServiceContext.create(
                    service, policy, options, directives=directives, dependents=dependents
                )
            )
        return contexts


__all__ = ["ManifestSynthesizer"]
