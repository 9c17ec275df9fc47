"""Policy resolution: IR + primary pattern + run options → GenerationPolicy."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable

from compose2kube.analysis.patterns.models import (
    ClassificationResult,
    PatternFamily,
    PatternMatch,
)
from compose2kube.core.common.executor import map_ordered
from compose2kube.core.common.naming import identity_labels
from compose2kube.core.common.quantities import parse_cpu, parse_memory_gib
from compose2kube.core.diagnostics import Diagnostic, Stage, warn
from compose2kube.core.options import Environment, PipelineOptions
from compose2kube.ir.models import ComposeModel, HealthcheckSpec, ServiceSpec

from .models import (
    AutoscalingPolicy,
    GenerationPolicy,
    ProbeKind,
    ProbePolicy,
    ProbeSpec,
    ReplicaBounds,
    ResourcePolicy,
    ServiceType,
    VolumeClaimPolicy,
    WorkloadKind,
)
from .tables import (
    CLUSTERED_REPLICAS,
    CLUSTERING_COMMAND_KEYWORDS,
    CLUSTERING_ENV_KEYWORDS,
    DEFAULT_STORAGE_SIZE,
    IMAGE_STORAGE_SIZES,
    SECURITY_BASELINES,
    STATELESS_REPLICAS,
    STORAGE_SIZES,
    TCP_PROBE_FAMILIES,
    resource_profile,
)

logger = logging.getLogger(__name__)

_STATELESS_FAMILIES = frozenset(
    {PatternFamily.WEB, PatternFamily.LOAD_BALANCER, PatternFamily.GENERIC}
)
_EXPOSED_FAMILIES = frozenset({PatternFamily.WEB, PatternFamily.LOAD_BALANCER})


def _capped(
    default: str, limit: str | None, parse: Callable[[str], Decimal]
) -> str:
    """Table request, lowered to the declared limit when it would exceed it."""
    if limit is not None and parse(default) > parse(limit):
        return limit
    return default


def _autoscaling_requested(options: PipelineOptions) -> bool:
    """Explicit toggle, otherwise on in production only."""
    if options.autoscaling.enabled is None:
        return options.environment is Environment.PRODUCTION
    return options.autoscaling.enabled


def _raised(
    default: str, request: str | None, parse: Callable[[str], Decimal]
) -> str:
    if request is not None and parse(request) > parse(default):
        return request
    return default


class PolicyResolver:
    """
    Resolves one frozen :class:`GenerationPolicy` per service.

    ``resolve`` is a pure function of its arguments; the resolver keeps no
    state between calls, so services can be resolved in any order or in
    parallel.
    """

    def __init__(self) -> None:
        self._logger = logger.getChild(self.__class__.__name__)

    def resolve_all(
        self,
        model: ComposeModel,
        classification: ClassificationResult,
        options: PipelineOptions,
        diagnostics: list[Diagnostic] | None = None,
    ) -> dict[str, GenerationPolicy]:
        """
        Resolve policies for every service, keyed (and ordered) by service id.

        Args:
            model: Normalized compose model
            classification: Pattern matches for the model
            options: Run options
            diagnostics: Sink for services where an explicit autoscaling
                request could not be honoured

        Returns:
            Mapping service id ➜ GenerationPolicy in sorted id order
        """
        services = model.ordered_services()
        policies = map_ordered(
            lambda s: self.resolve(
                s,
                classification.primary_for(s.id),
                options,
                classification.service_matches.get(s.id, []),
            ),
            services,
            options.max_workers,
        )
        self._logger.info(f"Resolved generation policy for {len(policies)} service(s)")
        if options.autoscaling.enabled:
            for policy in policies:
                if not policy.autoscaling.enabled:
                    self._warn_autoscaling_skipped(policy, diagnostics)
        return {p.service_id: p for p in policies}

    def _warn_autoscaling_skipped(
        self, policy: GenerationPolicy, diagnostics: list[Diagnostic] | None
    ) -> None:
        bounds = policy.replicas
        if bounds.max > bounds.min:
            reason = "the workload is not horizontally scalable"
        else:
            reason = f"replica bounds {bounds.min}-{bounds.max} leave no room to scale"
        warn(
            self._logger,
            diagnostics if diagnostics is not None else [],
            Stage.POLICY,
            "autoscaling-skipped",
            f"Autoscaling requested but not applied: {reason}",
            service_id=policy.service_id,
        )

    def resolve(
        self,
        service: ServiceSpec,
        primary: PatternMatch | None,
        options: PipelineOptions,
        matches: list[PatternMatch] | None = None,
    ) -> GenerationPolicy:
        """
        Resolve the generation policy of a single service.

        Args:
            service: The service to resolve
            primary: Primary pattern match (None when nothing matched)
            options: Run options (environment, budget, security level, ...)
            matches: All pattern matches of the service, primary included

        Returns:
            Frozen GenerationPolicy
        """
        matches = matches if matches is not None else ([primary] if primary else [])
        family = primary.family if primary else PatternFamily.GENERIC
        stateful = bool(primary and primary.stateful)
        clustered = stateful and self._has_clustering_indicators(service)

        workload_kind = (
            WorkloadKind.STATEFULSET
            if stateful and service.persistent_volumes
            else WorkloadKind.DEPLOYMENT
        )
        replicas = self._replicas(service, family, stateful, clustered, options)
        autoscaling = self._autoscaling(replicas, family, stateful, options)

        web_matched = any(m.family is PatternFamily.WEB for m in matches)
        exposed = (
            bool(service.ports)
            and any(m.family in _EXPOSED_FAMILIES for m in matches)
            and options.environment.requires_external_exposure
        )
        ingress = exposed and web_matched and options.enable_ingress
        service_type = (
            ServiceType.LOAD_BALANCER if exposed and not ingress else ServiceType.CLUSTER_IP
        )

        policy = GenerationPolicy(
            service_id=service.id,
            pattern_id=primary.pattern_id if primary else None,
            family=family,
            workload_kind=workload_kind,
            replicas=replicas,
            resources=self._resources(service, family, options),
            autoscaling=autoscaling,
            probes=self._probes(service, family),
            security_context=SECURITY_BASELINES[options.security_level.effective],
            namespace=options.namespace,
            labels=identity_labels(service.id),
            service_type=service_type,
            expose_externally=exposed,
            ingress=ingress,
            volumes=self._volume_claims(service, family, stateful),
        )
        self._logger.debug(
            f"Service '{service.id}': {workload_kind.value} "
            f"replicas {replicas.min}-{replicas.max}, "
            f"autoscaling={'on' if autoscaling.enabled else 'off'}"
        )
        return policy

    # ----- resources ---------------------------------------------------------

    @staticmethod
    def _resources(
        service: ServiceSpec, family: PatternFamily, options: PipelineOptions
    ) -> ResourcePolicy:
        profile = resource_profile(family, options.budget)
        hints = service.resources
        declared = hints.cpu_limit is not None or hints.memory_limit is not None
        fill_defaults = not options.requires_explicit_limits
        # declared values win on either side; table values yield to them
        default_cpu_limit = _raised(profile.cpu_limit, hints.cpu_request, parse_cpu)
        default_memory_limit = _raised(
            profile.memory_limit, hints.memory_request, parse_memory_gib
        )

        return ResourcePolicy(
            cpu_request=hints.cpu_request
            or _capped(profile.cpu_request, hints.cpu_limit, parse_cpu),
            memory_request=hints.memory_request
            or _capped(profile.memory_request, hints.memory_limit, parse_memory_gib),
            cpu_limit=hints.cpu_limit
            or (default_cpu_limit if fill_defaults else None),
            memory_limit=hints.memory_limit
            or (default_memory_limit if fill_defaults else None),
            default_cpu_limit=default_cpu_limit,
            default_memory_limit=default_memory_limit,
            limits_declared=declared,
            explicit_limits_required=options.requires_explicit_limits,
        )

    # ----- replicas & autoscaling --------------------------------------------

    @staticmethod
    def _has_clustering_indicators(service: ServiceSpec) -> bool:
        names = " ".join(e.name.upper() for e in service.environment)
        command = " ".join(service.entrypoint + service.command).lower()
        return any(k in names for k in CLUSTERING_ENV_KEYWORDS) or any(
            k in command for k in CLUSTERING_COMMAND_KEYWORDS
        )

    @staticmethod
    def _replicas(
        service: ServiceSpec,
        family: PatternFamily,
        stateful: bool,
        clustered: bool,
        options: PipelineOptions,
    ) -> ReplicaBounds:
        declared = service.resources.replicas
        scalable = family in _STATELESS_FAMILIES and not stateful

        if not scalable:
            count = CLUSTERED_REPLICAS[options.environment] if clustered else 1
            if declared is not None:
                count = declared
            return ReplicaBounds(min=count, max=max(count, 1))

        low, high = STATELESS_REPLICAS[options.environment]
        if options.autoscaling.min_replicas is not None:
            low = options.autoscaling.min_replicas
        if options.autoscaling.max_replicas is not None:
            high = options.autoscaling.max_replicas
        if declared is not None:
            low = declared
        if (
            _autoscaling_requested(options)
            and options.autoscaling.max_replicas is None
        ):
            # leave the autoscaler room above a large declared count
            high = max(high, low * 2)
        return ReplicaBounds(min=low, max=max(high, low, 1))

    @staticmethod
    def _autoscaling(
        replicas: ReplicaBounds,
        family: PatternFamily,
        stateful: bool,
        options: PipelineOptions,
    ) -> AutoscalingPolicy:
        enabled = (
            _autoscaling_requested(options)
            and not stateful
            and family in _STATELESS_FAMILIES
            and replicas.min >= 1
            and replicas.max > replicas.min
        )
        return AutoscalingPolicy(
            enabled=enabled,
            target_cpu=options.autoscaling.target_cpu,
            target_memory=options.autoscaling.target_memory,
        )

    # ----- probes ------------------------------------------------------------

    def _probes(self, service: ServiceSpec, family: PatternFamily) -> ProbePolicy:
        hc = service.healthcheck
        if hc is not None:
            if hc.disabled or not hc.command:
                return ProbePolicy()
            return ProbePolicy(
                liveness=self._exec_probe(hc, initial_delay=30),
                readiness=self._exec_probe(hc, initial_delay=5),
            )

        port = service.primary_port
        if port is None:
            return ProbePolicy()
        if family is PatternFamily.WEB:
            return ProbePolicy(
                liveness=ProbeSpec(
                    kind=ProbeKind.HTTP, port=port, path="/", initial_delay_s=30
                ),
                readiness=ProbeSpec(
                    kind=ProbeKind.HTTP, port=port, path="/", initial_delay_s=5, period_s=5
                ),
            )
        if family in TCP_PROBE_FAMILIES:
            return ProbePolicy(
                liveness=ProbeSpec(kind=ProbeKind.TCP, port=port, initial_delay_s=30),
                readiness=ProbeSpec(
                    kind=ProbeKind.TCP, port=port, initial_delay_s=5, period_s=5
                ),
            )
        return ProbePolicy()

    @staticmethod
    def _exec_probe(hc: HealthcheckSpec, initial_delay: int) -> ProbeSpec:
        return ProbeSpec(
            kind=ProbeKind.EXEC,
            command=hc.command,
            initial_delay_s=(
                hc.start_period_s if hc.start_period_s is not None else initial_delay
            ),
            period_s=max(hc.interval_s or 10, 1),
            timeout_s=max(hc.timeout_s or 1, 1),
            failure_threshold=max(hc.retries or 3, 1),
        )

    # ----- storage -----------------------------------------------------------

    @staticmethod
    def _volume_claims(
        service: ServiceSpec, family: PatternFamily, stateful: bool
    ) -> list[VolumeClaimPolicy]:
        size = STORAGE_SIZES.get(family, DEFAULT_STORAGE_SIZE)
        for keyword, override in IMAGE_STORAGE_SIZES.items():
            if keyword in service.image.name:
                size = override
        return [
            VolumeClaimPolicy(
                volume=mount.source or "",
                mount_path=mount.target,
                size=size,
                access_mode="ReadWriteOnce" if stateful else "ReadWriteMany",
                read_only=mount.read_only,
            )
            for mount in service.persistent_volumes
        ]


__all__ = ["PolicyResolver"]
