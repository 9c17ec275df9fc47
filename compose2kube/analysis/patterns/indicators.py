"""
Indicator predicates.

Each indicator kind maps to one small function returning an evidence
string when the indicator holds, or ``None``. No side-effects, no
exceptions: malformed data simply does not match.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from compose2kube.ir.graph import DependencyGraph
from compose2kube.ir.models import ComposeModel, ServiceSpec

from .models import Indicator, IndicatorKind, PatternMatch

__all__ = ["ServiceSubject", "ApplicationSubject", "evaluate_indicator"]


@dataclass(frozen=True)
class ServiceSubject:
    """A service plus the read-only graph context it is scored in."""

    service: ServiceSpec
    dependents: tuple[str, ...] = ()


@dataclass(frozen=True)
class ApplicationSubject:
    """The whole application plus the already computed service matches."""

    model: ComposeModel
    graph: DependencyGraph
    service_matches: dict[str, list[PatternMatch]] = field(default_factory=dict)
    primary: dict[str, PatternMatch | None] = field(default_factory=dict)

    def services_matching(self, pattern_ids: list[str]) -> list[str]:
        wanted = set(pattern_ids)
        return [
            sid
            for sid in self.model.service_ids
            if any(m.pattern_id in wanted for m in self.service_matches.get(sid, []))
        ]


# ----- service scope ---------------------------------------------------------


def _image_keyword(ind: Indicator, s: ServiceSubject) -> str | None:
    repository = s.service.image.repository.lower()
    for keyword in ind.values:
        if str(keyword).lower() in repository:
            return f"image contains '{keyword}'"
    return None


def _port(ind: Indicator, s: ServiceSubject) -> str | None:
    wanted = set(ind.values)
    for port in s.service.ports:
        for number in (port.container_port, port.host_port):
            if number in wanted:
                return f"port {number}"
    return None


def _env_name(ind: Indicator, s: ServiceSubject) -> str | None:
    for entry in s.service.environment:
        for keyword in ind.values:
            if str(keyword).upper() in entry.name.upper():
                return f"environment '{entry.name}'"
    return None


def _volume_target(ind: Indicator, s: ServiceSubject) -> str | None:
    for mount in s.service.volumes:
        for prefix in ind.values:
            if mount.target.startswith(str(prefix)):
                return f"volume at '{mount.target}'"
    return None


def _command_keyword(ind: Indicator, s: ServiceSubject) -> str | None:
    command = " ".join(s.service.entrypoint + s.service.command).lower()
    for keyword in ind.values:
        if str(keyword).lower() in command:
            return f"command contains '{keyword}'"
    return None


def _stateless(ind: Indicator, s: ServiceSubject) -> str | None:
    return None if s.service.persistent_volumes else "no persistent volumes"


def _persistent_volume(ind: Indicator, s: ServiceSubject) -> str | None:
    volumes = s.service.persistent_volumes
    return f"persistent volume '{volumes[0].source}'" if volumes else None


def _healthcheck(ind: Indicator, s: ServiceSubject) -> str | None:
    hc = s.service.healthcheck
    return "healthcheck declared" if hc is not None and not hc.disabled else None


def _min_dependents(ind: Indicator, s: ServiceSubject) -> str | None:
    count = len(s.dependents)
    return f"{count} dependents" if count >= (ind.count or 0) else None


# ----- application scope -----------------------------------------------------


def _min_services(ind: Indicator, a: ApplicationSubject) -> str | None:
    n = len(a.model.services)
    return f"{n} services" if n >= (ind.count or 0) else None


def _max_services(ind: Indicator, a: ApplicationSubject) -> str | None:
    n = len(a.model.services)
    return f"{n} services" if n <= (ind.count or 0) else None


def _min_distinct_patterns(ind: Indicator, a: ApplicationSubject) -> str | None:
    families = {m.family for m in a.primary.values() if m is not None}
    if len(families) >= (ind.count or 0):
        return f"{len(families)} distinct workload families"
    return None


def _has_dependencies(ind: Indicator, a: ApplicationSubject) -> str | None:
    links = sum(len(v) for v in a.graph.edges.values())
    return f"{links} inter-service links" if links else None


def _pattern_present(ind: Indicator, a: ApplicationSubject) -> str | None:
    services = a.services_matching([str(v) for v in ind.values])
    if len(services) >= max(ind.count or 1, 1):
        return f"{'/'.join(str(v) for v in ind.values)} in {', '.join(services)}"
    return None


def _pattern_count(ind: Indicator, a: ApplicationSubject) -> str | None:
    services = a.services_matching([str(v) for v in ind.values])
    if len(services) == ind.count:
        return f"exactly {ind.count} {'/'.join(str(v) for v in ind.values)}"
    return None


def _pattern_dependents(ind: Indicator, a: ApplicationSubject) -> str | None:
    for sid in a.services_matching([str(v) for v in ind.values]):
        dependents = a.graph.dependents_of(sid)
        if len(dependents) >= (ind.count or 0):
            return f"'{sid}' used by {', '.join(dependents)}"
    return None


_EVALUATORS: dict[IndicatorKind, Callable[[Indicator, object], str | None]] = {
    IndicatorKind.IMAGE_KEYWORD: _image_keyword,
    IndicatorKind.PORT: _port,
    IndicatorKind.ENV_NAME: _env_name,
    IndicatorKind.VOLUME_TARGET: _volume_target,
    IndicatorKind.COMMAND_KEYWORD: _command_keyword,
    IndicatorKind.STATELESS: _stateless,
    IndicatorKind.PERSISTENT_VOLUME: _persistent_volume,
    IndicatorKind.HEALTHCHECK: _healthcheck,
    IndicatorKind.MIN_DEPENDENTS: _min_dependents,
    IndicatorKind.MIN_SERVICES: _min_services,
    IndicatorKind.MAX_SERVICES: _max_services,
    IndicatorKind.MIN_DISTINCT_PATTERNS: _min_distinct_patterns,
    IndicatorKind.HAS_DEPENDENCIES: _has_dependencies,
    IndicatorKind.PATTERN_PRESENT: _pattern_present,
    IndicatorKind.PATTERN_COUNT: _pattern_count,
    IndicatorKind.PATTERN_DEPENDENTS: _pattern_dependents,
}


def evaluate_indicator(
    indicator: Indicator, subject: ServiceSubject | ApplicationSubject
) -> str | None:
    """Return evidence if ``indicator`` holds for ``subject``, else None."""
    return _EVALUATORS[indicator.kind](indicator, subject)
