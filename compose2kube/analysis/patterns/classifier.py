"""Weighted-indicator pattern classifier."""

from __future__ import annotations

import logging

from compose2kube.core.common.executor import map_ordered
from compose2kube.ir.graph import DependencyGraph
from compose2kube.ir.models import ComposeModel, ServiceSpec

from .indicators import ApplicationSubject, ServiceSubject, evaluate_indicator
from .models import (
    ClassificationResult,
    PatternDefinition,
    PatternMatch,
    PatternScope,
)
from .registry import PatternRegistry

logger = logging.getLogger(__name__)


def score_pattern(
    definition: PatternDefinition,
    subject: ServiceSubject | ApplicationSubject,
    declaration_index: int = 0,
) -> PatternMatch:
    """
    Score one definition against one subject.

    The score is the sum of matched weights divided by the sum of all
    weights, so it always lies in [0, 1]. A definition whose weights are
    all zero scores 0.

    Args:
        definition: Pattern to evaluate
        subject: Service or application subject matching the pattern scope
        declaration_index: Registry position, kept for tie-breaking

    Returns:
        PatternMatch carrying the confidence (matched or not)
    """
    matched_weight = 0.0
    evidence: list[str] = []
    for indicator in definition.indicators:
        hit = evaluate_indicator(indicator, subject)
        if hit is not None:
            matched_weight += indicator.weight
            evidence.append(f"{indicator.describe()}: {hit}")

    total = definition.total_weight
    confidence = 0.0 if total <= 0 else min(max(matched_weight / total, 0.0), 1.0)

    service_id = (
        subject.service.id if isinstance(subject, ServiceSubject) else None
    )
    return PatternMatch(
        pattern_id=definition.id,
        scope=definition.scope,
        service_id=service_id,
        family=definition.family,
        stateful=definition.stateful,
        confidence=confidence,
        matched_indicators=evidence,
        declaration_index=declaration_index,
    )


def is_match(definition: PatternDefinition, match: PatternMatch) -> bool:
    """A zero score never matches, whatever the threshold."""
    return match.confidence > 0 and match.confidence >= definition.confidence_threshold


def rank(matches: list[PatternMatch]) -> list[PatternMatch]:
    """Best first: highest confidence, then earliest declaration."""
    return sorted(matches, key=lambda m: (-m.confidence, m.declaration_index))


class PatternClassifier:
    """
    Scores every service and the whole application against the registry.

    Service-scoped patterns are evaluated first (independently per service),
    then application-scoped patterns, which may look at the service results.
    """

    def __init__(self, registry: PatternRegistry | None = None, max_workers: int = 1):
        self._logger = logger.getChild(self.__class__.__name__)
        self._registry = registry or PatternRegistry()
        self._max_workers = max_workers

    @property
    def registry(self) -> PatternRegistry:
        return self._registry

    def classify(
        self, model: ComposeModel, graph: DependencyGraph
    ) -> ClassificationResult:
        """
        Classify services and application.

        Args:
            model: Normalized compose model
            graph: Dependency graph of the model

        Returns:
            ClassificationResult with matches, primaries and recommendations
        """
        self._logger.info(
            f"Classifying {len(model.services)} service(s) against "
            f"{len(self._registry)} pattern(s)"
        )
        definitions = self._registry.definitions()
        indexed = list(enumerate(definitions))
        service_defs = [(i, d) for i, d in indexed if d.scope is PatternScope.SERVICE]
        app_defs = [(i, d) for i, d in indexed if d.scope is PatternScope.APPLICATION]

        def classify_service(service: ServiceSpec) -> list[PatternMatch]:
            subject = ServiceSubject(
                service=service, dependents=tuple(graph.dependents_of(service.id))
            )
            matches = []
            for index, definition in service_defs:
                match = score_pattern(definition, subject, index)
                if is_match(definition, match):
                    matches.append(match)
            return rank(matches)

        services = model.ordered_services()
        per_service = map_ordered(classify_service, services, self._max_workers)
        service_matches = {s.id: m for s, m in zip(services, per_service)}
        primary = {sid: (m[0] if m else None) for sid, m in service_matches.items()}

        for sid, match in primary.items():
            if match is None:
                self._logger.debug(f"Service '{sid}': no pattern matched")
            else:
                self._logger.debug(
                    f"Service '{sid}': primary pattern '{match.pattern_id}' "
                    f"({match.confidence:.2f})"
                )

        app_subject = ApplicationSubject(
            model=model,
            graph=graph,
            service_matches=service_matches,
            primary=primary,
        )
        application_matches = rank(
            [
                match
                for index, definition in app_defs
                if is_match(
                    definition, match := score_pattern(definition, app_subject, index)
                )
            ]
        )
        for match in application_matches:
            self._logger.info(
                f"Application pattern '{match.pattern_id}' "
                f"matched ({match.confidence:.2f})"
            )

        return ClassificationResult(
            service_matches=service_matches,
            application_matches=application_matches,
            primary=primary,
            recommendations=self._recommendations(
                [m for ms in service_matches.values() for m in ms] + application_matches
            ),
        )

    def _recommendations(self, matches: list[PatternMatch]) -> list[str]:
        advice: list[str] = []
        for match in sorted(matches, key=lambda m: m.declaration_index):
            for line in self._registry.get(match.pattern_id).recommendations:
                if line not in advice:
                    advice.append(line)
        return advice


__all__ = ["PatternClassifier", "score_pattern", "is_match", "rank"]
