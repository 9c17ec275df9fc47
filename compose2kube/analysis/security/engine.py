"""Generic evaluation routine for :data:`SECURITY_RULES`."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from compose2kube.analysis.policy.models import GenerationPolicy
from compose2kube.core.common.executor import map_ordered
from compose2kube.core.options import Severity
from compose2kube.exceptions import GenerationError
from compose2kube.ir.models import ComposeModel, ServiceSpec

from .models import RemediationDirective, SecurityFinding, SecurityReport
from .rules import (
    CATEGORY_RECOMMENDATIONS,
    SECURITY_RULES,
    SEVERITY_WEIGHTS,
    RuleContext,
    SecurityRule,
)

if TYPE_CHECKING:
    from compose2kube.core.options import PipelineOptions

logger = logging.getLogger(__name__)

# (severity rank desc, rule index, service id, hit index)
_SortKey = tuple[int, int, str, int]


class SecurityRuleEngine:
    """
    Evaluate every rule against every service.

    The engine only reads the model and the policies. Its output is data: the
    ordered findings and the remediation directives, which the synthesizer
    applies when it builds resources.
    """

    def __init__(self, rules: Sequence[SecurityRule] | None = None) -> None:
        self._rules = tuple(SECURITY_RULES if rules is None else rules)
        self._logger = logger.getChild(self.__class__.__name__)

    @property
    def rules(self) -> tuple[SecurityRule, ...]:
        return self._rules

    def evaluate(
        self,
        model: ComposeModel,
        policies: Mapping[str, GenerationPolicy] | None = None,
        options: PipelineOptions | None = None,
    ) -> SecurityReport:
        """
        Run all rules and build the report.

        Args:
            model: Normalized compose model
            policies: Resolved policies keyed by service id
            options: Run options; supplies the severity filter, the host path
                allow-list and the worker count

        Returns:
            SecurityReport with reported findings and unfiltered directives

        Raises:
            GenerationError: If a rule produced a directive whose field does
                not resolve inside ``model``
        """
        policies = policies or {}
        min_severity = options.min_severity if options else Severity.LOW
        allow_list = tuple(options.hostpath_allow_list) if options else ()
        workers = options.max_workers if options else 1

        self._logger.info(
            f"Evaluating {len(self._rules)} rules against "
            f"{len(model.services)} service(s)"
        )

        def evaluate_service(
            service: ServiceSpec,
        ) -> list[tuple[_SortKey, SecurityFinding]]:
            ctx = RuleContext(
                policy=policies.get(service.id), hostpath_allow_list=allow_list
            )
            return self._evaluate_service(model, service, ctx)

        per_service = map_ordered(evaluate_service, model.ordered_services(), workers)
        keyed = [item for items in per_service for item in items]
        keyed.sort(key=lambda item: item[0])
        all_findings = [finding for _, finding in keyed]

        reported = [f for f in all_findings if f.severity.at_least(min_severity)]
        suppressed = len(all_findings) - len(reported)
        if suppressed:
            self._logger.debug(
                f"{suppressed} finding(s) below {min_severity.value} not reported"
            )

        report = SecurityReport(
            findings=reported,
            directives=[f.remediation for f in all_findings],
            suppressed=suppressed,
            min_severity=min_severity,
            compliance_score=self.compliance_score(len(model.services), all_findings),
            recommendations=self._recommendations(reported),
        )
        self._logger.info(
            f"Security evaluation complete: {len(all_findings)} finding(s), "
            f"{len(reported)} reported, score {report.compliance_score}"
        )
        return report

    def _evaluate_service(
        self, model: ComposeModel, service: ServiceSpec, ctx: RuleContext
    ) -> list[tuple[_SortKey, SecurityFinding]]:
        results: list[tuple[_SortKey, SecurityFinding]] = []
        for rule_index, rule in enumerate(self._rules):
            for hit_index, hit in enumerate(rule.check(service, ctx)):
                if not model.has_field(hit.field):
                    raise GenerationError(
                        f"Rule {rule.id} referenced unknown field '{hit.field}'"
                    )
                directive = RemediationDirective(
                    kind=rule.remediation,
                    service_id=service.id,
                    field=hit.field,
                    params=hit.params,
                )
                finding = SecurityFinding(
                    rule_id=rule.id,
                    severity=rule.severity,
                    category=rule.category,
                    title=rule.title,
                    description=hit.detail,
                    service_id=service.id,
                    field=hit.field,
                    cwe=rule.cwe,
                    remediation=directive,
                )
                self._logger.debug(f"Finding {finding}")
                key = (-rule.severity.rank, rule_index, service.id, hit_index)
                results.append((key, finding))
        return results

    @staticmethod
    def compliance_score(
        service_count: int, findings: Sequence[SecurityFinding]
    ) -> float:
        """
        ``(services*10 - Σ severity weights) / (services*10) * 100``, floored at 0.

        An empty application scores 100.
        """
        if service_count == 0:
            return 100.0
        max_score = service_count * 10
        penalty = sum(SEVERITY_WEIGHTS[f.severity] for f in findings)
        return round(max(0.0, (max_score - penalty) / max_score * 100), 2)

    @staticmethod
    def _recommendations(findings: Sequence[SecurityFinding]) -> list[str]:
        seen = {f.category for f in findings}
        return [text for cat, text in CATEGORY_RECOMMENDATIONS.items() if cat in seen]


__all__ = ["SecurityRuleEngine"]
