"""Pipeline runner orchestrating the conversion stages in sequence."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from compose2kube.analysis.cost import CostBreakdown, CostEstimator
from compose2kube.analysis.patterns import (
    ClassificationResult,
    PatternClassifier,
    PatternRegistry,
)
from compose2kube.analysis.policy import GenerationPolicy, PolicyResolver
from compose2kube.analysis.security import SecurityReport, SecurityRuleEngine
from compose2kube.exceptions import Compose2KubeError, DependencyCycleError
from compose2kube.ir.graph import DependencyGraph, build_dependency_graph
from compose2kube.ir.models import ComposeModel
from compose2kube.manifests import (
    ManifestSet,
    ManifestSynthesizer,
    ManifestValidator,
    ValidationReport,
)
from compose2kube.plugins.compose import ComposeFileParser

from .diagnostics import Diagnostic, Stage, warn
from .options import PipelineOptions

logger = logging.getLogger(__name__)


class PipelineResult(BaseModel):
    """
    Everything a run produced.

    A completed run fills every field. A run aborted by a fatal error
    leaves the stages after the failure unset; the partial result travels
    on the error's ``report`` attribute.
    """

    options: PipelineOptions = Field(..., description="Options the run used.")
    model: ComposeModel | None = Field(None, description="Normalized input.")
    graph: DependencyGraph | None = Field(None, description="Dependency graph.")
    classification: ClassificationResult | None = Field(
        None, description="Pattern matches per service and application."
    )
    policies: dict[str, GenerationPolicy] = Field(
        default_factory=dict, description="Resolved policy per service id."
    )
    security: SecurityReport | None = Field(None, description="Security findings.")
    cost: CostBreakdown | None = Field(None, description="Monthly cost estimate.")
    manifests: ManifestSet | None = Field(
        None, description="Generated resources, annotated with validation."
    )
    diagnostics: list[Diagnostic] = Field(
        default_factory=list, description="Warnings gathered during the run."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def validation(self) -> ValidationReport | None:
        return self.manifests.validation if self.manifests else None

    @property
    def completed(self) -> bool:
        return self.validation is not None

    @property
    def passed(self) -> bool:
        """Whether the run completed and its manifests may be persisted."""
        return self.validation is not None and self.validation.passed


class PipelineRunner:
    """
    Coordinates the execution of the conversion stages.

    Stages run in a fixed order: parse, graph, classify, resolve policies,
    evaluate security, estimate cost, synthesize, validate. Each stage reads
    the immutable outputs of earlier ones; the runner only threads them
    through and collects diagnostics.
    """

    def __init__(
        self,
        options: PipelineOptions | None = None,
        parser: ComposeFileParser | None = None,
    ):
        """
        Initialize the pipeline runner.

        Args:
            options: Run options; defaults apply when omitted
            parser: Source parser; a ComposeFileParser by default
        """
        self._logger = logger.getChild(self.__class__.__name__)
        self._options = options or PipelineOptions()
        self._parser = parser or ComposeFileParser()

    @property
    def options(self) -> PipelineOptions:
        return self._options

    def run_file(self, path: str | Path) -> PipelineResult:
        """Read a compose file and run the pipeline on it."""
        state: dict[str, Any] = {"options": self._options, "diagnostics": []}
        try:
            model = self._parser.parse_file(Path(path))
        except Compose2KubeError as e:
            self._fail(e, state)
            raise
        return self._execute(model, state)

    def run(self, document: str | Mapping[str, Any] | ComposeModel) -> PipelineResult:
        """
        Execute the pipeline.

        Args:
            document: Compose text, an already-loaded mapping, or a
                normalized ComposeModel

        Returns:
            PipelineResult of a completed run (validation may still have
            failed, see ``PipelineResult.passed``)

        Raises:
            ParseError: If the document cannot be normalized
            GenerationError: On naming collisions, unresolvable references
                or a dependency cycle when cycles are fatal
        """
        state: dict[str, Any] = {"options": self._options, "diagnostics": []}
        try:
            model = (
                document
                if isinstance(document, ComposeModel)
                else self._parser.parse(document)
            )
        except Compose2KubeError as e:
            self._fail(e, state)
            raise
        return self._execute(model, state)

    def _execute(self, model: ComposeModel, state: dict[str, Any]) -> PipelineResult:
        options = self._options
        diagnostics: list[Diagnostic] = state["diagnostics"]
        state["model"] = model
        self._logger.info(
            f"Starting pipeline execution for {len(model.services)} service(s)"
        )

        try:
            graph = build_dependency_graph(model)
            state["graph"] = graph
            if graph.has_cycles:
                if options.fail_on_cycle:
                    raise DependencyCycleError(graph.cycles)
                for cycle in graph.cycles:
                    warn(
                        self._logger,
                        diagnostics,
                        Stage.GRAPH,
                        "dependency-cycle",
                        "Services depend on each other: "
                        + " -> ".join(cycle + cycle[:1]),
                    )

            registry = PatternRegistry()
            registry.load_custom(options.custom_patterns, diagnostics)
            classification = PatternClassifier(
                registry, max_workers=options.max_workers
            ).classify(model, graph)
            state["classification"] = classification

            policies = PolicyResolver().resolve_all(
                model, classification, options, diagnostics
            )
            state["policies"] = policies

            security = SecurityRuleEngine().evaluate(model, policies, options)
            state["security"] = security

            state["cost"] = CostEstimator().estimate(
                policies, options.provider, options.region, options, diagnostics
            )

            manifests = ManifestSynthesizer().synthesize(
                model, policies, security, options, graph
            )
            state["manifests"] = ManifestValidator.from_options(options).validate(
                manifests
            )

        except Compose2KubeError as e:
            self._fail(e, state)
            raise
        except Exception as e:
            self._logger.error(f"Pipeline execution failed unexpectedly: {e}")
            raise

        result = PipelineResult(**state)
        self._logger.info(
            f"Pipeline execution completed: {len(result.manifests)} resource(s), "
            f"validation {result.validation.status}, "
            f"{len(diagnostics)} warning(s)"
        )
        return result

    def _fail(self, error: Compose2KubeError, state: dict[str, Any]) -> None:
        """Attach the partial result to ``error`` and log it."""
        error.report = PipelineResult(**state)
        self._logger.error(f"Pipeline execution failed: {error}")


__all__ = ["PipelineResult", "PipelineRunner"]
