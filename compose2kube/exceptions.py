"""
exceptions.py

Typed exception hierarchy shared by every stage of the compose → Kubernetes
pipeline.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from compose2kube.core.pipeline_runner import PipelineResult

# --------------------------------------------------------------------------- #
#                              Base hierarchy                                 #
# --------------------------------------------------------------------------- #


class Compose2KubeError(Exception):
    """
    Root of all errors raised by this project.

    Fatal errors raised through the pipeline runner carry the partial
    result gathered up to the failure in ``report``.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.report: PipelineResult | None = None


class ParseIssue:
    """One problem found while normalizing a compose document."""

    def __init__(self, reason: str, service_id: str | None = None, field: str = ""):
        self.reason = reason
        self.service_id = service_id
        self.field = field

    def __str__(self) -> str:
        if self.service_id:
            where = f"services.{self.service_id}"
            if self.field:
                where += f".{self.field}"
        else:
            where = self.field or "document"
        return f"{where}: {self.reason}"

    def __repr__(self) -> str:
        return f"ParseIssue({str(self)!r})"


class ParseError(Compose2KubeError):
    """
    Raised when the input document cannot be normalized into the IR.

    Examples
    --------
    * YAML syntax error / top-level object is not a mapping
    * ``services`` section missing
    * unparsable port syntax, missing image and build
    """

    def __init__(self, reason: str, issues: list[ParseIssue] | None = None) -> None:
        self.reason = reason
        self.issues: list[ParseIssue] = list(issues or [])
        message = reason
        if self.issues:
            message += ": " + "; ".join(str(i) for i in self.issues)
        super().__init__(message)


class PatternDefinitionError(Compose2KubeError):
    """Raised when a custom pattern definition is malformed."""

    def __init__(self, pattern_id: Any, reason: str) -> None:
        self.pattern_id = pattern_id
        self.reason = reason
        super().__init__(f"Invalid pattern definition '{pattern_id}': {reason}")


class GenerationError(Compose2KubeError):
    """Raised on naming collisions or unresolvable cross-references."""


class DependencyCycleError(GenerationError):
    """Raised when a dependency cycle is found and cycles are configured as fatal."""

    def __init__(self, cycles: list[list[str]]) -> None:
        self.cycles = cycles
        rendered = ", ".join(" -> ".join(c + c[:1]) for c in cycles)
        super().__init__(f"Dependency cycle(s) detected: {rendered}")


class ValidationError(Compose2KubeError):
    """
    Raised by callers that refuse to persist a manifest set whose
    validation report failed. The core itself reports validation issues as
    data and never raises this.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message)


class CostModelError(Compose2KubeError):
    """Raised when no rate card exists for a provider/region pair."""

    def __init__(self, provider: str, region: str) -> None:
        self.provider = provider
        self.region = region
        super().__init__(f"No rate card for provider '{provider}' in region '{region}'")


__all__ = [
    "Compose2KubeError",
    "ParseIssue",
    "ParseError",
    "PatternDefinitionError",
    "GenerationError",
    "DependencyCycleError",
    "ValidationError",
    "CostModelError",
]
