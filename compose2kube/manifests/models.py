"""Generated resources, the resource set and its validation report."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ManifestResource(BaseModel):
    """
    One cluster resource document.

    ``payload`` is the complete document (``apiVersion``, ``kind``,
    ``metadata``, ``spec``/``data``) exactly as it will be rendered.
    """

    kind: str = Field(..., description="Resource kind, e.g. *Deployment*.")
    name: str = Field(..., description="metadata.name.")
    namespace: str = Field("default", description="metadata.namespace.")
    service_id: str = Field(..., description="Owning compose service.")
    payload: dict[str, Any] = Field(..., description="Full resource document.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @model_validator(mode="after")
    def _payload_matches_header(self) -> Self:
        metadata = self.payload.get("metadata") or {}
        if self.payload.get("kind") != self.kind:
            raise ValueError(
                f"payload kind '{self.payload.get('kind')}' != '{self.kind}'"
            )
        if metadata.get("name") != self.name:
            raise ValueError(
                f"payload name '{metadata.get('name')}' != '{self.name}'"
            )
        return self

    @property
    def api_version(self) -> str:
        return self.payload.get("apiVersion", "")

    @property
    def labels(self) -> dict[str, str]:
        return dict(self.payload.get("metadata", {}).get("labels") or {})

    @property
    def annotations(self) -> dict[str, str]:
        return dict(self.payload.get("metadata", {}).get("annotations") or {})

    @property
    def spec(self) -> dict[str, Any]:
        return self.payload.get("spec") or {}

    @property
    def key(self) -> tuple[str, str]:
        return (self.kind, self.name)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class IssueLevel(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class ValidationIssue(BaseModel):
    """A validation error or warning attached to one resource."""

    level: IssueLevel = Field(..., description="error or warning.")
    code: str = Field(..., description="Stable issue code.")
    message: str = Field(..., description="Human-readable explanation.")
    kind: Optional[str] = Field(None, description="Offending resource kind.")
    name: Optional[str] = Field(None, description="Offending resource name.")
    service_id: Optional[str] = Field(None, description="Owning service.")

    model_config = ConfigDict(extra="forbid", frozen=True)

    def __str__(self) -> str:
        where = f"{self.kind}/{self.name}" if self.kind else "manifest set"
        owner = f" (service '{self.service_id}')" if self.service_id else ""
        return f"{self.level.value}: {where}{owner}: {self.message}"


class ValidationReport(BaseModel):
    """Outcome of validating a :class:`ManifestSet`."""

    passed: bool = Field(..., description="No errors were found.")
    strict: bool = Field(False, description="Strict mode was on.")
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    score: float = Field(100.0, ge=0.0, le=100.0, description="0..100.")
    common_issues: list[str] = Field(
        default_factory=list, description="Issue codes seen more than once."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def status(self) -> str:
        return "Pass" if self.passed else "Fail"

    def services_with_errors(self) -> list[str]:
        return sorted({e.service_id for e in self.errors if e.service_id})


class ManifestSet(BaseModel):
    """Ordered resources of one run plus, once validated, the report."""

    resources: list[ManifestResource] = Field(default_factory=list)
    validation: Optional[ValidationReport] = Field(
        None, description="Set by the validator."
    )

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ----- validators --------------------------------------------------------
    @model_validator(mode="after")
    def _unique_keys(self) -> Self:
        keys = [r.key for r in self.resources]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(f"Duplicate resources: {duplicates}")
        return self

    def __len__(self) -> int:
        return len(self.resources)

    @property
    def names(self) -> list[str]:
        return [r.name for r in self.resources]

    def by_kind(self, kind: str) -> list[ManifestResource]:
        return [r for r in self.resources if r.kind == kind]

    def for_service(self, service_id: str) -> list[ManifestResource]:
        return [r for r in self.resources if r.service_id == service_id]

    def get(self, kind: str, name: str) -> Optional[ManifestResource]:
        for resource in self.resources:
            if resource.kind == kind and resource.name == name:
                return resource
        return None


__all__ = [
    "ManifestResource",
    "IssueLevel",
    "ValidationIssue",
    "ValidationReport",
    "ManifestSet",
]
