"""Manifest synthesis, validation and rendering."""

from .context import ServiceContext, ServiceIdentity
from .models import (
    IssueLevel,
    ManifestResource,
    ManifestSet,
    ValidationIssue,
    ValidationReport,
)
from .render import ManifestRenderer, render_manifest_set, render_resource
from .synthesizer import ManifestSynthesizer
from .validator import ManifestValidator

__all__ = [
    "ServiceContext",
    "ServiceIdentity",
    "IssueLevel",
    "ManifestResource",
    "ManifestSet",
    "ValidationIssue",
    "ValidationReport",
    "ManifestRenderer",
    "render_manifest_set",
    "render_resource",
    "ManifestSynthesizer",
    "ManifestValidator",
]
