"""compose2kube: Docker Compose applications to Kubernetes manifests."""

from .core.options import PipelineOptions
from .core.pipeline_runner import PipelineResult, PipelineRunner
from .manifests.render import render_manifest_set
from .plugins.compose import parse

__version__ = "0.3.0"

__all__ = [
    "PipelineOptions",
    "PipelineResult",
    "PipelineRunner",
    "parse",
    "render_manifest_set",
    "__version__",
]
