"""Policy resolution: per-service generation parameters."""

from .models import GenerationPolicy
from .resolver import PolicyResolver

__all__ = ["GenerationPolicy", "PolicyResolver"]
