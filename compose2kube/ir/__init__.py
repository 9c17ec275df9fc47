"""Intermediate representation of a compose application."""

from .graph import DependencyGraph, build_dependency_graph
from .models import SCHEMA_VERSION, ComposeModel, ImageRef, ServiceSpec

__all__ = [
    "SCHEMA_VERSION",
    "ComposeModel",
    "ImageRef",
    "ServiceSpec",
    "DependencyGraph",
    "build_dependency_graph",
]
