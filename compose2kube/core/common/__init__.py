"""Common base classes and utilities for core functionality."""

from .base_parser import BaseSourceFileParser
from .base_synthesizer import BaseManifestSynthesizer
from .executor import map_ordered

__all__ = ["BaseSourceFileParser", "BaseManifestSynthesizer", "map_ordered"]
