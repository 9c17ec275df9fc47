"""Docker Compose source plugin: YAML parsing and IR normalization."""

from .normalizer import ComposeNormalizer
from .parser import ComposeFileParser, parse

__all__ = ["ComposeFileParser", "ComposeNormalizer", "parse"]
