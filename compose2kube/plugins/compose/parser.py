"""Docker Compose parser: YAML text → ComposeModel."""

import logging
from collections.abc import Mapping
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from compose2kube.core.common.base_parser import BaseSourceFileParser
from compose2kube.exceptions import ParseError
from compose2kube.ir.models import ComposeModel

from .normalizer import ComposeNormalizer

logger = logging.getLogger(__name__)


class ComposeFileParser(BaseSourceFileParser):
    """
    Parser for Docker Compose documents.

    YAML is loaded with ruamel's safe loader (YAML 1.2, no arbitrary object
    construction); normalization is delegated to :class:`ComposeNormalizer`.
    """

    def __init__(self, encoding: str = "utf-8"):
        """
        Initialize the compose parser.

        Args:
            encoding: File encoding to use when reading files
        """
        super().__init__(encoding)
        self._logger = logger.getChild(self.__class__.__name__)
        self._yaml = YAML(typ="safe")
        self._normalizer = ComposeNormalizer()

    def get_supported_extensions(self) -> list[str]:
        """
        Return supported compose file extensions.

        Returns:
            List of supported file extensions
        """
        return [".yml", ".yaml"]

    def _parse_content(self, content: str) -> Mapping[str, Any]:
        try:
            data = self._yaml.load(content)
        except YAMLError as exc:
            raise ParseError(f"Invalid YAML: {exc}") from exc

        if not isinstance(data, Mapping):
            raise ParseError("Top-level object must be a mapping")

        self._logger.debug(f"Compose document loaded ({len(data)} root keys)")
        return data

    def _normalize(self, data: Mapping[str, Any]) -> ComposeModel:
        return self._normalizer.normalize(data)


def parse(document: str | Mapping[str, Any]) -> ComposeModel:
    """Normalize a compose document (text or mapping) into the IR."""
    return ComposeFileParser().parse(document)


__all__ = ["ComposeFileParser", "parse"]
