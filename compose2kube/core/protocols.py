from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from compose2kube.ir.models import ComposeModel
    from compose2kube.manifests.context import ServiceContext
    from compose2kube.manifests.models import ManifestResource


class SourceParser(Protocol):
    """Defines the contract for turning an input document into the IR."""

    def get_supported_extensions(self) -> list[str]:
        """
        Returns the list of file extensions supported
        (e.g., [".yml", ".yaml"]).
        """

        ...

    def can_parse(self, file_path: Path) -> bool:
        """
        Checks whether this parser can handle the given file.

        Args:
            file_path: Path to the file to check

        Returns:
            True if the parser can handle this path, False otherwise
        """
        ...

    def parse(self, document: str | Mapping[str, Any]) -> "ComposeModel":
        """Normalizes an in-memory document (text or mapping) into the IR."""
        ...

    def parse_file(self, file_path: Path) -> "ComposeModel":
        """Reads and normalizes a document stored on disk."""
        ...


class ResourceBuilder(Protocol):
    """Defines the contract for emitting one kind of cluster resource."""

    kind: str

    def can_build(self, context: "ServiceContext") -> bool:
        """
        Checks whether this builder emits anything for the service.

        Args:
            context: Frozen per-service synthesis context

        Returns:
            True if at least one resource will be produced
        """
        ...

    def build(self, context: "ServiceContext") -> list["ManifestResource"]:
        """
        Emit the resources of this kind owned by the service.

        Args:
            context: Frozen per-service synthesis context

        Returns:
            Resources in deterministic order
        """
        ...
