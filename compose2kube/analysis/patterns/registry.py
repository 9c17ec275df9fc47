"""Registry holding the pattern definitions active for a run."""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from compose2kube.core.diagnostics import Diagnostic, Stage, warn
from compose2kube.exceptions import PatternDefinitionError

from .builtins import BUILTIN_PATTERNS
from .models import PatternDefinition

logger = logging.getLogger(__name__)


class PatternRegistry:
    """
    Ordered registry of pattern definitions.

    Built-ins are registered first; custom definitions are appended in the
    order supplied. Registering an id that already exists replaces the
    definition but keeps its original slot, so declaration order (the
    final tie-break) stays stable.
    """

    def __init__(self, definitions: Iterable[PatternDefinition] | None = None):
        """
        Initialize the registry.

        Args:
            definitions: Initial definitions; defaults to the built-ins
        """
        self._logger = logger.getChild(self.__class__.__name__)
        self._patterns: dict[str, PatternDefinition] = {}
        for definition in BUILTIN_PATTERNS if definitions is None else definitions:
            self.register(definition)

    def register(self, definition: PatternDefinition) -> None:
        """
        Register a pattern definition.

        Args:
            definition: Validated definition to add or replace
        """
        if definition.id in self._patterns:
            self._logger.warning(
                f"Overwriting pattern definition '{definition.id}'"
            )
        self._patterns[definition.id] = definition
        self._logger.debug(f"Registered pattern '{definition.id}'")

    def load_custom(
        self, raw_definitions: Iterable[Any], diagnostics: list[Diagnostic]
    ) -> list[str]:
        """
        Validate and merge externally supplied definitions.

        A malformed definition is skipped with a Warning; the rest still load.

        Args:
            raw_definitions: Mappings in the PatternDefinition shape
            diagnostics: Sink for Warning diagnostics

        Returns:
            Ids of the definitions that were registered
        """
        loaded: list[str] = []
        for index, raw in enumerate(raw_definitions):
            try:
                definition = self.validate_definition(raw, index)
            except PatternDefinitionError as e:
                warn(
                    self._logger,
                    diagnostics,
                    Stage.CLASSIFY,
                    "pattern-skipped",
                    str(e),
                )
                continue
            self.register(definition)
            loaded.append(definition.id)

        if loaded:
            self._logger.info(f"Loaded {len(loaded)} custom pattern(s): {loaded}")
        return loaded

    @staticmethod
    def validate_definition(raw: Any, index: int = 0) -> PatternDefinition:
        """
        Validate one raw custom definition.

        Raises:
            PatternDefinitionError: If the data does not describe a pattern
        """
        if isinstance(raw, PatternDefinition):
            return raw
        pattern_id = raw.get("id", f"#{index}") if isinstance(raw, dict) else f"#{index}"
        if not isinstance(raw, dict):
            raise PatternDefinitionError(pattern_id, "definition must be a mapping")
        try:
            return PatternDefinition.model_validate(raw)
        except ValidationError as e:
            reasons = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise PatternDefinitionError(pattern_id, reasons) from e

    def get(self, pattern_id: str) -> PatternDefinition:
        """
        Get a definition by id.

        Raises:
            KeyError: If the id is not registered
        """
        return self._patterns[pattern_id]

    def definitions(self) -> list[PatternDefinition]:
        """All definitions in declaration order."""
        return list(self._patterns.values())

    def index_of(self, pattern_id: str) -> int:
        return list(self._patterns).index(pattern_id)

    def __contains__(self, pattern_id: object) -> bool:
        return pattern_id in self._patterns

    def __len__(self) -> int:
        return len(self._patterns)


__all__ = ["PatternRegistry"]
