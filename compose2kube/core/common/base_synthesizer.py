import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING

from compose2kube.exceptions import GenerationError

from ..protocols import ResourceBuilder

if TYPE_CHECKING:
    from compose2kube.manifests.context import ServiceContext
    from compose2kube.manifests.models import ManifestResource

logger = logging.getLogger(__name__)


class BaseManifestSynthesizer(ABC):
    """
    Base class for manifest synthesizers acting as a dispatcher.

    Keeps an ordered registry of per-kind ``ResourceBuilder`` strategies and
    runs every registered builder over every service context. Registration
    order is the per-service output order.

    Subclasses must implement:
    - _contexts(): Produce one frozen ServiceContext per service, in the
      order resources should be emitted.
    """

    def __init__(self):
        """Initializes the synthesizer and the builder registry."""
        self._logger = logger.getChild(self.__class__.__name__)
        self._builders: dict[str, ResourceBuilder] = {}

    # --- Registry ---

    def register_builder(self, builder: ResourceBuilder) -> None:
        """
        Registers the builder for a resource kind.

        Re-registering a kind replaces the builder but keeps its position.
        """
        if builder.kind in self._builders:
            self._logger.warning(f"Overwriting builder for kind: '{builder.kind}'")
        self._logger.debug(
            f"Registering builder '{builder.__class__.__name__}' "
            f"for kind '{builder.kind}'"
        )
        self._builders[builder.kind] = builder

    def get_registered_builders(self) -> dict[str, ResourceBuilder]:
        """Returns the registered builders keyed by kind."""
        return dict(self._builders)

    # --- Template method ---

    def build_resources(
        self, contexts: Iterable["ServiceContext"]
    ) -> list["ManifestResource"]:
        """
        Runs every builder over every context and checks name uniqueness.

        Raises:
            GenerationError: If two resources of the output share a name
        """
        resources: list[ManifestResource] = []
        try:
            for context in contexts:
                for kind, builder in self._builders.items():
                    if not builder.can_build(context):
                        continue
                    built = builder.build(context)
                    self._logger.debug(
                        f"Built {len(built)} {kind} resource(s) for "
                        f"'{context.service.id}'"
                    )
                    resources.extend(built)
            self._check_unique_names(resources)
        except Exception as e:
            self._logger.error(f"Critical failure during synthesis: {e}")
            raise
        return resources

    @staticmethod
    def _check_unique_names(resources: list["ManifestResource"]) -> None:
        owners: dict[str, ManifestResource] = {}
        for resource in resources:
            clash = owners.get(resource.name)
            if clash is not None:
                raise GenerationError(
                    f"Resource name collision: '{resource.name}' is produced by "
                    f"{clash.kind} of service '{clash.service_id}' and "
                    f"{resource.kind} of service '{resource.service_id}'"
                )
            owners[resource.name] = resource

    @abstractmethod
    def _contexts(self, *args, **kwargs) -> list["ServiceContext"]:
        """
        Technology-specific construction of the per-service contexts.

        Returns:
            One ServiceContext per service, in output order
        """
        pass
