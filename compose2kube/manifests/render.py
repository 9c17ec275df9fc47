"""YAML rendering of generated resources."""

from __future__ import annotations

import logging
from io import StringIO
from pathlib import Path

from ruamel.yaml import YAML

from .models import ManifestResource, ManifestSet

logger = logging.getLogger(__name__)

TOP_LEVEL_KEY_ORDER = ("apiVersion", "kind", "metadata", "type", "spec", "data")


class ManifestRenderer:
    """Serializes resources to block-style YAML with a stable key order."""

    def __init__(self) -> None:
        self._yaml = YAML()
        self._configure_yaml()
        self._logger = logger.getChild(self.__class__.__name__)

    def _configure_yaml(self) -> None:
        """Configure the serializer for resource documents"""
        self._yaml.indent(mapping=2, sequence=4, offset=2)
        self._yaml.default_flow_style = False
        self._yaml.allow_unicode = True
        self._yaml.width = 4096

        # Resource documents get the conventional top-level key order;
        # nested mappings keep insertion order.
        def represent_ordered_dict(dumper, data):
            if "apiVersion" in data and "kind" in data:
                ordered_items = [(k, data[k]) for k in TOP_LEVEL_KEY_ORDER if k in data]
                ordered_items.extend(
                    (k, v) for k, v in data.items() if k not in TOP_LEVEL_KEY_ORDER
                )
                data = dict(ordered_items)
            return dumper.represent_mapping("tag:yaml.org,2002:map", data)

        self._yaml.representer.add_representer(dict, represent_ordered_dict)

    def render_resource(self, resource: ManifestResource) -> str:
        """Render one resource as a single YAML document."""
        stream = StringIO()
        self._yaml.dump(resource.payload, stream)
        return stream.getvalue()

    def render(self, manifest_set: ManifestSet) -> str:
        """Render the whole set as a multi-document YAML stream."""
        return "---\n".join(self.render_resource(r) for r in manifest_set.resources)

    def write(self, manifest_set: ManifestSet, directory: str | Path) -> list[Path]:
        """
        Write one ``<name>.yaml`` file per resource.

        Args:
            manifest_set: Resources to persist
            directory: Output directory (created if missing)

        Returns:
            Written paths in resource order
        """
        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)
        written = []
        for resource in manifest_set.resources:
            path = out_dir / f"{resource.name}.yaml"
            path.write_text(self.render_resource(resource), encoding="utf-8")
            written.append(path)
        self._logger.info(f"Wrote {len(written)} manifest file(s) to {out_dir}")
        return written


_default_renderer: ManifestRenderer | None = None


def _renderer() -> ManifestRenderer:
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = ManifestRenderer()
    return _default_renderer


def render_resource(resource: ManifestResource) -> str:
    return _renderer().render_resource(resource)


def render_manifest_set(manifest_set: ManifestSet) -> str:
    """Multi-document YAML for ``manifest_set``; identical input, identical bytes."""
    return _renderer().render(manifest_set)


__all__ = [
    "ManifestRenderer",
    "render_resource",
    "render_manifest_set",
]
