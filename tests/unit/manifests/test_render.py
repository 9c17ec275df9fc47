"""Unit tests for YAML rendering of resources."""

from __future__ import annotations

from pathlib import Path

import pytest
from ruamel.yaml import YAML

from compose2kube.manifests import (
    ManifestRenderer,
    ManifestResource,
    ManifestSet,
    render_manifest_set,
    render_resource,
)


def make(kind: str, name: str, **body) -> ManifestResource:
    # body keys deliberately come before the header
    payload = {**body, "kind": kind, "metadata": {"name": name}, "apiVersion": "v1"}
    return ManifestResource(kind=kind, name=name, service_id="web", payload=payload)


@pytest.fixture
def mset() -> ManifestSet:
    return ManifestSet(
        resources=[
            make("ConfigMap", "web-config", data={"B": "2", "A": "1"}),
            make(
                "Service",
                "web-service",
                spec={"selector": {"app": "web"}, "ports": [{"port": 80}]},
            ),
        ]
    )


class TestManifestRenderer:
    def test_header_keys_first(self, mset: ManifestSet) -> None:
        text = render_resource(mset.resources[1])
        lines = [line for line in text.splitlines() if not line.startswith(" ")]
        assert lines == ["apiVersion: v1", "kind: Service", "metadata:", "spec:"]

    def test_nested_mappings_keep_insertion_order(self, mset: ManifestSet) -> None:
        text = render_resource(mset.resources[0])
        assert text.index("B: '2'") < text.index("A: '1'")

    def test_multi_document_stream(self, mset: ManifestSet) -> None:
        text = render_manifest_set(mset)
        docs = list(YAML(typ="safe").load_all(text))
        assert [d["kind"] for d in docs] == ["ConfigMap", "Service"]
        assert docs[1]["spec"]["ports"] == [{"port": 80}]
        assert text.count("---\n") == 1

    def test_rendering_is_byte_identical(self, mset: ManifestSet) -> None:
        assert ManifestRenderer().render(mset) == ManifestRenderer().render(mset)
        assert render_manifest_set(mset) == render_manifest_set(mset)

    def test_block_style(self, mset: ManifestSet) -> None:
        text = render_resource(mset.resources[1])
        assert "{" not in text
        assert "  ports:\n    - port: 80\n" in text

    def test_write_one_file_per_resource(self, mset: ManifestSet, tmp_path: Path) -> None:
        out = tmp_path / "k8s" / "nested"
        written = ManifestRenderer().write(mset, out)
        assert [p.name for p in written] == ["web-config.yaml", "web-service.yaml"]
        loaded = YAML(typ="safe").load(written[0].read_text(encoding="utf-8"))
        assert loaded["data"] == {"B": "2", "A": "1"}

    def test_empty_set_renders_nothing(self) -> None:
        assert render_manifest_set(ManifestSet()) == ""
