"""End-to-end tests for the pipeline runner."""

from __future__ import annotations

import base64
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest

from compose2kube import PipelineOptions, PipelineRunner, render_manifest_set
from compose2kube.analysis.security import Severity
from compose2kube.core.diagnostics import Stage
from compose2kube.exceptions import DependencyCycleError, GenerationError, ParseError
from compose2kube.manifests import render_resource
from compose2kube.plugins.compose import parse

# ---- Fixtures ----

PASSWORD = "Sup3r-S3cret-Value"

SHOP = {
    "name": "shop",
    "services": {
        "web": {
            "image": "nginx:1.25",
            "ports": ["80:80"],
            "depends_on": ["api"],
        },
        "api": {
            "image": "node:20",
            "ports": ["3000"],
            "environment": {
                "DB_PASSWORD": PASSWORD,
                "DB_HOST": "db",
                "NODE_ENV": "production",
            },
            "depends_on": ["db", "cache"],
        },
        "db": {
            "image": "postgres:16",
            "ports": ["5432"],
            "environment": {"POSTGRES_PASSWORD": PASSWORD},
            "volumes": ["pgdata:/var/lib/postgresql/data"],
        },
        "cache": {"image": "redis:7.2", "ports": ["6379"]},
    },
    "volumes": {"pgdata": {}},
}


def run(document: Any, **options: Any):
    return PipelineRunner(PipelineOptions(**options)).run(document)


# ---- Scenarios ----


class TestScenarios:
    def test_single_nginx_service(self) -> None:
        result = run({"services": {"web": {"image": "nginx:1.20", "ports": ["80:80"]}}})
        primary = result.classification.primary_for("web")
        assert primary.pattern_id == "web_application"
        assert primary.confidence > 0

        kinds = [r.kind for r in result.manifests.resources]
        assert "Deployment" in kinds and "Service" in kinds
        assert "Secret" not in kinds
        assert "HorizontalPodAutoscaler" not in kinds
        assert result.completed and result.passed

    def test_autoscaler_only_when_requested(self) -> None:
        result = run(
            {"services": {"web": {"image": "nginx:1.20", "ports": ["80:80"]}}},
            autoscaling={"enabled": True},
        )
        assert [r.name for r in result.manifests.by_kind("HorizontalPodAutoscaler")] == [
            "web-hpa"
        ]

    def test_autoscaler_kept_above_declared_replicas(self) -> None:
        web = {"image": "nginx:1.20", "ports": ["80:80"], "deploy": {"replicas": 5}}
        result = run({"services": {"web": web}}, autoscaling={"enabled": True})
        [hpa] = result.manifests.by_kind("HorizontalPodAutoscaler")
        assert (hpa.spec["minReplicas"], hpa.spec["maxReplicas"]) == (5, 10)
        assert result.diagnostics == []

    def test_latest_tag_and_ssh_port(self) -> None:
        result = run({"services": {"box": {"image": "ubuntu:latest", "ports": ["22:22"]}}})
        severities = {f.rule_id: f.severity for f in result.security.findings}
        assert severities["IMG-001"] is Severity.MEDIUM
        assert severities["PORT-002"] is Severity.HIGH

    def test_dotted_service_id_runs_to_completion(self) -> None:
        result = run({"services": {"api.v1": {"image": "nginx:latest", "ports": ["80:80"]}}})
        assert result.completed
        assert "IMG-001" in [f.rule_id for f in result.security.findings]
        assert result.manifests.get("Deployment", "api-v1-deployment") is not None

    def test_small_declared_limits_still_pass_validation(self) -> None:
        db = {**SHOP["services"]["db"], "mem_limit": "512m", "cpus": "0.25"}
        result = run({"services": {"db": db}, "volumes": {"pgdata": {}}})
        assert result.passed
        assert result.validation.errors == []
        [workload] = result.manifests.by_kind("StatefulSet")
        resources = workload.payload["spec"]["template"]["spec"]["containers"][0][
            "resources"
        ]
        assert resources["requests"] == {"cpu": "250m", "memory": "512Mi"}
        assert resources["limits"] == {"cpu": "250m", "memory": "512Mi"}

    def test_mutual_dependency_cycle_is_a_warning(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.WARNING)
        result = run(
            {
                "services": {
                    "a": {"image": "nginx:1.25", "depends_on": ["b"]},
                    "b": {"image": "nginx:1.25", "depends_on": ["a"]},
                }
            }
        )
        [diagnostic] = [d for d in result.diagnostics if d.stage is Stage.GRAPH]
        assert diagnostic.code == "dependency-cycle"
        assert diagnostic.message == "Services depend on each other: a -> b -> a"
        assert any("graph/dependency-cycle" in r.message for r in caplog.records)
        assert result.completed
        assert {r.service_id for r in result.manifests.resources} == {"a", "b"}

    def test_strict_validation_without_limits_fails(self) -> None:
        result = run(
            {"services": {"web": {"image": "nginx:1.20", "ports": ["80:80"]}}},
            strict_validation=True,
        )
        assert result.completed
        assert not result.passed
        assert result.validation.status == "Fail"
        assert result.validation.services_with_errors() == ["web"]
        assert "missing-limits" in [e.code for e in result.validation.errors]


# ---- Properties ----


class TestProperties:
    def test_byte_identical_output(self) -> None:
        first = render_manifest_set(run(SHOP, environment="production").manifests)
        second = render_manifest_set(run(SHOP, environment="production").manifests)
        assert first == second

    def test_parallel_run_is_identical(self) -> None:
        sequential = run(SHOP, environment="production")
        parallel = run(SHOP, environment="production", max_workers=4)
        assert render_manifest_set(sequential.manifests) == render_manifest_set(
            parallel.manifests
        )
        assert sequential.security == parallel.security
        assert sequential.cost == parallel.cost

    @pytest.mark.parametrize("environment", ["development", "production"])
    def test_selectors_match_exactly_one_workload(self, environment: str) -> None:
        manifests = run(SHOP, environment=environment, monitoring=True).manifests
        workloads = manifests.by_kind("Deployment") + manifests.by_kind("StatefulSet")
        templates = [
            w.payload["spec"]["template"]["metadata"]["labels"] for w in workloads
        ]
        for service in manifests.by_kind("Service"):
            assert templates.count(service.spec["selector"]) == 1
        for policy in manifests.by_kind("NetworkPolicy"):
            assert templates.count(policy.spec["podSelector"]["matchLabels"]) == 1
        for monitor in manifests.by_kind("ServiceMonitor"):
            assert templates.count(monitor.spec["selector"]["matchLabels"]) == 1

    def test_secrets_never_leak(self) -> None:
        manifests = run(SHOP).manifests
        for resource in manifests.resources:
            if resource.kind != "Secret":
                assert PASSWORD not in render_resource(resource)
        for name, key in (
            ("api-secret", "DB_PASSWORD"),
            ("db-secret", "POSTGRES_PASSWORD"),
        ):
            secret = manifests.get("Secret", name)
            assert base64.b64decode(secret.payload["data"][key]).decode() == PASSWORD

    @pytest.mark.parametrize("provider, region", [("aws", "eu-west-1"), ("gcp", "us-east1")])
    def test_cost_items_sum_to_total(self, provider: str, region: str) -> None:
        cost = run(
            SHOP, environment="production", provider=provider, region=region, backup=True
        ).cost
        rounded = cost.rounded()
        assert abs(sum(i.amount for i in cost.line_items) - cost.total) <= Decimal("0.01")
        assert rounded.total == cost.total.quantize(Decimal("0.01"))

    def test_every_stage_output_present(self) -> None:
        result = run(SHOP)
        assert result.model.name == "shop"
        assert result.graph.deployment_order()[-1] == "web"
        assert list(result.policies) == ["api", "cache", "db", "web"]
        assert result.security is not None
        assert result.cost.total > 0
        assert result.options == PipelineOptions()


# ---- Error handling ----


class TestErrors:
    def test_parse_error_carries_partial_report(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            run("services: [web\n")
        report = exc_info.value.report
        assert report is not None
        assert report.model is None
        assert not report.completed

    def test_fail_on_cycle(self) -> None:
        document = {
            "services": {
                "a": {"image": "nginx:1.25", "depends_on": ["b"]},
                "b": {"image": "nginx:1.25", "depends_on": ["a"]},
            }
        }
        with pytest.raises(DependencyCycleError) as exc_info:
            run(document, fail_on_cycle=True)
        error = exc_info.value
        assert isinstance(error, GenerationError)
        assert error.cycles == [["a", "b"]]
        assert error.report.graph.has_cycles
        assert error.report.classification is None

    def test_collision_reports_everything_before_synthesis(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.ERROR)
        document = {
            "services": {
                "web": {"image": "nginx:1.20"},
                "Web": {"image": "nginx:1.20"},
            }
        }
        with pytest.raises(GenerationError, match="name collision") as exc_info:
            run(document)
        report = exc_info.value.report
        assert report.security is not None
        assert report.cost is not None
        assert report.manifests is None
        assert any("Pipeline execution failed" in r.message for r in caplog.records)

    def test_malformed_custom_pattern_is_skipped(self) -> None:
        result = run(
            {"services": {"web": {"image": "nginx:1.20"}}},
            custom_patterns=[{"id": "broken"}],
        )
        assert result.completed
        assert [(d.stage, d.code) for d in result.diagnostics] == [
            (Stage.CLASSIFY, "pattern-skipped")
        ]

    def test_unknown_region_falls_back(self) -> None:
        result = run({"services": {"web": {"image": "nginx:1.20"}}}, region="atlantis")
        assert result.cost.fallback_rates
        assert [d.code for d in result.diagnostics] == ["rate-fallback"]


# ---- Entry points ----


class TestEntryPoints:
    def test_run_file(self, tmp_path: Path) -> None:
        compose = tmp_path / "docker-compose.yml"
        compose.write_text(
            "services:\n  web:\n    image: nginx:1.20\n    ports:\n      - '80:80'\n"
        )
        result = PipelineRunner().run_file(compose)
        assert result.passed
        assert result.model.service_ids == ["web"]

    def test_run_file_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ParseError) as exc_info:
            PipelineRunner().run_file(tmp_path / "missing.yml")
        assert exc_info.value.report is not None

    def test_run_accepts_a_model(self) -> None:
        model = parse({"services": {"web": {"image": "nginx:1.20"}}})
        result = PipelineRunner().run(model)
        assert result.model is model

    def test_options_exposed(self) -> None:
        options = PipelineOptions(namespace="shop")
        assert PipelineRunner(options).options is options
