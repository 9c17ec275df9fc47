"""Unit tests for the policy resolver."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from compose2kube.analysis.patterns import PatternClassifier, PatternFamily
from compose2kube.analysis.policy import GenerationPolicy, PolicyResolver
from compose2kube.analysis.policy.models import ProbeKind, ServiceType, WorkloadKind
from compose2kube.analysis.policy.tables import RESOURCE_TABLE, resource_profile
from compose2kube.core.diagnostics import Diagnostic
from compose2kube.core.options import BudgetLevel, PipelineOptions
from compose2kube.ir.graph import build_dependency_graph
from compose2kube.plugins.compose import parse

NGINX = {"services": {"web": {"image": "nginx:1.20", "ports": ["80:80"]}}}
POSTGRES = {
    "services": {
        "db": {
            "image": "postgres:16",
            "ports": ["5432"],
            "environment": {"POSTGRES_PASSWORD": "pw"},
            "volumes": ["pgdata:/var/lib/postgresql/data"],
        }
    },
    "volumes": {"pgdata": {}},
}


def resolve(document: dict[str, Any], **options: Any) -> dict[str, GenerationPolicy]:
    model = parse(document)
    classification = PatternClassifier().classify(model, build_dependency_graph(model))
    return PolicyResolver().resolve_all(
        model, classification, PipelineOptions(**options)
    )


class TestTables:
    def test_every_family_and_budget_has_a_profile(self) -> None:
        assert len(RESOURCE_TABLE) == len(PatternFamily) * len(BudgetLevel)

    def test_budget_scaling(self) -> None:
        standard = resource_profile(PatternFamily.WEB, BudgetLevel.STANDARD)
        performance = resource_profile(PatternFamily.WEB, BudgetLevel.PERFORMANCE)
        minimal = resource_profile(PatternFamily.WEB, BudgetLevel.MINIMAL)
        assert standard.cpu_request == "100m"
        assert performance.cpu_request == "200m"
        assert performance.memory_limit == "1Gi"
        assert minimal.memory_request == "64Mi"


class TestWebPolicy:
    def test_development_defaults(self) -> None:
        policy = resolve(NGINX)["web"]
        assert policy.pattern_id == "web_application"
        assert policy.family is PatternFamily.WEB
        assert policy.workload_kind is WorkloadKind.DEPLOYMENT
        assert (policy.replicas.min, policy.replicas.max) == (1, 3)
        assert not policy.autoscaling.enabled
        assert not policy.expose_externally
        assert not policy.ingress
        assert policy.service_type is ServiceType.CLUSTER_IP
        assert policy.resources.cpu_request == "100m"
        assert policy.resources.memory_limit == "512Mi"

    def test_http_probes_on_primary_port(self) -> None:
        probes = resolve(NGINX)["web"].probes
        assert probes.liveness.kind is ProbeKind.HTTP
        assert probes.liveness.port == 80
        assert probes.liveness.path == "/"
        assert probes.liveness.initial_delay_s == 30
        assert probes.readiness.initial_delay_s == 5
        assert probes.readiness.period_s == 5

    def test_production_scales_and_exposes_through_ingress(self) -> None:
        policy = resolve(NGINX, environment="production")["web"]
        assert (policy.replicas.min, policy.replicas.max) == (2, 10)
        assert policy.autoscaling.enabled
        assert policy.autoscaling.target_cpu == 70
        assert policy.expose_externally
        assert policy.ingress
        assert policy.service_type is ServiceType.CLUSTER_IP

    def test_production_without_ingress_uses_load_balancer(self) -> None:
        policy = resolve(NGINX, environment="production", enable_ingress=False)["web"]
        assert not policy.ingress
        assert policy.service_type is ServiceType.LOAD_BALANCER

    def test_autoscaling_forced_off(self) -> None:
        policy = resolve(
            NGINX, environment="production", autoscaling={"enabled": False}
        )["web"]
        assert not policy.autoscaling.enabled

    def test_autoscaling_bounds_from_options(self) -> None:
        policy = resolve(
            NGINX,
            autoscaling={"enabled": True, "min_replicas": 2, "max_replicas": 4},
        )["web"]
        assert (policy.replicas.min, policy.replicas.max) == (2, 4)
        assert policy.autoscaling.enabled

    def test_equal_bounds_disable_autoscaling(self) -> None:
        policy = resolve(
            NGINX,
            autoscaling={"enabled": True, "min_replicas": 3, "max_replicas": 3},
        )["web"]
        assert not policy.autoscaling.enabled

    def test_declared_replicas_win(self) -> None:
        document = {
            "services": {
                "web": {
                    "image": "nginx:1.20",
                    "ports": ["80"],
                    "deploy": {"replicas": 4},
                }
            }
        }
        policy = resolve(document, environment="production")["web"]
        assert policy.replicas.min == 4
        assert policy.replicas.max == 10

    def test_requested_autoscaling_survives_large_declared_count(self) -> None:
        document = {
            "services": {
                "web": {**NGINX["services"]["web"], "deploy": {"replicas": 5}}
            }
        }
        policy = resolve(document, autoscaling={"enabled": True})["web"]
        assert (policy.replicas.min, policy.replicas.max) == (5, 10)
        assert policy.autoscaling.enabled

    def test_unhonoured_request_is_reported(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.WARNING)
        model = parse(
            {**POSTGRES, "services": {**POSTGRES["services"], **NGINX["services"]}}
        )
        classification = PatternClassifier().classify(model, build_dependency_graph(model))
        diagnostics: list[Diagnostic] = []
        options = PipelineOptions(
            autoscaling={"enabled": True, "min_replicas": 3, "max_replicas": 3}
        )
        PolicyResolver().resolve_all(model, classification, options, diagnostics)
        assert [(d.service_id, d.code) for d in diagnostics] == [
            ("db", "autoscaling-skipped"),
            ("web", "autoscaling-skipped"),
        ]
        assert "leave no room to scale" in diagnostics[1].message
        assert any("policy/autoscaling-skipped" in r.message for r in caplog.records)

    def test_default_autoscaling_does_not_warn(self) -> None:
        model = parse(POSTGRES)
        classification = PatternClassifier().classify(model, build_dependency_graph(model))
        diagnostics: list[Diagnostic] = []
        PolicyResolver().resolve_all(
            model, classification, PipelineOptions(environment="production"), diagnostics
        )
        assert diagnostics == []


class TestStatefulPolicy:
    def test_database_is_single_replica_statefulset(self) -> None:
        policy = resolve(POSTGRES, environment="production")["db"]
        assert policy.family is PatternFamily.DATABASE
        assert policy.workload_kind is WorkloadKind.STATEFULSET
        assert (policy.replicas.min, policy.replicas.max) == (1, 1)
        assert not policy.autoscaling.enabled
        assert not policy.expose_externally

    def test_claims_use_image_override_and_rwo(self) -> None:
        [claim] = resolve(POSTGRES)["db"].volumes
        assert claim.volume == "pgdata"
        assert claim.mount_path == "/var/lib/postgresql/data"
        assert claim.size == "20Gi"
        assert claim.access_mode == "ReadWriteOnce"

    def test_tcp_probes(self) -> None:
        probes = resolve(POSTGRES)["db"].probes
        assert probes.liveness.kind is ProbeKind.TCP
        assert probes.liveness.port == 5432

    def test_clustering_indicators_raise_replicas_in_production(self) -> None:
        document = {
            "services": {
                "mongo": {
                    "image": "mongo:7",
                    "command": "mongod --replSet rs0",
                }
            }
        }
        assert resolve(document, environment="production")["mongo"].replicas.min == 3
        assert resolve(document, environment="development")["mongo"].replicas.min == 1

    def test_stateful_without_volumes_is_deployment(self) -> None:
        policy = resolve({"services": {"q": {"image": "rabbitmq:3"}}})["q"]
        assert policy.workload_kind is WorkloadKind.DEPLOYMENT
        assert policy.replicas.min == 1


class TestLimitsAndSecurity:
    def test_strict_level_leaves_limits_unset(self) -> None:
        resources = resolve(NGINX, security_level="strict")["web"].resources
        assert resources.cpu_limit is None
        assert resources.memory_limit is None
        assert resources.explicit_limits_required
        assert resources.default_cpu_limit == "500m"

    def test_declared_limits_always_win(self) -> None:
        document = {
            "services": {
                "web": {
                    "image": "nginx:1.20",
                    "deploy": {"resources": {"limits": {"cpus": "1", "memory": "1g"}}},
                }
            }
        }
        resources = resolve(document, strict_validation=True)["web"].resources
        assert resources.cpu_limit == "1"
        assert resources.memory_limit == "1Gi"
        assert resources.limits_declared

    def test_table_request_is_capped_at_declared_limit(self) -> None:
        document = {
            **POSTGRES,
            "services": {
                "db": {**POSTGRES["services"]["db"], "mem_limit": "512m", "cpus": "0.25"}
            },
        }
        resources = resolve(document)["db"].resources
        assert (resources.cpu_request, resources.cpu_limit) == ("250m", "250m")
        assert (resources.memory_request, resources.memory_limit) == ("512Mi", "512Mi")

    def test_table_request_below_declared_limit_is_kept(self) -> None:
        document = {"services": {"web": {**NGINX["services"]["web"], "cpus": "2"}}}
        resources = resolve(document)["web"].resources
        assert resources.cpu_request == "100m"
        assert resources.cpu_limit == "2"

    def test_table_limit_is_raised_to_declared_request(self) -> None:
        reservations = {"cpus": "2", "memory": "4g"}
        document = {
            "services": {
                "web": {
                    **NGINX["services"]["web"],
                    "deploy": {"resources": {"reservations": reservations}},
                }
            }
        }
        resources = resolve(document)["web"].resources
        assert (resources.cpu_request, resources.cpu_limit) == ("2", "2")
        assert (resources.memory_request, resources.memory_limit) == ("4Gi", "4Gi")
        assert resources.default_cpu_limit == "2"

    @pytest.mark.parametrize(
        "level, drop, non_root",
        [("basic", [], None), ("enhanced", ["NET_RAW"], None), ("strict", ["ALL"], True)],
    )
    def test_security_baselines(self, level: str, drop: list[str], non_root) -> None:
        ctx = resolve(NGINX, security_level=level)["web"].security_context
        assert ctx.drop_capabilities == drop
        assert ctx.run_as_non_root is non_root

    def test_custom_level_uses_enhanced_baseline(self) -> None:
        custom = resolve(NGINX, security_level="custom")["web"].security_context
        enhanced = resolve(NGINX, security_level="enhanced")["web"].security_context
        assert custom == enhanced


class TestProbesAndMisc:
    def test_healthcheck_becomes_exec_probes(self) -> None:
        document = {
            "services": {
                "api": {
                    "image": "python:3.12",
                    "ports": ["8000"],
                    "healthcheck": {
                        "test": ["CMD", "curl", "-f", "http://localhost:8000/health"],
                        "interval": "15s",
                        "retries": 4,
                    },
                }
            }
        }
        probes = resolve(document)["api"].probes
        assert probes.liveness.kind is ProbeKind.EXEC
        assert probes.liveness.command[0] == "curl"
        assert probes.liveness.period_s == 15
        assert probes.liveness.failure_threshold == 4

    def test_disabled_healthcheck_means_no_probes(self) -> None:
        document = {
            "services": {
                "web": {
                    "image": "nginx:1.20",
                    "ports": ["80"],
                    "healthcheck": {"disable": True},
                }
            }
        }
        probes = resolve(document)["web"].probes
        assert probes.liveness is None and probes.readiness is None

    def test_unmatched_service_is_generic(self) -> None:
        policy = resolve({"services": {"tool": {"image": "busybox:1"}}})["tool"]
        assert policy.pattern_id is None
        assert policy.family is PatternFamily.GENERIC
        assert policy.resources.cpu_request == "50m"
        assert policy.probes.liveness is None

    def test_resolve_all_sorted_and_labelled(self) -> None:
        policies = resolve(
            {
                "services": {
                    "web": {"image": "nginx:1.20"},
                    "Api_Server": {"image": "node:20"},
                }
            },
            namespace="shop",
        )
        assert list(policies) == ["Api_Server", "web"]
        assert policies["Api_Server"].labels["app"] == "api-server"
        assert policies["web"].namespace == "shop"

    def test_parallel_resolution_is_identical(self) -> None:
        document = {**POSTGRES, "services": {**POSTGRES["services"], **NGINX["services"]}}
        assert resolve(document) == resolve(document, max_workers=4)
