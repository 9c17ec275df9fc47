"""Unit tests for the manifest validator."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from compose2kube.core.options import Environment, PipelineOptions
from compose2kube.manifests import (
    IssueLevel,
    ManifestResource,
    ManifestSet,
    ManifestValidator,
)
from compose2kube.manifests.builders import ResourceDocumentBuilder

LABELS = {"app": "web"}


def deployment(
    name: str = "web-deployment",
    image: str = "nginx:1.25",
    resources: dict[str, Any] | None = None,
    replicas: int = 1,
    **container_fields: Any,
) -> ManifestResource:
    spec_container = {
        "name": "web",
        "image": image,
        "resources": resources
        if resources is not None
        else {
            "requests": {"cpu": "100m", "memory": "128Mi"},
            "limits": {"cpu": "500m", "memory": "512Mi"},
        },
        **container_fields,
    }
    spec = {
        "replicas": replicas,
        "selector": {"matchLabels": LABELS},
        "template": {"metadata": {"labels": LABELS}, "spec": {"containers": [spec_container]}},
    }
    return ResourceDocumentBuilder("apps/v1", "Deployment", name).with_spec(spec).build("web")


def resource(kind: str, name: str, **fields: Any) -> ManifestResource:
    doc = ResourceDocumentBuilder("v1", kind, name)
    for key, value in fields.items():
        doc = doc.with_field(key, value)
    return doc.build("web")


def codes(report, level: IssueLevel = IssueLevel.ERROR) -> list[str]:
    issues = report.errors if level is IssueLevel.ERROR else report.warnings
    return [i.code for i in issues]


class TestValidSet:
    def test_clean_set_passes_with_full_score(self) -> None:
        mset = ManifestSet(
            resources=[
                deployment(),
                resource(
                    "Service",
                    "web-service",
                    spec={"selector": LABELS, "ports": [{"port": 80, "targetPort": 80}]},
                ),
            ]
        )
        report = ManifestValidator().report(mset)
        assert report.passed
        assert report.status == "Pass"
        assert report.errors == [] and report.warnings == []
        assert report.score == 100.0

    def test_validate_returns_annotated_copy(self) -> None:
        mset = ManifestSet(resources=[deployment()])
        validated = ManifestValidator().validate(mset)
        assert mset.validation is None
        assert validated.validation is not None
        assert validated.resources == mset.resources

    def test_empty_set(self) -> None:
        report = ManifestValidator().report(ManifestSet())
        assert report.passed and report.score == 100.0


class TestStructure:
    def test_selector_mismatch(self) -> None:
        broken = deployment()
        payload = broken.payload
        payload["spec"]["selector"] = {"matchLabels": {"app": "other"}}
        report = ManifestValidator().report(ManifestSet(resources=[broken]))
        assert codes(report) == ["selector-mismatch"]
        assert report.services_with_errors() == ["web"]

    def test_missing_required_fields(self) -> None:
        bare = resource("Deployment", "web-deployment", spec={"replicas": 1})
        report = ManifestValidator().report(ManifestSet(resources=[bare]))
        messages = [e.message for e in report.errors if e.code == "missing-field"]
        assert "missing 'spec.template.spec.containers'" in messages
        assert "missing-field" in report.common_issues

    def test_service_must_select_exactly_one_workload(self) -> None:
        service = resource(
            "Service", "web-service", spec={"selector": {"app": "ghost"}, "ports": []}
        )
        report = ManifestValidator().report(ManifestSet(resources=[deployment(), service]))
        assert codes(report) == ["selector-mismatch"]
        assert codes(report, IssueLevel.WARNING) == ["service-without-ports"]

    def test_dangling_references(self) -> None:
        workload = deployment(
            env=[
                {
                    "name": "PASSWORD",
                    "valueFrom": {"secretKeyRef": {"name": "web-secret", "key": "PASSWORD"}},
                }
            ],
            envFrom=[{"configMapRef": {"name": "web-config"}}],
        )
        hpa = resource(
            "HorizontalPodAutoscaler",
            "web-hpa",
            spec={
                "scaleTargetRef": {"kind": "Deployment", "name": "api-deployment"},
                "maxReplicas": 3,
            },
        )
        ingress = resource(
            "Ingress",
            "web-ingress",
            spec={
                "rules": [
                    {
                        "host": "web.example.com",
                        "http": {
                            "paths": [
                                {
                                    "backend": {
                                        "service": {
                                            "name": "web-service",
                                            "port": {"number": 80},
                                        }
                                    }
                                }
                            ]
                        },
                    }
                ]
            },
        )
        report = ManifestValidator().report(ManifestSet(resources=[workload, hpa, ingress]))
        assert codes(report) == [
            "dangling-secret-ref",
            "dangling-config-ref",
            "dangling-hpa-target",
            "dangling-ingress-backend",
        ]

    def test_secret_key_must_exist(self) -> None:
        workload = deployment(
            env=[
                {
                    "name": "PASSWORD",
                    "valueFrom": {"secretKeyRef": {"name": "web-secret", "key": "PASSWORD"}},
                }
            ]
        )
        secret = resource("Secret", "web-secret", data={"OTHER": "eA=="})
        report = ManifestValidator().report(ManifestSet(resources=[secret, workload]))
        assert codes(report) == ["dangling-secret-ref"]

    def test_dangling_claim(self) -> None:
        workload = deployment()
        workload.payload["spec"]["template"]["spec"]["volumes"] = [
            {"name": "data", "persistentVolumeClaim": {"claimName": "web-data-pvc"}}
        ]
        report = ManifestValidator().report(ManifestSet(resources=[workload]))
        assert codes(report) == ["dangling-claim"]

    def test_empty_config_is_a_warning(self) -> None:
        report = ManifestValidator().report(
            ManifestSet(resources=[resource("ConfigMap", "web-config", data={})])
        )
        assert report.passed
        assert codes(report, IssueLevel.WARNING) == ["empty-data"]


class TestResources:
    def test_requests_exceed_limits(self) -> None:
        workload = deployment(
            resources={
                "requests": {"cpu": "1", "memory": "1Gi"},
                "limits": {"cpu": "500m", "memory": "2Gi"},
            }
        )
        report = ManifestValidator().report(ManifestSet(resources=[workload]))
        assert codes(report) == ["requests-exceed-limits"]
        assert "cpu request 1 exceeds limit 500m" in report.errors[0].message

    def test_invalid_quantity(self) -> None:
        workload = deployment(
            resources={
                "requests": {"cpu": "lots", "memory": "128Mi"},
                "limits": {"cpu": "1", "memory": "512Mi"},
            }
        )
        report = ManifestValidator().report(ManifestSet(resources=[workload]))
        assert codes(report) == ["invalid-quantity"]

    @pytest.mark.parametrize("strict, passed", [(False, True), (True, False)])
    def test_missing_limits(self, strict: bool, passed: bool) -> None:
        workload = deployment(resources={"requests": {"cpu": "100m"}})
        report = ManifestValidator(strict=strict).report(ManifestSet(resources=[workload]))
        assert report.passed is passed
        issues = report.errors if strict else report.warnings
        assert [i.code for i in issues] == ["missing-limits"]
        assert "has no cpu and memory resource limits" in issues[0].message


class TestPolicyChecks:
    @pytest.mark.parametrize(
        "image, unpinned",
        [
            ("nginx", True),
            ("nginx:latest", True),
            ("registry:5000/team/app", True),
            ("registry:5000/team/app:1.2", False),
            ("nginx@sha256:" + "a" * 64, False),
        ],
    )
    def test_unpinned_images(self, image: str, unpinned: bool) -> None:
        report = ManifestValidator().report(ManifestSet(resources=[deployment(image=image)]))
        assert ("unpinned-image" in codes(report, IssueLevel.WARNING)) is unpinned

    def test_host_path_allow_list(self) -> None:
        workload = deployment()
        workload.payload["spec"]["template"]["spec"]["volumes"] = [
            {"name": "host-0", "hostPath": {"path": "/srv/data"}},
            {"name": "host-1", "hostPath": {"path": "/var/log"}},
        ]
        validator = ManifestValidator(strict=True, hostpath_allow_list=["/srv"])
        report = validator.report(ManifestSet(resources=[workload]))
        assert codes(report) == ["host-path"]
        assert "/var/log" in report.errors[0].message

    def test_single_replica_in_production(self) -> None:
        validator = ManifestValidator(environment=Environment.PRODUCTION)
        report = validator.report(ManifestSet(resources=[deployment(replicas=1)]))
        assert codes(report, IssueLevel.WARNING) == ["single-replica"]
        assert report.passed

    def test_from_options(self) -> None:
        validator = ManifestValidator.from_options(
            PipelineOptions(
                strict_validation=True,
                environment="production",
                hostpath_allow_list=["/srv"],
            )
        )
        assert validator.strict
        assert validator.environment is Environment.PRODUCTION
        assert validator.hostpath_allow_list == ("/srv",)


class TestReport:
    def test_score_formula(self) -> None:
        broken = deployment(name="a-deployment")
        broken.payload["spec"]["selector"] = {"matchLabels": {"app": "x"}}
        warned = deployment(name="b-deployment", image="nginx")
        report = ManifestValidator().report(ManifestSet(resources=[broken, warned]))
        # one of two resources valid, one warning
        assert report.score == round(1 / 2 * 70 + 30 - 1 / 2 * 10, 2)

    def test_issues_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.WARNING)
        ManifestValidator(strict=True).report(
            ManifestSet(resources=[deployment(image="nginx")])
        )
        errors = [r.message for r in caplog.records if r.levelno == logging.ERROR]
        assert errors == [
            "error: Deployment/web-deployment (service 'web'): "
            "image 'nginx' is not pinned to a version"
        ]
