"""Tests for the command-line host layer."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from compose2kube import main as cli
from compose2kube.core.options import Environment, SecurityLevel
from compose2kube.exceptions import ParseError

NGINX = "services:\n  web:\n    image: nginx:1.20\n    ports:\n      - '80:80'\n"
COLLIDING = "services:\n  web:\n    image: nginx:1.20\n  Web:\n    image: nginx:1.20\n"


@pytest.fixture
def compose(tmp_path: Path):
    def write(text: str = NGINX, name: str = "docker-compose.yml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return write


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    package = logging.getLogger("compose2kube")
    host = logging.getLogger(cli.__name__)
    saved = (root.level, list(root.handlers), package.level, host.level)
    yield
    root.setLevel(saved[0])
    root.handlers[:] = saved[1]
    package.setLevel(saved[2])
    host.setLevel(saved[3])


def convert(*argv: str) -> int:
    return cli.run_conversion(cli.parse_arguments(list(argv)))


# ---- Exit codes ----


class TestExitCodes:
    def test_success_writes_one_file_per_resource(
        self, compose, tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        out = tmp_path / "k8s"
        assert convert(str(compose()), "-o", str(out)) == cli.EXIT_OK
        assert sorted(p.name for p in out.iterdir()) == [
            "web-deployment.yaml",
            "web-netpol.yaml",
            "web-service.yaml",
        ]
        printed = capsys.readouterr().out
        assert "Services:" in printed
        assert "web_application" in printed
        assert "Validation: Pass" in printed

    def test_stdout_stream(self, compose, tmp_path: Path, capsys) -> None:
        out = tmp_path / "unused"
        assert convert(str(compose()), "--stdout", "-o", str(out)) == cli.EXIT_OK
        printed = capsys.readouterr().out
        assert "kind: Deployment" in printed
        assert "---\n" in printed
        assert not out.exists()

    def test_parse_error(self, compose) -> None:
        assert convert(str(compose("services: [web\n"))) == cli.EXIT_PARSE_ERROR

    def test_missing_file(self, tmp_path: Path) -> None:
        assert convert(str(tmp_path / "nope.yml")) == cli.EXIT_PARSE_ERROR

    def test_generation_error(self, compose, tmp_path: Path) -> None:
        code = convert(str(compose(COLLIDING)), "-o", str(tmp_path / "k8s"))
        assert code == cli.EXIT_GENERATION_ERROR

    def test_cycle_is_fatal_only_on_request(self, compose, tmp_path: Path) -> None:
        path = compose(
            "services:\n"
            "  a:\n    image: nginx:1.25\n    depends_on: [b]\n"
            "  b:\n    image: nginx:1.25\n    depends_on: [a]\n"
        )
        out = str(tmp_path / "k8s")
        assert convert(str(path), "-o", out) == cli.EXIT_OK
        assert convert(str(path), "-o", out, "--fail-on-cycle") == (
            cli.EXIT_GENERATION_ERROR
        )

    def test_strict_validation_failure_writes_nothing(
        self, compose, tmp_path: Path, capsys, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.ERROR)
        out = tmp_path / "k8s"
        code = convert(str(compose()), "--strict", "-o", str(out))
        assert code == cli.EXIT_VALIDATION_FAILED
        assert not out.exists()
        assert "Validation: Fail" in capsys.readouterr().out
        assert any("no manifests written" in r.message for r in caplog.records)

    def test_invalid_flag_combination(self, compose) -> None:
        code = convert(str(compose()), "--min-replicas", "5", "--max-replicas", "2")
        assert code == cli.EXIT_PARSE_ERROR

    def test_main_exits_with_code(self, compose, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setattr(cli, "configure_logging", lambda debug, verbose: None)
        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(compose()), "-o", str(tmp_path / "k8s")])
        assert exc_info.value.code == cli.EXIT_OK


# ---- Options ----


class TestBuildOptions:
    def test_defaults(self, compose) -> None:
        options = cli.build_options(cli.parse_arguments([str(compose())]))
        assert options.environment is Environment.DEVELOPMENT
        assert options.strict_validation is False
        assert options.autoscaling.enabled is None

    def test_flags(self, compose) -> None:
        args = cli.parse_arguments(
            [
                str(compose()),
                "-e",
                "production",
                "--security-level",
                "strict",
                "-n",
                "shop",
                "--no-autoscaling",
                "--max-replicas",
                "6",
                "--monitoring",
            ]
        )
        options = cli.build_options(args)
        assert options.environment is Environment.PRODUCTION
        assert options.security_level is SecurityLevel.STRICT
        assert options.namespace == "shop"
        assert options.autoscaling.enabled is False
        assert options.autoscaling.max_replicas == 6
        assert options.monitoring

    def test_flags_override_options_file(self, compose, tmp_path: Path) -> None:
        options_file = tmp_path / "options.yaml"
        options_file.write_text(
            "environment: staging\nregion: eu-west-1\n"
            "autoscaling:\n  min_replicas: 2\n",
            encoding="utf-8",
        )
        args = cli.parse_arguments(
            [str(compose()), "--options-file", str(options_file), "-e", "testing"]
        )
        options = cli.build_options(args)
        assert options.environment is Environment.TESTING
        assert options.region == "eu-west-1"
        assert options.autoscaling.min_replicas == 2

    def test_invalid_namespace(self, compose) -> None:
        args = cli.parse_arguments([str(compose()), "-n", "Not_Valid"])
        with pytest.raises(ParseError, match="Invalid options"):
            cli.build_options(args)

    def test_unknown_choice_exits(self, compose) -> None:
        with pytest.raises(SystemExit):
            cli.parse_arguments([str(compose()), "--provider", "ibm"])


# ---- Logging ----


@pytest.mark.usefixtures("restore_logging")
class TestConfigureLogging:
    def test_quiet_mode_hides_stage_info(self) -> None:
        cli.configure_logging()
        assert logging.getLogger("compose2kube").level == logging.WARNING
        assert logging.getLogger("compose2kube.main").level == logging.INFO

    def test_debug_mode(self) -> None:
        cli.configure_logging(debug=True)
        assert logging.getLogger().level == logging.DEBUG
