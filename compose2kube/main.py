"""
Command-line interface for converting Docker Compose files to Kubernetes
manifests.

The CLI is a thin host around :class:`PipelineRunner`: it builds the run
options, prints a summary, writes YAML only when validation passed and maps
the outcome to an exit code.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn

from pydantic import ValidationError as OptionsValidationError

from compose2kube.core.options import (
    BudgetLevel,
    CloudProvider,
    Environment,
    PipelineOptions,
    SecurityLevel,
    Severity,
)
from compose2kube.core.pipeline_runner import PipelineResult, PipelineRunner
from compose2kube.exceptions import (
    Compose2KubeError,
    GenerationError,
    ParseError,
    ValidationError,
)
from compose2kube.manifests.render import ManifestRenderer

EXIT_OK = 0
EXIT_PARSE_ERROR = 1
EXIT_GENERATION_ERROR = 2
EXIT_VALIDATION_FAILED = 3
EXIT_UNEXPECTED = 4

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False, verbose: bool = False) -> None:
    """Configure application logging.

    Args:
        debug: Enable debug-level logging if True.
        verbose: Enable timestamped INFO logging from every stage if True.
    """
    if debug:
        level = logging.DEBUG
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    elif verbose:
        level = logging.INFO
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    else:
        level = logging.INFO
        format_str = "%(levelname)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        stream=sys.stderr,
        force=True,  # Override existing configuration
    )

    if not verbose and not debug:
        # Quiet mode: stage chatter is hidden, warnings and errors still show
        logging.getLogger("compose2kube").setLevel(logging.WARNING)
        logging.getLogger(__name__).setLevel(logging.INFO)


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        argv: Argument list; ``sys.argv[1:]`` when None.

    Returns:
        Parsed arguments. Option flags left unset are None so that values
        from ``--options-file`` are only overridden explicitly.
    """
    parser = argparse.ArgumentParser(
        prog="compose2kube",
        description="Convert a Docker Compose file into Kubernetes manifests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Development defaults, manifests written to ./k8s
  compose2kube docker-compose.yml

  # Production on GCP with strict validation
  compose2kube docker-compose.yml -e production --provider gcp \\
    --region us-central1 --strict -o deploy/

  # Options from a file, print the YAML stream instead of writing files
  compose2kube docker-compose.yml --options-file options.yaml --stdout

Exit codes:
  0 success, 1 parse error, 2 generation error,
  3 validation failed, 4 unexpected error
        """,
    )

    parser.add_argument("compose_file", type=Path, help="Docker Compose file")
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=Path("k8s"),
        help="Directory receiving one YAML file per resource (default: k8s)",
    )
    parser.add_argument(
        "--stdout",
        action="store_true",
        help="Print the multi-document YAML stream instead of writing files",
    )
    parser.add_argument(
        "--options-file",
        type=Path,
        help="YAML file with pipeline options; flags override its values",
    )

    group = parser.add_argument_group("pipeline options")
    group.add_argument(
        "-e", "--environment", choices=[e.value for e in Environment]
    )
    group.add_argument("--provider", choices=[p.value for p in CloudProvider])
    group.add_argument("--region")
    group.add_argument(
        "--security-level", choices=[s.value for s in SecurityLevel]
    )
    group.add_argument("--budget", choices=[b.value for b in BudgetLevel])
    group.add_argument("-n", "--namespace")
    group.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Strict validation: reject latest tags, missing limits, host paths",
    )
    group.add_argument(
        "--min-severity",
        choices=[s.value for s in Severity],
        help="Lowest severity shown in the security report",
    )
    group.add_argument(
        "--autoscaling",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Force autoscalers on or off (default: by environment)",
    )
    group.add_argument("--min-replicas", type=int)
    group.add_argument("--max-replicas", type=int)
    group.add_argument("--domain", help="Base domain for Ingress hosts")
    group.add_argument(
        "--monitoring",
        action="store_true",
        default=None,
        help="Emit ServiceMonitors and price monitoring",
    )
    group.add_argument(
        "--fail-on-cycle",
        action="store_true",
        default=None,
        help="Refuse generation when services depend on each other in a cycle",
    )

    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging for detailed output"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging from every pipeline stage",
    )

    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> PipelineOptions:
    """
    Merge the options file (if any) with explicitly given flags.

    Raises:
        ParseError: If the options file or a flag value is invalid
    """
    base = (
        PipelineOptions.from_yaml(args.options_file)
        if args.options_file
        else PipelineOptions()
    )

    overrides = {
        "environment": args.environment,
        "provider": args.provider,
        "region": args.region,
        "security_level": args.security_level,
        "budget": args.budget,
        "namespace": args.namespace,
        "strict_validation": args.strict,
        "min_severity": args.min_severity,
        "domain": args.domain,
        "monitoring": args.monitoring,
        "fail_on_cycle": args.fail_on_cycle,
    }
    autoscaling = {
        "enabled": args.autoscaling,
        "min_replicas": args.min_replicas,
        "max_replicas": args.max_replicas,
    }

    data = base.model_dump()
    data.update({k: v for k, v in overrides.items() if v is not None})
    data["autoscaling"].update({k: v for k, v in autoscaling.items() if v is not None})

    try:
        return PipelineOptions.model_validate(data)
    except OptionsValidationError as e:
        raise ParseError(f"Invalid options: {e}") from e


def print_summary(result: PipelineResult) -> None:
    """Print a human-readable run summary to stdout."""
    print("Services:")
    classification = result.classification
    for service_id, policy in result.policies.items():
        primary = classification.primary_for(service_id) if classification else None
        pattern = (
            f"{primary.pattern_id} ({primary.confidence:.2f})" if primary else "none"
        )
        print(
            f"  {service_id:<20} {policy.workload_kind.value:<12} "
            f"replicas={policy.replicas.min}  pattern={pattern}"
        )

    if classification and classification.application_matches:
        names = ", ".join(m.pattern_id for m in classification.application_matches)
        print(f"Architecture: {names}")

    if result.security:
        counts = result.security.count_by_severity()
        rendered = ", ".join(f"{n} {s.value}" for s, n in counts.items() if n)
        print(
            f"Security: {rendered or 'no findings'} "
            f"(compliance {result.security.compliance_score}%)"
        )
        for finding in result.security.findings:
            print(f"  {finding}")

    if result.cost:
        cost = result.cost.rounded()
        print(
            f"Estimated cost: {cost.total} {cost.currency}/month "
            f"({cost.provider.value}/{cost.region})"
        )

    for diagnostic in result.diagnostics:
        print(f"Warning: {diagnostic}")

    validation = result.validation
    if validation:
        print(f"Validation: {validation.status} (score {validation.score})")
        for issue in validation.errors:
            print(f"  {issue}")


def run_conversion(args: argparse.Namespace) -> int:
    """Execute the conversion and return the process exit code.

    Args:
        args: Parsed command line arguments.

    Returns:
        One of the ``EXIT_*`` codes.
    """
    try:
        options = build_options(args)
        result = PipelineRunner(options).run_file(args.compose_file)
        print_summary(result)

        if not result.passed:
            raise ValidationError(
                "Validation failed, no manifests written",
                errors=[str(issue) for issue in result.validation.errors],
            )

        renderer = ManifestRenderer()
        if args.stdout:
            sys.stdout.write(renderer.render(result.manifests))
        else:
            written = renderer.write(result.manifests, args.output_dir)
            logger.info(f"Wrote {len(written)} manifest(s) to {args.output_dir}")
        return EXIT_OK

    except ParseError as e:
        logger.error(f"Input error: {e}")
        return EXIT_PARSE_ERROR
    except GenerationError as e:
        logger.error(f"Generation error: {e}")
        return EXIT_GENERATION_ERROR
    except ValidationError as e:
        logger.error(f"{e} ({len(e.errors)} error(s))")
        return EXIT_VALIDATION_FAILED
    except Compose2KubeError as e:
        logger.error(f"Conversion error: {e}")
        return EXIT_UNEXPECTED
    except OSError as e:
        logger.error(f"File system error: {e}")
        return EXIT_UNEXPECTED
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.debug:
            logger.exception("Full traceback:")
        return EXIT_UNEXPECTED


def main(argv: list[str] | None = None) -> NoReturn:
    args = parse_arguments(argv)
    configure_logging(args.debug, args.verbose)
    sys.exit(run_conversion(args))


if __name__ == "__main__":
    main()
