# File: resolvergen/cli.py
"""
NexaFlow ResolverGen - Command-Line Interface
==============================================

Built on the standard-library ``argparse`` module.

Usage examples::

    # Compile a models directory into ./build
    python -m resolvergen --models models/ --output build/

    # Production stage, config file, verbose
    python -m resolvergen -m models -o build --config resolvergen.yaml --stage prod -v

    # Validate only (no file output)
    python -m resolvergen -m models --validate-only

Exit codes:
    0 — success
    1 — validation error
    2 — generation error
    3 — export error
    4 — input/argument error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Sequence

from pydantic import ValidationError

from resolvergen.errors import ModelLoadError
from resolvergen.models import CompilationConfig

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_EXPORT_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the ``resolvergen`` logger.

    Args:
        verbosity: -1 = ERROR, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.ERROR

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    ))

    root_logger: logging.Logger = logging.getLogger("resolvergen")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    from resolvergen import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="resolvergen",
        description=(
            "NexaFlow ResolverGen — GraphQL resolver compiler.\n\n"
            "Compiles declarative model definitions (JSON/YAML) into a GraphQL "
            "schema and the request/response mapping templates that resolve it "
            "against document, relational, HTTP and queued data sources."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -m models -o build\n"
            "  %(prog)s -m models -o build --config resolvergen.yaml --stage prod\n"
            "  %(prog)s -m models --validate-only\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"NexaFlow ResolverGen v{__version__}",
    )

    parser.add_argument(
        "-m", "--models",
        type=str,
        required=True,
        metavar="DIR",
        help="Directory of model definition files (JSON or YAML).",
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=None,
        metavar="DIR",
        help="Output directory for the artifacts. Required unless --validate-only is set.",
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        metavar="PATH",
        help="Compilation config file (JSON or YAML).",
    )

    mode_group = parser.add_argument_group("operation modes")
    mode_group.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Only load and validate the models.",
    )

    config_group = parser.add_argument_group("configuration overrides")
    config_group.add_argument(
        "--stage",
        type=str,
        default=None,
        metavar="NAME",
        help="Deployment stage label (e.g. 'dev', 'prod').",
    )
    config_group.add_argument(
        "--page-size",
        type=int,
        default=None,
        metavar="N",
        help="Default page size for list operations.",
    )
    config_group.add_argument(
        "--debug-templates",
        action="store_true",
        default=None,
        help="Emit debug stash instrumentation in every template.",
    )

    behaviour_group = parser.add_argument_group("behaviour flags")
    behaviour_group.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Abort on the first malformed model file instead of skipping it.",
    )
    behaviour_group.add_argument(
        "--fail-on-warnings",
        action="store_true",
        default=False,
        help="Treat validation warnings as errors.",
    )
    behaviour_group.add_argument(
        "--clean",
        action="store_true",
        default=False,
        help="Clean the output directory before writing.",
    )

    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    return parser


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _build_config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.stage is not None:
        overrides["stage"] = args.stage
    if args.page_size is not None:
        overrides["default_page_size"] = args.page_size
    if args.debug_templates:
        overrides["debug_instrumentation"] = True
    return overrides


def _resolve_config(args: argparse.Namespace) -> CompilationConfig:
    """Config file (or defaults) with CLI overrides applied.  Raises on bad input."""
    from resolvergen.repository import load_config_file

    config: CompilationConfig = (
        load_config_file(Path(args.config)) if args.config else CompilationConfig()
    )
    overrides: Dict[str, Any] = _build_config_overrides(args)
    if overrides:
        config = CompilationConfig.model_validate({**config.model_dump(), **overrides})
        logger.debug("Applied config overrides: %s", sorted(overrides))
    return config


# ---------------------------------------------------------------------------
# Modes
# ---------------------------------------------------------------------------


def _exit_code_for(report: Any) -> int:
    if report.success:
        return EXIT_SUCCESS
    if report.load_errors and not report.validation_errors:
        return EXIT_INPUT_ERROR
    if report.validation_errors:
        return EXIT_VALIDATION_ERROR
    if report.generation_errors:
        return EXIT_GENERATION_ERROR
    if report.export_errors:
        return EXIT_EXPORT_ERROR
    return EXIT_GENERATION_ERROR


def _run_validate_only(models_dir: Path, config: CompilationConfig, args: argparse.Namespace) -> int:
    from resolvergen.compiler import CompilationReport, ResolverCompiler

    logger.info("Running validation-only mode for: %s", models_dir)
    compiler: ResolverCompiler = ResolverCompiler(
        strict=args.strict, fail_on_warnings=args.fail_on_warnings
    )
    report: CompilationReport = compiler.validate(models_dir, config)

    print(f"\n{'='*50}")
    print("  Model Validation Report")
    print(f"{'='*50}")
    print(f"  Directory: {models_dir}")
    print(f"  Models:    {report.total_models}")
    print(f"  Time:      {report.total_elapsed_seconds:.3f}s")
    print(f"  Valid:     {'Yes' if report.success else 'No'}")

    for title, entries, icon in (
        ("Load errors", report.load_errors, "✗"),
        ("Errors", report.validation_errors, "✗"),
        ("Warnings", report.validation_warnings, "⚠"),
    ):
        if entries:
            print(f"\n  {title} ({len(entries)}):")
            for entry in entries:
                print(f"    {icon} {entry}")

    if report.success and not report.validation_warnings:
        print("\n  ✅ All validations passed!")
    print(f"{'='*50}\n")

    return _exit_code_for(report)


def _run_compilation(
    models_dir: Path,
    output_dir: Path,
    config: CompilationConfig,
    args: argparse.Namespace,
) -> int:
    from resolvergen.compiler import CompilationReport, ResolverCompiler

    compiler: ResolverCompiler = ResolverCompiler(
        strict=args.strict,
        fail_on_warnings=args.fail_on_warnings,
        clean_output=args.clean,
    )
    report: CompilationReport = compiler.run(models_dir, output_dir, config)
    print(report.summary())
    return _exit_code_for(report)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.  Always exits through ``sys.exit``.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    _setup_logging(-1 if args.quiet else args.verbose)

    models_dir: Path = Path(args.models).resolve()
    if not models_dir.is_dir():
        logger.error("Models directory not found: %s", models_dir)
        sys.exit(EXIT_INPUT_ERROR)

    try:
        config: CompilationConfig = _resolve_config(args)
    except ModelLoadError as exc:
        logger.error("%s", exc)
        sys.exit(EXIT_INPUT_ERROR)
    except ValidationError as exc:
        logger.error("Invalid configuration override: %s", exc)
        sys.exit(EXIT_INPUT_ERROR)

    if args.validate_only:
        sys.exit(_run_validate_only(models_dir, config, args))

    if args.output is None:
        logger.error(
            "Output directory is required for compilation. "
            "Use -o/--output or --validate-only."
        )
        parser.print_usage(sys.stderr)
        sys.exit(EXIT_INPUT_ERROR)

    output_dir: Path = Path(args.output).resolve()
    logger.info("Models:  %s", models_dir)
    logger.info("Output:  %s", output_dir)
    logger.info("Stage:   %s", config.stage)
    logger.info("Strict:  %s", args.strict)

    exit_code: int = _run_compilation(models_dir, output_dir, config, args)
    if exit_code == EXIT_SUCCESS:
        logger.info("Compilation completed successfully.")
    else:
        logger.error("Compilation failed with exit code %d.", exit_code)
    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "cli_main",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_EXPORT_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("resolvergen.cli loaded — %d public symbols.", len(__all__))
