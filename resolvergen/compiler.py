# File: resolvergen/compiler.py
"""
NexaFlow ResolverGen - Compilation Pipeline (Orchestrator)
===========================================================

Connects every phase:

    Model sources → Validation → Template compilation → Schema → Export

Two entry points:

* ``compile_models(models, config)`` is the pure core.  It validates the
  whole set first and raises one ``CompilationError`` carrying every
  problem; otherwise it returns a ``CompilationResult``.  Nothing touches
  the filesystem.
* ``ResolverCompiler.run(models_dir, output_dir)`` is the backend of the
  CLI.  It loads sources through ``ModelRepository``, runs the same
  phases, exports the artifacts and returns a ``CompilationReport`` with
  per-step metrics.

Failure handling:
    - Load problems are recorded; the offending source is skipped unless
      the compiler runs strict.
    - Validation errors stop the run before any template is emitted.
    - A ``GenerationError`` is a compiler defect and fails the run.
    - Export errors are recorded in the report.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from resolvergen.context import CompilationContext
from resolvergen.errors import CompilationError, GenerationError, ModelLoadError
from resolvergen.exporters import ArtifactExporter, ExportManifest, ExportResult
from resolvergen.models import (
    CompilationConfig,
    CompilationResult,
    CompiledModel,
    ModelDefinition,
    SeedData,
)
from resolvergen.repository import ModelRepository
from resolvergen.schema import SchemaAssembler
from resolvergen.templates import TemplateCompiler
from resolvergen.utils import Timer
from resolvergen.validators import ValidationResult, validate_full

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen.compiler")


# ---------------------------------------------------------------------------
# Compilation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class CompilationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class CompilationReport:
    """Produced by ``ResolverCompiler.run()``."""

    success: bool = False
    models_directory: str = ""
    output_directory: str = ""

    total_models: int = 0
    total_resolvers: int = 0
    total_templates: int = 0
    total_files: int = 0
    total_bytes: int = 0
    total_elapsed_seconds: float = 0.0

    step_metrics: List[CompilationStepMetric] = field(default_factory=list)
    load_errors: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)
    generation_errors: List[str] = field(default_factory=list)
    export_errors: List[str] = field(default_factory=list)

    result: Optional[CompilationResult] = None
    manifest: Optional[ExportManifest] = None

    def summary(self) -> str:
        """Human-readable summary string."""
        lines: List[str] = []
        status: str = "✅ SUCCESS" if self.success else "❌ FAILED"
        lines.append(f"{'='*60}")
        lines.append("  NexaFlow ResolverGen — Compilation Report")
        lines.append(f"{'='*60}")
        lines.append(f"  Status:           {status}")
        lines.append(f"  Models:           {self.models_directory}")
        lines.append(f"  Output:           {self.output_directory or '(not exported)'}")
        lines.append(f"  Models compiled:  {self.total_models}")
        lines.append(f"  Resolvers:        {self.total_resolvers}")
        lines.append(f"  Templates:        {self.total_templates}")
        lines.append(f"  Files written:    {self.total_files}")
        lines.append(f"  Total bytes:      {self.total_bytes:,}")
        lines.append(f"  Total time:       {self.total_elapsed_seconds:.3f}s")
        if self.manifest is not None:
            lines.append(f"  Aggregate hash:   {self.manifest.aggregate_sha256}")
        lines.append(f"{'─'*60}")

        if self.step_metrics:
            lines.append("  Pipeline Steps:")
            for step in self.step_metrics:
                icon: str = "✓" if step.success else "✗"
                lines.append(
                    f"    {icon} {step.step_name:<28s} "
                    f"{step.elapsed_seconds:>7.3f}s  "
                    f"{step.detail}"
                )

        for title, entries, icon in (
            ("Load Errors", self.load_errors, "✗"),
            ("Validation Errors", self.validation_errors, "✗"),
            ("Validation Warnings", self.validation_warnings, "⚠"),
            ("Generation Errors", self.generation_errors, "✗"),
            ("Export Errors", self.export_errors, "✗"),
        ):
            if not entries:
                continue
            lines.append(f"{'─'*60}")
            lines.append(f"  {title} ({len(entries)}):")
            for entry in entries:
                lines.append(f"    {icon} {entry}")

        lines.append(f"{'='*60}")
        return "\n".join(lines)


def count_templates(result: CompilationResult) -> int:
    """Number of template files ``result`` exports (two per pair)."""
    pairs: int = len(result.shared_resolvers)
    for compiled in result.models:
        pairs += len(compiled.resolvers)
        pairs += sum(len(r.stages) for r in compiled.resolvers)
        pairs += len(compiled.relationship_resolvers)
        pairs += len(compiled.subscriptions)
        if compiled.job_result_lookup is not None:
            pairs += 1
    return pairs * 2


# ---------------------------------------------------------------------------
# Pure core
# ---------------------------------------------------------------------------


def build_result(
    models: Sequence[ModelDefinition],
    config: CompilationConfig,
) -> CompilationResult:
    """
    Compile an already validated model set.  Raises ``GenerationError`` if
    it meets a case it has no branch for.
    """
    context: CompilationContext = CompilationContext.build(models, config)
    compiler: TemplateCompiler = TemplateCompiler(context)
    compiled: List[CompiledModel] = compiler.compile_all()
    return CompilationResult(
        schema_sdl=SchemaAssembler(config).assemble(context.models),
        models=compiled,
        shared_resolvers=compiler.compile_job_notifications(),
        index_plan={name: list(specs) for name, specs in context.index_plan.items()},
    )


def compile_models(
    models: Sequence[ModelDefinition],
    config: Optional[CompilationConfig] = None,
    seed_data: Optional[SeedData] = None,
) -> CompilationResult:
    """
    Validate then compile.  Raises ``CompilationError`` with every
    validation error before anything is generated.
    """
    config = config or CompilationConfig()
    validation: ValidationResult = validate_full(models, config, seed_data)
    if not validation:
        raise CompilationError(validation)
    return build_result(models, config)


# ---------------------------------------------------------------------------
# ResolverCompiler
# ---------------------------------------------------------------------------


class ResolverCompiler:
    """
    Pipeline orchestrator behind the CLI.

    Usage::

        compiler = ResolverCompiler(strict=True)
        report = compiler.run(Path("models"), Path("build"), config)
        print(report.summary())

    Reusable: one instance can run many times.
    """

    def __init__(
        self,
        *,
        strict: bool = False,
        fail_on_warnings: bool = False,
        clean_output: bool = False,
    ) -> None:
        """
        Args:
            strict: Abort on the first malformed source instead of skipping it.
            fail_on_warnings: Treat validation warnings as errors.
            clean_output: Wipe the output directory before writing.
        """
        self._strict: bool = strict
        self._fail_on_warnings: bool = fail_on_warnings
        self._clean_output: bool = clean_output

        logger.debug(
            "ResolverCompiler initialised: strict=%s, fail_on_warnings=%s, clean=%s.",
            strict,
            fail_on_warnings,
            clean_output,
        )

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def run(
        self,
        models_dir: Path,
        output_dir: Optional[Path] = None,
        config: Optional[CompilationConfig] = None,
    ) -> CompilationReport:
        """
        Load → validate → compile → export.  ``output_dir=None`` stops after
        compilation (nothing is written).
        """
        config = config or CompilationConfig()
        report: CompilationReport = CompilationReport(
            models_directory=str(Path(models_dir).resolve()),
            output_directory=str(Path(output_dir).resolve()) if output_dir else "",
        )
        pipeline_start: float = time.perf_counter()

        loaded = self._step_load(Path(models_dir), report)
        if loaded is None:
            return self._finalise_report(report, time.perf_counter() - pipeline_start)
        models, seed_data = loaded

        if not self._step_validate(models, config, seed_data, report):
            return self._finalise_report(report, time.perf_counter() - pipeline_start)

        result: Optional[CompilationResult] = self._step_compile(models, config, report)
        if result is None:
            return self._finalise_report(report, time.perf_counter() - pipeline_start)
        report.result = result

        if output_dir is not None:
            self._step_export(result, config, Path(output_dir), report)

        return self._finalise_report(report, time.perf_counter() - pipeline_start)

    def validate(
        self,
        models_dir: Path,
        config: Optional[CompilationConfig] = None,
    ) -> CompilationReport:
        """Load and validate only."""
        config = config or CompilationConfig()
        report: CompilationReport = CompilationReport(
            models_directory=str(Path(models_dir).resolve())
        )
        pipeline_start: float = time.perf_counter()
        loaded = self._step_load(Path(models_dir), report)
        if loaded is not None:
            models, seed_data = loaded
            self._step_validate(models, config, seed_data, report)
        return self._finalise_report(report, time.perf_counter() - pipeline_start)

    # -----------------------------------------------------------------
    # Pipeline step: Load
    # -----------------------------------------------------------------

    def _step_load(
        self,
        models_dir: Path,
        report: CompilationReport,
    ) -> Optional[Tuple[List[ModelDefinition], SeedData]]:
        repository: ModelRepository = ModelRepository(models_dir, strict=self._strict)
        with Timer("load") as t:
            try:
                models: List[ModelDefinition] = repository.load_models()
            except ModelLoadError as exc:
                models = []
                report.load_errors.append(str(exc))
            seed_data: SeedData = repository.load_seed_data()

        report.load_errors.extend(str(err) for err in repository.load_errors)
        failed: bool = self._strict and bool(report.load_errors)
        report.total_models = len(models)
        report.step_metrics.append(CompilationStepMetric(
            step_name="Load Models",
            success=not report.load_errors,
            elapsed_seconds=t.elapsed,
            detail=(
                f"{len(models)} model(s), {len(seed_data)} seed set(s), "
                f"{len(report.load_errors)} skipped"
            ),
        ))
        if failed:
            logger.error("Load failed in strict mode: %s", report.load_errors[0])
            return None
        return models, seed_data

    # -----------------------------------------------------------------
    # Pipeline step: Validation
    # -----------------------------------------------------------------

    def _step_validate(
        self,
        models: Sequence[ModelDefinition],
        config: CompilationConfig,
        seed_data: SeedData,
        report: CompilationReport,
    ) -> bool:
        """True when compilation may proceed."""
        with Timer("validation") as t:
            result: ValidationResult = validate_full(models, config, seed_data)

        report.validation_errors.extend(str(e) for e in result.errors)
        report.validation_warnings.extend(str(w) for w in result.warnings)

        if result.has_errors:
            detail: str = f"{result.error_count} error(s)"
        elif result.warning_count:
            detail = f"{result.warning_count} warning(s)"
        else:
            detail = "all checks passed"

        passed: bool = result.is_valid and not (
            self._fail_on_warnings and result.warning_count > 0
        )
        report.step_metrics.append(CompilationStepMetric(
            step_name="Validate Models",
            success=passed,
            elapsed_seconds=t.elapsed,
            detail=detail,
        ))

        if result.has_errors:
            logger.error(
                "Validation failed with %d error(s) in %.3fs.",
                result.error_count,
                t.elapsed,
            )
            for err in result.errors:
                logger.error("  ✗ %s", err)
            return False

        if result.warning_count:
            logger.warning(
                "Validation passed with %d warning(s) in %.3fs.",
                result.warning_count,
                t.elapsed,
            )
            for warn in result.warnings:
                logger.warning("  ⚠ %s", warn)
            if self._fail_on_warnings:
                report.validation_errors.append(
                    f"{result.warning_count} warning(s) treated as errors"
                )
                return False
        else:
            logger.info(
                "Validation passed: %d model(s) validated in %.3fs.",
                len(models),
                t.elapsed,
            )
        return True

    # -----------------------------------------------------------------
    # Pipeline step: Compile
    # -----------------------------------------------------------------

    def _step_compile(
        self,
        models: Sequence[ModelDefinition],
        config: CompilationConfig,
        report: CompilationReport,
    ) -> Optional[CompilationResult]:
        with Timer("compile") as t:
            try:
                result: Optional[CompilationResult] = build_result(models, config)
            except GenerationError as exc:
                result = None
                report.generation_errors.append(str(exc))
                logger.error("Compilation failed: %s", exc)

        if result is not None:
            report.total_resolvers = sum(
                len(m.resolvers) + len(m.relationship_resolvers) for m in result.models
            )
            report.total_templates = count_templates(result)

        report.step_metrics.append(CompilationStepMetric(
            step_name="Compile Templates",
            success=result is not None,
            elapsed_seconds=t.elapsed,
            detail=(
                f"{report.total_resolvers} resolver(s), {report.total_templates} template(s)"
                if result is not None
                else "failed"
            ),
        ))
        if result is not None:
            logger.info(
                "Compiled %d model(s) into %d template(s) in %.3fs.",
                len(result.models),
                report.total_templates,
                t.elapsed,
            )
        return result

    # -----------------------------------------------------------------
    # Pipeline step: Export
    # -----------------------------------------------------------------

    def _step_export(
        self,
        result: CompilationResult,
        config: CompilationConfig,
        output_dir: Path,
        report: CompilationReport,
    ) -> None:
        exporter: ArtifactExporter = ArtifactExporter(
            output_dir,
            stage=config.stage,
            template_version=config.template_version,
            clean_before_export=self._clean_output,
        )
        export_result: ExportResult = exporter.export(result)

        report.total_files = export_result.manifest.total_files
        report.total_bytes = export_result.manifest.total_bytes
        report.export_errors.extend(export_result.errors)
        report.manifest = export_result.manifest

        report.step_metrics.append(CompilationStepMetric(
            step_name="Export Artifacts",
            success=export_result.success,
            elapsed_seconds=export_result.elapsed_seconds,
            detail=(
                f"{export_result.manifest.total_files} files, "
                f"{export_result.manifest.total_bytes:,} bytes"
            ),
        ))

    # -----------------------------------------------------------------
    # Internal: finalise report
    # -----------------------------------------------------------------

    def _finalise_report(
        self,
        report: CompilationReport,
        total_elapsed: float,
    ) -> CompilationReport:
        report.total_elapsed_seconds = total_elapsed
        report.success = not (
            (self._strict and report.load_errors)
            or report.validation_errors
            or report.generation_errors
            or report.export_errors
        )
        return report


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ResolverCompiler",
    "CompilationReport",
    "CompilationStepMetric",
    "build_result",
    "compile_models",
    "count_templates",
]

logger.debug("resolvergen.compiler loaded — %d public symbols.", len(__all__))
