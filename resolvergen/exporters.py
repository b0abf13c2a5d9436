# File: resolvergen/exporters.py
"""
NexaFlow ResolverGen - Artifact Exporter
=========================================

Turns a ``CompilationResult`` into files on disk:

    schema.graphql
    resolvers/<Type>.<field>.request.vtl      (and .response.vtl)
    functions/<Stage>.request.vtl             (pipeline stages)
    resolvers.json                            (bindings and stage order)
    indexes.json                              (secondary indexes per model)
    manifest.json                             (SHA-256 per file + aggregate)

The artifact set is computed first as a sorted ``path -> content`` mapping
(``collect_artifacts``), so its content is a pure function of the result.
The manifest's ``aggregate_sha256`` covers artifact content only; the
provisioning layer compares it against the deployed value to decide
whether a redeployment is needed.

Every file is written atomically (temp file + rename).  A failed write is
recorded and the batch continues; files already written stay intact.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from resolvergen.models import (
    CompilationResult,
    DataSourceBinding,
    OperationResolver,
    TemplatePair,
)
from resolvergen.utils import (
    Timer,
    clean_directory,
    count_lines,
    ensure_directory,
    sha256_hex,
    write_file,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen.exporters")

SCHEMA_FILE: str = "schema.graphql"
RESOLVERS_FILE: str = "resolvers.json"
INDEXES_FILE: str = "indexes.json"
MANIFEST_FILE: str = "manifest.json"


# ---------------------------------------------------------------------------
# Data classes for export results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Immutable record of a single exported file."""

    relative_path: str
    size_bytes: int
    line_count: int
    sha256: str


@dataclass(frozen=False, slots=True)
class ExportManifest:
    """
    Every exported artifact with its content hash.

    ``aggregate_sha256`` is derived from the ``path:sha256`` lines of the
    artifacts in path order and ignores the timestamp.
    """

    generator_version: str = ""
    template_version: str = ""
    stage: str = ""
    export_timestamp: str = ""
    output_directory: str = ""
    total_files: int = 0
    total_bytes: int = 0
    total_lines: int = 0
    aggregate_sha256: str = ""
    files: List[FileRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generator_version": self.generator_version,
            "template_version": self.template_version,
            "stage": self.stage,
            "export_timestamp": self.export_timestamp,
            "output_directory": self.output_directory,
            "total_files": self.total_files,
            "total_bytes": self.total_bytes,
            "total_lines": self.total_lines,
            "aggregate_sha256": self.aggregate_sha256,
            "files": [
                {
                    "relative_path": f.relative_path,
                    "size_bytes": f.size_bytes,
                    "line_count": f.line_count,
                    "sha256": f.sha256,
                }
                for f in self.files
            ],
        }

    def to_json(self, indent_size: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent_size, ensure_ascii=False)

    def record(self, relative_path: str) -> FileRecord:
        for entry in self.files:
            if entry.relative_path == relative_path:
                return entry
        raise KeyError(f"'{relative_path}' is not in the manifest")


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Final result returned by ``ArtifactExporter.export()``."""

    success: bool
    manifest: ExportManifest
    errors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    elapsed_seconds: float


# ---------------------------------------------------------------------------
# Artifact layout
# ---------------------------------------------------------------------------


def aggregate_hash(records: List[FileRecord]) -> str:
    digest = hashlib.sha256()
    for record in sorted(records, key=lambda r: r.relative_path):
        digest.update(f"{record.relative_path}:{record.sha256}\n".encode("utf-8"))
    return digest.hexdigest()


def _add_pair(artifacts: Dict[str, str], prefix: str, templates: TemplatePair) -> None:
    artifacts[f"{prefix}.request.vtl"] = templates.request
    artifacts[f"{prefix}.response.vtl"] = templates.response


def _binding_entry(binding: Optional[DataSourceBinding]) -> Optional[Dict[str, Any]]:
    if binding is None:
        return None
    return binding.model_dump(mode="json")


def _resolver_entry(resolver: OperationResolver) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "typeName": resolver.type_name,
        "fieldName": resolver.field_name,
        "kind": "PIPELINE" if resolver.is_pipeline else "UNIT",
        "dataSource": _binding_entry(resolver.binding),
    }
    if resolver.is_pipeline:
        entry["functions"] = [
            {
                "name": stage.name,
                "kind": stage.kind.value,
                "dataSource": _binding_entry(stage.binding),
            }
            for stage in resolver.stages
        ]
    return entry


def collect_artifacts(result: CompilationResult) -> Dict[str, str]:
    """
    ``relative path -> content`` for every artifact of ``result``, sorted by
    path.  The manifest is not part of the mapping.
    """
    artifacts: Dict[str, str] = {SCHEMA_FILE: result.schema_sdl}
    descriptors: List[Dict[str, Any]] = []

    for compiled in result.models:
        for resolver in compiled.resolvers:
            _add_pair(artifacts, f"resolvers/{resolver.type_name}.{resolver.field_name}", resolver.templates)
            for stage in resolver.stages:
                _add_pair(artifacts, f"functions/{stage.name}", stage.templates)
            descriptors.append(_resolver_entry(resolver))

        for rel in compiled.relationship_resolvers:
            _add_pair(artifacts, f"resolvers/{rel.type_name}.{rel.field_name}", rel.templates)
            descriptors.append({
                "typeName": rel.type_name,
                "fieldName": rel.field_name,
                "kind": "UNIT",
                "dataSource": _binding_entry(rel.binding),
            })

        extra = list(compiled.subscriptions)
        if compiled.job_result_lookup is not None:
            extra.append(compiled.job_result_lookup)
        for sub in extra:
            _add_pair(artifacts, f"resolvers/{sub.type_name}.{sub.field_name}", sub.templates)
            descriptors.append({
                "typeName": sub.type_name,
                "fieldName": sub.field_name,
                "kind": "UNIT",
                "dataSource": _binding_entry(sub.binding),
            })

    for shared in result.shared_resolvers:
        _add_pair(artifacts, f"resolvers/{shared.type_name}.{shared.field_name}", shared.templates)
        descriptors.append({
            "typeName": shared.type_name,
            "fieldName": shared.field_name,
            "kind": "UNIT",
            "dataSource": _binding_entry(shared.binding),
        })

    descriptors.sort(key=lambda d: (d["typeName"], d["fieldName"]))
    artifacts[RESOLVERS_FILE] = json.dumps(descriptors, indent=2, sort_keys=True) + "\n"
    artifacts[INDEXES_FILE] = json.dumps(
        {
            name: [spec.model_dump(mode="json", by_alias=True, exclude_none=True) for spec in specs]
            for name, specs in result.index_plan.items()
        },
        indent=2,
        sort_keys=True,
    ) + "\n"

    return dict(sorted(artifacts.items()))


# ---------------------------------------------------------------------------
# ArtifactExporter class
# ---------------------------------------------------------------------------


class ArtifactExporter:
    """
    Writes a compilation result to an output directory.

    Usage::

        exporter = ArtifactExporter(Path("./build"), stage="prod")
        export = exporter.export(result)
        print(export.manifest.aggregate_sha256)

    NOT thread-safe.  Use one exporter per output directory.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        stage: str = "",
        template_version: str = "",
        clean_before_export: bool = False,
        atomic_writes: bool = True,
        generate_manifest: bool = True,
    ) -> None:
        self._output_dir: Path = Path(output_dir).resolve()
        self._stage: str = stage
        self._template_version: str = template_version
        self._clean_before_export: bool = clean_before_export
        self._atomic_writes: bool = atomic_writes
        self._generate_manifest: bool = generate_manifest

        self._errors: List[str] = []
        self._warnings: List[str] = []
        self._file_records: List[FileRecord] = []

        logger.debug(
            "ArtifactExporter initialised: output_dir=%s, atomic=%s.",
            self._output_dir,
            self._atomic_writes,
        )

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def export(self, result: CompilationResult) -> ExportResult:
        self._errors = []
        self._warnings = []
        self._file_records = []

        with Timer("export") as timer:
            try:
                self._pre_export_cleanup()
                ensure_directory(self._output_dir)
                for rel_path, content in collect_artifacts(result).items():
                    self._write_artifact(rel_path, content)
            except OSError as exc:
                error_msg: str = f"Fatal export error: {type(exc).__name__}: {exc}"
                self._errors.append(error_msg)
                logger.error(error_msg)

            manifest: ExportManifest = self._build_manifest()
            if self._generate_manifest and not self._errors:
                self._write_manifest_file(manifest)

        success: bool = not self._errors
        if success:
            logger.info(
                "Export completed: %d files, %d bytes, %.3fs (aggregate %s).",
                manifest.total_files,
                manifest.total_bytes,
                timer.elapsed,
                manifest.aggregate_sha256[:12],
            )
        else:
            logger.error(
                "Export completed with %d error(s) in %.3fs.",
                len(self._errors),
                timer.elapsed,
            )

        return ExportResult(
            success=success,
            manifest=manifest,
            errors=tuple(self._errors),
            warnings=tuple(self._warnings),
            elapsed_seconds=timer.elapsed,
        )

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _pre_export_cleanup(self) -> None:
        if self._clean_before_export and self._output_dir.exists():
            logger.info("Cleaning output directory: %s", self._output_dir)
            clean_directory(self._output_dir)

    def _write_artifact(self, rel_path: str, content: str) -> None:
        try:
            record: FileRecord = self._write_single_file(rel_path, content)
        except OSError as exc:
            error_msg: str = f"Failed to write {rel_path}: {type(exc).__name__}: {exc}"
            self._errors.append(error_msg)
            logger.error(error_msg)
            return
        self._file_records.append(record)

    def _write_single_file(self, rel_path: str, content: str) -> FileRecord:
        size_bytes: int = write_file(
            self._output_dir / rel_path, content, atomic=self._atomic_writes
        )
        return FileRecord(
            relative_path=rel_path,
            size_bytes=size_bytes,
            line_count=count_lines(content),
            sha256=sha256_hex(content),
        )

    def _build_manifest(self) -> ExportManifest:
        import resolvergen

        records: List[FileRecord] = sorted(self._file_records, key=lambda r: r.relative_path)
        return ExportManifest(
            generator_version=resolvergen.__version__,
            template_version=self._template_version,
            stage=self._stage,
            export_timestamp=time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            output_directory=str(self._output_dir),
            total_files=len(records),
            total_bytes=sum(r.size_bytes for r in records),
            total_lines=sum(r.line_count for r in records),
            aggregate_sha256=aggregate_hash(records),
            files=records,
        )

    def _write_manifest_file(self, manifest: ExportManifest) -> None:
        try:
            write_file(
                self._output_dir / MANIFEST_FILE,
                manifest.to_json() + "\n",
                atomic=self._atomic_writes,
            )
        except OSError as exc:
            self._warnings.append(f"Could not write manifest: {exc}")
            logger.warning("Failed to write manifest: %s", exc)
            return
        logger.debug("Wrote manifest to %s.", self._output_dir / MANIFEST_FILE)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ArtifactExporter",
    "ExportManifest",
    "ExportResult",
    "FileRecord",
    "aggregate_hash",
    "collect_artifacts",
    "SCHEMA_FILE",
    "RESOLVERS_FILE",
    "INDEXES_FILE",
    "MANIFEST_FILE",
]

logger.debug("resolvergen.exporters loaded — %d public symbols.", len(__all__))
