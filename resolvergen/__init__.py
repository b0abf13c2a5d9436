# File: resolvergen/__init__.py
"""
NexaFlow ResolverGen — GraphQL Resolver Compiler
=================================================

Compiles declarative model definitions (JSON/YAML) into a GraphQL IDL
schema plus the request/response mapping templates that resolve every
query, mutation, subscription and relationship field against document,
relational, HTTP and rate-limited (queued) data sources, with
authorization and lifecycle hooks woven in.

Architecture overview::

    ┌──────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│ ResolverCompiler │────▶│ TemplateCompiler │
    │   (cli.py)   │     │  (compiler.py)   │     │  (templates.py)  │
    └──────────────┘     └────────┬─────────┘     └────────┬─────────┘
                                  │                        │
             ┌──────────┬─────────┼──────────┐     ┌───────┼────────┐
             ▼          ▼         ▼          ▼     ▼       ▼        ▼
       repository  validators  schema  exporters  authz  relation-  renderer
                                                         ships     (ir → VTL)

Usage::

    # As a library
    from resolvergen import compile_models, parse_model
    result = compile_models([parse_model(raw) for raw in raw_models])
    print(result.schema_sdl)

    # From the command line
    python -m resolvergen --models models/ --output build/ --verbose

Public API:
    - compile_models     — Validate + compile an in-memory model set
    - ResolverCompiler   — Directory-to-artifacts orchestrator
    - ModelRepository    — Model / seed loader
    - SchemaAssembler    — IDL document builder
    - TemplateCompiler   — Resolver template builder
    - ArtifactExporter   — File-system writer with SHA-256 manifest
    - validate_full      — Model-set validation entry point
"""

from __future__ import annotations

__version__: str = "1.0.0"
__author__: str = "NexaFlow Team"
__license__: str = "MIT"

from resolvergen.errors import (
    CompilationError,
    GenerationError,
    ModelLoadError,
    ResolverGenError,
)
from resolvergen.models import (
    AccessControlDefinition,
    AccessRule,
    CompilationConfig,
    CompilationResult,
    CompiledModel,
    DatabaseSource,
    EngineKind,
    ModelDefinition,
    Operation,
    PropertyDefinition,
    RelationshipDefinition,
    RelationshipKind,
    ResolverField,
    ScalarKind,
    SecondaryIndexSpec,
    ThirdPartyApiSource,
)
from resolvergen.validators import ValidationResult, validate_full
from resolvergen.repository import ModelRepository, load_config_file, parse_model
from resolvergen.context import CompilationContext
from resolvergen.templates import TemplateCompiler
from resolvergen.schema import SchemaAssembler
from resolvergen.exporters import ArtifactExporter, ExportManifest, ExportResult
from resolvergen.compiler import CompilationReport, ResolverCompiler, compile_models

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Core orchestrator
    "compile_models",
    "ResolverCompiler",
    "CompilationReport",
    # Errors
    "ResolverGenError",
    "ModelLoadError",
    "CompilationError",
    "GenerationError",
    # Models
    "AccessControlDefinition",
    "AccessRule",
    "CompilationConfig",
    "CompilationResult",
    "CompiledModel",
    "DatabaseSource",
    "EngineKind",
    "ModelDefinition",
    "Operation",
    "PropertyDefinition",
    "RelationshipDefinition",
    "RelationshipKind",
    "ResolverField",
    "ScalarKind",
    "SecondaryIndexSpec",
    "ThirdPartyApiSource",
    # Loading and validation
    "ModelRepository",
    "load_config_file",
    "parse_model",
    "validate_full",
    "ValidationResult",
    # Compilation
    "CompilationContext",
    "TemplateCompiler",
    "SchemaAssembler",
    # Export
    "ArtifactExporter",
    "ExportManifest",
    "ExportResult",
]
