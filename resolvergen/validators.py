# File: resolvergen/validators.py
"""
NexaFlow ResolverGen - Model Set Validators
============================================
A **pure-function validation pipeline** over a loaded model set.

Pydantic's validators in ``resolvergen.models`` handle per-model structural
correctness (identifier-safe names, one owner property, well-formed rules).
This module adds **cross-model semantic validation**: relationship targets
and foreign keys, the shared relational cluster, owner rules that can never
be satisfied, hooks, declared scalars and seed records.

Every check returns a ``ValidationResult``; nothing raises.  The compiler
turns a result with errors into one ``CompilationError`` so the user sees
every problem at once.

Usage by downstream modules:
    from resolvergen.validators import validate_full
    result = validate_full(models, config)
    if not result:
        raise CompilationError(result)
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from resolvergen.bindings import resolve_cluster
from resolvergen.models import (
    CompilationConfig,
    EngineKind,
    ModelDefinition,
    Operation,
    RelationshipKind,
    ScalarKind,
    SeedData,
)
from resolvergen.relationships import RelationshipPlanner, resolve_foreign_key

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen.validators")

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationIssue:
    """Lightweight issue descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationResult:
    """Accumulates ``ValidationIssue`` instances produced by the pipeline."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationIssue] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationIssue("error", code, message, context))

    def add_warning(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(ValidationIssue("warning", code, message, context))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [e for e in self._items if e.is_warning]

    @property
    def all_items(self) -> List[ValidationIssue]:
        return list(self._items)

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._items if e.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for e in self._items if e.is_warning)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def codes(self) -> List[str]:
        return [e.code for e in self._items]

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} error(s), "
            f"{self.warning_count} warning(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            prefix: str = "✗" if item.is_error else "⚠"
            lines.append(f"  {prefix} [{item.code}] {item.message}")
            for k, v in item.context.items():
                lines.append(f"       {k}: {v}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Type names the generated schema defines itself
_RESERVED_TYPE_NAMES: FrozenSet[str] = frozenset(
    {
        "Query", "Mutation", "Subscription", "JobResult",
        "ID", "String", "Int", "Float", "Boolean",
        "AWSDateTime", "AWSJSON", "AWSEmail", "AWSURL", "AWSPhone", "AWSIPAddress",
        "AWSDate", "AWSTime", "AWSTimestamp",
    }
)

_PASCAL_CASE_RE: re.Pattern[str] = re.compile(r"^[A-Z][A-Za-z0-9]*$")
# Plain function names and ARNs
_FUNCTION_REF_RE: re.Pattern[str] = re.compile(r"^[A-Za-z0-9_\-:.$/]+$")

_FETCHED_OPERATIONS: Tuple[Operation, ...] = (Operation.READ, Operation.UPDATE, Operation.DELETE)

_MAX_WINDOW_SECONDS: int = 86_400


# ---------------------------------------------------------------------------
# Individual validation functions
# ---------------------------------------------------------------------------


def validate_model_names(models: Sequence[ModelDefinition]) -> ValidationResult:
    """Names are unique and do not shadow a generated type; non-PascalCase names warn."""
    result: ValidationResult = ValidationResult()
    seen: Set[str] = set()

    for model in models:
        ctx: Dict[str, Any] = {"model": model.name, "source": model.source}
        if model.name in seen:
            result.add_error(
                "DUPLICATE_MODEL_NAME",
                f"Model name '{model.name}' is defined more than once.",
                ctx,
            )
        seen.add(model.name)

        if model.name in _RESERVED_TYPE_NAMES:
            result.add_error(
                "RESERVED_MODEL_NAME",
                f"Model name '{model.name}' clashes with a generated type.",
                ctx,
            )
        elif not _PASCAL_CASE_RE.match(model.name):
            # Parsing already guarantees an identifier; this is convention only.
            result.add_warning(
                "MODEL_NAME_NOT_PASCAL_CASE",
                f"Model name '{model.name}' is not PascalCase; generated type and "
                "field names will keep its spelling.",
                ctx,
            )

    names: Set[str] = {model.name for model in models}
    for model in models:
        connection: str = f"{model.name}Connection"
        if connection in names:
            result.add_error(
                "RESERVED_MODEL_NAME",
                f"Model name '{connection}' clashes with the connection type of "
                f"'{model.name}'.",
                {"model": connection, "source": model.source},
            )

    logger.debug("validate_model_names: checked %d model(s), %d issue(s).", len(models), len(result))
    return result


def validate_identifiers(
    models: Sequence[ModelDefinition], config: CompilationConfig
) -> ValidationResult:
    """Every model declares the identifier property used as the primary key."""
    result: ValidationResult = ValidationResult()
    for model in models:
        if config.identifier_field not in model.properties:
            result.add_error(
                "MISSING_IDENTIFIER",
                f"Model '{model.name}' has no '{config.identifier_field}' property.",
                {"model": model.name},
            )
    return result


def validate_access_control(models: Sequence[ModelDefinition]) -> ValidationResult:
    """
    Owner rules need an owner property; a declared owner should be stamped;
    a queued source cannot check ownership of a stored record.
    """
    result: ValidationResult = ValidationResult()

    for model in models:
        access = model.access_control
        owner_field: Optional[str] = model.owner_field
        ctx: Dict[str, Any] = {"model": model.name}

        if access is None:
            if owner_field:
                result.add_warning(
                    "OWNER_NOT_STAMPED",
                    f"Model '{model.name}' marks '{owner_field}' as owner but has no "
                    f"access control, so the owner is never stamped on create.",
                    ctx,
                )
            continue

        for operation in Operation:
            if access.has_owner_rule(operation) and owner_field is None:
                result.add_error(
                    "OWNER_RULE_WITHOUT_OWNER",
                    f"Model '{model.name}' has an owner rule for '{operation.value}' "
                    f"but no property is marked isOwner.",
                    {**ctx, "operation": operation.value},
                )

        if owner_field and not access.rules_for(Operation.CREATE):
            result.add_warning(
                "OWNER_NOT_STAMPED",
                f"Model '{model.name}' has no create rule, so '{owner_field}' is "
                f"never stamped with the caller identity.",
                ctx,
            )

        if model.is_rate_limited:
            for operation in _FETCHED_OPERATIONS:
                if access.has_owner_rule(operation):
                    result.add_error(
                        "OWNER_RULE_ON_QUEUED_SOURCE",
                        f"Model '{model.name}' is rate-limited; an owner rule for "
                        f"'{operation.value}' cannot be checked against a queued request.",
                        {**ctx, "operation": operation.value},
                    )

    return result


def validate_data_sources(
    models: Sequence[ModelDefinition], config: CompilationConfig
) -> ValidationResult:
    """Relational models need a cluster; rate-limit windows must be sane."""
    result: ValidationResult = ValidationResult()
    cluster = resolve_cluster(models, config)

    for model in models:
        ctx: Dict[str, Any] = {"model": model.name}
        if model.engine is EngineKind.RELATIONAL and cluster is None:
            result.add_error(
                "RELATIONAL_CLUSTER_MISSING",
                f"Model '{model.name}' uses the relational engine but no relational "
                f"cluster is declared by any model or by the configuration.",
                ctx,
            )
        if model.is_rate_limited:
            limits = getattr(model.data_source, "limits", None)
            if limits is not None and limits.frequency_in_seconds > _MAX_WINDOW_SECONDS:
                result.add_warning(
                    "RATE_LIMIT_WINDOW_TOO_LONG",
                    f"Model '{model.name}' rate-limit window of "
                    f"{limits.frequency_in_seconds}s exceeds one day.",
                    ctx,
                )

    return result


def validate_relationships(
    models: Sequence[ModelDefinition], config: Optional[CompilationConfig] = None
) -> ValidationResult:
    """
    Planner issues (missing target, missing ``belongsTo`` key) plus the
    target-side checks: ``hasMany``/``hasOne`` keys live on the target, the
    target must be traversable, and the field must not shadow a property.
    """
    result: ValidationResult = ValidationResult()
    planner = RelationshipPlanner(models, config)
    model_map: Dict[str, ModelDefinition] = {m.name: m for m in models}

    for issue in planner.validate():
        result.add_error(
            "RELATIONSHIP_INVALID",
            str(issue),
            {"model": issue.model, "field": issue.field},
        )

    for model in models:
        for field_name, relationship in model.relationships.items():
            ctx: Dict[str, Any] = {"model": model.name, "field": field_name}
            if field_name in model.properties:
                result.add_error(
                    "RELATIONSHIP_FIELD_CONFLICT",
                    f"Relationship '{field_name}' on '{model.name}' shadows a property "
                    f"of the same name.",
                    ctx,
                )
            target = model_map.get(relationship.target)
            if target is None:
                continue
            if target.engine in (EngineKind.HTTP_API, EngineKind.QUEUED_API):
                result.add_error(
                    "RELATIONSHIP_TARGET_NOT_TRAVERSABLE",
                    f"Relationship '{model.name}.{field_name}' targets third-party model "
                    f"'{target.name}', which cannot be queried by key.",
                    ctx,
                )
                continue
            if relationship.type is not RelationshipKind.BELONGS_TO:
                foreign_key: str = resolve_foreign_key(model, relationship)
                if foreign_key not in target.properties:
                    result.add_error(
                        "FOREIGN_KEY_NOT_ON_TARGET",
                        f"Relationship '{model.name}.{field_name}' ({relationship.type.value}) "
                        f"needs '{foreign_key}' on target model '{target.name}'.",
                        {**ctx, "foreign_key": foreign_key},
                    )

    return result


def validate_hooks(models: Sequence[ModelDefinition]) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    for model in models:
        for hook_name, function_name in model.hooks.declared.items():
            ctx: Dict[str, Any] = {"model": model.name, "hook": hook_name}
            if not _FUNCTION_REF_RE.match(function_name):
                result.add_error(
                    "INVALID_HOOK_FUNCTION",
                    f"Hook '{hook_name}' on '{model.name}' names an invalid function "
                    f"reference '{function_name}'.",
                    ctx,
                )
            if model.is_rate_limited and hook_name.startswith("after"):
                result.add_warning(
                    "AFTER_HOOK_ON_QUEUED_SOURCE",
                    f"Hook '{hook_name}' on rate-limited '{model.name}' only sees the "
                    f"PENDING acknowledgement, not the final result.",
                    ctx,
                )
    return result


def validate_scalars(
    models: Sequence[ModelDefinition], config: CompilationConfig
) -> ValidationResult:
    """AWS scalars used by a property should be declared in the schema header."""
    result: ValidationResult = ValidationResult()
    declared: Set[str] = set(config.scalars)
    for model in models:
        for prop in model.properties.values():
            idl: str = prop.idl_type
            if idl.startswith("AWS") and idl not in declared:
                result.add_warning(
                    "SCALAR_NOT_DECLARED",
                    f"Property '{model.name}.{prop.name}' uses scalar '{idl}', which is "
                    f"not in the configured scalar declarations.",
                    {"model": model.name, "property": prop.name},
                )
    return result


def _matches_kind(value: Any, kind: ScalarKind) -> bool:
    match kind:
        case ScalarKind.IDENTIFIER | ScalarKind.TEXT:
            return isinstance(value, str)
        case ScalarKind.INTEGER:
            return isinstance(value, int) and not isinstance(value, bool)
        case ScalarKind.FLOAT:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        case ScalarKind.BOOLEAN:
            return isinstance(value, bool)
        case ScalarKind.TIMESTAMP:
            if isinstance(value, datetime):
                return True
            if not isinstance(value, str):
                return False
            try:
                datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return False
            return True
        case ScalarKind.OPAQUE:
            return True
    return False


def validate_seed_data(
    models: Sequence[ModelDefinition],
    seed_data: SeedData,
    config: Optional[CompilationConfig] = None,
) -> ValidationResult:
    """Seed records against property kinds.  Warnings only: seeds are inert here."""
    config = config or CompilationConfig()
    result: ValidationResult = ValidationResult()
    model_map: Dict[str, ModelDefinition] = {m.name: m for m in models}
    managed: Set[str] = set(config.managed_timestamps)

    for model_name, records in seed_data.items():
        model = model_map.get(model_name)
        if model is None:
            result.add_warning(
                "UNKNOWN_SEED_MODEL",
                f"Seed data provided for unknown model '{model_name}'.",
                {"model": model_name},
            )
            continue
        for index, record in enumerate(records):
            ctx: Dict[str, Any] = {"model": model_name, "record": index}
            for key, value in record.items():
                prop = model.get_property(key)
                if prop is None:
                    result.add_warning(
                        "SEED_UNKNOWN_PROPERTY",
                        f"Seed record {index} of '{model_name}' sets unknown property '{key}'.",
                        ctx,
                    )
                elif value is not None and not _matches_kind(value, prop.kind):
                    result.add_warning(
                        "SEED_TYPE_MISMATCH",
                        f"Seed record {index} of '{model_name}': '{key}' is not a valid "
                        f"{prop.kind.value} value ({value!r}).",
                        ctx,
                    )
            for prop in model.properties.values():
                if prop.required and prop.name not in managed and record.get(prop.name) is None:
                    result.add_warning(
                        "SEED_MISSING_REQUIRED",
                        f"Seed record {index} of '{model_name}' is missing required "
                        f"property '{prop.name}'.",
                        ctx,
                    )
    return result


# ---------------------------------------------------------------------------
# Aggregate entry points
# ---------------------------------------------------------------------------


def validate_models(
    models: Sequence[ModelDefinition], config: CompilationConfig
) -> ValidationResult:
    """All model-set checks (no seeds)."""
    result: ValidationResult = ValidationResult()
    result.merge(validate_model_names(models))
    result.merge(validate_identifiers(models, config))
    result.merge(validate_access_control(models))
    result.merge(validate_data_sources(models, config))
    result.merge(validate_relationships(models, config))
    result.merge(validate_hooks(models))
    result.merge(validate_scalars(models, config))
    return result


def validate_full(
    models: Sequence[ModelDefinition],
    config: CompilationConfig,
    seed_data: Optional[SeedData] = None,
) -> ValidationResult:
    """
    **Master validation entry point.**

    This is the single function ``compiler.py`` and ``cli.py`` call before
    any template is generated.
    """
    logger.info("Starting full validation — %d model(s).", len(models))

    result: ValidationResult = validate_models(models, config)
    if seed_data:
        result.merge(validate_seed_data(models, seed_data, config))

    if result.has_errors:
        logger.error(
            "Validation FAILED with %d error(s). %s",
            result.error_count,
            result.summary(),
        )
    else:
        logger.info("Validation PASSED. %s", result.summary())

    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ValidationIssue",
    "ValidationResult",
    "validate_model_names",
    "validate_identifiers",
    "validate_access_control",
    "validate_data_sources",
    "validate_relationships",
    "validate_hooks",
    "validate_scalars",
    "validate_seed_data",
    "validate_models",
    "validate_full",
]

logger.debug("resolvergen.validators loaded — %d public symbols.", len(__all__))
