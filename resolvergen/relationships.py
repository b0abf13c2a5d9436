# File: resolvergen/relationships.py
"""
NexaFlow ResolverGen - Relationship Planner
============================================
Works on the *whole* model set:

1. Resolves every relationship's foreign key (explicit ``foreignKey`` or the
   naming convention).
2. Plans the secondary indexes each model's store needs so that ``hasMany``
   and ``hasOne`` traversals never scan.
3. Reports broken relationships (missing target, missing ``belongsTo`` key).
4. Builds the resolver for every relationship field.  Requests run against
   the *target's* engine and responses re-apply the *target's* read access:
   a caller allowed to read a post is not automatically allowed to read its
   author.

Foreign-key convention::

    hasMany / hasOne  →  <source name lowercased>Id   (lives on the target)
    belongsTo         →  <target name lowercased>Id   (lives on the source)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from resolvergen.authorization import AuthorizationWeaver
from resolvergen.bindings import binding_for, resolve_cluster
from resolvergen.errors import GenerationError
from resolvergen.ir import (
    ContextResult,
    DataOperation,
    EmptyFragment,
    FirstPageItem,
    GetItem,
    ItemAccess,
    PageBounds,
    PageItems,
    QueryIndex,
    RecordList,
    RequestPlan,
    ResponsePlan,
    ResultShape,
    SingleRecord,
    SqlRow,
    SqlRows,
    SqlStatements,
    SqlVariable,
    with_local_times,
)
from resolvergen.models import (
    CompilationConfig,
    EngineKind,
    ModelDefinition,
    RelationshipDefinition,
    RelationshipKind,
    RelationshipResolver,
    SecondaryIndexSpec,
    TemplatePair,
)
from resolvergen.renderer import VtlRenderer
from resolvergen.utils import table_name_for

logger: logging.Logger = logging.getLogger("resolvergen.relationships")

_INDEXED_KINDS: Tuple[RelationshipKind, ...] = (
    RelationshipKind.HAS_MANY,
    RelationshipKind.HAS_ONE,
)


@dataclass(frozen=True, slots=True)
class RelationshipIssue:
    """A broken relationship: ``model.field`` and what is wrong with it."""

    model: str
    field: str
    error: str

    def __str__(self) -> str:
        return f"{self.model}.{self.field}: {self.error}"


def resolve_foreign_key(source: ModelDefinition, relationship: RelationshipDefinition) -> str:
    """Explicit foreign key, else the naming convention for the relationship kind."""
    if relationship.foreign_key:
        return relationship.foreign_key
    if relationship.type is RelationshipKind.BELONGS_TO:
        return f"{relationship.target.lower()}Id"
    return f"{source.name.lower()}Id"


def index_name_for(foreign_key: str) -> str:
    return f"{foreign_key}Index"


class RelationshipPlanner:
    """
    Index planning, validation and resolver generation for relationships.

    Usage::

        planner = RelationshipPlanner(models, config)
        issues = planner.validate()
        indexes = planner.plan_index_map()
        resolvers = planner.plan_resolvers(models[0])
    """

    def __init__(
        self,
        models: Sequence[ModelDefinition],
        config: Optional[CompilationConfig] = None,
    ) -> None:
        self._models: Tuple[ModelDefinition, ...] = tuple(models)
        self._model_map: Dict[str, ModelDefinition] = {m.name: m for m in self._models}
        self._config: CompilationConfig = config or CompilationConfig()
        self._weaver: AuthorizationWeaver = AuthorizationWeaver(self._config)
        self._renderer: VtlRenderer = VtlRenderer(self._config)

    # -----------------------------------------------------------------
    # Index planning
    # -----------------------------------------------------------------

    def plan_indexes(self, model: ModelDefinition) -> List[SecondaryIndexSpec]:
        """
        One index per distinct foreign key of every ``hasMany``/``hasOne``
        relationship, declared anywhere in the set, that targets ``model``.
        """
        seen: List[str] = []
        for source in self._models:
            for relationship in source.relationships.values():
                if relationship.type not in _INDEXED_KINDS:
                    continue
                if relationship.target != model.name:
                    continue
                foreign_key: str = resolve_foreign_key(source, relationship)
                if foreign_key not in seen:
                    seen.append(foreign_key)
        return [
            SecondaryIndexSpec(index_name=index_name_for(fk), partition_key=fk)
            for fk in seen
        ]

    def plan_index_map(self) -> Dict[str, List[SecondaryIndexSpec]]:
        return {model.name: self.plan_indexes(model) for model in self._models}

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------

    def validate(self) -> List[RelationshipIssue]:
        """Report only: a missing target, or a missing ``belongsTo`` key."""
        issues: List[RelationshipIssue] = []
        for model in self._models:
            for field_name, relationship in model.relationships.items():
                if relationship.target not in self._model_map:
                    issues.append(RelationshipIssue(
                        model=model.name,
                        field=field_name,
                        error=f"Target model '{relationship.target}' not found",
                    ))
                    continue
                if relationship.type is RelationshipKind.BELONGS_TO:
                    foreign_key = resolve_foreign_key(model, relationship)
                    if foreign_key not in model.properties:
                        issues.append(RelationshipIssue(
                            model=model.name,
                            field=field_name,
                            error=f"Foreign key '{foreign_key}' not found in model properties",
                        ))
        if issues:
            logger.info("Relationship validation found %d issue(s).", len(issues))
        return issues

    # -----------------------------------------------------------------
    # Resolvers
    # -----------------------------------------------------------------

    def plan_resolvers(self, model: ModelDefinition) -> List[RelationshipResolver]:
        resolvers: List[RelationshipResolver] = []
        for field_name, relationship in model.relationships.items():
            target = self._model_map.get(relationship.target)
            if target is None:
                raise GenerationError(
                    f"{model.name}.{field_name} targets unknown model '{relationship.target}'."
                )
            foreign_key: str = resolve_foreign_key(model, relationship)
            request, response = self._plans_for(model, field_name, relationship, target, foreign_key)
            resolvers.append(RelationshipResolver(
                type_name=model.name,
                field_name=field_name,
                relationship=relationship,
                target_model=target.name,
                foreign_key=foreign_key,
                binding=binding_for(
                    target, resolve_cluster(self._models, self._config), self._config
                ),
                templates=TemplatePair(
                    request=self._renderer.render_request(request),
                    response=self._renderer.render_response(response),
                ),
            ))
        logger.debug("Planned %d relationship resolver(s) for %s.", len(resolvers), model.name)
        return resolvers

    def relationship_fields(self, model: ModelDefinition) -> List[str]:
        """IDL field lines for the relationship fields of ``model``."""
        lines: List[str] = []
        for field_name, relationship in model.relationships.items():
            if relationship.type is RelationshipKind.HAS_MANY:
                lines.append(
                    f"{field_name}(limit: Int, nextToken: String): {relationship.target}Connection"
                )
            else:
                lines.append(f"{field_name}: {relationship.target}")
        return lines

    def _plans_for(
        self,
        source: ModelDefinition,
        field_name: str,
        relationship: RelationshipDefinition,
        target: ModelDefinition,
        foreign_key: str,
    ) -> Tuple[RequestPlan, ResponsePlan]:
        access: ItemAccess = self._weaver.build_item_access(target)
        kind: RelationshipKind = relationship.type
        description: str = (
            f"{source.name}.{field_name}: {kind.value} {target.name} via {foreign_key}"
        )
        operation: DataOperation
        shape: ResultShape

        match target.engine:
            case EngineKind.DOCUMENT:
                operation, shape = self._document_traversal(kind, foreign_key, access)
            case EngineKind.RELATIONAL:
                operation, shape = self._relational_traversal(kind, target, foreign_key, access)
            case EngineKind.HTTP_API | EngineKind.QUEUED_API:
                raise GenerationError(
                    f"{source.name}.{field_name}: third-party model '{target.name}' "
                    "cannot be traversed."
                )
            case _:
                raise GenerationError(f"Unsupported engine for '{target.name}'.")

        if self._config.timezone_header:
            shape = with_local_times(shape, target.timestamp_fields)
        return (
            RequestPlan(description=description, operation=operation, auth=EmptyFragment()),
            ResponsePlan(
                description=f"{description} (filtered by {target.name} read access)",
                shape=shape,
            ),
        )

    def _page(self) -> PageBounds:
        return PageBounds(
            default_limit=self._config.default_page_size,
            max_limit=self._config.max_page_size,
        )

    def _document_traversal(
        self, kind: RelationshipKind, foreign_key: str, access: ItemAccess
    ) -> Tuple[DataOperation, ResultShape]:
        identifier: str = self._config.identifier_field
        match kind:
            case RelationshipKind.HAS_MANY:
                return (
                    QueryIndex(
                        index_name=index_name_for(foreign_key),
                        partition_key=foreign_key,
                        value_expression=f"$ctx.source.{identifier}",
                        page=self._page(),
                    ),
                    RecordList(source=PageItems(), access=access),
                )
            case RelationshipKind.BELONGS_TO:
                return (
                    GetItem(key_field=identifier, key_expression=f"$ctx.source.{foreign_key}"),
                    SingleRecord(source=ContextResult(), access=access),
                )
            case RelationshipKind.HAS_ONE:
                return (
                    QueryIndex(
                        index_name=index_name_for(foreign_key),
                        partition_key=foreign_key,
                        value_expression=f"$ctx.source.{identifier}",
                    ),
                    SingleRecord(source=FirstPageItem(), access=access),
                )
        raise GenerationError(f"Unsupported relationship kind '{kind}'.")

    def _relational_traversal(
        self,
        kind: RelationshipKind,
        target: ModelDefinition,
        foreign_key: str,
        access: ItemAccess,
    ) -> Tuple[DataOperation, ResultShape]:
        table: str = table_name_for(target.name)
        identifier: str = self._config.identifier_field
        match kind:
            case RelationshipKind.HAS_MANY:
                return (
                    SqlStatements(
                        statements=(
                            f"SELECT * FROM {table} WHERE {foreign_key} = :{foreign_key} "
                            "LIMIT :limit OFFSET :offset",
                        ),
                        variables=(
                            SqlVariable(f":{foreign_key}", f"$ctx.source.{identifier}"),
                            SqlVariable(":limit", "$limit"),
                            SqlVariable(":offset", "$offset"),
                        ),
                        page=self._page(),
                    ),
                    RecordList(source=SqlRows(0), access=access),
                )
            case RelationshipKind.BELONGS_TO:
                return (
                    SqlStatements(
                        statements=(f"SELECT * FROM {table} WHERE {identifier} = :{identifier}",),
                        variables=(
                            SqlVariable(f":{identifier}", f"$ctx.source.{foreign_key}"),
                        ),
                    ),
                    SingleRecord(source=SqlRow(0), access=access),
                )
            case RelationshipKind.HAS_ONE:
                return (
                    SqlStatements(
                        statements=(
                            f"SELECT * FROM {table} WHERE {foreign_key} = :{foreign_key} LIMIT 1",
                        ),
                        variables=(
                            SqlVariable(f":{foreign_key}", f"$ctx.source.{identifier}"),
                        ),
                    ),
                    SingleRecord(source=SqlRow(0), access=access),
                )
        raise GenerationError(f"Unsupported relationship kind '{kind}'.")


__all__: List[str] = [
    "RelationshipIssue",
    "RelationshipPlanner",
    "resolve_foreign_key",
    "index_name_for",
]

logger.debug("resolvergen.relationships loaded — %d public symbols.", len(__all__))
