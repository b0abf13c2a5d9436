# File: resolvergen/schema.py
"""
NexaFlow ResolverGen - Schema Assembler
========================================
Builds the GraphQL IDL document for a model set.

The output is a pure function of the model set: models are sorted by name
before rendering, so re-running on the same set (in any order) yields
byte-identical text.  The provisioning layer hashes this document to decide
whether a redeployment is needed.

Block order:
    1. scalar declarations
    2. per model: ``type``, ``<Model>Connection`` (not for rate-limited
       models), ``Create/Update/Delete<Model>Input``
    3. ``Query``, ``Mutation``
    4. ``Subscription`` and ``JobResult``, only when some model enables
       subscriptions or declares a rate-limited source
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from resolvergen.models import (
    CompilationConfig,
    EngineKind,
    LOCAL_TIME_SUFFIX,
    ModelDefinition,
    PropertyDefinition,
    ResolverField,
)
from resolvergen.relationships import RelationshipPlanner
from resolvergen.templates import (
    JOB_COMPLETED_FIELD,
    PUBLISH_JOB_RESULT_FIELD,
    job_result_field_name,
    root_field_name,
    subscription_field_name,
)
from resolvergen.utils import indent_lines

logger: logging.Logger = logging.getLogger("resolvergen.schema")

JOB_RESULT_TYPE: str = "JobResult"

_JOB_RESULT_FIELDS: List[str] = [
    "requestId: ID!",
    "status: String!",
    "result: AWSJSON",
    "error: String",
    "completedAt: AWSDateTime",
]

_STORED_ENGINES: Tuple[EngineKind, ...] = (EngineKind.DOCUMENT, EngineKind.RELATIONAL)


def connection_type_name(model_name: str) -> str:
    return f"{model_name}Connection"


def _block(header: str, body: Sequence[str]) -> str:
    return "\n".join([f"{header} {{", *indent_lines(body), "}"])


class SchemaAssembler:
    """
    Assembles the IDL document.

    Usage::

        sdl = SchemaAssembler(config).assemble(models)
    """

    def __init__(self, config: Optional[CompilationConfig] = None) -> None:
        self._config: CompilationConfig = config or CompilationConfig()

    def assemble(self, models: Sequence[ModelDefinition]) -> str:
        ordered: List[ModelDefinition] = sorted(models, key=lambda m: m.name)
        planner = RelationshipPlanner(ordered, self._config)
        blocks: List[str] = []

        if self._config.scalars:
            blocks.append("\n".join(f"scalar {name}" for name in self._config.scalars))

        for model in ordered:
            blocks.append(self.type_block(model, planner.relationship_fields(model)))
            if not model.is_rate_limited:
                blocks.append(self.connection_block(model))
            blocks.append(self.create_input(model))
            blocks.append(self.update_input(model))
            blocks.append(self.delete_input(model))

        if ordered:
            blocks.append(_block("type Query", self._query_fields(ordered)))
            blocks.append(_block("type Mutation", self._mutation_fields(ordered)))

        subscription_fields: List[str] = self._subscription_fields(ordered)
        if subscription_fields:
            blocks.append(_block("type Subscription", subscription_fields))
        if any(m.is_rate_limited for m in ordered):
            blocks.append(_block(f"type {JOB_RESULT_TYPE}", _JOB_RESULT_FIELDS))

        sdl: str = "\n\n".join(blocks) + "\n"
        logger.debug("Assembled schema for %d model(s): %d block(s).", len(ordered), len(blocks))
        return sdl

    # -----------------------------------------------------------------
    # Model blocks
    # -----------------------------------------------------------------

    def type_block(self, model: ModelDefinition, relationship_fields: Sequence[str] = ()) -> str:
        lines: List[str] = [self._field(prop) for prop in model.properties.values()]
        if self._config.timezone_header and model.engine in _STORED_ENGINES:
            lines.extend(
                f"{name}{LOCAL_TIME_SUFFIX}: AWSDateTime" for name in model.timestamp_fields
            )
        lines.extend(relationship_fields)
        return _block(f"type {model.name}", lines)

    @staticmethod
    def connection_block(model: ModelDefinition) -> str:
        """One page of ``model`` plus the token for the next one."""
        return _block(
            f"type {connection_type_name(model.name)}",
            [f"items: [{model.name}]", "nextToken: String"],
        )

    def create_input(self, model: ModelDefinition) -> str:
        """Excludes the identifier, the managed timestamps and the server-stamped owner."""
        excluded = {
            self._config.identifier_field,
            *self._config.managed_timestamps,
        }
        if model.owner_field:
            excluded.add(model.owner_field)
        lines: List[str] = [
            self._field(prop)
            for prop in model.properties.values()
            if prop.name not in excluded
        ]
        return _block(f"input Create{model.name}Input", lines)

    def update_input(self, model: ModelDefinition) -> str:
        """Requires the identifier; every other non-timestamp property is optional."""
        identifier: str = self._config.identifier_field
        excluded = {identifier, *self._config.managed_timestamps}
        lines: List[str] = [f"{identifier}: ID!"]
        lines.extend(
            self._field(prop, optional=True)
            for prop in model.properties.values()
            if prop.name not in excluded
        )
        return _block(f"input Update{model.name}Input", lines)

    def delete_input(self, model: ModelDefinition) -> str:
        return _block(f"input Delete{model.name}Input", [f"{self._config.identifier_field}: ID!"])

    @staticmethod
    def _field(prop: PropertyDefinition, optional: bool = False) -> str:
        bang: str = "!" if prop.required and not optional else ""
        return f"{prop.name}: {prop.idl_type}{bang}"

    # -----------------------------------------------------------------
    # Root blocks
    # -----------------------------------------------------------------

    @staticmethod
    def _return_type(model: ModelDefinition) -> str:
        return JOB_RESULT_TYPE if model.is_rate_limited else model.name

    def _query_fields(self, models: Sequence[ModelDefinition]) -> List[str]:
        identifier: str = self._config.identifier_field
        lines: List[str] = []
        for model in models:
            result: str = self._return_type(model)
            list_result: str = (
                result if model.is_rate_limited else connection_type_name(model.name)
            )
            lines.append(f"{root_field_name(model.name, ResolverField.GET)}({identifier}: ID!): {result}")
            lines.append(
                f"{root_field_name(model.name, ResolverField.LIST)}"
                f"(limit: Int, nextToken: String): {list_result}"
            )
            if model.is_rate_limited:
                lines.append(f"{job_result_field_name(model.name)}(requestId: ID!): {JOB_RESULT_TYPE}")
        return lines

    def _mutation_fields(self, models: Sequence[ModelDefinition]) -> List[str]:
        lines: List[str] = []
        for model in models:
            result: str = self._return_type(model)
            for field, verb in (
                (ResolverField.CREATE, "Create"),
                (ResolverField.UPDATE, "Update"),
                (ResolverField.DELETE, "Delete"),
            ):
                lines.append(
                    f"{root_field_name(model.name, field)}"
                    f"(input: {verb}{model.name}Input!): {result}"
                )
        if any(m.is_rate_limited for m in models):
            lines.append(
                f"{PUBLISH_JOB_RESULT_FIELD}(requestId: ID!, status: String!, result: AWSJSON, "
                f"error: String, completedAt: AWSDateTime): {JOB_RESULT_TYPE} @aws_iam"
            )
        return lines

    def _subscription_fields(self, models: Sequence[ModelDefinition]) -> List[str]:
        lines: List[str] = []
        for model in models:
            if not model.enable_subscriptions:
                continue
            result: str = self._return_type(model)
            for field in (ResolverField.CREATE, ResolverField.UPDATE, ResolverField.DELETE):
                lines.append(
                    f"{subscription_field_name(model.name, field)}: {result} "
                    f'@aws_subscribe(mutations: ["{root_field_name(model.name, field)}"])'
                )
        if any(m.is_rate_limited for m in models):
            lines.append(
                f"{JOB_COMPLETED_FIELD}(requestId: ID!): {JOB_RESULT_TYPE} "
                f'@aws_subscribe(mutations: ["{PUBLISH_JOB_RESULT_FIELD}"])'
            )
        return lines


__all__: List[str] = ["JOB_RESULT_TYPE", "SchemaAssembler", "connection_type_name"]

logger.debug("resolvergen.schema loaded — %d public symbols.", len(__all__))
