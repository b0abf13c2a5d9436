# File: resolvergen/models.py
"""
NexaFlow ResolverGen - Core Data Models
========================================
Pydantic V2 models describing the declarative model definitions that feed
the compiler, the compilation configuration, and the artifacts the compiler
hands to the provisioning layer.

Pipeline: Model Files → Validation → Template Compilation → Schema Assembly
→ Export.

Model files use camelCase keys (``dataSource``, ``accessControl``,
``isOwner`` ...).  Every field below carries an alias for its camelCase
spelling and ``populate_by_name`` lets Python callers use snake_case.
Definitions are frozen: a model set is an immutable snapshot for the whole
compilation run.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen.models")

# ---------------------------------------------------------------------------
# Enums — closed sets used across the entire project
# ---------------------------------------------------------------------------


class ScalarKind(str, Enum):
    """Scalar kinds a property may carry."""

    IDENTIFIER = "identifier"
    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    OPAQUE = "opaque"

    @property
    def idl_name(self) -> str:
        """GraphQL scalar emitted for this kind."""
        return _KIND_TO_IDL[self]

    @property
    def sql_type_hint(self) -> Optional[str]:
        """Data API ``typeHint`` needed to bind a value of this kind, if any."""
        return _KIND_TO_SQL_HINT.get(self)


_KIND_TO_IDL: Dict[ScalarKind, str] = {
    ScalarKind.IDENTIFIER: "ID",
    ScalarKind.TEXT: "String",
    ScalarKind.INTEGER: "Int",
    ScalarKind.FLOAT: "Float",
    ScalarKind.BOOLEAN: "Boolean",
    ScalarKind.TIMESTAMP: "AWSDateTime",
    ScalarKind.OPAQUE: "AWSJSON",
}

_KIND_TO_SQL_HINT: Dict[ScalarKind, str] = {
    ScalarKind.TIMESTAMP: "TIMESTAMP",
    ScalarKind.OPAQUE: "JSON",
}

# IDL spellings accepted in model files.  The AWS text-like scalars keep
# their own name in the generated schema but behave as text everywhere else.
_IDL_TO_KIND: Dict[str, ScalarKind] = {
    "ID": ScalarKind.IDENTIFIER,
    "String": ScalarKind.TEXT,
    "Int": ScalarKind.INTEGER,
    "Float": ScalarKind.FLOAT,
    "Boolean": ScalarKind.BOOLEAN,
    "AWSDateTime": ScalarKind.TIMESTAMP,
    "AWSJSON": ScalarKind.OPAQUE,
    "AWSEmail": ScalarKind.TEXT,
    "AWSURL": ScalarKind.TEXT,
    "AWSPhone": ScalarKind.TEXT,
    "AWSIPAddress": ScalarKind.TEXT,
}

_TEXT_LIKE_SCALARS = frozenset({"AWSEmail", "AWSURL", "AWSPhone", "AWSIPAddress"})


class Operation(str, Enum):
    """Operations an access rule can name."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class AccessScope(str, Enum):
    """Whether an authorization decision covers one record or a page."""

    ITEM = "item"
    COLLECTION = "collection"


class ResolverField(str, Enum):
    """The five root fields generated for every model."""

    GET = "get"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def operation(self) -> Operation:
        """Access-rule operation this field is authorized against."""
        if self in (ResolverField.GET, ResolverField.LIST):
            return Operation.READ
        return Operation(self.value)

    @property
    def scope(self) -> AccessScope:
        return AccessScope.COLLECTION if self is ResolverField.LIST else AccessScope.ITEM

    @property
    def parent_type(self) -> str:
        return "Query" if self.operation is Operation.READ else "Mutation"


class DefaultPolicy(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class RelationshipKind(str, Enum):
    """Relationship cardinalities."""

    HAS_MANY = "hasMany"
    BELONGS_TO = "belongsTo"
    HAS_ONE = "hasOne"


class DatabaseEngine(str, Enum):
    NOSQL = "nosql"
    SQL = "sql"


class EngineKind(str, Enum):
    """Backing engine a model's main data operations run against."""

    DOCUMENT = "document"
    RELATIONAL = "relational"
    HTTP_API = "http_api"
    QUEUED_API = "queued_api"


class HookPhase(str, Enum):
    BEFORE = "before"
    AFTER = "after"


class StageKind(str, Enum):
    """Role of one function inside a pipeline resolver."""

    BEFORE_HOOK = "before_hook"
    PRE_FETCH = "pre_fetch"
    MAIN = "main"
    AFTER_HOOK = "after_hook"


class BindingKind(str, Enum):
    """Kind of data source a template pair is attached to."""

    DOCUMENT_TABLE = "document_table"
    RELATIONAL_CLUSTER = "relational_cluster"
    HTTP_ENDPOINT = "http_endpoint"
    REQUEST_QUEUE = "request_queue"
    FUNCTION = "function"
    NONE = "none"


# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    frozen=True,
    extra="forbid",
)

_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _require_identifier(value: str, what: str) -> str:
    if not _IDENTIFIER_RE.match(value):
        raise ValueError(f"{what} '{value}' is not identifier-safe.")
    return value


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class PropertyDefinition(BaseModel):
    """
    A single property of a model.

    ``type`` in a model file may be a kind name (``text``) or an IDL spelling
    (``String``).  AWS text-like scalars such as ``AWSEmail`` are kept in
    ``scalar`` so the schema shows them verbatim.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Property name.")
    kind: ScalarKind = Field(..., description="Scalar kind.")
    scalar: Optional[str] = Field(
        default=None, description="Explicit IDL scalar overriding the kind's default."
    )
    required: bool = Field(default=False, description="Non-null in the schema.")
    default: Any = Field(
        default=None, alias="defaultValue", description="Informational default value."
    )
    is_owner: bool = Field(
        default=False, alias="isOwner", description="Row-level ownership field."
    )

    @model_validator(mode="before")
    @classmethod
    def _normalise_type(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "type" not in data:
            return data
        data = dict(data)
        raw_type = data.pop("type")
        if not isinstance(raw_type, str):
            raise ValueError(
                f"Property type must be a scalar name, got {type(raw_type).__name__}."
            )
        if raw_type in _IDL_TO_KIND:
            data.setdefault("kind", _IDL_TO_KIND[raw_type])
            if raw_type in _TEXT_LIKE_SCALARS:
                data.setdefault("scalar", raw_type)
        else:
            data.setdefault("kind", raw_type)
        return data

    @field_validator("name")
    @classmethod
    def _name_is_identifier(cls, v: str) -> str:
        return _require_identifier(v, "Property name")

    @computed_field  # type: ignore[misc]
    @property
    def idl_type(self) -> str:
        return self.scalar or self.kind.idl_name

    def __repr__(self) -> str:
        owner_flag: str = " OWNER" if self.is_owner else ""
        req_flag: str = "!" if self.required else ""
        return f"<Property {self.name}: {self.idl_type}{req_flag}{owner_flag}>"


# ---------------------------------------------------------------------------
# Data sources
# ---------------------------------------------------------------------------


class RelationalCluster(BaseModel):
    """Shared relational cluster reached through the data API."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Cluster resource name.")
    secret_ref: str = Field(
        ..., min_length=1, alias="secretRef", description="Credential secret reference."
    )
    database: str = Field(..., min_length=1, description="Database name.")


class RateLimitPolicy(BaseModel):
    """A request ceiling within a rolling time window."""

    model_config = _SHARED_CONFIG

    limit: int = Field(..., ge=1, description="Requests allowed per window.")
    frequency_in_seconds: int = Field(
        ..., ge=1, alias="frequencyInSeconds", description="Window length."
    )


class DatabaseSource(BaseModel):
    model_config = _SHARED_CONFIG

    type: Literal["database"] = "database"
    engine: DatabaseEngine = Field(..., description="Document (nosql) or relational (sql).")
    cluster: Optional[RelationalCluster] = Field(
        default=None, description="Shared cluster declaration (relational only)."
    )

    @model_validator(mode="after")
    def _cluster_only_for_sql(self) -> "DatabaseSource":
        if self.cluster is not None and self.engine is not DatabaseEngine.SQL:
            raise ValueError("Only a relational ('sql') source may declare a cluster.")
        return self


class ThirdPartyApiSource(BaseModel):
    model_config = _SHARED_CONFIG

    type: Literal["thirdPartyApi"] = "thirdPartyApi"
    endpoint: str = Field(..., min_length=1, description="Base URL of the external API.")
    limits: Optional[RateLimitPolicy] = Field(
        default=None, description="Rate-limit policy; requests are queued when set."
    )


DataSourceDefinition = Annotated[
    Union[DatabaseSource, ThirdPartyApiSource],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------


class AccessRule(BaseModel):
    """One additive grant: an operation plus groups, ownership, or both."""

    model_config = _SHARED_CONFIG

    allow: Operation = Field(..., description="Operation this rule grants.")
    groups: List[str] = Field(default_factory=list, description="Groups granted access.")
    owner: bool = Field(default=False, description="Grant the record's owner access.")

    @model_validator(mode="after")
    def _has_a_grant(self) -> "AccessRule":
        if not self.groups and not self.owner:
            raise ValueError(
                f"Access rule for '{self.allow.value}' names neither groups nor owner."
            )
        return self

    def __repr__(self) -> str:
        return f"<AccessRule {self.allow.value} groups={self.groups} owner={self.owner}>"


class AccessControlDefinition(BaseModel):
    model_config = _SHARED_CONFIG

    default: DefaultPolicy = Field(
        default=DefaultPolicy.DENY, description="Policy when no rule names an operation."
    )
    rules: List[AccessRule] = Field(default_factory=list, description="Ordered rules.")

    def rules_for(self, operation: Operation) -> List[AccessRule]:
        return [r for r in self.rules if r.allow is operation]

    def has_owner_rule(self, operation: Operation) -> bool:
        return any(r.owner for r in self.rules_for(operation))


# ---------------------------------------------------------------------------
# Relationships & hooks
# ---------------------------------------------------------------------------


class RelationshipDefinition(BaseModel):
    model_config = _SHARED_CONFIG

    type: RelationshipKind = Field(..., description="Cardinality.")
    target: str = Field(..., min_length=1, description="Target model name.")
    foreign_key: Optional[str] = Field(
        default=None, alias="foreignKey", description="Explicit foreign-key property."
    )

    def __repr__(self) -> str:
        fk: str = f" via {self.foreign_key}" if self.foreign_key else ""
        return f"<Relationship {self.type.value} → {self.target}{fk}>"


class HooksDefinition(BaseModel):
    """Names of externally executed functions run around data operations."""

    model_config = _SHARED_CONFIG

    before_create: Optional[str] = Field(default=None, alias="beforeCreate")
    after_create: Optional[str] = Field(default=None, alias="afterCreate")
    before_update: Optional[str] = Field(default=None, alias="beforeUpdate")
    after_update: Optional[str] = Field(default=None, alias="afterUpdate")
    before_delete: Optional[str] = Field(default=None, alias="beforeDelete")
    after_delete: Optional[str] = Field(default=None, alias="afterDelete")
    before_read: Optional[str] = Field(default=None, alias="beforeRead")

    def hook_for(self, phase: HookPhase, operation: Operation) -> Optional[str]:
        """Function name for ``phase`` of ``operation``; reads have no after hook."""
        return getattr(self, f"{phase.value}_{operation.value}", None)

    @property
    def declared(self) -> Dict[str, str]:
        """camelCase hook name → function name, for every declared hook."""
        out: Dict[str, str] = {}
        for name, info in type(self).model_fields.items():
            value = getattr(self, name)
            if value:
                out[info.alias or name] = value
        return out


# ---------------------------------------------------------------------------
# Model definition
# ---------------------------------------------------------------------------


class ModelDefinition(BaseModel):
    """
    The unit of compilation: one entity's shape, storage engine, access
    rules, relationships and hooks.

    ``properties`` and ``relationships`` keep declaration order; the
    property name is injected from the mapping key.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Model (type) name.")
    properties: Dict[str, PropertyDefinition] = Field(
        ..., min_length=1, description="Ordered properties."
    )
    data_source: DataSourceDefinition = Field(..., alias="dataSource")
    access_control: Optional[AccessControlDefinition] = Field(
        default=None, alias="accessControl"
    )
    relationships: Dict[str, RelationshipDefinition] = Field(default_factory=dict)
    hooks: HooksDefinition = Field(default_factory=HooksDefinition)
    enable_subscriptions: bool = Field(default=False, alias="enableSubscriptions")
    source: Optional[str] = Field(
        default=None, description="File the definition was loaded from.", exclude=True
    )

    @model_validator(mode="before")
    @classmethod
    def _inject_property_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        props = data.get("properties")
        if isinstance(props, dict):
            data = dict(data)
            data["properties"] = {
                key: ({**value, "name": key} if isinstance(value, dict) else value)
                for key, value in props.items()
            }
        # Model files may spell optional sections as explicit nulls.
        for optional_key in ("hooks", "relationships"):
            if optional_key in data and data[optional_key] is None:
                data = {k: v for k, v in data.items() if k != optional_key}
        return data

    @field_validator("name")
    @classmethod
    def _name_is_identifier(cls, v: str) -> str:
        return _require_identifier(v, "Model name")

    @field_validator("relationships")
    @classmethod
    def _relationship_fields_are_identifiers(
        cls, v: Dict[str, RelationshipDefinition]
    ) -> Dict[str, RelationshipDefinition]:
        for field_name in v:
            _require_identifier(field_name, "Relationship field")
        return v

    @model_validator(mode="after")
    def _single_owner(self) -> "ModelDefinition":
        owners: List[str] = [p.name for p in self.properties.values() if p.is_owner]
        if len(owners) > 1:
            raise ValueError(
                f"Model '{self.name}' marks more than one owner property: {owners}"
            )
        return self

    # -- Derived helpers ----------------------------------------------------

    @property
    def owner_field(self) -> Optional[str]:
        for prop in self.properties.values():
            if prop.is_owner:
                return prop.name
        return None

    @property
    def engine(self) -> EngineKind:
        source = self.data_source
        if isinstance(source, DatabaseSource):
            if source.engine is DatabaseEngine.SQL:
                return EngineKind.RELATIONAL
            return EngineKind.DOCUMENT
        if source.limits is not None:
            return EngineKind.QUEUED_API
        return EngineKind.HTTP_API

    @property
    def is_rate_limited(self) -> bool:
        return self.engine is EngineKind.QUEUED_API

    @property
    def timestamp_fields(self) -> List[str]:
        """Properties of kind ``timestamp``, in declaration order."""
        return [
            prop.name
            for prop in self.properties.values()
            if prop.kind is ScalarKind.TIMESTAMP
        ]

    def get_property(self, name: str) -> Optional[PropertyDefinition]:
        return self.properties.get(name)

    def __repr__(self) -> str:
        return (
            f"<Model {self.name} ({len(self.properties)} props, "
            f"{len(self.relationships)} rels, {self.engine.value})>"
        )


SeedData = Dict[str, List[Dict[str, Any]]]

# Suffix of the caller-time-zone copy of a timestamp field
LOCAL_TIME_SUFFIX: str = "_local"


# ---------------------------------------------------------------------------
# Compilation configuration
# ---------------------------------------------------------------------------


DEFAULT_SCALARS: List[str] = [
    "AWSDateTime",
    "AWSJSON",
    "AWSEmail",
    "AWSURL",
    "AWSPhone",
    "AWSIPAddress",
]


class CompilationConfig(BaseModel):
    """
    Settings that shape the generated artifacts.

    One instance is shared, read-only, by every generator in a run.
    """

    model_config = _SHARED_CONFIG

    stage: str = Field(default="dev", min_length=1, description="Deployment stage label.")
    debug_instrumentation: bool = Field(
        default=False,
        description="Emit x-debug header guarded stash writes in auth fragments.",
    )
    default_page_size: int = Field(default=20, ge=1, le=1000)
    max_page_size: int = Field(default=100, ge=1, le=10000)
    identifier_field: str = Field(default="id", min_length=1)
    created_at_field: str = Field(default="createdAt", min_length=1)
    updated_at_field: str = Field(default="updatedAt", min_length=1)
    groups_claim: str = Field(
        default="cognito:groups", min_length=1, description="Identity claim holding groups."
    )
    scalars: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SCALARS),
        description="Scalar declarations emitted at the top of the schema.",
    )
    template_version: str = Field(default="2018-05-29", description="Mapping template version.")
    relational_cluster: Optional[RelationalCluster] = Field(
        default=None, description="Cluster used when no relational source declares one."
    )
    queue_url_stash_key: str = Field(
        default="queueUrl", min_length=1, description="Stash key holding the request queue URL."
    )
    job_results_table: str = Field(
        default="JobResults", min_length=1, description="Table holding async job results."
    )
    timezone_header: Optional[str] = Field(
        default="x-user-timezone",
        description=(
            "Request header carrying the caller's time zone.  When set, "
            "AWSDateTime fields also come back as <field>_local."
        ),
    )

    @model_validator(mode="after")
    def _validate_page_sizes(self) -> "CompilationConfig":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) must be "
                f"<= max_page_size ({self.max_page_size})."
            )
        return self

    @property
    def managed_timestamps(self) -> List[str]:
        return [self.created_at_field, self.updated_at_field]


# ---------------------------------------------------------------------------
# Compiled artifacts
# ---------------------------------------------------------------------------


class TemplatePair(BaseModel):
    """A request/response mapping template pair."""

    model_config = _SHARED_CONFIG

    request: str = Field(..., description="Request mapping template.")
    response: str = Field(..., description="Response mapping template.")


class DataSourceBinding(BaseModel):
    """Which store or function a template pair runs against."""

    model_config = _SHARED_CONFIG

    kind: BindingKind
    name: str = Field(..., min_length=1, description="Logical data source name.")
    details: Dict[str, str] = Field(default_factory=dict)


class PipelineStage(BaseModel):
    """One function of a pipeline resolver."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Function name, unique per API.")
    kind: StageKind
    binding: DataSourceBinding
    templates: TemplatePair


class OperationResolver(BaseModel):
    """
    Resolver for one root field.

    A unit resolver carries ``binding`` and no stages.  A pipeline resolver
    carries ordered ``stages``; its own ``templates`` run before the first
    and after the last stage.
    """

    model_config = _SHARED_CONFIG

    type_name: str
    field_name: str
    field: ResolverField
    templates: TemplatePair
    binding: Optional[DataSourceBinding] = None
    stages: List[PipelineStage] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def is_pipeline(self) -> bool:
        return bool(self.stages)

    def __repr__(self) -> str:
        shape: str = f"pipeline[{len(self.stages)}]" if self.stages else "unit"
        return f"<OperationResolver {self.type_name}.{self.field_name} {shape}>"


class SecondaryIndexSpec(BaseModel):
    """A foreign-key keyed index planned on a model's document table."""

    model_config = _SHARED_CONFIG

    index_name: str = Field(..., alias="indexName")
    partition_key: str = Field(..., alias="partitionKey")
    sort_key: Optional[str] = Field(default=None, alias="sortKey")


class RelationshipResolver(BaseModel):
    """Resolver for a relationship field, run against the target's engine."""

    model_config = _SHARED_CONFIG

    type_name: str
    field_name: str
    relationship: RelationshipDefinition
    target_model: str
    foreign_key: str
    binding: DataSourceBinding
    templates: TemplatePair

    @property
    def request_template(self) -> str:
        return self.templates.request

    @property
    def response_template(self) -> str:
        return self.templates.response


class SubscriptionResolver(BaseModel):
    """Resolver attached to a subscription or async-result lookup field."""

    model_config = _SHARED_CONFIG

    type_name: str
    field_name: str
    binding: DataSourceBinding
    templates: TemplatePair
    mutations: List[str] = Field(default_factory=list)


class CompiledModel(BaseModel):
    """Everything the compiler produced for one model."""

    model_config = _SHARED_CONFIG

    name: str
    resolvers: List[OperationResolver] = Field(default_factory=list)
    relationship_resolvers: List[RelationshipResolver] = Field(default_factory=list)
    subscriptions: List[SubscriptionResolver] = Field(default_factory=list)
    job_result_lookup: Optional[SubscriptionResolver] = None
    indexes: List[SecondaryIndexSpec] = Field(default_factory=list)

    def resolver(self, field: ResolverField) -> OperationResolver:
        for resolver in self.resolvers:
            if resolver.field is field:
                return resolver
        raise KeyError(f"No resolver for {field.value} on {self.name}")

    def __repr__(self) -> str:
        return (
            f"<CompiledModel {self.name} {len(self.resolvers)} resolvers, "
            f"{len(self.relationship_resolvers)} relationship resolvers>"
        )


class CompilationResult(BaseModel):
    """Output of one compilation run, consumed by the exporter."""

    model_config = _SHARED_CONFIG

    schema_sdl: str
    models: List[CompiledModel] = Field(default_factory=list)
    shared_resolvers: List[SubscriptionResolver] = Field(
        default_factory=list, description="Resolvers not owned by a single model."
    )
    index_plan: Dict[str, List[SecondaryIndexSpec]] = Field(default_factory=dict)

    def model(self, name: str) -> CompiledModel:
        for compiled in self.models:
            if compiled.name == name:
                return compiled
        raise KeyError(f"Model '{name}' was not compiled")

    def __repr__(self) -> str:
        return f"<CompilationResult {len(self.models)} models>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ScalarKind",
    "Operation",
    "AccessScope",
    "ResolverField",
    "DefaultPolicy",
    "RelationshipKind",
    "DatabaseEngine",
    "EngineKind",
    "HookPhase",
    "StageKind",
    "BindingKind",
    "PropertyDefinition",
    "RelationalCluster",
    "RateLimitPolicy",
    "DatabaseSource",
    "ThirdPartyApiSource",
    "DataSourceDefinition",
    "AccessRule",
    "AccessControlDefinition",
    "RelationshipDefinition",
    "HooksDefinition",
    "ModelDefinition",
    "SeedData",
    "LOCAL_TIME_SUFFIX",
    "DEFAULT_SCALARS",
    "CompilationConfig",
    "TemplatePair",
    "DataSourceBinding",
    "PipelineStage",
    "OperationResolver",
    "SecondaryIndexSpec",
    "RelationshipResolver",
    "SubscriptionResolver",
    "CompiledModel",
    "CompilationResult",
]

logger.debug("resolvergen.models loaded — %d public symbols.", len(__all__))
