# File: resolvergen/templates.py
"""
NexaFlow ResolverGen - Template Compiler
=========================================
Turns one ``ModelDefinition`` into a ``CompiledModel``: a resolver per root
field (get, list, create, update, delete), the relationship resolvers, the
subscription resolvers and, for rate-limited sources, the job-result lookup.

Per root field::

    no hooks, no ownership pre-fetch  →  unit resolver (one template pair)
    otherwise                         →  pipeline resolver:
        before-hook? → pre-fetch? → main → after-hook?

The main stage branches on the engine:

    document    GetItem / Scan / PutItem / conditional UpdateItem / DeleteItem
    relational  parameterized statements against the shared cluster
    http_api    direct HTTP call to the third-party endpoint
    queued_api  enqueue + immediate PENDING acknowledgement

In a pipeline, authorization runs once, in the resolver-level request
template, so each operation makes exactly one decision.  Ownership-gated
update/delete read the record twice: once in the pre-fetch stage, and again
through the owner condition of the write itself.

Every plan is built as IR (``resolvergen.ir``) and only turned into text by
``VtlRenderer`` at the end.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from resolvergen.authorization import AuthorizationWeaver
from resolvergen.bindings import (
    NONE_BINDING,
    binding_for,
    function_binding,
    job_results_binding,
)
from resolvergen.context import CompilationContext
from resolvergen.errors import GenerationError
from resolvergen.ir import (
    OWNERSHIP_CONFIRMED,
    Assignment,
    AuthCheck,
    ContextResult,
    DataOperation,
    DeleteItem,
    EmptyFragment,
    Enqueue,
    GetItem,
    HookOutcome,
    HttpBody,
    HttpBodyItems,
    HttpRequest,
    InvokeHook,
    NoOp,
    OwnershipConfirmed,
    OwnershipPreFetch,
    PageBounds,
    PageItems,
    PassThrough,
    PendingAck,
    PutItem,
    RecordList,
    RecordSource,
    RequestPlan,
    ResponsePlan,
    ResultShape,
    ScanItems,
    SingleRecord,
    SqlRow,
    SqlRows,
    SqlStatements,
    SqlVariable,
    SubscriptionAck,
    UpdateItem,
    with_local_times,
)
from resolvergen.models import (
    CompiledModel,
    DataSourceBinding,
    EngineKind,
    HookPhase,
    ModelDefinition,
    Operation,
    OperationResolver,
    PipelineStage,
    ResolverField,
    StageKind,
    SubscriptionResolver,
    TemplatePair,
)
from resolvergen.relationships import RelationshipPlanner
from resolvergen.renderer import VtlRenderer
from resolvergen.utils import table_name_for, to_plural

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen.templates")

# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

_HTTP_METHODS: Dict[ResolverField, str] = {
    ResolverField.GET: "GET",
    ResolverField.LIST: "GET",
    ResolverField.CREATE: "POST",
    ResolverField.UPDATE: "PUT",
    ResolverField.DELETE: "DELETE",
}

_SUBSCRIBED_FIELDS: Tuple[ResolverField, ...] = (
    ResolverField.CREATE,
    ResolverField.UPDATE,
    ResolverField.DELETE,
)

JOB_COMPLETED_FIELD: str = "onJobCompleted"
PUBLISH_JOB_RESULT_FIELD: str = "publishJobResult"


def root_field_name(model_name: str, field: ResolverField) -> str:
    """``getPost``, ``listPosts``, ``createPost`` ..."""
    if field is ResolverField.LIST:
        return f"list{to_plural(model_name)}"
    return f"{field.value}{model_name}"


def subscription_field_name(model_name: str, field: ResolverField) -> str:
    """``onCreatePost``, ``onUpdatePost``, ``onDeletePost``."""
    return f"on{field.value.capitalize()}{model_name}"


def job_result_field_name(model_name: str) -> str:
    return f"get{model_name}JobResult"


# ---------------------------------------------------------------------------
# TemplateCompiler
# ---------------------------------------------------------------------------


class TemplateCompiler:
    """
    Compiles models against one immutable ``CompilationContext``.

    Usage::

        context = CompilationContext.build(models, config)
        compiler = TemplateCompiler(context)
        compiled = [compiler.compile(m) for m in context.models]
    """

    def __init__(self, context: CompilationContext) -> None:
        self._ctx: CompilationContext = context
        self._config = context.config
        self._weaver: AuthorizationWeaver = AuthorizationWeaver(context.config)
        self._renderer: VtlRenderer = VtlRenderer(context.config)
        self._planner: RelationshipPlanner = RelationshipPlanner(
            context.models, context.config
        )
        logger.debug("TemplateCompiler initialised for %d model(s).", len(context.models))

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def compile(self, model: ModelDefinition) -> CompiledModel:
        resolvers: List[OperationResolver] = [
            self.compile_operation(model, field) for field in ResolverField
        ]
        compiled = CompiledModel(
            name=model.name,
            resolvers=resolvers,
            relationship_resolvers=self._planner.plan_resolvers(model),
            subscriptions=self.compile_subscriptions(model),
            job_result_lookup=self.compile_job_result_lookup(model),
            indexes=list(self._ctx.indexes_for(model.name)),
        )
        logger.debug("Compiled %r", compiled)
        return compiled

    def compile_all(self) -> List[CompiledModel]:
        return [self.compile(model) for model in self._ctx.models]

    def compile_operation(
        self, model: ModelDefinition, field: ResolverField
    ) -> OperationResolver:
        """Unit or pipeline resolver for one root field of ``model``."""
        operation: Operation = field.operation
        field_name: str = root_field_name(model.name, field)
        binding: DataSourceBinding = binding_for(model, self._ctx.cluster, self._config)

        auth: AuthCheck = self._weaver.build_check(model, operation, field.scope)
        pre_fetch = self._weaver.build_pre_fetch_check(model, operation)
        if model.is_rate_limited and not isinstance(pre_fetch, EmptyFragment):
            raise GenerationError(
                f"{field_name}: ownership cannot be verified for a queued source."
            )

        # Reads fold the ownership fetch into the main lookup.
        gated: bool = isinstance(pre_fetch, OwnershipPreFetch) and operation in (
            Operation.UPDATE,
            Operation.DELETE,
        )

        main_request, main_response = self._main_plans(model, field, field_name, gated)
        before_hook: Optional[str] = model.hooks.hook_for(HookPhase.BEFORE, operation)
        after_hook: Optional[str] = model.hooks.hook_for(HookPhase.AFTER, operation)

        if not (before_hook or after_hook or gated):
            return OperationResolver(
                type_name=field.parent_type,
                field_name=field_name,
                field=field,
                binding=binding,
                templates=self._pair(
                    RequestPlan(
                        description=main_request.description,
                        operation=main_request.operation,
                        auth=auth,
                        gate=main_request.gate,
                    ),
                    main_response,
                ),
            )

        stages: List[PipelineStage] = []
        if before_hook:
            stages.append(self._hook_stage(model, field_name, operation, HookPhase.BEFORE, before_hook))
        if gated:
            assert isinstance(pre_fetch, OwnershipPreFetch)
            stages.append(self._pre_fetch_stage(model, field_name, pre_fetch, binding))
        stages.append(PipelineStage(
            name=f"{field_name}Main",
            kind=StageKind.MAIN,
            binding=binding,
            templates=self._pair(main_request, main_response),
        ))
        if after_hook:
            stages.append(self._hook_stage(model, field_name, operation, HookPhase.AFTER, after_hook))

        resolver = OperationResolver(
            type_name=field.parent_type,
            field_name=field_name,
            field=field,
            stages=stages,
            templates=self._pair(
                RequestPlan(
                    description=f"{field_name}: authorize once for the whole pipeline",
                    operation=NoOp(),
                    auth=auth,
                ),
                ResponsePlan(description=f"{field_name}: pipeline result", shape=PassThrough()),
            ),
        )
        logger.debug("%s.%s compiled as %r", model.name, field_name, resolver)
        return resolver

    def compile_subscriptions(self, model: ModelDefinition) -> List[SubscriptionResolver]:
        """``onCreate/onUpdate/onDelete<Model>``, only with ``enableSubscriptions``."""
        if not model.enable_subscriptions:
            return []
        auth = self._weaver.build_check(model, Operation.READ, ResolverField.LIST.scope)
        collection_filter = self._weaver.build_collection_filter(model)
        owner_field: Optional[str] = collection_filter.owner_field if collection_filter else None
        subscriptions: List[SubscriptionResolver] = []
        for field in _SUBSCRIBED_FIELDS:
            name: str = subscription_field_name(model.name, field)
            subscriptions.append(SubscriptionResolver(
                type_name="Subscription",
                field_name=name,
                binding=NONE_BINDING,
                mutations=[root_field_name(model.name, field)],
                templates=self._pair(
                    RequestPlan(description=f"{name}: subscribe", operation=NoOp(), auth=auth),
                    ResponsePlan(
                        description=f"{name}: subscription filter",
                        shape=SubscriptionAck(owner_field=owner_field),
                    ),
                ),
            ))
        return subscriptions

    def compile_job_result_lookup(
        self, model: ModelDefinition
    ) -> Optional[SubscriptionResolver]:
        """Lookup of a queued request's result record, for rate-limited sources."""
        if not model.is_rate_limited:
            return None
        name: str = job_result_field_name(model.name)
        return SubscriptionResolver(
            type_name="Query",
            field_name=name,
            binding=job_results_binding(self._config),
            templates=self._pair(
                RequestPlan(
                    description=f"{name}: result record for a queued {model.name} request",
                    operation=GetItem(key_field="requestId", key_expression="$ctx.args.requestId"),
                    auth=self._weaver.build_check(model, Operation.READ),
                ),
                ResponsePlan(
                    description=f"{name}: job result",
                    shape=SingleRecord(source=ContextResult()),
                ),
            ),
        )

    def compile_job_notifications(self) -> List[SubscriptionResolver]:
        """
        The worker's ``publishJobResult`` mutation and the ``onJobCompleted``
        subscription it triggers.  Emitted once per model set.
        """
        if not self._ctx.has_rate_limited_source:
            return []
        return [
            SubscriptionResolver(
                type_name="Mutation",
                field_name=PUBLISH_JOB_RESULT_FIELD,
                binding=NONE_BINDING,
                templates=self._pair(
                    RequestPlan(
                        description=f"{PUBLISH_JOB_RESULT_FIELD}: relay a finished job",
                        operation=NoOp(payload_expression="$ctx.args"),
                    ),
                    ResponsePlan(
                        description=f"{PUBLISH_JOB_RESULT_FIELD}: job result",
                        shape=PassThrough(),
                    ),
                ),
            ),
            SubscriptionResolver(
                type_name="Subscription",
                field_name=JOB_COMPLETED_FIELD,
                binding=NONE_BINDING,
                mutations=[PUBLISH_JOB_RESULT_FIELD],
                templates=self._pair(
                    RequestPlan(description=f"{JOB_COMPLETED_FIELD}: subscribe", operation=NoOp()),
                    ResponsePlan(
                        description=f"{JOB_COMPLETED_FIELD}: job result notification",
                        shape=SubscriptionAck(),
                    ),
                ),
            ),
        ]

    # -----------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------

    def _hook_stage(
        self,
        model: ModelDefinition,
        field_name: str,
        operation: Operation,
        phase: HookPhase,
        function_name: str,
    ) -> PipelineStage:
        hook_name: str = f"{phase.value}{operation.value.capitalize()}"
        kind: StageKind = StageKind.BEFORE_HOOK if phase is HookPhase.BEFORE else StageKind.AFTER_HOOK
        return PipelineStage(
            name=f"{field_name}{phase.value.capitalize()}Hook",
            kind=kind,
            binding=function_binding(function_name),
            templates=self._pair(
                RequestPlan(
                    description=f"{field_name}: {hook_name} hook ({function_name})",
                    operation=InvokeHook(
                        hook_name=hook_name,
                        function_name=function_name,
                        model_name=model.name,
                        phase=phase,
                    ),
                ),
                ResponsePlan(
                    description=f"{field_name}: {hook_name} hook result",
                    shape=HookOutcome(stash_key=f"{hook_name}Result", phase=phase),
                ),
            ),
        )

    def _pre_fetch_stage(
        self,
        model: ModelDefinition,
        field_name: str,
        pre_fetch: OwnershipPreFetch,
        binding: DataSourceBinding,
    ) -> PipelineStage:
        fetch, source = self._fetch_by_key(model, pre_fetch.key_expression)
        verification = self._weaver.build_post_fetch_verification(model, pre_fetch.operation)
        return PipelineStage(
            name=f"{field_name}PreFetch",
            kind=StageKind.PRE_FETCH,
            binding=binding,
            templates=self._pair(
                RequestPlan(
                    description=f"{field_name}: fetch the stored record to check its {pre_fetch.owner_field}",
                    operation=fetch,
                ),
                ResponsePlan(
                    description=f"{field_name}: confirm ownership of the stored record",
                    shape=OwnershipConfirmed(source=source, verification=verification),
                ),
            ),
        )

    def _fetch_by_key(
        self, model: ModelDefinition, key_expression: str
    ) -> Tuple[DataOperation, RecordSource]:
        identifier: str = self._config.identifier_field
        match model.engine:
            case EngineKind.DOCUMENT:
                return GetItem(key_field=identifier, key_expression=key_expression), ContextResult()
            case EngineKind.RELATIONAL:
                table: str = table_name_for(model.name)
                return (
                    SqlStatements(
                        statements=(f"SELECT * FROM {table} WHERE {identifier} = :{identifier}",),
                        variables=(SqlVariable(f":{identifier}", key_expression),),
                    ),
                    SqlRow(0),
                )
            case EngineKind.HTTP_API:
                return (
                    HttpRequest(
                        method="GET",
                        resource_path=f"/{table_name_for(model.name)}/{key_expression}",
                    ),
                    HttpBody(),
                )
            case _:
                raise GenerationError(f"Cannot fetch '{model.name}' records by key.")

    # -----------------------------------------------------------------
    # Main stage, by engine
    # -----------------------------------------------------------------

    def _main_plans(
        self,
        model: ModelDefinition,
        field: ResolverField,
        field_name: str,
        gated: bool,
    ) -> Tuple[RequestPlan, ResponsePlan]:
        operation: DataOperation
        shape: ResultShape
        match model.engine:
            case EngineKind.DOCUMENT:
                operation, shape = self._document_main(model, field, gated)
                shape = with_local_times(shape, self._local_time_fields(model))
            case EngineKind.RELATIONAL:
                self._ctx.require_cluster()
                operation, shape = self._relational_main(model, field, gated)
                shape = with_local_times(shape, self._local_time_fields(model))
            case EngineKind.HTTP_API:
                operation, shape = self._http_main(model, field)
            case EngineKind.QUEUED_API:
                operation = Enqueue(
                    operation=field.value,
                    model_name=model.name,
                    queue_url_stash_key=self._config.queue_url_stash_key,
                )
                shape = PendingAck()
            case _:
                raise GenerationError(
                    f"No {field.value} template for engine '{model.engine}' on {model.name}."
                )
        engine: str = model.engine.value
        return (
            RequestPlan(
                description=f"{field_name}: {field.value} {model.name} ({engine})",
                operation=operation,
                gate=OWNERSHIP_CONFIRMED if gated else None,
            ),
            ResponsePlan(description=f"{field_name}: {field.value} result", shape=shape),
        )

    def _page(self) -> PageBounds:
        return PageBounds(
            default_limit=self._config.default_page_size,
            max_limit=self._config.max_page_size,
        )

    def _local_time_fields(self, model: ModelDefinition) -> List[str]:
        return model.timestamp_fields if self._config.timezone_header else []

    def _timestamps(self, model: ModelDefinition) -> Tuple[str, ...]:
        return tuple(name for name in self._config.managed_timestamps if name in model.properties)

    def _writable_fields(self, model: ModelDefinition) -> Tuple[str, ...]:
        managed = {self._config.identifier_field, *self._config.managed_timestamps}
        return tuple(name for name in model.properties if name not in managed)

    def _document_main(
        self, model: ModelDefinition, field: ResolverField, gated: bool
    ) -> Tuple[DataOperation, ResultShape]:
        identifier: str = self._config.identifier_field
        owner_guard: Optional[str] = model.owner_field if gated else None
        match field:
            case ResolverField.GET:
                return (
                    GetItem(key_field=identifier, key_expression=f"$ctx.args.{identifier}"),
                    SingleRecord(
                        source=ContextResult(),
                        verification=self._weaver.build_post_fetch_verification(model, Operation.READ),
                    ),
                )
            case ResolverField.LIST:
                return (
                    ScanItems(page=self._page()),
                    RecordList(
                        source=PageItems(),
                        access=self._weaver.build_collection_filter(model),
                    ),
                )
            case ResolverField.CREATE:
                return (
                    PutItem(key_field=identifier, timestamps=self._timestamps(model)),
                    SingleRecord(source=ContextResult()),
                )
            case ResolverField.UPDATE:
                return (
                    UpdateItem(
                        key_field=identifier,
                        key_expression=f"$ctx.args.input.{identifier}",
                        fields=self._writable_fields(model),
                        updated_at_field=self._config.updated_at_field,
                        owner_guard=owner_guard,
                    ),
                    SingleRecord(source=ContextResult()),
                )
            case ResolverField.DELETE:
                return (
                    DeleteItem(
                        key_field=identifier,
                        key_expression=f"$ctx.args.input.{identifier}",
                        owner_guard=owner_guard,
                    ),
                    SingleRecord(source=ContextResult()),
                )
        raise GenerationError(f"No document template for '{field}'.")

    def _relational_main(
        self, model: ModelDefinition, field: ResolverField, gated: bool
    ) -> Tuple[DataOperation, ResultShape]:
        table: str = table_name_for(model.name)
        identifier: str = self._config.identifier_field
        select_one: str = f"SELECT * FROM {table} WHERE {identifier} = :{identifier}"
        owner_guard: Optional[str] = model.owner_field if gated else None
        guard: str = "$ownerGuard" if owner_guard else ""

        match field:
            case ResolverField.GET:
                return (
                    SqlStatements(
                        statements=(select_one,),
                        variables=(SqlVariable(f":{identifier}", f"$ctx.args.{identifier}"),),
                    ),
                    SingleRecord(
                        source=SqlRow(0),
                        verification=self._weaver.build_post_fetch_verification(model, Operation.READ),
                    ),
                )
            case ResolverField.LIST:
                return (
                    SqlStatements(
                        statements=(f"SELECT * FROM {table} LIMIT :limit OFFSET :offset",),
                        variables=(
                            SqlVariable(":limit", "$limit"),
                            SqlVariable(":offset", "$offset"),
                        ),
                        page=self._page(),
                    ),
                    RecordList(
                        source=SqlRows(0),
                        access=self._weaver.build_collection_filter(model),
                    ),
                )
            case ResolverField.CREATE:
                timestamps = self._timestamps(model)
                columns: List[str] = [identifier, *self._writable_fields(model), *timestamps]
                variables: List[SqlVariable] = [SqlVariable(f":{identifier}", "$id")]
                for name in self._writable_fields(model):
                    variables.append(self._sql_input_variable(model, name))
                for name in timestamps:
                    variables.append(SqlVariable(f":{name}", "$now", "TIMESTAMP"))
                prelude: List[Assignment] = [
                    Assignment("input", "$ctx.args.input"),
                    Assignment("id", "$util.autoId()"),
                ]
                if timestamps:
                    prelude.append(Assignment("now", "$util.time.nowISO8601()"))
                return (
                    SqlStatements(
                        statements=(
                            f"INSERT INTO {table} ({', '.join(columns)}) "
                            f"VALUES ({', '.join(':' + c for c in columns)})",
                            select_one,
                        ),
                        variables=tuple(variables),
                        prelude=tuple(prelude),
                    ),
                    SingleRecord(source=SqlRow(1)),
                )
            case ResolverField.UPDATE:
                assignments: List[str] = [
                    f"{name} = COALESCE(:{name}, {name})" for name in self._writable_fields(model)
                ]
                variables = [SqlVariable(f":{identifier}", f"$input.{identifier}")]
                variables.extend(
                    self._sql_input_variable(model, name) for name in self._writable_fields(model)
                )
                prelude = [Assignment("input", "$ctx.args.input")]
                updated_at: str = self._config.updated_at_field
                if updated_at in model.properties:
                    assignments.append(f"{updated_at} = :{updated_at}")
                    variables.append(SqlVariable(f":{updated_at}", "$now", "TIMESTAMP"))
                    prelude.append(Assignment("now", "$util.time.nowISO8601()"))
                return (
                    SqlStatements(
                        statements=(
                            f"UPDATE {table} SET {', '.join(assignments)} "
                            f"WHERE {identifier} = :{identifier}{guard}",
                            select_one,
                        ),
                        variables=tuple(variables),
                        prelude=tuple(prelude),
                        owner_guard=owner_guard,
                    ),
                    SingleRecord(source=SqlRow(1)),
                )
            case ResolverField.DELETE:
                return (
                    SqlStatements(
                        statements=(
                            f"{select_one}{guard}",
                            f"DELETE FROM {table} WHERE {identifier} = :{identifier}{guard}",
                        ),
                        variables=(
                            SqlVariable(f":{identifier}", f"$ctx.args.input.{identifier}"),
                        ),
                        owner_guard=owner_guard,
                    ),
                    SingleRecord(source=SqlRow(0)),
                )
        raise GenerationError(f"No relational template for '{field}'.")

    @staticmethod
    def _sql_input_variable(model: ModelDefinition, name: str) -> SqlVariable:
        prop = model.properties[name]
        return SqlVariable(f":{name}", f"$input.{name}", prop.kind.sql_type_hint)

    def _http_main(
        self, model: ModelDefinition, field: ResolverField
    ) -> Tuple[DataOperation, ResultShape]:
        identifier: str = self._config.identifier_field
        collection: str = f"/{table_name_for(model.name)}"
        method: str = _HTTP_METHODS[field]
        match field:
            case ResolverField.GET:
                return (
                    HttpRequest(method, f"{collection}/$ctx.args.{identifier}"),
                    SingleRecord(
                        source=HttpBody(),
                        verification=self._weaver.build_post_fetch_verification(model, Operation.READ),
                    ),
                )
            case ResolverField.LIST:
                return (
                    HttpRequest(
                        method,
                        collection,
                        query=(
                            ("limit", f"$util.defaultIfNull($ctx.args.limit, {self._config.default_page_size})"),
                            ("nextToken", "$util.defaultIfNullOrBlank($ctx.args.nextToken, '')"),
                        ),
                    ),
                    RecordList(
                        source=HttpBodyItems(),
                        access=self._weaver.build_collection_filter(model),
                    ),
                )
            case ResolverField.CREATE:
                return (
                    HttpRequest(method, collection, body_expression="$ctx.args.input"),
                    SingleRecord(source=HttpBody()),
                )
            case ResolverField.UPDATE:
                return (
                    HttpRequest(
                        method,
                        f"{collection}/$ctx.args.input.{identifier}",
                        body_expression="$ctx.args.input",
                    ),
                    SingleRecord(source=HttpBody()),
                )
            case ResolverField.DELETE:
                return (
                    HttpRequest(method, f"{collection}/$ctx.args.input.{identifier}"),
                    SingleRecord(source=HttpBody()),
                )
        raise GenerationError(f"No HTTP template for '{field}'.")

    # -----------------------------------------------------------------
    # Rendering
    # -----------------------------------------------------------------

    def _pair(self, request: RequestPlan, response: ResponsePlan) -> TemplatePair:
        return TemplatePair(
            request=self._renderer.render_request(request),
            response=self._renderer.render_response(response),
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "JOB_COMPLETED_FIELD",
    "PUBLISH_JOB_RESULT_FIELD",
    "TemplateCompiler",
    "root_field_name",
    "subscription_field_name",
    "job_result_field_name",
]

logger.debug("resolvergen.templates loaded — %d public symbols.", len(__all__))
