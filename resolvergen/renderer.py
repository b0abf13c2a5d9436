# File: resolvergen/renderer.py
"""
NexaFlow ResolverGen - Velocity Template Renderer
==================================================
Turns ``RequestPlan`` / ``ResponsePlan`` values (``resolvergen.ir``) into
AppSync-style Velocity mapping templates.

This is the only module that knows template syntax.  Each IR union is
dispatched with ``match`` and closed with ``assert_never``, so adding a new
variant without teaching the renderer about it fails type checking.

Conventions used by every template:

* the fetched record under inspection is bound to ``$record`` and its
  visibility to ``$visible``;
* list responses bind the page to ``$items`` and return a connection,
  ``{"items": <visible subset>, "nextToken": <token of the next page>}``;
* per-item access decisions land in ``$canAccess``;
* with a time zone in the request header, each timestamp field also comes
  back as ``<field>_local``.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Union

from typing_extensions import assert_never

from resolvergen.ir import (
    FILTER_BY_OWNER,
    NEEDS_OWNERSHIP_CHECK,
    PAGE_LIMIT,
    PAGE_OFFSET,
    AllowAll,
    AuthCheck,
    ContextResult,
    DataOperation,
    DeleteItem,
    DenyAll,
    EmptyFragment,
    Enqueue,
    FirstPageItem,
    GetItem,
    HookOutcome,
    HttpBody,
    HttpBodyItems,
    HttpRequest,
    InvokeHook,
    ItemAccess,
    ItemFilter,
    ListSource,
    MismatchAction,
    NoOp,
    OwnerMode,
    OwnershipConfirmed,
    OwnershipVerification,
    PageBounds,
    PageItems,
    PassThrough,
    PendingAck,
    PutItem,
    QueryIndex,
    RecordList,
    RecordSource,
    RequestPlan,
    ResponsePlan,
    RuleCheck,
    ScanItems,
    SingleRecord,
    SqlRow,
    SqlRows,
    SqlStatements,
    SubscriptionAck,
    UpdateItem,
    VerificationFragment,
)
from resolvergen.models import LOCAL_TIME_SUFFIX, CompilationConfig, HookPhase
from resolvergen.utils import indent_lines, quote

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen.renderer")

_ERROR_GUARD: List[str] = [
    "#if($ctx.error)",
    "  $util.error($ctx.error.message, $ctx.error.type)",
    "#end",
]

_HTTP_OK: str = "$ctx.result.statusCode >= 200 && $ctx.result.statusCode < 300"

_LOCAL_TIME_FORMAT: str = "yyyy-MM-dd'T'HH:mm:ss.SSSXXX"


class VtlRenderer:
    """
    Renders IR plans to Velocity text.

    Stateless apart from the read-only ``CompilationConfig``; one instance
    can render any number of plans.
    """

    def __init__(self, config: CompilationConfig) -> None:
        self._config: CompilationConfig = config

    # -----------------------------------------------------------------
    # Public entry points
    # -----------------------------------------------------------------

    def render_request(self, plan: RequestPlan) -> str:
        lines: List[str] = [f"## {plan.description}"]
        lines.extend(self.render_auth(plan.auth))
        if plan.gate:
            lines.extend([
                f"#if(!$ctx.stash.{plan.gate})",
                "  #return",
                "#end",
            ])
        lines.extend(self._render_operation(plan.operation))
        return "\n".join(lines) + "\n"

    def render_response(self, plan: ResponsePlan) -> str:
        lines: List[str] = [f"## {plan.description}"]
        lines.extend(_ERROR_GUARD)
        shape = plan.shape
        match shape:
            case SingleRecord():
                lines.extend(self._render_single_record(shape))
            case RecordList():
                lines.extend(self._render_record_list(shape))
            case PendingAck():
                lines.extend([
                    "#if($ctx.result.statusCode != 200)",
                    '  $util.error("Request could not be queued", "QueueError")',
                    "#end",
                    "$util.toJson({"
                    f'"requestId": $ctx.stash.{shape.request_id_stash_key}, '
                    '"status": "PENDING", '
                    '"message": "Request queued for processing"})',
                ])
            case OwnershipConfirmed():
                lines.extend(self._render_record_source(shape.source))
                lines.extend(self.render_verification(shape.verification))
                lines.extend([
                    "#if($visible)",
                    f'  $util.qr($ctx.stash.put("{shape.confirm_flag}", true))',
                    "  $util.toJson($record)",
                    "#else",
                    "  null",
                    "#end",
                ])
            case HookOutcome():
                lines.append(f'$util.qr($ctx.stash.put("{shape.stash_key}", $ctx.result))')
                if shape.phase is HookPhase.AFTER:
                    lines.append("$util.toJson($ctx.prev.result)")
                else:
                    lines.append("$util.toJson($ctx.result)")
            case PassThrough():
                lines.append("$util.toJson($ctx.result)")
            case SubscriptionAck():
                if shape.owner_field:
                    lines.extend([
                        f"#if($ctx.stash.{shape.gate_flag})",
                        "  $extensions.setSubscriptionFilter("
                        "$util.transform.toSubscriptionFilter("
                        f'{{"{shape.owner_field}": {{"eq": $ctx.identity.sub}}}}))',
                        "#end",
                    ])
                lines.append("$util.toJson(null)")
            case _:
                assert_never(shape)
        return "\n".join(lines) + "\n"

    # -----------------------------------------------------------------
    # Authorization fragments
    # -----------------------------------------------------------------

    def render_auth(self, fragment: Union[AuthCheck, EmptyFragment]) -> List[str]:
        match fragment:
            case EmptyFragment():
                return []
            case AllowAll():
                return [f"## {fragment.reason}"]
            case DenyAll():
                return [f"## Access denied: {fragment.reason}", "$util.unauthorized()"]
            case RuleCheck():
                return self._render_rule_check(fragment)
            case _:
                assert_never(fragment)

    def render_verification(self, fragment: VerificationFragment) -> List[str]:
        match fragment:
            case EmptyFragment():
                return []
            case OwnershipVerification():
                lines: List[str] = [
                    f"## Ownership verification against the fetched record's {fragment.owner_field}",
                    f"#if($visible && $ctx.stash.{NEEDS_OWNERSHIP_CHECK} "
                    f"&& $record.{fragment.owner_field} != $ctx.identity.sub)",
                ]
                match fragment.on_mismatch:
                    case MismatchAction.NULL_RESULT:
                        lines.append("  #set($visible = false)")
                    case MismatchAction.DENY:
                        lines.append("  $util.unauthorized()")
                    case _:
                        assert_never(fragment.on_mismatch)
                lines.append("#end")
                return lines
            case _:
                assert_never(fragment)

    def render_item_access(self, access: ItemAccess, subject: str) -> List[str]:
        """Lines that set ``$canAccess`` for the record bound to ``subject``."""
        match access:
            case AllowAll():
                return ["#set($canAccess = true)"]
            case DenyAll():
                return ["#set($canAccess = false)"]
            case ItemFilter():
                lines: List[str] = ["#set($canAccess = false)"]
                if access.gate_flag:
                    lines.extend([
                        f"#if(!$ctx.stash.{access.gate_flag})",
                        "  #set($canAccess = true)",
                        "#end",
                    ])
                if access.groups:
                    lines.extend([
                        "#if(!$canAccess)",
                        f"  #foreach($group in {self._groups_expression()})",
                        f"    #if({self._group_condition(access.groups)})",
                        "      #set($canAccess = true)",
                        "      #break",
                        "    #end",
                        "  #end",
                        "#end",
                    ])
                if access.owner_field:
                    lines.extend([
                        f"#if(!$canAccess && {subject}.{access.owner_field} == $ctx.identity.sub)",
                        "  #set($canAccess = true)",
                        "#end",
                    ])
                return lines
            case _:
                assert_never(access)

    def _render_rule_check(self, check: RuleCheck) -> List[str]:
        operation: str = check.operation.value
        lines: List[str] = [
            f"## Authorization check for {operation} on {check.model_name}",
            "#set($isAuthorized = false)",
            "#set($userId = $ctx.identity.sub)",
            f"#set($userGroups = {self._groups_expression()})",
        ]

        for clause in check.group_clauses:
            lines.extend([
                f"## Rule {clause.rule_index + 1}: groups {', '.join(clause.groups)}",
                "#if(!$isAuthorized)",
                "  #foreach($group in $userGroups)",
                f"    #if({self._group_condition(clause.groups)})",
                "      #set($isAuthorized = true)",
                "      #break",
                "    #end",
                "  #end",
                "#end",
            ])

        owner = check.owner_clause
        if owner is not None:
            body: List[str] = ["#set($isAuthorized = true)"]
            match owner.mode:
                case OwnerMode.STAMP:
                    lines.append("## Owner rule: the caller becomes the owner of the new record")
                case OwnerMode.DEFER_TO_FETCH:
                    lines.append(f"## Owner rule: decided against the stored {owner.owner_field}")
                    body.append(f'$util.qr($ctx.stash.put("{NEEDS_OWNERSHIP_CHECK}", true))')
                case OwnerMode.FILTER_ITEMS:
                    lines.append(f"## Owner rule: only records whose {owner.owner_field} is the caller")
                    body.append(f'$util.qr($ctx.stash.put("{FILTER_BY_OWNER}", true))')
                case _:
                    assert_never(owner.mode)
            lines.append("#if(!$isAuthorized && !$util.isNullOrEmpty($userId))")
            lines.extend(indent_lines(body))
            lines.append("#end")

        lines.append("#if(!$isAuthorized)")
        lines.extend(indent_lines(self._debug_lines(
            "debug-auth-failed",
            f"User $userId not authorized for {operation} on {check.model_name}",
        )))
        lines.append("  $util.unauthorized()")
        lines.append("#end")

        if check.stamp is not None:
            lines.extend([
                f"## Stamp the caller as {check.stamp.owner_field} of the new record",
                f'$util.qr($ctx.args.input.put("{check.stamp.owner_field}", $userId))',
            ])
        return lines

    # -----------------------------------------------------------------
    # Data operations
    # -----------------------------------------------------------------

    def _render_operation(self, operation: DataOperation) -> List[str]:
        version: str = self._config.template_version
        match operation:
            case GetItem():
                return [
                    "{",
                    f'  "version": "{version}",',
                    '  "operation": "GetItem",',
                    '  "key": {',
                    f'    "{operation.key_field}": '
                    f"$util.dynamodb.toDynamoDBJson({operation.key_expression})",
                    "  }",
                    "}",
                ]
            case ScanItems():
                return self._page_lines(operation.page) + [
                    "{",
                    f'  "version": "{version}",',
                    '  "operation": "Scan",',
                    '  "limit": $limit,',
                    f'  "nextToken": {self._token_expression(operation.page)}',
                    "}",
                ]
            case PutItem():
                lines: List[str] = [
                    f"#set($input = {operation.input_expression})",
                    "#set($keyValue = $util.autoId())",
                ]
                if operation.timestamps:
                    lines.append("#set($now = $util.time.nowISO8601())")
                    lines.extend(
                        f'$util.qr($input.put("{name}", $now))' for name in operation.timestamps
                    )
                lines.extend([
                    "{",
                    f'  "version": "{version}",',
                    '  "operation": "PutItem",',
                    '  "key": {',
                    f'    "{operation.key_field}": $util.dynamodb.toDynamoDBJson($keyValue)',
                    "  },",
                    '  "attributeValues": $util.dynamodb.toMapValuesJson($input),',
                    '  "condition": {',
                    '    "expression": "attribute_not_exists(#key)",',
                    f'    "expressionNames": {{ "#key": "{operation.key_field}" }}',
                    "  }",
                    "}",
                ])
                return lines
            case UpdateItem():
                return self._render_update_item(operation, version)
            case DeleteItem():
                return self._condition_lines(operation.key_field, operation.owner_guard) + [
                    "{",
                    f'  "version": "{version}",',
                    '  "operation": "DeleteItem",',
                    '  "key": {',
                    f'    "{operation.key_field}": '
                    f"$util.dynamodb.toDynamoDBJson({operation.key_expression})",
                    "  },",
                ] + self._condition_block() + ["}"]
            case QueryIndex():
                lines = self._page_lines(operation.page) if operation.page else []
                lines.extend([
                    "{",
                    f'  "version": "{version}",',
                    '  "operation": "Query",',
                    f'  "index": "{operation.index_name}",',
                    '  "query": {',
                    '    "expression": "#partitionKey = :partitionKey",',
                    f'    "expressionNames": {{ "#partitionKey": "{operation.partition_key}" }},',
                    '    "expressionValues": {',
                    '      ":partitionKey": '
                    f"$util.dynamodb.toDynamoDBJson({operation.value_expression})",
                    "    }",
                    "  },",
                ])
                if operation.page:
                    lines.extend([
                        '  "limit": $limit,',
                        f'  "nextToken": {self._token_expression(operation.page)}',
                    ])
                else:
                    lines.append('  "limit": 1')
                lines.append("}")
                return lines
            case SqlStatements():
                return self._render_sql(operation, version)
            case HttpRequest():
                return self._render_http(operation, version)
            case Enqueue():
                return [
                    "#set($requestId = $util.autoId())",
                    f'$util.qr($ctx.stash.put("{operation.request_id_stash_key}", $requestId))',
                    "#set($message = {})",
                    f'$util.qr($message.put("operation", {quote(operation.operation)}))',
                    f'$util.qr($message.put("model", {quote(operation.model_name)}))',
                    '$util.qr($message.put("args", $ctx.args))',
                    '$util.qr($message.put("requestId", $requestId))',
                    "#set($body = {})",
                    f'$util.qr($body.put("QueueUrl", $ctx.stash.{operation.queue_url_stash_key}))',
                    '$util.qr($body.put("MessageBody", $util.toJson($message)))',
                    "{",
                    f'  "version": "{version}",',
                    '  "method": "POST",',
                    '  "resourcePath": "/",',
                    '  "params": {',
                    '    "headers": {',
                    '      "content-type": "application/x-amz-json-1.0",',
                    '      "x-amz-target": "AmazonSQS.SendMessage"',
                    "    },",
                    '    "body": $util.toJson($body)',
                    "  }",
                    "}",
                ]
            case InvokeHook():
                context_line: str = (
                    '    "result": $util.toJson($ctx.prev.result)'
                    if operation.phase is HookPhase.AFTER
                    else '    "source": $util.toJson($ctx.source)'
                )
                return [
                    "{",
                    f'  "version": "{version}",',
                    '  "operation": "Invoke",',
                    '  "payload": {',
                    f'    "hook": {quote(operation.hook_name)},',
                    f'    "function": {quote(operation.function_name)},',
                    f'    "model": {quote(operation.model_name)},',
                    '    "arguments": $util.toJson($ctx.args),',
                    '    "identity": $util.toJson($ctx.identity),',
                    context_line,
                    "  }",
                    "}",
                ]
            case NoOp():
                payload: str = (
                    f"$util.toJson({operation.payload_expression})"
                    if operation.payload_expression
                    else "{}"
                )
                return [
                    "{",
                    f'  "version": "{version}",',
                    f'  "payload": {payload}',
                    "}",
                ]
            case _:
                assert_never(operation)

    def _render_update_item(self, operation: UpdateItem, version: str) -> List[str]:
        updated_at: str = operation.updated_at_field
        lines: List[str] = [
            f"#set($input = {operation.input_expression})",
            f'#set($setExpressions = ["#{updated_at} = :{updated_at}"])',
            f'#set($updateNames = {{ "#{updated_at}": "{updated_at}" }})',
            f'#set($updateValues = {{ ":{updated_at}": '
            "$util.dynamodb.toDynamoDB($util.time.nowISO8601()) })",
        ]
        for name in operation.fields:
            lines.extend([
                f'#if($input.containsKey("{name}"))',
                f'  $util.qr($setExpressions.add("#{name} = :{name}"))',
                f'  $util.qr($updateNames.put("#{name}", "{name}"))',
                f'  $util.qr($updateValues.put(":{name}", $util.dynamodb.toDynamoDB($input.{name})))',
                "#end",
            ])
        lines.extend(self._condition_lines(operation.key_field, operation.owner_guard))
        lines.extend([
            "{",
            f'  "version": "{version}",',
            '  "operation": "UpdateItem",',
            '  "key": {',
            f'    "{operation.key_field}": '
            f"$util.dynamodb.toDynamoDBJson({operation.key_expression})",
            "  },",
            '  "update": {',
            '    "expression": "SET #foreach($expression in $setExpressions)'
            '$expression#if($foreach.hasNext), #end#end",',
            '    "expressionNames": $util.toJson($updateNames),',
            '    "expressionValues": $util.toJson($updateValues)',
            "  },",
        ])
        lines.extend(self._condition_block())
        lines.append("}")
        return lines

    def _condition_lines(self, key_field: str, owner_guard: Optional[str]) -> List[str]:
        lines: List[str] = [
            '#set($conditionExpression = "attribute_exists(#key)")',
            f'#set($conditionNames = {{ "#key": "{key_field}" }})',
            "#set($conditionValues = {})",
        ]
        if owner_guard:
            lines.extend([
                "## Second read of the owner: the write only lands if the stored owner is still the caller",
                f"#if($ctx.stash.{NEEDS_OWNERSHIP_CHECK})",
                '  #set($conditionExpression = "$conditionExpression AND #owner = :owner")',
                f'  $util.qr($conditionNames.put("#owner", "{owner_guard}"))',
                '  $util.qr($conditionValues.put(":owner", $util.dynamodb.toDynamoDB($ctx.identity.sub)))',
                "#end",
            ])
        return lines

    @staticmethod
    def _condition_block() -> List[str]:
        return [
            '  "condition": {',
            '    "expression": "$conditionExpression",',
            '    "expressionNames": $util.toJson($conditionNames)',
            "#if(!$conditionValues.isEmpty())",
            '    , "expressionValues": $util.toJson($conditionValues)',
            "#end",
            "  }",
        ]

    def _render_sql(self, operation: SqlStatements, version: str) -> List[str]:
        lines: List[str] = [
            f"#set(${assignment.name} = {assignment.expression})"
            for assignment in operation.prelude
        ]
        if operation.page:
            lines.extend(self._page_lines(operation.page))
            lines.extend([
                "#set($offset = 0)",
                f"#if(!$util.isNullOrBlank({operation.page.token_expression}))",
                f"  #set($offset = $util.parseJson({operation.page.token_expression}))",
                "#end",
                f'$util.qr($ctx.stash.put("{PAGE_LIMIT}", $limit))',
                f'$util.qr($ctx.stash.put("{PAGE_OFFSET}", $offset))',
            ])
        if operation.owner_guard:
            lines.extend([
                "## Second read of the owner: the statement only matches the caller's own row",
                '#set($ownerGuard = "")',
                f"#if($ctx.stash.{NEEDS_OWNERSHIP_CHECK})",
                f'  #set($ownerGuard = " AND {operation.owner_guard} = :owner")',
                "#end",
            ])

        statement_lines: List[str] = [
            f"    {quote(statement)}," for statement in operation.statements
        ]
        if statement_lines:
            statement_lines[-1] = statement_lines[-1].rstrip(",")

        variables = list(operation.variables)
        variable_lines: List[str] = [
            f'    "{variable.name}": $util.toJson({variable.expression}),'
            for variable in variables
        ]
        if variable_lines:
            variable_lines[-1] = variable_lines[-1].rstrip(",")

        hints = [v for v in variables if v.type_hint]
        lines.extend(["{", f'  "version": "{version}",', '  "statements": ['])
        lines.extend(statement_lines)
        lines.append("  ],")
        lines.append('  "variableMap": {')
        lines.extend(variable_lines)
        if operation.owner_guard:
            # :owner is bound only alongside an active $ownerGuard
            separator: str = ", " if variable_lines else ""
            lines.extend([
                f"#if($ctx.stash.{NEEDS_OWNERSHIP_CHECK})",
                f'    {separator}":owner": $util.toJson($ctx.identity.sub)',
                "#end",
            ])
        if hints:
            lines.append("  },")
            lines.append('  "variableTypeHints": {')
            hint_lines = [f'    "{v.name}": "{v.type_hint}",' for v in hints]
            hint_lines[-1] = hint_lines[-1].rstrip(",")
            lines.extend(hint_lines)
        lines.append("  }")
        lines.append("}")
        return lines

    def _render_http(self, operation: HttpRequest, version: str) -> List[str]:
        params: List[str] = [
            '    "headers": {',
            '      "Content-Type": "application/json",',
            '      "Authorization": $util.toJson($util.defaultIfNull($ctx.request.headers.authorization, ""))',
            "    }",
        ]
        if operation.query:
            params[-1] += ","
            params.append('    "query": {')
            query_lines = [f'      "{key}": "{expr}",' for key, expr in operation.query]
            query_lines[-1] = query_lines[-1].rstrip(",")
            params.extend(query_lines)
            params.append("    }")
        if operation.body_expression:
            params[-1] += ","
            params.append(f'    "body": $util.toJson({operation.body_expression})')
        return [
            "{",
            f'  "version": "{version}",',
            f'  "method": "{operation.method}",',
            f'  "resourcePath": "{operation.resource_path}",',
            '  "params": {',
            *params,
            "  }",
            "}",
        ]

    # -----------------------------------------------------------------
    # Result shapes
    # -----------------------------------------------------------------

    def _render_record_source(self, source: RecordSource) -> List[str]:
        """Bind the fetched record to ``$record`` and its presence to ``$visible``."""
        match source:
            case ContextResult():
                return [
                    "#set($record = $ctx.result)",
                    "#set($visible = !$util.isNull($ctx.result))",
                ]
            case FirstPageItem():
                return [
                    "#set($visible = false)",
                    "#if($ctx.result.items && $ctx.result.items.size() > 0)",
                    "  #set($record = $ctx.result.items[0])",
                    "  #set($visible = true)",
                    "#end",
                ]
            case SqlRow():
                return [
                    f"#set($rows = $utils.rds.toJsonObject($ctx.result)[{source.statement_index}])",
                    "#set($visible = false)",
                    "#if($rows && $rows.size() > 0)",
                    "  #set($record = $rows[0])",
                    "  #set($visible = true)",
                    "#end",
                ]
            case HttpBody():
                return [
                    "#set($visible = false)",
                    f"#if({_HTTP_OK})",
                    "  #if(!$util.isNullOrBlank($ctx.result.body))",
                    "    #set($record = $util.parseJson($ctx.result.body))",
                    "    #set($visible = true)",
                    "  #end",
                    "#elseif($ctx.result.statusCode != 404)",
                    '  $util.error($ctx.result.body, "UpstreamError")',
                    "#end",
                ]
            case _:
                assert_never(source)

    def _render_list_source(self, source: ListSource) -> List[str]:
        """Bind the fetched page to ``$items`` and its token to ``$connection``."""
        match source:
            case PageItems():
                return [
                    "#set($items = $util.defaultIfNull($ctx.result.items, []))",
                    '$util.qr($connection.put("nextToken", $ctx.result.nextToken))',
                ]
            case SqlRows():
                return [
                    f"#set($items = $utils.rds.toJsonObject($ctx.result)[{source.statement_index}])",
                    "## A full page means there may be more rows: hand out the next offset",
                    f"#if($items.size() == $ctx.stash.{PAGE_LIMIT})",
                    f"  #set($nextOffset = $ctx.stash.{PAGE_OFFSET} + $ctx.stash.{PAGE_LIMIT})",
                    '  $util.qr($connection.put("nextToken", "$nextOffset"))',
                    "#end",
                ]
            case HttpBodyItems():
                return [
                    "#set($items = [])",
                    f"#if({_HTTP_OK})",
                    "  #set($body = $util.parseJson($ctx.result.body))",
                    "  #if($util.isList($body))",
                    "    #set($items = $body)",
                    "  #else",
                    "    #set($items = $util.defaultIfNull($body.items, []))",
                    '    $util.qr($connection.put("nextToken", $body.nextToken))',
                    "  #end",
                    "#else",
                    '  $util.error($ctx.result.body, "UpstreamError")',
                    "#end",
                ]
            case _:
                assert_never(source)

    def _render_single_record(self, shape: SingleRecord) -> List[str]:
        lines: List[str] = self._render_record_source(shape.source)
        lines.extend(self.render_verification(shape.verification))
        if shape.access is not None:
            lines.append("#if($visible)")
            lines.extend(indent_lines(self.render_item_access(shape.access, "$record")))
            lines.extend([
                "  #if(!$canAccess)",
                "    #set($visible = false)",
                "  #end",
                "#end",
            ])
        local_time: List[str] = self._local_time_lines(shape.local_time_fields, "$record")
        if local_time:
            lines.extend(self._timezone_binding())
            lines.append("#if($visible && !$util.isNullOrBlank($userTimezone))")
            lines.extend(indent_lines(local_time))
            lines.append("#end")
        lines.extend([
            "#if($visible)",
            "  $util.toJson($record)",
            "#else",
            "  null",
            "#end",
        ])
        return lines

    def _render_record_list(self, shape: RecordList) -> List[str]:
        lines: List[str] = ["#set($connection = {})"]
        lines.extend(self._render_list_source(shape.source))
        result: str = "$items"
        if shape.access is not None:
            result = "$visibleItems"
            lines.append("#set($visibleItems = [])")
            lines.append("#foreach($item in $items)")
            lines.extend(indent_lines(self.render_item_access(shape.access, "$item")))
            lines.extend([
                "  #if($canAccess)",
                "    $util.qr($visibleItems.add($item))",
                "  #end",
                "#end",
            ])
        local_time: List[str] = self._local_time_lines(shape.local_time_fields, "$entry")
        if local_time:
            lines.extend(self._timezone_binding())
            lines.extend([
                "#if(!$util.isNullOrBlank($userTimezone))",
                f"  #foreach($entry in {result})",
            ])
            lines.extend(indent_lines(local_time, level=2))
            lines.extend(["  #end", "#end"])
        lines.append(f'$util.qr($connection.put("items", {result}))')
        lines.append("$util.toJson($connection)")
        return lines

    def _timezone_binding(self) -> List[str]:
        header: str = self._config.timezone_header or ""
        return [f"#set($userTimezone = $ctx.request.headers.get({quote(header)}))"]

    def _local_time_lines(self, fields: Sequence[str], subject: str) -> List[str]:
        """Add ``<field>_local`` to ``subject`` for each timestamp it carries."""
        if not fields or not self._config.timezone_header:
            return []
        lines: List[str] = []
        for name in fields:
            lines.extend([
                f"#if(!$util.isNullOrBlank({subject}.{name}))",
                f'  $util.qr({subject}.put("{name}{LOCAL_TIME_SUFFIX}", '
                "$util.time.epochMilliSecondsToFormatted("
                f"$util.time.parseISO8601ToEpochMilliSeconds({subject}.{name}), "
                f'{quote(_LOCAL_TIME_FORMAT)}, $userTimezone)))',
                "#end",
            ])
        return lines

    # -----------------------------------------------------------------
    # Small helpers
    # -----------------------------------------------------------------

    def _groups_expression(self) -> str:
        return f"$util.defaultIfNull($ctx.identity.claims.get({quote(self._config.groups_claim)}), [])"

    @staticmethod
    def _group_condition(groups: Sequence[str]) -> str:
        return " || ".join(f"$group == {quote(group)}" for group in groups)

    @staticmethod
    def _page_lines(page: PageBounds) -> List[str]:
        return [
            f"#set($limit = $util.defaultIfNull({page.limit_expression}, {page.default_limit}))",
            f"#if($limit > {page.max_limit})",
            f"  #set($limit = {page.max_limit})",
            "#end",
            "#if($limit < 1)",
            f"  #set($limit = {page.default_limit})",
            "#end",
        ]

    @staticmethod
    def _token_expression(page: PageBounds) -> str:
        return f"$util.toJson($util.defaultIfNullOrBlank({page.token_expression}, null))"

    def _debug_lines(self, key: str, message: str) -> List[str]:
        if not self._config.debug_instrumentation:
            return []
        return [
            '#if($util.defaultIfNull($ctx.request.headers["x-debug"], false))',
            f'  $util.qr($ctx.stash.put("{key}", {quote(message)}))',
            "#end",
        ]


__all__: List[str] = ["VtlRenderer"]

logger.debug("resolvergen.renderer loaded — %d public symbols.", len(__all__))
