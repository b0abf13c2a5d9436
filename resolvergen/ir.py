# File: resolvergen/ir.py
"""
NexaFlow ResolverGen - Template Intermediate Representation
============================================================
Small, frozen building blocks describing what a mapping template does,
independent of the template language:

    authorize  →  (gate on a stash flag)  →  data operation  →  shape result

The Authorization Weaver, Relationship Planner and Template Compiler build
``RequestPlan`` / ``ResponsePlan`` values from these types; the
``VtlRenderer`` turns them into text.  Every union below is closed: the
renderer matches on each with ``assert_never`` as the fall-through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from resolvergen.models import HookPhase, Operation

logger: logging.Logger = logging.getLogger("resolvergen.ir")

# Stash flags shared by the fragments that write and the templates that read them
NEEDS_OWNERSHIP_CHECK: str = "needsOwnershipCheck"
FILTER_BY_OWNER: str = "filterByOwner"
OWNERSHIP_CONFIRMED: str = "ownershipConfirmed"
REQUEST_ID: str = "requestId"
PAGE_LIMIT: str = "pageLimit"
PAGE_OFFSET: str = "pageOffset"


# ---------------------------------------------------------------------------
# Authorization fragments
# ---------------------------------------------------------------------------


class OwnerMode(str, Enum):
    """What an owner clause does once the caller reaches it."""

    STAMP = "stamp"  # create: authorize, the record is stamped afterwards
    DEFER_TO_FETCH = "defer_to_fetch"  # single record: decide after fetching it
    FILTER_ITEMS = "filter_items"  # page of records: keep only the caller's own


class MismatchAction(str, Enum):
    """Outcome when a fetched record belongs to somebody else."""

    NULL_RESULT = "null_result"
    DENY = "deny"


@dataclass(frozen=True, slots=True)
class EmptyFragment:
    """Nothing to emit.  Never references the caller's identity."""


@dataclass(frozen=True, slots=True)
class AllowAll:
    """Always authorized; ``reason`` is emitted as a comment."""

    reason: str


@dataclass(frozen=True, slots=True)
class DenyAll:
    """Always unauthorized; ``reason`` is emitted as the denial comment."""

    reason: str


@dataclass(frozen=True, slots=True)
class GroupClause:
    """Authorizes the caller if they belong to any of ``groups``."""

    rule_index: int
    groups: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class OwnerClause:
    owner_field: str
    mode: OwnerMode


@dataclass(frozen=True, slots=True)
class OwnerStamp:
    """Writes the caller's identity into ``owner_field`` of the create input."""

    owner_field: str


@dataclass(frozen=True, slots=True)
class RuleCheck:
    """
    Group clauses OR'd together, then at most one owner clause, then a single
    decision.  ``stamp`` runs only after a successful decision.
    """

    model_name: str
    operation: Operation
    group_clauses: Tuple[GroupClause, ...]
    owner_clause: Optional[OwnerClause] = None
    stamp: Optional[OwnerStamp] = None

    @property
    def needs_pre_fetch(self) -> bool:
        return (
            self.owner_clause is not None
            and self.owner_clause.mode is OwnerMode.DEFER_TO_FETCH
        )


AuthCheck = Union[AllowAll, DenyAll, RuleCheck]


@dataclass(frozen=True, slots=True)
class OwnershipPreFetch:
    """The existing record must be fetched before the operation may proceed."""

    model_name: str
    operation: Operation
    owner_field: str
    key_expression: str


@dataclass(frozen=True, slots=True)
class OwnershipVerification:
    """
    Compares ``owner_field`` of the *fetched* record with the caller
    identity, only when the stash says the check is needed.  Request
    arguments are never consulted.
    """

    owner_field: str
    on_mismatch: MismatchAction


@dataclass(frozen=True, slots=True)
class ItemFilter:
    """
    Per-record read access: group membership or ownership.  With
    ``gate_flag`` set, records are only filtered when that stash flag is on.
    """

    groups: Tuple[str, ...] = ()
    owner_field: Optional[str] = None
    gate_flag: Optional[str] = None


PreFetchFragment = Union[OwnershipPreFetch, EmptyFragment]
VerificationFragment = Union[OwnershipVerification, EmptyFragment]
ItemAccess = Union[AllowAll, DenyAll, ItemFilter]


# ---------------------------------------------------------------------------
# Data operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Assignment:
    name: str
    expression: str


@dataclass(frozen=True, slots=True)
class PageBounds:
    """Caller-supplied page size clamped to ``[1, max_limit]``."""

    default_limit: int
    max_limit: int
    limit_expression: str = "$ctx.args.limit"
    token_expression: str = "$ctx.args.nextToken"


@dataclass(frozen=True, slots=True)
class GetItem:
    key_field: str
    key_expression: str


@dataclass(frozen=True, slots=True)
class ScanItems:
    page: PageBounds


@dataclass(frozen=True, slots=True)
class PutItem:
    key_field: str
    timestamps: Tuple[str, ...]
    input_expression: str = "$ctx.args.input"


@dataclass(frozen=True, slots=True)
class UpdateItem:
    """
    Conditional update of the listed fields.  With ``owner_guard`` the
    condition also re-reads the owner field when the stash flags an
    ownership check.
    """

    key_field: str
    key_expression: str
    fields: Tuple[str, ...]
    updated_at_field: str
    owner_guard: Optional[str] = None
    input_expression: str = "$ctx.args.input"


@dataclass(frozen=True, slots=True)
class DeleteItem:
    key_field: str
    key_expression: str
    owner_guard: Optional[str] = None


@dataclass(frozen=True, slots=True)
class QueryIndex:
    """Query a secondary index; without ``page`` only one record is read."""

    index_name: str
    partition_key: str
    value_expression: str
    page: Optional[PageBounds] = None


@dataclass(frozen=True, slots=True)
class SqlVariable:
    name: str
    expression: str
    type_hint: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SqlStatements:
    """
    Parameterized statements for the data API.  With ``owner_guard`` the
    statements reference ``$ownerGuard``, which is empty unless the stash
    flags an ownership check.
    """

    statements: Tuple[str, ...]
    variables: Tuple[SqlVariable, ...]
    prelude: Tuple[Assignment, ...] = ()
    page: Optional[PageBounds] = None
    owner_guard: Optional[str] = None


@dataclass(frozen=True, slots=True)
class HttpRequest:
    method: str
    resource_path: str
    body_expression: Optional[str] = None
    query: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class Enqueue:
    """Send the request to the rate-limited worker queue under a new request id."""

    operation: str
    model_name: str
    queue_url_stash_key: str
    request_id_stash_key: str = REQUEST_ID


@dataclass(frozen=True, slots=True)
class InvokeHook:
    hook_name: str
    function_name: str
    model_name: str
    phase: HookPhase


@dataclass(frozen=True, slots=True)
class NoOp:
    """Local resolver: no data source call.  ``payload_expression`` becomes the result."""

    payload_expression: Optional[str] = None


DataOperation = Union[
    GetItem,
    ScanItems,
    PutItem,
    UpdateItem,
    DeleteItem,
    QueryIndex,
    SqlStatements,
    HttpRequest,
    Enqueue,
    InvokeHook,
    NoOp,
]


# ---------------------------------------------------------------------------
# Result shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ContextResult:
    """The data source result itself is the record."""


@dataclass(frozen=True, slots=True)
class FirstPageItem:
    """First record of a query page."""


@dataclass(frozen=True, slots=True)
class SqlRow:
    """First row returned by statement ``statement_index``."""

    statement_index: int


@dataclass(frozen=True, slots=True)
class HttpBody:
    """JSON body of a 2xx HTTP response."""


RecordSource = Union[ContextResult, FirstPageItem, SqlRow, HttpBody]


@dataclass(frozen=True, slots=True)
class PageItems:
    """``items`` of a scan or query page; the page's ``nextToken`` is handed on."""


@dataclass(frozen=True, slots=True)
class SqlRows:
    """
    Rows of statement ``statement_index``.  A full page yields the next
    offset as the token, using the bounds the request stashed.
    """

    statement_index: int


@dataclass(frozen=True, slots=True)
class HttpBodyItems:
    """2xx JSON body: a bare array, or ``{"items": [...], "nextToken": ...}``."""


ListSource = Union[PageItems, SqlRows, HttpBodyItems]


@dataclass(frozen=True, slots=True)
class SingleRecord:
    """
    One record, or null.  Each of ``local_time_fields`` present on the record
    gains a ``<field>_local`` copy in the caller's time zone.
    """

    source: RecordSource
    verification: VerificationFragment = EmptyFragment()
    access: Optional[ItemAccess] = None
    local_time_fields: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RecordList:
    """A connection: the visible ``items`` plus the ``nextToken`` of the page."""

    source: ListSource
    access: Optional[ItemAccess] = None
    local_time_fields: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PendingAck:
    """Immediate acknowledgement for a queued request."""

    request_id_stash_key: str = REQUEST_ID


@dataclass(frozen=True, slots=True)
class OwnershipConfirmed:
    """Pre-fetch outcome: verify the fetched owner, then set ``confirm_flag``."""

    source: RecordSource
    verification: VerificationFragment
    confirm_flag: str = OWNERSHIP_CONFIRMED


@dataclass(frozen=True, slots=True)
class HookOutcome:
    """Stash a hook's result; after-hooks hand the previous result through."""

    stash_key: str
    phase: HookPhase


@dataclass(frozen=True, slots=True)
class PassThrough:
    """Return the current result unchanged."""


@dataclass(frozen=True, slots=True)
class SubscriptionAck:
    """Subscription set-up; narrows delivery to the caller's own records when flagged."""

    owner_field: Optional[str] = None
    gate_flag: str = FILTER_BY_OWNER


ResultShape = Union[
    SingleRecord,
    RecordList,
    PendingAck,
    OwnershipConfirmed,
    HookOutcome,
    PassThrough,
    SubscriptionAck,
]


def with_local_times(shape: ResultShape, fields: Sequence[str]) -> ResultShape:
    """``shape`` with caller-time-zone copies of ``fields``, if it returns records."""
    if fields and isinstance(shape, (SingleRecord, RecordList)):
        return replace(shape, local_time_fields=tuple(fields))
    return shape


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RequestPlan:
    """
    One request template: authorize, return early unless ``gate`` is set in
    the stash, then perform ``operation``.
    """

    description: str
    operation: DataOperation
    auth: Union[AuthCheck, EmptyFragment] = EmptyFragment()
    gate: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ResponsePlan:
    description: str
    shape: ResultShape


__all__: List[str] = [
    "NEEDS_OWNERSHIP_CHECK",
    "FILTER_BY_OWNER",
    "OWNERSHIP_CONFIRMED",
    "REQUEST_ID",
    "PAGE_LIMIT",
    "PAGE_OFFSET",
    "OwnerMode",
    "MismatchAction",
    "EmptyFragment",
    "AllowAll",
    "DenyAll",
    "GroupClause",
    "OwnerClause",
    "OwnerStamp",
    "RuleCheck",
    "AuthCheck",
    "OwnershipPreFetch",
    "OwnershipVerification",
    "ItemFilter",
    "PreFetchFragment",
    "VerificationFragment",
    "ItemAccess",
    "Assignment",
    "PageBounds",
    "GetItem",
    "ScanItems",
    "PutItem",
    "UpdateItem",
    "DeleteItem",
    "QueryIndex",
    "SqlVariable",
    "SqlStatements",
    "HttpRequest",
    "Enqueue",
    "InvokeHook",
    "NoOp",
    "DataOperation",
    "ContextResult",
    "FirstPageItem",
    "SqlRow",
    "HttpBody",
    "RecordSource",
    "PageItems",
    "SqlRows",
    "HttpBodyItems",
    "ListSource",
    "SingleRecord",
    "RecordList",
    "PendingAck",
    "OwnershipConfirmed",
    "HookOutcome",
    "PassThrough",
    "SubscriptionAck",
    "ResultShape",
    "with_local_times",
    "RequestPlan",
    "ResponsePlan",
]

logger.debug("resolvergen.ir loaded — %d public symbols.", len(__all__))
