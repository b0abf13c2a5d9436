# File: resolvergen/authorization.py
"""
NexaFlow ResolverGen - Authorization Weaver
============================================
Turns a model's access-control definition into authorization fragments
(``resolvergen.ir``) for the Template Compiler and the Relationship Planner.

Rules are additive.  Group clauses are OR'd across every rule and every
group and short-circuit on the first match.  Operations with no rule fall
back to the model's default policy.

Owner rules are not pure predicates:

* ``create``: the check authorizes *and* stamps the caller identity into the
  owner property of the outgoing record.  The stamp lives in the same
  fragment as the decision and runs only after it; splitting "check" and
  "stamp" into separate passes would let a caller establish ownership of a
  record it was never authorized to create.
* ``read`` / ``update`` / ``delete``: the request only carries an id, so the
  check provisionally authorizes the owner and flags ``needsOwnershipCheck``.
  The final decision is made by ``build_post_fetch_verification`` against
  the *fetched* record.
* ``list``: owner rules switch on per-item filtering of the page instead.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple, Union

from resolvergen.ir import (
    FILTER_BY_OWNER,
    AllowAll,
    AuthCheck,
    DenyAll,
    EmptyFragment,
    GroupClause,
    ItemAccess,
    ItemFilter,
    MismatchAction,
    OwnerClause,
    OwnerMode,
    OwnershipPreFetch,
    OwnershipVerification,
    OwnerStamp,
    PreFetchFragment,
    RuleCheck,
    VerificationFragment,
)
from resolvergen.models import (
    AccessControlDefinition,
    AccessScope,
    CompilationConfig,
    DefaultPolicy,
    ModelDefinition,
    Operation,
)

logger: logging.Logger = logging.getLogger("resolvergen.authorization")

NO_ACCESS_CONTROL: str = "No access control defined - allow all"
DEFAULT_ALLOW: str = "Default allow - no specific rules"
DEFAULT_DENY: str = "No access rules defined for this operation"

_FETCHED_OPERATIONS: Tuple[Operation, ...] = (
    Operation.READ,
    Operation.UPDATE,
    Operation.DELETE,
)


class AuthorizationWeaver:
    """
    Builds authorization fragments for one model set.

    Apart from the read-only ``CompilationConfig`` the weaver is stateless;
    every method is a pure function of the model and operation it is given.
    """

    def __init__(self, config: Optional[CompilationConfig] = None) -> None:
        self._config: CompilationConfig = config or CompilationConfig()

    # -----------------------------------------------------------------
    # Request-side check
    # -----------------------------------------------------------------

    def build_check(
        self,
        model: ModelDefinition,
        operation: Operation,
        scope: AccessScope = AccessScope.ITEM,
    ) -> AuthCheck:
        """
        Decision fragment for ``operation`` on ``model``.

        Side-effecting for ``create``: a ``RuleCheck`` carries an
        ``OwnerStamp`` whenever the model has an owner property, so the
        caller is stamped exactly once, right after a successful decision.
        """
        access: Optional[AccessControlDefinition] = model.access_control
        if access is None:
            return AllowAll(NO_ACCESS_CONTROL)

        rules = access.rules_for(operation)
        if not rules:
            return self._default_policy(access)

        group_clauses: Tuple[GroupClause, ...] = tuple(
            GroupClause(rule_index=index, groups=tuple(rule.groups))
            for index, rule in enumerate(access.rules)
            if rule.allow is operation and rule.groups
        )

        owner_field: Optional[str] = model.owner_field
        owner_clause: Optional[OwnerClause] = None
        if owner_field and access.has_owner_rule(operation):
            owner_clause = OwnerClause(
                owner_field=owner_field,
                mode=self._owner_mode(operation, scope),
            )

        stamp: Optional[OwnerStamp] = None
        if operation is Operation.CREATE and owner_field:
            stamp = OwnerStamp(owner_field=owner_field)

        check = RuleCheck(
            model_name=model.name,
            operation=operation,
            group_clauses=group_clauses,
            owner_clause=owner_clause,
            stamp=stamp,
        )
        logger.debug(
            "Built %s check for %s: %d group clause(s), owner=%s.",
            operation.value,
            model.name,
            len(group_clauses),
            owner_clause.mode.value if owner_clause else None,
        )
        return check

    # -----------------------------------------------------------------
    # Ownership pre-fetch / post-fetch pair
    # -----------------------------------------------------------------

    def build_pre_fetch_check(
        self, model: ModelDefinition, operation: Operation
    ) -> PreFetchFragment:
        """Fetch of the existing record, only for owner-ruled read/update/delete."""
        owner_field = self._owner_field_for(model, operation)
        if owner_field is None:
            return EmptyFragment()
        identifier: str = self._config.identifier_field
        key_expression: str = (
            f"$ctx.args.{identifier}"
            if operation is Operation.READ
            else f"$ctx.args.input.{identifier}"
        )
        return OwnershipPreFetch(
            model_name=model.name,
            operation=operation,
            owner_field=owner_field,
            key_expression=key_expression,
        )

    def build_post_fetch_verification(
        self, model: ModelDefinition, operation: Operation
    ) -> VerificationFragment:
        """
        Compare the fetched record's owner with the caller.  A read of
        somebody else's record yields null; update/delete are denied.
        """
        owner_field = self._owner_field_for(model, operation)
        if owner_field is None:
            return EmptyFragment()
        action: MismatchAction = (
            MismatchAction.NULL_RESULT
            if operation is Operation.READ
            else MismatchAction.DENY
        )
        return OwnershipVerification(owner_field=owner_field, on_mismatch=action)

    # -----------------------------------------------------------------
    # Per-item read access
    # -----------------------------------------------------------------

    def build_item_access(self, model: ModelDefinition) -> ItemAccess:
        """
        Read access for each record of ``model`` reached by traversal: the
        caller is in a read group, or owns the record.
        """
        access = model.access_control
        if access is None:
            return AllowAll(NO_ACCESS_CONTROL)
        rules = access.rules_for(Operation.READ)
        if not rules:
            return self._default_policy(access)

        groups: List[str] = []
        for rule in rules:
            for group in rule.groups:
                if group not in groups:
                    groups.append(group)
        owner_field: Optional[str] = (
            model.owner_field if access.has_owner_rule(Operation.READ) else None
        )
        return ItemFilter(groups=tuple(groups), owner_field=owner_field)

    def build_collection_filter(self, model: ModelDefinition) -> Optional[ItemFilter]:
        """
        Owner filter applied to a list page, active only when the list check
        authorized the caller through its owner clause.
        """
        owner_field = self._owner_field_for(model, Operation.READ)
        if owner_field is None:
            return None
        return ItemFilter(owner_field=owner_field, gate_flag=FILTER_BY_OWNER)

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    @staticmethod
    def _default_policy(access: AccessControlDefinition) -> Union[AllowAll, DenyAll]:
        match access.default:
            case DefaultPolicy.ALLOW:
                return AllowAll(DEFAULT_ALLOW)
            case DefaultPolicy.DENY:
                return DenyAll(DEFAULT_DENY)
        raise ValueError(f"Unknown default policy: {access.default!r}")

    @staticmethod
    def _owner_mode(operation: Operation, scope: AccessScope) -> OwnerMode:
        if operation is Operation.CREATE:
            return OwnerMode.STAMP
        if scope is AccessScope.COLLECTION:
            return OwnerMode.FILTER_ITEMS
        return OwnerMode.DEFER_TO_FETCH

    @staticmethod
    def _owner_field_for(model: ModelDefinition, operation: Operation) -> Optional[str]:
        if operation not in _FETCHED_OPERATIONS:
            return None
        access = model.access_control
        if access is None or not access.has_owner_rule(operation):
            return None
        return model.owner_field


__all__: List[str] = [
    "NO_ACCESS_CONTROL",
    "DEFAULT_ALLOW",
    "DEFAULT_DENY",
    "AuthorizationWeaver",
]

logger.debug("resolvergen.authorization loaded — %d public symbols.", len(__all__))
