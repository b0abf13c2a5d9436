"""
tests/test_authorization.py
Unit tests for resolvergen.authorization and the auth fragments it renders.
"""

from __future__ import annotations

from typing import Any, Dict

import pytest

from conftest import build_models
from resolvergen.authorization import (
    DEFAULT_ALLOW,
    DEFAULT_DENY,
    NO_ACCESS_CONTROL,
    AuthorizationWeaver,
)
from resolvergen.ir import (
    FILTER_BY_OWNER,
    AllowAll,
    DenyAll,
    EmptyFragment,
    ItemFilter,
    MismatchAction,
    OwnerMode,
    OwnershipPreFetch,
    OwnershipVerification,
    RuleCheck,
)
from resolvergen.models import AccessScope, CompilationConfig, ModelDefinition, Operation
from resolvergen.renderer import VtlRenderer


@pytest.fixture()
def weaver() -> AuthorizationWeaver:
    return AuthorizationWeaver()


@pytest.fixture()
def renderer(config: CompilationConfig) -> VtlRenderer:
    return VtlRenderer(config)


@pytest.fixture()
def post(post_raw: Dict[str, Any]) -> ModelDefinition:
    return build_models(post_raw)[0]


@pytest.fixture()
def invoice(invoice_raw: Dict[str, Any]) -> ModelDefinition:
    return build_models(invoice_raw)[0]


class TestBuildCheck:
    def test_no_access_control_allows_all(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, user_raw: Dict[str, Any]
    ) -> None:
        user = build_models(user_raw)[0]
        check = weaver.build_check(user, Operation.UPDATE)
        assert check == AllowAll(NO_ACCESS_CONTROL)
        text = "\n".join(renderer.render_auth(check))
        assert "## No access control defined - allow all" in text
        assert "$ctx.identity" not in text

    def test_operation_without_rule_uses_deny_default(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, post: ModelDefinition
    ) -> None:
        check = weaver.build_check(post, Operation.DELETE)
        assert check == DenyAll(DEFAULT_DENY)
        assert renderer.render_auth(check) == [
            "## Access denied: No access rules defined for this operation",
            "$util.unauthorized()",
        ]

    def test_operation_without_rule_uses_allow_default(
        self, weaver: AuthorizationWeaver, geocode_raw: Dict[str, Any]
    ) -> None:
        geocode = build_models(geocode_raw)[0]
        assert weaver.build_check(geocode, Operation.UPDATE) == AllowAll(DEFAULT_ALLOW)

    def test_group_rule(self, weaver: AuthorizationWeaver, post: ModelDefinition) -> None:
        check = weaver.build_check(post, Operation.READ)
        assert isinstance(check, RuleCheck)
        assert len(check.group_clauses) == 1
        assert check.group_clauses[0].groups == ("users", "admins")
        assert check.owner_clause is None
        assert check.stamp is None

    def test_group_clause_keeps_rule_position(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, invoice: ModelDefinition
    ) -> None:
        check = weaver.build_check(invoice, Operation.DELETE)
        assert isinstance(check, RuleCheck)
        assert [c.rule_index for c in check.group_clauses] == [3]
        text = "\n".join(renderer.render_auth(check))
        assert "## Rule 4: groups admins" in text
        assert '$group == "admins"' in text

    def test_groups_are_ored(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, post: ModelDefinition
    ) -> None:
        text = "\n".join(renderer.render_auth(weaver.build_check(post, Operation.READ)))
        assert '#if($group == "users" || $group == "admins")' in text
        assert "#break" in text
        assert 'claims.get("cognito:groups")' in text

    def test_update_owner_rule_defers_to_fetch(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, post: ModelDefinition
    ) -> None:
        check = weaver.build_check(post, Operation.UPDATE)
        assert isinstance(check, RuleCheck)
        assert check.owner_clause is not None
        assert check.owner_clause.mode is OwnerMode.DEFER_TO_FETCH
        assert check.needs_pre_fetch
        text = "\n".join(renderer.render_auth(check))
        assert "## Authorization check for update on Post" in text
        assert '$util.qr($ctx.stash.put("needsOwnershipCheck", true))' in text

    def test_list_owner_rule_filters_items(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, invoice: ModelDefinition
    ) -> None:
        check = weaver.build_check(invoice, Operation.READ, AccessScope.COLLECTION)
        assert isinstance(check, RuleCheck)
        assert check.owner_clause is not None
        assert check.owner_clause.mode is OwnerMode.FILTER_ITEMS
        assert not check.needs_pre_fetch
        text = "\n".join(renderer.render_auth(check))
        assert '$util.qr($ctx.stash.put("filterByOwner", true))' in text

    def test_create_stamps_after_decision(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, post: ModelDefinition
    ) -> None:
        check = weaver.build_check(post, Operation.CREATE)
        assert isinstance(check, RuleCheck)
        assert check.stamp is not None and check.stamp.owner_field == "userId"
        lines = renderer.render_auth(check)
        stamp = lines.index('$util.qr($ctx.args.input.put("userId", $userId))')
        denial = lines.index("  $util.unauthorized()")
        assert stamp > denial
        assert sum("input.put(\"userId\"" in line for line in lines) == 1

    def test_debug_instrumentation(
        self, weaver: AuthorizationWeaver, post: ModelDefinition
    ) -> None:
        check = weaver.build_check(post, Operation.READ)
        plain = "\n".join(VtlRenderer(CompilationConfig()).render_auth(check))
        debug = "\n".join(
            VtlRenderer(CompilationConfig(debug_instrumentation=True)).render_auth(check)
        )
        assert "x-debug" not in plain
        assert "x-debug" in debug
        assert "debug-auth-failed" in debug


class TestOwnershipFetch:
    def test_pre_fetch_only_for_owner_rules(
        self, weaver: AuthorizationWeaver, post: ModelDefinition
    ) -> None:
        assert isinstance(weaver.build_pre_fetch_check(post, Operation.READ), EmptyFragment)
        assert isinstance(weaver.build_pre_fetch_check(post, Operation.CREATE), EmptyFragment)
        pre_fetch = weaver.build_pre_fetch_check(post, Operation.UPDATE)
        assert pre_fetch == OwnershipPreFetch(
            model_name="Post",
            operation=Operation.UPDATE,
            owner_field="userId",
            key_expression="$ctx.args.input.id",
        )

    def test_read_pre_fetch_uses_argument_id(
        self, weaver: AuthorizationWeaver, invoice: ModelDefinition
    ) -> None:
        pre_fetch = weaver.build_pre_fetch_check(invoice, Operation.READ)
        assert isinstance(pre_fetch, OwnershipPreFetch)
        assert pre_fetch.key_expression == "$ctx.args.id"

    def test_pre_fetch_uses_configured_identifier(
        self, post: ModelDefinition, invoice: ModelDefinition
    ) -> None:
        weaver = AuthorizationWeaver(CompilationConfig(identifier_field="postId"))
        update = weaver.build_pre_fetch_check(post, Operation.UPDATE)
        assert isinstance(update, OwnershipPreFetch)
        assert update.key_expression == "$ctx.args.input.postId"
        read = weaver.build_pre_fetch_check(invoice, Operation.READ)
        assert isinstance(read, OwnershipPreFetch)
        assert read.key_expression == "$ctx.args.postId"

    def test_verification_actions(
        self, weaver: AuthorizationWeaver, invoice: ModelDefinition
    ) -> None:
        read = weaver.build_post_fetch_verification(invoice, Operation.READ)
        delete = weaver.build_post_fetch_verification(invoice, Operation.DELETE)
        assert read == OwnershipVerification("ownerId", MismatchAction.NULL_RESULT)
        assert delete == OwnershipVerification("ownerId", MismatchAction.DENY)

    def test_verification_reads_fetched_record_only(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, post: ModelDefinition
    ) -> None:
        fragment = weaver.build_post_fetch_verification(post, Operation.UPDATE)
        text = "\n".join(renderer.render_verification(fragment))
        assert (
            "#if($visible && $ctx.stash.needsOwnershipCheck && $record.userId != $ctx.identity.sub)"
            in text
        )
        assert "$ctx.args" not in text
        assert "$util.unauthorized()" in text

    def test_no_verification_without_owner_rule(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, post: ModelDefinition
    ) -> None:
        fragment = weaver.build_post_fetch_verification(post, Operation.READ)
        assert isinstance(fragment, EmptyFragment)
        assert renderer.render_verification(fragment) == []


class TestItemAccess:
    def test_item_access_merges_read_groups(
        self, weaver: AuthorizationWeaver, post: ModelDefinition, invoice: ModelDefinition
    ) -> None:
        assert weaver.build_item_access(post) == ItemFilter(groups=("users", "admins"))
        assert weaver.build_item_access(invoice) == ItemFilter(
            groups=("billing",), owner_field="ownerId"
        )

    def test_item_access_renders_owner_comparison(
        self, weaver: AuthorizationWeaver, renderer: VtlRenderer, invoice: ModelDefinition
    ) -> None:
        text = "\n".join(renderer.render_item_access(weaver.build_item_access(invoice), "$item"))
        assert "#if(!$canAccess && $item.ownerId == $ctx.identity.sub)" in text

    def test_collection_filter_gated_on_flag(
        self, weaver: AuthorizationWeaver, post: ModelDefinition, invoice: ModelDefinition
    ) -> None:
        assert weaver.build_collection_filter(post) is None
        assert weaver.build_collection_filter(invoice) == ItemFilter(
            owner_field="ownerId", gate_flag=FILTER_BY_OWNER
        )
