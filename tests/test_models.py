"""
tests/test_models.py
Unit tests for resolvergen.models.

Tests cover:
- Property type normalisation (kind names, IDL spellings, AWS scalars)
- Model-level validation (single owner, identifier-safe names)
- Engine derivation from the data source
- Access rules, hooks and configuration constraints
"""

from __future__ import annotations

from typing import Any, Dict

import pytest
from pydantic import ValidationError

from resolvergen.errors import ModelLoadError
from resolvergen.models import (
    AccessScope,
    CompilationConfig,
    EngineKind,
    HookPhase,
    ModelDefinition,
    Operation,
    PropertyDefinition,
    ResolverField,
    ScalarKind,
)
from resolvergen.repository import parse_model


class TestPropertyDefinition:
    def test_idl_spelling_maps_to_kind(self) -> None:
        prop = PropertyDefinition.model_validate({"name": "title", "type": "String"})
        assert prop.kind is ScalarKind.TEXT
        assert prop.idl_type == "String"

    def test_kind_name_accepted(self) -> None:
        prop = PropertyDefinition.model_validate({"name": "count", "type": "integer"})
        assert prop.kind is ScalarKind.INTEGER
        assert prop.idl_type == "Int"

    def test_aws_text_scalar_kept_verbatim(self) -> None:
        prop = PropertyDefinition.model_validate({"name": "email", "type": "AWSEmail"})
        assert prop.kind is ScalarKind.TEXT
        assert prop.idl_type == "AWSEmail"

    def test_owner_alias(self) -> None:
        prop = PropertyDefinition.model_validate({"name": "userId", "type": "ID", "isOwner": True})
        assert prop.is_owner is True

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PropertyDefinition.model_validate({"name": "x", "type": "Decimal"})

    @pytest.mark.parametrize("raw_type", [["ID"], {"name": "ID"}, 7, None])
    def test_non_string_type_rejected(self, raw_type: Any) -> None:
        with pytest.raises(ValidationError, match="scalar name"):
            PropertyDefinition.model_validate({"name": "x", "type": raw_type})

    def test_non_string_type_is_a_load_error(self, post_raw: Dict[str, Any]) -> None:
        post_raw["properties"]["title"] = {"type": ["ID"]}
        with pytest.raises(ModelLoadError, match="scalar name"):
            parse_model(post_raw, "Post.yaml")

    def test_name_must_be_identifier(self) -> None:
        with pytest.raises(ValidationError):
            PropertyDefinition.model_validate({"name": "bad-name", "type": "String"})

    def test_sql_type_hints(self) -> None:
        assert ScalarKind.TIMESTAMP.sql_type_hint == "TIMESTAMP"
        assert ScalarKind.OPAQUE.sql_type_hint == "JSON"
        assert ScalarKind.TEXT.sql_type_hint is None


class TestModelDefinition:
    def test_property_names_injected_in_order(self, post_raw: Dict[str, Any]) -> None:
        model = ModelDefinition.model_validate(post_raw)
        assert list(model.properties) == ["id", "title", "userId"]
        assert model.properties["title"].name == "title"

    def test_owner_field(self, post_raw: Dict[str, Any]) -> None:
        model = ModelDefinition.model_validate(post_raw)
        assert model.owner_field == "userId"

    def test_two_owners_rejected(self, post_raw: Dict[str, Any]) -> None:
        post_raw["properties"]["title"]["isOwner"] = True
        with pytest.raises(ValidationError, match="more than one owner"):
            ModelDefinition.model_validate(post_raw)

    def test_unknown_key_rejected(self, post_raw: Dict[str, Any]) -> None:
        post_raw["colour"] = "blue"
        with pytest.raises(ValidationError):
            ModelDefinition.model_validate(post_raw)

    def test_models_are_frozen(self, post_raw: Dict[str, Any]) -> None:
        model = ModelDefinition.model_validate(post_raw)
        with pytest.raises(ValidationError):
            model.name = "Other"  # type: ignore[misc]

    def test_null_hooks_and_relationships_allowed(self, post_raw: Dict[str, Any]) -> None:
        post_raw["hooks"] = None
        post_raw["relationships"] = None
        model = ModelDefinition.model_validate(post_raw)
        assert model.relationships == {}
        assert model.hooks.declared == {}

    @pytest.mark.parametrize(
        "fixture_name, engine",
        [
            ("post_raw", EngineKind.DOCUMENT),
            ("invoice_raw", EngineKind.RELATIONAL),
            ("weather_raw", EngineKind.HTTP_API),
            ("geocode_raw", EngineKind.QUEUED_API),
        ],
    )
    def test_engine_derivation(
        self, request: pytest.FixtureRequest, fixture_name: str, engine: EngineKind
    ) -> None:
        model = ModelDefinition.model_validate(request.getfixturevalue(fixture_name))
        assert model.engine is engine
        assert model.is_rate_limited is (engine is EngineKind.QUEUED_API)

    def test_timestamp_fields(
        self, post_raw: Dict[str, Any], hooked_raw: Dict[str, Any]
    ) -> None:
        assert ModelDefinition.model_validate(post_raw).timestamp_fields == []
        hooked = ModelDefinition.model_validate(hooked_raw)
        assert hooked.timestamp_fields == ["createdAt", "updatedAt"]

    def test_cluster_only_on_sql(self, post_raw: Dict[str, Any]) -> None:
        post_raw["dataSource"]["cluster"] = {"name": "c", "secretRef": "s", "database": "d"}
        with pytest.raises(ValidationError, match="cluster"):
            ModelDefinition.model_validate(post_raw)


class TestAccessControl:
    def test_rule_needs_a_grant(self, post_raw: Dict[str, Any]) -> None:
        post_raw["accessControl"]["rules"].append({"allow": "delete"})
        with pytest.raises(ValidationError, match="neither groups nor owner"):
            ModelDefinition.model_validate(post_raw)

    def test_rules_for_and_owner_rule(self, post_raw: Dict[str, Any]) -> None:
        access = ModelDefinition.model_validate(post_raw).access_control
        assert access is not None
        assert len(access.rules_for(Operation.READ)) == 1
        assert access.has_owner_rule(Operation.UPDATE)
        assert not access.has_owner_rule(Operation.READ)
        assert access.rules_for(Operation.DELETE) == []


class TestHooks:
    def test_declared_uses_camel_case(self, hooked_raw: Dict[str, Any]) -> None:
        hooks = ModelDefinition.model_validate(hooked_raw).hooks
        assert hooks.declared == {
            "beforeCreate": "validateOrder",
            "afterCreate": "notifyWarehouse",
            "beforeRead": "auditRead",
        }

    def test_hook_for(self, hooked_raw: Dict[str, Any]) -> None:
        hooks = ModelDefinition.model_validate(hooked_raw).hooks
        assert hooks.hook_for(HookPhase.BEFORE, Operation.CREATE) == "validateOrder"
        assert hooks.hook_for(HookPhase.AFTER, Operation.READ) is None
        assert hooks.hook_for(HookPhase.BEFORE, Operation.DELETE) is None


class TestResolverField:
    def test_operations_and_parents(self) -> None:
        assert ResolverField.LIST.operation is Operation.READ
        assert ResolverField.LIST.scope is AccessScope.COLLECTION
        assert ResolverField.GET.parent_type == "Query"
        assert ResolverField.DELETE.parent_type == "Mutation"


class TestCompilationConfig:
    def test_defaults(self) -> None:
        config = CompilationConfig()
        assert config.default_page_size == 20
        assert config.managed_timestamps == ["createdAt", "updatedAt"]
        assert "AWSDateTime" in config.scalars
        assert config.timezone_header == "x-user-timezone"

    def test_page_size_bounds(self) -> None:
        with pytest.raises(ValidationError, match="default_page_size"):
            CompilationConfig(default_page_size=50, max_page_size=10)
