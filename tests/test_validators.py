"""
tests/test_validators.py
Unit tests for resolvergen.validators.

Tests cover:
- The ValidationResult container
- Model name, identifier and access-control checks
- Data source, relationship, hook and scalar checks
- Seed record checks and the validate_full entry point
"""

from __future__ import annotations

from typing import Any, Dict, List

from conftest import build_models
from resolvergen.models import CompilationConfig, ModelDefinition
from resolvergen.validators import (
    ValidationResult,
    validate_access_control,
    validate_data_sources,
    validate_full,
    validate_hooks,
    validate_identifiers,
    validate_model_names,
    validate_relationships,
    validate_scalars,
    validate_seed_data,
)


class TestValidationResult:
    def test_empty_result_is_valid(self) -> None:
        result = ValidationResult()
        assert result
        assert len(result) == 0
        assert result.summary() == "Validation: 0 error(s), 0 warning(s)."

    def test_errors_make_result_falsy(self) -> None:
        result = ValidationResult()
        result.add_warning("W", "just a warning")
        assert result
        result.add_error("E", "broken", {"model": "Post"})
        assert not result
        assert result.error_count == 1
        assert result.warning_count == 1
        assert result.codes() == ["W", "E"]
        assert str(result.errors[0]) == "[ERROR] E: broken"

    def test_merge_and_report(self) -> None:
        first = ValidationResult()
        first.add_error("A", "first")
        second = ValidationResult()
        second.add_warning("B", "second")
        first.merge(second)
        report = first.format_report()
        assert "✗ [A] first" in report
        assert "⚠ [B] second" in report


class TestModelNames:
    def test_duplicate_names(self, post_raw: Dict[str, Any]) -> None:
        result = validate_model_names(build_models(post_raw, post_raw))
        assert result.codes() == ["DUPLICATE_MODEL_NAME"]

    def test_reserved_name(self, post_raw: Dict[str, Any]) -> None:
        post_raw["name"] = "Query"
        assert validate_model_names(build_models(post_raw)).codes() == ["RESERVED_MODEL_NAME"]

    def test_lower_case_name_only_warns(self, post_raw: Dict[str, Any]) -> None:
        post_raw["name"] = "post"
        result = validate_model_names(build_models(post_raw))
        assert result.codes() == ["MODEL_NAME_NOT_PASCAL_CASE"]
        assert result.is_valid
        assert len(result.warnings) == 1

    def test_connection_type_clash(self, post_raw: Dict[str, Any]) -> None:
        clash = {**post_raw, "name": "PostConnection"}
        result = validate_model_names(build_models(post_raw, clash))
        assert result.codes() == ["RESERVED_MODEL_NAME"]
        assert "PostConnection" in result.errors[0].message


class TestIdentifiers:
    def test_missing_identifier(self, post_raw: Dict[str, Any], config: CompilationConfig) -> None:
        del post_raw["properties"]["id"]
        result = validate_identifiers(build_models(post_raw), config)
        assert result.codes() == ["MISSING_IDENTIFIER"]

    def test_custom_identifier_field(self, post_raw: Dict[str, Any]) -> None:
        config = CompilationConfig(identifier_field="title")
        assert validate_identifiers(build_models(post_raw), config)


class TestAccessControl:
    def test_owner_rule_without_owner(self, post_raw: Dict[str, Any]) -> None:
        post_raw["properties"]["userId"]["isOwner"] = False
        result = validate_access_control(build_models(post_raw))
        assert result.codes() == ["OWNER_RULE_WITHOUT_OWNER"]
        assert result.errors[0].context["operation"] == "update"

    def test_owner_without_access_control_warns(self, post_raw: Dict[str, Any]) -> None:
        del post_raw["accessControl"]
        result = validate_access_control(build_models(post_raw))
        assert result
        assert result.codes() == ["OWNER_NOT_STAMPED"]

    def test_owner_without_create_rule_warns(self, post_raw: Dict[str, Any]) -> None:
        post_raw["accessControl"]["rules"] = [{"allow": "update", "owner": True}]
        assert validate_access_control(build_models(post_raw)).codes() == ["OWNER_NOT_STAMPED"]

    def test_owner_rule_on_queued_source(self, geocode_raw: Dict[str, Any]) -> None:
        geocode_raw["properties"]["userId"] = {"type": "ID", "isOwner": True}
        geocode_raw["accessControl"]["rules"].append({"allow": "read", "owner": True})
        result = validate_access_control(build_models(geocode_raw))
        assert result.codes() == ["OWNER_RULE_ON_QUEUED_SOURCE"]

    def test_valid_rules(self, blog_models: List[ModelDefinition]) -> None:
        assert len(validate_access_control(blog_models)) == 0


class TestDataSources:
    def test_relational_without_cluster(
        self, invoice_raw: Dict[str, Any], config: CompilationConfig
    ) -> None:
        del invoice_raw["dataSource"]["cluster"]
        result = validate_data_sources(build_models(invoice_raw), config)
        assert result.codes() == ["RELATIONAL_CLUSTER_MISSING"]

    def test_cluster_from_config(self, invoice_raw: Dict[str, Any]) -> None:
        del invoice_raw["dataSource"]["cluster"]
        config = CompilationConfig.model_validate({
            "relational_cluster": {"name": "Shared", "secretRef": "s", "database": "d"}
        })
        assert validate_data_sources(build_models(invoice_raw), config)

    def test_long_rate_limit_window_warns(
        self, geocode_raw: Dict[str, Any], config: CompilationConfig
    ) -> None:
        geocode_raw["dataSource"]["limits"]["frequencyInSeconds"] = 172_800
        result = validate_data_sources(build_models(geocode_raw), config)
        assert result
        assert result.codes() == ["RATE_LIMIT_WINDOW_TOO_LONG"]


class TestRelationships:
    def test_valid_relationships(self, blog_models: List[ModelDefinition]) -> None:
        assert len(validate_relationships(blog_models)) == 0

    def test_missing_belongs_to_key(
        self, comment_raw: Dict[str, Any], post_raw: Dict[str, Any], user_raw: Dict[str, Any]
    ) -> None:
        result = validate_relationships(build_models(comment_raw, post_raw, user_raw))
        assert result.codes() == ["RELATIONSHIP_INVALID"]
        assert "postId" in result.errors[0].message

    def test_missing_target(self, post_raw: Dict[str, Any]) -> None:
        result = validate_relationships(build_models(post_raw))
        assert result.codes() == ["RELATIONSHIP_INVALID"]

    def test_has_many_key_must_live_on_target(
        self, user_raw: Dict[str, Any], post_raw: Dict[str, Any]
    ) -> None:
        user_raw["relationships"]["posts"]["foreignKey"] = "authorId"
        result = validate_relationships(build_models(user_raw, post_raw))
        assert result.codes() == ["FOREIGN_KEY_NOT_ON_TARGET"]
        assert result.errors[0].context["foreign_key"] == "authorId"

    def test_third_party_target(
        self, user_raw: Dict[str, Any], post_raw: Dict[str, Any], weather_raw: Dict[str, Any]
    ) -> None:
        user_raw["relationships"]["forecast"] = {
            "type": "belongsTo", "target": "Weather", "foreignKey": "id"
        }
        result = validate_relationships(build_models(user_raw, post_raw, weather_raw))
        assert result.codes() == ["RELATIONSHIP_TARGET_NOT_TRAVERSABLE"]

    def test_field_shadows_property(
        self, user_raw: Dict[str, Any], post_raw: Dict[str, Any]
    ) -> None:
        post_raw["relationships"]["title"] = {
            "type": "belongsTo", "target": "User", "foreignKey": "userId"
        }
        result = validate_relationships(build_models(user_raw, post_raw))
        assert result.codes() == ["RELATIONSHIP_FIELD_CONFLICT"]


class TestHooksAndScalars:
    def test_invalid_function_reference(self, hooked_raw: Dict[str, Any]) -> None:
        hooked_raw["hooks"]["beforeCreate"] = "not a function"
        assert validate_hooks(build_models(hooked_raw)).codes() == ["INVALID_HOOK_FUNCTION"]

    def test_arn_accepted(self, hooked_raw: Dict[str, Any]) -> None:
        hooked_raw["hooks"]["beforeCreate"] = "arn:aws:lambda:eu-west-1:123456789012:function:validate"
        assert len(validate_hooks(build_models(hooked_raw))) == 0

    def test_after_hook_on_queued_source(self, geocode_raw: Dict[str, Any]) -> None:
        geocode_raw["hooks"] = {"afterCreate": "notify"}
        result = validate_hooks(build_models(geocode_raw))
        assert result
        assert result.codes() == ["AFTER_HOOK_ON_QUEUED_SOURCE"]

    def test_undeclared_scalar(self, user_raw: Dict[str, Any]) -> None:
        config = CompilationConfig(scalars=["AWSDateTime"])
        result = validate_scalars(build_models(user_raw), config)
        assert result.codes() == ["SCALAR_NOT_DECLARED"]
        assert result.warnings[0].context == {"model": "User", "property": "email"}


class TestSeedData:
    def test_valid_seed(self, blog_models: List[ModelDefinition]) -> None:
        seed = {"Post": [{"id": "p1", "title": "Hello", "userId": "u1"}]}
        assert len(validate_seed_data(blog_models, seed)) == 0

    def test_seed_problems(self, blog_models: List[ModelDefinition]) -> None:
        seed = {
            "Post": [{"id": "p1", "userId": 42, "colour": "blue"}],
            "Ghost": [{"id": "g1"}],
        }
        result = validate_seed_data(blog_models, seed)
        assert result
        assert sorted(result.codes()) == [
            "SEED_MISSING_REQUIRED",
            "SEED_TYPE_MISMATCH",
            "SEED_UNKNOWN_PROPERTY",
            "UNKNOWN_SEED_MODEL",
        ]

    def test_timestamp_values(self, invoice_raw: Dict[str, Any]) -> None:
        models = build_models(invoice_raw)
        good = {"Invoice": [{"id": "i1", "amount": 10, "createdAt": "2024-01-01T00:00:00Z"}]}
        bad = {"Invoice": [{"id": "i1", "amount": 10, "createdAt": "yesterday"}]}
        assert len(validate_seed_data(models, good)) == 0
        assert validate_seed_data(models, bad).codes() == ["SEED_TYPE_MISMATCH"]


class TestValidateFull:
    def test_blog_is_valid(
        self, blog_models: List[ModelDefinition], config: CompilationConfig
    ) -> None:
        result = validate_full(blog_models, config)
        assert result
        assert len(result) == 0

    def test_collects_every_error(
        self,
        comment_raw: Dict[str, Any],
        invoice_raw: Dict[str, Any],
        config: CompilationConfig,
    ) -> None:
        del invoice_raw["dataSource"]["cluster"]
        result = validate_full(build_models(comment_raw, invoice_raw), config)
        assert not result
        assert {"RELATIONSHIP_INVALID", "RELATIONAL_CLUSTER_MISSING"} <= set(result.codes())

    def test_seed_checks_included(
        self, blog_models: List[ModelDefinition], config: CompilationConfig
    ) -> None:
        result = validate_full(blog_models, config, {"Ghost": [{}]})
        assert result.codes() == ["UNKNOWN_SEED_MODEL"]
