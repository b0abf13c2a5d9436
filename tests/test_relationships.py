"""
tests/test_relationships.py
Unit tests for resolvergen.relationships: foreign keys, index planning,
relationship validation and relationship resolvers.
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from conftest import build_models
from resolvergen.errors import GenerationError
from resolvergen.models import (
    BindingKind,
    ModelDefinition,
    RelationshipDefinition,
    RelationshipKind,
    SecondaryIndexSpec,
)
from resolvergen.relationships import (
    RelationshipPlanner,
    index_name_for,
    resolve_foreign_key,
)


def _resolver(planner: RelationshipPlanner, model: ModelDefinition, field: str):
    for resolver in planner.plan_resolvers(model):
        if resolver.field_name == field:
            return resolver
    raise AssertionError(f"no resolver for {model.name}.{field}")


class TestForeignKeys:
    def test_explicit_key_wins(self, blog_models: List[ModelDefinition]) -> None:
        post = blog_models[0]
        assert resolve_foreign_key(post, post.relationships["author"]) == "userId"

    @pytest.mark.parametrize(
        "kind, expected",
        [
            (RelationshipKind.BELONGS_TO, "userId"),
            (RelationshipKind.HAS_MANY, "postId"),
            (RelationshipKind.HAS_ONE, "postId"),
        ],
    )
    def test_convention(
        self, blog_models: List[ModelDefinition], kind: RelationshipKind, expected: str
    ) -> None:
        post = blog_models[0]
        relationship = RelationshipDefinition(type=kind, target="User")
        assert resolve_foreign_key(post, relationship) == expected

    def test_index_name(self) -> None:
        assert index_name_for("userId") == "userIdIndex"


class TestIndexPlanning:
    def test_has_many_plans_index_on_target(self, blog_models: List[ModelDefinition]) -> None:
        planner = RelationshipPlanner(blog_models)
        plan = planner.plan_index_map()
        assert plan["Post"] == [SecondaryIndexSpec(index_name="userIdIndex", partition_key="userId")]
        assert plan["User"] == []

    def test_belongs_to_plans_nothing(self, post_raw: Dict[str, Any], user_raw: Dict[str, Any]) -> None:
        del user_raw["relationships"]
        models = build_models(post_raw, user_raw)
        assert RelationshipPlanner(models).plan_index_map() == {"Post": [], "User": []}

    def test_shared_foreign_key_deduplicated(self, tag_raws: List[Dict[str, Any]]) -> None:
        models = build_models(*tag_raws)
        plan = RelationshipPlanner(models).plan_index_map()
        assert plan["Tag"] == [SecondaryIndexSpec(index_name="tagIdIndex", partition_key="tagId")]

    def test_index_spec_aliases(self) -> None:
        spec = SecondaryIndexSpec(index_name="userIdIndex", partition_key="userId")
        assert spec.model_dump(by_alias=True, exclude_none=True) == {
            "indexName": "userIdIndex",
            "partitionKey": "userId",
        }


class TestValidation:
    def test_valid_set_has_no_issues(self, blog_models: List[ModelDefinition]) -> None:
        assert RelationshipPlanner(blog_models).validate() == []

    def test_missing_belongs_to_key(
        self,
        comment_raw: Dict[str, Any],
        post_raw: Dict[str, Any],
        user_raw: Dict[str, Any],
    ) -> None:
        models = build_models(comment_raw, post_raw, user_raw)
        issues = RelationshipPlanner(models).validate()
        assert len(issues) == 1
        assert issues[0].model == "Comment"
        assert issues[0].field == "post"
        assert "postId" in str(issues[0])

    def test_missing_target(self, post_raw: Dict[str, Any]) -> None:
        models = build_models(post_raw)
        issues = RelationshipPlanner(models).validate()
        assert [str(i) for i in issues] == ["Post.author: Target model 'User' not found"]


class TestResolvers:
    def test_belongs_to_reads_by_source_key(self, blog_models: List[ModelDefinition]) -> None:
        planner = RelationshipPlanner(blog_models)
        author = _resolver(planner, blog_models[0], "author")
        assert author.type_name == "Post"
        assert author.target_model == "User"
        assert author.binding.name == "UserTable"
        assert '"operation": "GetItem"' in author.request_template
        assert "$util.dynamodb.toDynamoDBJson($ctx.source.userId)" in author.request_template

    def test_has_many_queries_index(self, blog_models: List[ModelDefinition]) -> None:
        planner = RelationshipPlanner(blog_models)
        posts = _resolver(planner, blog_models[1], "posts")
        request = posts.request_template
        assert '"operation": "Query"' in request
        assert '"index": "userIdIndex"' in request
        assert "$ctx.source.id" in request
        assert "#if($limit > 100)" in request
        assert '"operation": "Scan"' not in request

    def test_target_read_access_reapplied(self, blog_models: List[ModelDefinition]) -> None:
        planner = RelationshipPlanner(blog_models)
        posts = _resolver(planner, blog_models[1], "posts")
        response = posts.response_template
        assert "#foreach($item in $items)" in response
        assert '$group == "users" || $group == "admins"' in response
        assert '$util.qr($connection.put("nextToken", $ctx.result.nextToken))' in response
        assert '$util.qr($connection.put("items", $visibleItems))' in response
        assert "$util.toJson($connection)" in response

    def test_unrestricted_target_allows_all(self, blog_models: List[ModelDefinition]) -> None:
        planner = RelationshipPlanner(blog_models)
        author = _resolver(planner, blog_models[0], "author")
        assert "#set($canAccess = true)" in author.response_template
        assert "$ctx.identity" not in author.request_template

    def test_has_one_reads_first_item(
        self, user_raw: Dict[str, Any], post_raw: Dict[str, Any]
    ) -> None:
        user_raw["relationships"] = {
            "latestPost": {"type": "hasOne", "target": "Post", "foreignKey": "userId"}
        }
        models = build_models(post_raw, user_raw)
        resolver = _resolver(RelationshipPlanner(models), models[1], "latestPost")
        assert '"limit": 1' in resolver.request_template
        assert "$ctx.result.items[0]" in resolver.response_template

    def test_relational_target(
        self, invoice_raw: Dict[str, Any], user_raw: Dict[str, Any]
    ) -> None:
        invoice_raw["properties"]["userId"] = {"type": "ID"}
        user_raw["relationships"] = {
            "invoices": {"type": "hasMany", "target": "Invoice", "foreignKey": "userId"}
        }
        models = build_models(invoice_raw, user_raw)
        resolver = _resolver(RelationshipPlanner(models), models[1], "invoices")
        assert resolver.binding.kind is BindingKind.RELATIONAL_CLUSTER
        assert "SELECT * FROM invoices WHERE userId = :userId LIMIT :limit OFFSET :offset" in (
            resolver.request_template
        )
        assert "$item.ownerId == $ctx.identity.sub" in resolver.response_template
        assert '$util.qr($entry.put("createdAt_local", ' in resolver.response_template
        assert '$util.qr($connection.put("nextToken", "$nextOffset"))' in (
            resolver.response_template
        )
        assert '$util.qr($ctx.stash.put("pageLimit", $limit))' in resolver.request_template

    def test_third_party_target_rejected(
        self, user_raw: Dict[str, Any], weather_raw: Dict[str, Any]
    ) -> None:
        user_raw["relationships"] = {
            "forecast": {"type": "belongsTo", "target": "Weather", "foreignKey": "id"}
        }
        models = build_models(user_raw, weather_raw)
        with pytest.raises(GenerationError, match="cannot be traversed"):
            RelationshipPlanner(models).plan_resolvers(models[0])

    def test_relationship_fields(self, blog_models: List[ModelDefinition]) -> None:
        planner = RelationshipPlanner(blog_models)
        assert planner.relationship_fields(blog_models[0]) == ["author: User"]
        assert planner.relationship_fields(blog_models[1]) == [
            "posts(limit: Int, nextToken: String): PostConnection"
        ]
