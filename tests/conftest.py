"""
tests/conftest.py
Shared fixtures for the resolvergen test suite.

Raw model dicts mirror what a model file contains (camelCase keys).  Each
fixture returns a fresh dict so tests can mutate freely.  Directory
fixtures write real files under pytest's ``tmp_path``.
"""

from __future__ import annotations

import copy
import json
import pathlib
from typing import Any, Dict, List

import pytest
import yaml

from resolvergen.models import CompilationConfig, ModelDefinition
from resolvergen.repository import parse_model


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def build_models(*raws: Dict[str, Any]) -> List[ModelDefinition]:
    """Parse raw model dicts into ``ModelDefinition`` instances."""
    return [parse_model(copy.deepcopy(raw)) for raw in raws]


def write_yaml(path: pathlib.Path, data: Any) -> pathlib.Path:
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)
    return path


def write_json(path: pathlib.Path, data: Any) -> pathlib.Path:
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Raw model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def user_raw() -> Dict[str, Any]:
    """Document model, no access control, hasMany Post via userId."""
    return {
        "name": "User",
        "properties": {
            "id": {"type": "ID", "required": True},
            "email": {"type": "AWSEmail", "required": True},
            "displayName": {"type": "String"},
        },
        "dataSource": {"type": "database", "engine": "nosql"},
        "relationships": {
            "posts": {"type": "hasMany", "target": "Post", "foreignKey": "userId"},
        },
    }


@pytest.fixture()
def post_raw() -> Dict[str, Any]:
    """The ``Post`` scenario: owner-ruled update, belongsTo User via userId."""
    return {
        "name": "Post",
        "properties": {
            "id": {"type": "ID", "required": True},
            "title": {"type": "String", "required": True},
            "userId": {"type": "ID", "isOwner": True},
        },
        "dataSource": {"type": "database", "engine": "nosql"},
        "relationships": {
            "author": {"type": "belongsTo", "target": "User", "foreignKey": "userId"},
        },
        "accessControl": {
            "default": "deny",
            "rules": [
                {"allow": "create", "groups": ["users"]},
                {"allow": "read", "groups": ["users", "admins"]},
                {"allow": "update", "owner": True},
            ],
        },
    }


@pytest.fixture()
def comment_raw() -> Dict[str, Any]:
    """belongsTo Post without declaring the conventional ``postId`` key."""
    return {
        "name": "Comment",
        "properties": {
            "id": {"type": "ID", "required": True},
            "body": {"type": "String", "required": True},
        },
        "dataSource": {"type": "database", "engine": "nosql"},
        "relationships": {
            "post": {"type": "belongsTo", "target": "Post"},
        },
    }


@pytest.fixture()
def tag_raws() -> List[Dict[str, Any]]:
    """``Tag`` plus two models that both reach it via ``tagId``."""
    tag = {
        "name": "Tag",
        "properties": {
            "id": {"type": "ID", "required": True},
            "label": {"type": "String", "required": True},
            "tagId": {"type": "ID"},
        },
        "dataSource": {"type": "database", "engine": "nosql"},
    }
    article = {
        "name": "Article",
        "properties": {"id": {"type": "ID", "required": True}},
        "dataSource": {"type": "database", "engine": "nosql"},
        "relationships": {
            "tags": {"type": "hasMany", "target": "Tag", "foreignKey": "tagId"},
        },
    }
    photo = {
        "name": "Photo",
        "properties": {"id": {"type": "ID", "required": True}},
        "dataSource": {"type": "database", "engine": "nosql"},
        "relationships": {
            "labels": {"type": "hasMany", "target": "Tag", "foreignKey": "tagId"},
        },
    }
    return [tag, article, photo]


@pytest.fixture()
def invoice_raw() -> Dict[str, Any]:
    """Relational model declaring the shared cluster, with timestamps."""
    return {
        "name": "Invoice",
        "properties": {
            "id": {"type": "ID", "required": True},
            "amount": {"type": "Float", "required": True},
            "ownerId": {"type": "ID", "isOwner": True},
            "metadata": {"type": "AWSJSON"},
            "createdAt": {"type": "AWSDateTime"},
            "updatedAt": {"type": "AWSDateTime"},
        },
        "dataSource": {
            "type": "database",
            "engine": "sql",
            "cluster": {
                "name": "BillingCluster",
                "secretRef": "arn:aws:secretsmanager:billing",
                "database": "billing",
            },
        },
        "accessControl": {
            "rules": [
                {"allow": "create", "groups": ["billing"]},
                {"allow": "read", "groups": ["billing"], "owner": True},
                {"allow": "update", "owner": True},
                {"allow": "delete", "groups": ["admins"], "owner": True},
            ],
        },
    }


@pytest.fixture()
def weather_raw() -> Dict[str, Any]:
    """Direct third-party HTTP model."""
    return {
        "name": "Weather",
        "properties": {
            "id": {"type": "ID", "required": True},
            "city": {"type": "String", "required": True},
            "temperature": {"type": "Float"},
        },
        "dataSource": {"type": "thirdPartyApi", "endpoint": "https://weather.example.com"},
    }


@pytest.fixture()
def geocode_raw() -> Dict[str, Any]:
    """Rate-limited third-party model: every operation is queued."""
    return {
        "name": "Geocode",
        "properties": {
            "id": {"type": "ID", "required": True},
            "address": {"type": "String", "required": True},
        },
        "dataSource": {
            "type": "thirdPartyApi",
            "endpoint": "https://geo.example.com",
            "limits": {"limit": 10, "frequencyInSeconds": 60},
        },
        "accessControl": {
            "default": "allow",
            "rules": [{"allow": "create", "groups": ["mappers"]}],
        },
    }


@pytest.fixture()
def hooked_raw() -> Dict[str, Any]:
    """Document model with lifecycle hooks and subscriptions."""
    return {
        "name": "Order",
        "properties": {
            "id": {"type": "ID", "required": True},
            "total": {"type": "Float", "required": True},
            "createdAt": {"type": "AWSDateTime"},
            "updatedAt": {"type": "AWSDateTime"},
        },
        "dataSource": {"type": "database", "engine": "nosql"},
        "hooks": {
            "beforeCreate": "validateOrder",
            "afterCreate": "notifyWarehouse",
            "beforeRead": "auditRead",
        },
        "enableSubscriptions": True,
    }


# ---------------------------------------------------------------------------
# Parsed model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def blog_models(user_raw: Dict[str, Any], post_raw: Dict[str, Any]) -> List[ModelDefinition]:
    return build_models(post_raw, user_raw)


@pytest.fixture()
def config() -> CompilationConfig:
    return CompilationConfig()


# ---------------------------------------------------------------------------
# Directory fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def models_dir(
    tmp_path: pathlib.Path, user_raw: Dict[str, Any], post_raw: Dict[str, Any]
) -> pathlib.Path:
    """A model directory with one YAML and one JSON model file."""
    directory = tmp_path / "models"
    directory.mkdir()
    write_yaml(directory / "User.yaml", user_raw)
    write_json(directory / "Post.json", post_raw)
    return directory


@pytest.fixture()
def output_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    """An output directory path (not yet created)."""
    return tmp_path / "build"
