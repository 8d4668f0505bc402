"""Tests for the permission catalog YAML loader and permission name parsing."""
from __future__ import annotations

from pathlib import Path

import pytest

from permgate.security.catalog import (
    CatalogConfigError,
    InMemoryPermissionCatalog,
    load_catalog_config,
    parse_catalog_config,
)
from permgate.security.types import Permission, RoleRef, field_permission

REPO_CATALOG = Path(__file__).resolve().parents[2] / "config" / "permissions.yaml"


def test_parse_permission_names():
    assert Permission.parse("article.read") == Permission(name="article.read", resource="article", action="read")
    assert Permission.parse("article.read.field.title") == Permission(
        name="article.read.field.title", resource="article", action="read", field="title"
    )
    assert Permission.parse("*").is_wildcard


@pytest.mark.parametrize("name", ["article", "article.", ".read", "article.read.title", "article.read.field.", ""])
def test_invalid_permission_names(name):
    with pytest.raises(ValueError):
        Permission.parse(name)


def test_field_permission_name():
    assert field_permission("order", "read", "amount") == "order.read.field.amount"


def test_load_catalog_from_yaml(tmp_path):
    path = tmp_path / "catalog.yaml"
    path.write_text(
        """
permissions:
  article.read: {description: Read}
  article.update:
  article.publish: {}
roles:
  editor:
    display_name: Editor
    permissions: [article.read, article.update]
  publisher:
    extends: editor
    system: true
    permissions: [article.publish]
""",
        encoding="utf-8",
    )

    config = load_catalog_config(path)

    assert config.permissions["article.read"].description == "Read"
    assert config.roles["publisher"].is_system is True
    assert config.roles["editor"].display_name == "Editor"
    assert config.effective_permissions["publisher"] == frozenset({"article.read", "article.update", "article.publish"})


def test_unknown_permission_in_role_is_rejected():
    with pytest.raises(CatalogConfigError, match="unknown permissions"):
        parse_catalog_config({"permissions": {}, "roles": {"editor": {"permissions": ["article.read"]}}})


def test_unknown_parent_role_is_rejected():
    with pytest.raises(CatalogConfigError, match="extends unknown role"):
        parse_catalog_config({"roles": {"editor": {"extends": "ghost"}}})


def test_inheritance_cycle_is_rejected():
    with pytest.raises(CatalogConfigError, match="cycle"):
        parse_catalog_config({"roles": {"a": {"extends": "b"}, "b": {"extends": "a"}}})


def test_invalid_permission_name_is_rejected():
    with pytest.raises(CatalogConfigError):
        parse_catalog_config({"permissions": {"not-a-permission": {}}})


def test_in_memory_catalog_serves_flattened_role_permissions(catalog_config):
    catalog = InMemoryPermissionCatalog(catalog_config)

    assert catalog.permissions_for_role(RoleRef(id=1, name="publisher")) == [
        "article.publish",
        "article.read",
        "article.update",
    ]
    assert catalog.permissions_for_role(RoleRef(id=2, name="unknown")) == []


def test_repository_catalog_is_valid():
    config = load_catalog_config(REPO_CATALOG)

    assert "*" in config.effective_permissions["admin"]
    assert config.roles["admin"].is_system is True
    assert "article.publish" in config.effective_permissions["publisher"]
