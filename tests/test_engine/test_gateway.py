"""Tests for AuthorizationGateway checks, raising helpers and audit logging."""
from __future__ import annotations

import logging

import pytest

from permgate.security.catalog import InMemoryPermissionCatalog
from permgate.security.errors import DataAccessDenied, PermissionDenied, StoreUnavailable, Unauthenticated
from permgate.security.gateway import AuthorizationGateway
from permgate.security.resolver import PermissionResolver
from permgate.security.scope import DepartmentScope, SelfScope
from permgate.security.store import InMemoryGrantStore
from permgate.security.types import DirectGrant, GrantType, RoleAssignment, RoleRef

BOB = 7


class CountingStore(InMemoryGrantStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads = 0

    def active_role_assignments(self, principal):
        self.reads += 1
        return super().active_role_assignments(principal)


@pytest.fixture
def store():
    return CountingStore(
        role_assignments=[
            RoleAssignment(principal=BOB, role=RoleRef(id=1, name="editor"), data_scope=DepartmentScope()),
        ],
        direct_grants=[
            DirectGrant(principal=BOB, permission="order.read.field.amount"),
            DirectGrant(principal=BOB, permission="article.delete", type=GrantType.RESTRICTED),
        ],
    )


@pytest.fixture
def gateway(store, clock):
    catalog = InMemoryPermissionCatalog.from_mapping(
        {"editor": ["article.read", "article.update", "article.delete", "article.read.field.title"]}
    )
    return AuthorizationGateway(PermissionResolver(store, catalog, clock=clock))


def test_check_permission(gateway):
    assert gateway.check_permission(BOB, "article.read") is True
    assert gateway.check_permission(BOB, "article.delete") is False
    assert gateway.check_permission(BOB, "order.read") is False


def test_check_any_permission(gateway):
    assert gateway.check_any_permission(BOB, ["order.read", "article.update"]) is True
    assert gateway.check_any_permission(BOB, ["order.read", "article.delete"]) is False
    assert gateway.check_any_permission(BOB, []) is False


def test_check_all_permissions(gateway):
    assert gateway.check_all_permissions(BOB, ["article.read", "article.update"]) is True
    assert gateway.check_all_permissions(BOB, ["article.read", "article.delete"]) is False
    assert gateway.check_all_permissions(BOB, []) is True


def test_check_role(gateway):
    assert gateway.check_role(BOB, "editor") is True
    assert gateway.check_role(BOB, "admin") is False


def test_each_check_resolves_once(gateway, store):
    gateway.check_permission(BOB, "article.read")
    gateway.check_all_permissions(BOB, ["article.read", "article.update"])
    gateway.check_role(BOB, "editor")
    gateway.check_data_access(BOB, "article", "read")

    assert store.reads == 4


def test_check_data_access_granted(gateway):
    result = gateway.check_data_access(BOB, "article", "read")

    assert result.has_access is True
    assert result.scope == DepartmentScope()
    assert result.allowed_fields == ("title",)


def test_check_data_access_denied(gateway):
    result = gateway.check_data_access(BOB, "order", "read")

    assert result.has_access is False
    assert result.scope == SelfScope()
    assert result.allowed_fields == ()


def test_unauthenticated_principal(gateway):
    with pytest.raises(Unauthenticated):
        gateway.check_permission(None, "article.read")


def test_require_permission_raises_with_details(gateway):
    with pytest.raises(PermissionDenied) as exc_info:
        gateway.require_permission(BOB, "article.delete")

    assert exc_info.value.required == ("article.delete",)
    assert "article.read" in exc_info.value.granted
    assert exc_info.value.principal == BOB


def test_require_permissions_any_and_all(gateway):
    gateway.require_permissions(BOB, ["order.read", "article.read"])
    with pytest.raises(PermissionDenied):
        gateway.require_permissions(BOB, ["order.read", "article.read"], require_all=True)


def test_require_role(gateway):
    assert gateway.require_role(BOB, "editor").principal == BOB
    with pytest.raises(PermissionDenied):
        gateway.require_role(BOB, "admin")


def test_require_data_access_raises_with_resource(gateway):
    with pytest.raises(DataAccessDenied) as exc_info:
        gateway.require_data_access(BOB, "order", "read")

    assert exc_info.value.resource == "order"
    assert exc_info.value.action == "read"
    assert isinstance(exc_info.value, PermissionDenied)


def test_denials_are_audit_logged(gateway, caplog):
    with caplog.at_level(logging.INFO, logger="permgate.audit"):
        with pytest.raises(PermissionDenied):
            gateway.require_permission(BOB, "article.delete")

    records = [r for r in caplog.records if r.name == "permgate.audit"]
    assert len(records) == 1
    assert "article.delete" in records[0].getMessage()


def test_boolean_denial_does_not_raise(gateway):
    assert gateway.check_permission(BOB, "user.manage") is False


def test_store_failure_propagates_from_checks(clock):
    class Down(InMemoryGrantStore):
        def active_role_assignments(self, principal):
            raise StoreUnavailable("down")

    gateway = AuthorizationGateway(
        PermissionResolver(Down(), InMemoryPermissionCatalog.from_mapping({}), clock=clock)
    )

    with pytest.raises(StoreUnavailable):
        gateway.check_permission(BOB, "article.read")
