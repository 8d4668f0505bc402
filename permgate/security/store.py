"""
Read contracts the engine needs from storage, plus SQLAlchemy and in-memory
implementations.

The engine only reads. Granting/revoking lives in ``permgate.db.grants`` and
the only contract with the engine is "the next resolution sees the change".
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Protocol, runtime_checkable

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from permgate.models.security import CatalogPermission, Role, RolePermission, User, UserPermission, UserRole
from permgate.security.errors import StoreUnavailable
from permgate.security.scope import parse_data_scope
from permgate.security.types import DirectGrant, GrantType, RoleAssignment, RoleRef, utcnow

logger = logging.getLogger(__name__)


@runtime_checkable
class PrincipalGrantStore(Protocol):
    """Active role assignments and direct grants for a principal."""

    def active_role_assignments(self, principal: int) -> list[RoleAssignment]: ...

    def active_direct_grants(self, principal: int) -> list[DirectGrant]: ...

    def department_of(self, principal: int) -> int | None: ...


@runtime_checkable
class PermissionCatalog(Protocol):
    """Permission names attached to a role."""

    def permissions_for_role(self, role: RoleRef) -> list[str]: ...


# ---- SQLAlchemy implementations ------------------------------------------------------


class SqlGrantStore:
    """
    Reads grants through a caller-owned Session.

    Any ``SQLAlchemyError`` surfaces as ``StoreUnavailable`` so the caller can
    fail closed instead of treating a broken store as "no permissions".
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow) -> None:
        self._db = db
        self._clock = clock

    def active_role_assignments(self, principal: int) -> list[RoleAssignment]:
        now = self._clock()
        stmt = (
            select(UserRole)
            .where(
                UserRole.user_id == principal,
                UserRole.is_active.is_(True),
                or_(UserRole.expires_at.is_(None), UserRole.expires_at > now),
            )
            .options(selectinload(UserRole.role))
            .order_by(UserRole.created_at, UserRole.id)
        )
        try:
            rows = list(self._db.scalars(stmt).all())
        except SQLAlchemyError as exc:
            logger.error("Grant store read failed (role assignments) principal=%s", principal)
            raise StoreUnavailable("role assignments could not be read") from exc

        assignments: list[RoleAssignment] = []
        for row in rows:
            try:
                scope = parse_data_scope(row.data_scope)
            except ValidationError as exc:
                # A corrupt scope must not widen or silently drop access.
                logger.error("Invalid data_scope on user_roles.id=%s", row.id)
                raise StoreUnavailable(f"invalid data scope on role assignment {row.id}") from exc
            assignments.append(
                RoleAssignment(
                    id=row.id,
                    principal=row.user_id,
                    role=RoleRef(id=row.role.id, name=row.role.name, is_system=row.role.is_system),
                    data_scope=scope,
                    expires_at=row.expires_at,
                    is_active=row.is_active,
                    created_at=row.created_at,
                )
            )
        return assignments

    def active_direct_grants(self, principal: int) -> list[DirectGrant]:
        now = self._clock()
        stmt = (
            select(UserPermission.user_id, CatalogPermission.name, UserPermission.type, UserPermission.expires_at)
            .join(CatalogPermission, UserPermission.permission_id == CatalogPermission.id)
            .where(
                UserPermission.user_id == principal,
                UserPermission.is_active.is_(True),
                or_(UserPermission.expires_at.is_(None), UserPermission.expires_at > now),
            )
            .order_by(UserPermission.id)
        )
        try:
            rows = self._db.execute(stmt).all()
        except SQLAlchemyError as exc:
            logger.error("Grant store read failed (direct grants) principal=%s", principal)
            raise StoreUnavailable("direct grants could not be read") from exc

        grants: list[DirectGrant] = []
        for user_id, name, grant_type, expires_at in rows:
            try:
                kind = GrantType(grant_type)
            except ValueError as exc:
                logger.error("Unknown grant type %r for principal=%s permission=%s", grant_type, user_id, name)
                raise StoreUnavailable(f"unknown grant type {grant_type!r}") from exc
            grants.append(DirectGrant(principal=user_id, permission=name, type=kind, expires_at=expires_at))
        return grants

    def department_of(self, principal: int) -> int | None:
        try:
            return self._db.execute(select(User.department_id).where(User.id == principal)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Grant store read failed (department) principal=%s", principal)
            raise StoreUnavailable("department could not be read") from exc


class SqlPermissionCatalog:
    def __init__(self, db: Session) -> None:
        self._db = db

    def permissions_for_role(self, role: RoleRef) -> list[str]:
        stmt = (
            select(CatalogPermission.name)
            .join(RolePermission, RolePermission.permission_id == CatalogPermission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .where(Role.id == role.id, RolePermission.is_active.is_(True))
            .order_by(CatalogPermission.name)
        )
        try:
            return list(self._db.scalars(stmt).all())
        except SQLAlchemyError as exc:
            logger.error("Permission catalog read failed role=%s", role.name)
            raise StoreUnavailable("permission catalog could not be read") from exc


# ---- In-memory implementation --------------------------------------------------------


class InMemoryGrantStore:
    """
    Dict-backed store for tests and embedding without a database.

    Records are returned as stored; the resolver applies activity/expiry.
    """

    def __init__(
        self,
        role_assignments: Iterable[RoleAssignment] = (),
        direct_grants: Iterable[DirectGrant] = (),
        departments: Mapping[int, int | None] | None = None,
    ) -> None:
        self.role_assignments = list(role_assignments)
        self.direct_grants = list(direct_grants)
        self.departments = dict(departments or {})

    def active_role_assignments(self, principal: int) -> list[RoleAssignment]:
        return [a for a in self.role_assignments if a.principal == principal]

    def active_direct_grants(self, principal: int) -> list[DirectGrant]:
        return [g for g in self.direct_grants if g.principal == principal]

    def department_of(self, principal: int) -> int | None:
        return self.departments.get(principal)
