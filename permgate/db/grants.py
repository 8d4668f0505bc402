"""
Administrative grant/revoke helpers and grant listings.

These are the only writers of role assignments and direct grants. The
engine never calls them; it simply sees the new state on its next
resolution. Callers own the transaction (flush only, no commit).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from permgate.models.security import CatalogPermission, Role, UserPermission, UserRole
from permgate.security.scope import DataScope, dump_data_scope
from permgate.security.types import GrantType, utcnow

logger = logging.getLogger(__name__)


class UnknownCatalogEntry(LookupError):
    """Raised when a role or permission name is not in the catalog tables."""


def _role_by_name(db: Session, role_name: str) -> Role:
    role = db.execute(select(Role).where(Role.name == role_name)).scalar_one_or_none()
    if role is None:
        raise UnknownCatalogEntry(f"unknown role {role_name!r}")
    return role


def _permission_by_name(db: Session, permission_name: str) -> CatalogPermission:
    perm = db.execute(select(CatalogPermission).where(CatalogPermission.name == permission_name)).scalar_one_or_none()
    if perm is None:
        raise UnknownCatalogEntry(f"unknown permission {permission_name!r}")
    return perm


def assign_role(
    db: Session,
    user_id: int,
    role_name: str,
    *,
    data_scope: DataScope | None = None,
    expires_at: datetime | None = None,
    assigned_by: int | None = None,
    reason: str | None = None,
) -> UserRole:
    role = _role_by_name(db, role_name)
    assignment = UserRole(
        user_id=user_id,
        role_id=role.id,
        data_scope=dump_data_scope(data_scope),
        expires_at=expires_at,
        is_active=True,
        assigned_by=assigned_by,
        reason=reason,
    )
    db.add(assignment)
    db.flush()
    logger.info("Role assigned user_id=%s role=%s scope=%s", user_id, role_name, data_scope.type if data_scope else None)
    return assignment


def revoke_role(db: Session, user_id: int, role_name: str) -> int:
    """Deactivate every assignment of ``role_name`` to ``user_id``; returns the count."""
    role = _role_by_name(db, role_name)
    result = db.execute(
        update(UserRole)
        .where(UserRole.user_id == user_id, UserRole.role_id == role.id, UserRole.is_active.is_(True))
        .values(is_active=False)
    )
    db.flush()
    logger.info("Role revoked user_id=%s role=%s count=%s", user_id, role_name, result.rowcount)
    return result.rowcount


def grant_permission(
    db: Session,
    user_id: int,
    permission_name: str,
    *,
    type: GrantType = GrantType.DIRECT,
    expires_at: datetime | None = None,
    granted_by: int | None = None,
    reason: str | None = None,
) -> UserPermission:
    """Attach a direct grant, or an explicit deny when ``type`` is ``RESTRICTED``."""
    perm = _permission_by_name(db, permission_name)
    grant = UserPermission(
        user_id=user_id,
        permission_id=perm.id,
        type=GrantType(type).value,
        expires_at=expires_at,
        is_active=True,
        granted_by=granted_by,
        reason=reason,
    )
    db.add(grant)
    db.flush()
    logger.info("Permission granted user_id=%s permission=%s type=%s", user_id, permission_name, grant.type)
    return grant


def revoke_permission(db: Session, user_id: int, permission_name: str) -> int:
    """Deactivate every direct/restricted grant of ``permission_name``; returns the count."""
    perm = _permission_by_name(db, permission_name)
    result = db.execute(
        update(UserPermission)
        .where(
            UserPermission.user_id == user_id,
            UserPermission.permission_id == perm.id,
            UserPermission.is_active.is_(True),
        )
        .values(is_active=False)
    )
    db.flush()
    logger.info("Permission revoked user_id=%s permission=%s count=%s", user_id, permission_name, result.rowcount)
    return result.rowcount


@dataclass(frozen=True)
class DirectGrantRecord:
    """Administrative view of one active direct/restricted grant."""

    id: int
    permission: str
    type: GrantType
    granted_by: int | None
    granted_at: datetime
    expires_at: datetime | None
    reason: str | None


def list_direct_grants(db: Session, user_id: int) -> list[DirectGrantRecord]:
    """Active grants of ``user_id`` in grant order. Expired grants are listed too so they can be cleaned up."""
    stmt = (
        select(
            UserPermission.id,
            CatalogPermission.name,
            UserPermission.type,
            UserPermission.granted_by,
            UserPermission.granted_at,
            UserPermission.expires_at,
            UserPermission.reason,
        )
        .join(CatalogPermission, UserPermission.permission_id == CatalogPermission.id)
        .where(UserPermission.user_id == user_id, UserPermission.is_active.is_(True))
        .order_by(UserPermission.id)
    )
    return [
        DirectGrantRecord(
            id=row.id,
            permission=row.name,
            type=GrantType(row.type),
            granted_by=row.granted_by,
            granted_at=row.granted_at,
            expires_at=row.expires_at,
            reason=row.reason,
        )
        for row in db.execute(stmt)
    ]


def has_direct_grant(db: Session, user_id: int, permission_name: str, now: datetime | None = None) -> bool:
    return _has_grant(db, user_id, permission_name, GrantType.DIRECT, now)


def has_restricted_grant(db: Session, user_id: int, permission_name: str, now: datetime | None = None) -> bool:
    return _has_grant(db, user_id, permission_name, GrantType.RESTRICTED, now)


def _has_grant(db: Session, user_id: int, permission_name: str, kind: GrantType, now: datetime | None) -> bool:
    now = now or utcnow()
    stmt = (
        select(UserPermission.id)
        .join(CatalogPermission, UserPermission.permission_id == CatalogPermission.id)
        .where(
            UserPermission.user_id == user_id,
            CatalogPermission.name == permission_name,
            UserPermission.type == kind.value,
            UserPermission.is_active.is_(True),
            or_(UserPermission.expires_at.is_(None), UserPermission.expires_at > now),
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None
