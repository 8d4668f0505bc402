"""Engine data structures. Plain frozen dataclasses, no ORM or FastAPI dependency."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from permgate.security.scope import DataScope, SelfScope

WILDCARD = "*"
FIELD_MARKER = "field"


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the SQL store persists datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def naive_utc(value: datetime) -> datetime:
    """Aware values are converted to UTC and stripped; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class Permission:
    """Decomposed permission name: ``resource.action`` or ``resource.action.field.F``."""

    name: str
    resource: str | None = None
    action: str | None = None
    field: str | None = None

    @classmethod
    def parse(cls, name: str) -> Permission:
        if name == WILDCARD:
            return cls(name=name)
        parts = name.split(".")
        if len(parts) == 2 and all(parts):
            return cls(name=name, resource=parts[0], action=parts[1])
        if len(parts) >= 4 and parts[2] == FIELD_MARKER and all(parts[:2]) and parts[3]:
            return cls(name=name, resource=parts[0], action=parts[1], field=".".join(parts[3:]))
        raise ValueError(f"invalid permission name {name!r}")

    @property
    def is_wildcard(self) -> bool:
        return self.name == WILDCARD


def field_permission(resource: str, action: str, field_name: str) -> str:
    return f"{resource}.{action}.{FIELD_MARKER}.{field_name}"


@dataclass(frozen=True)
class RoleRef:
    id: int
    name: str
    is_system: bool = False


class GrantType(str, enum.Enum):
    DIRECT = "direct"
    RESTRICTED = "restricted"


@dataclass(frozen=True)
class RoleAssignment:
    principal: int
    role: RoleRef
    data_scope: DataScope | None = None
    expires_at: datetime | None = None
    is_active: bool = True
    created_at: datetime | None = None
    id: int | None = None

    def is_effective(self, now: datetime) -> bool:
        return _is_effective(self.is_active, self.expires_at, now)


@dataclass(frozen=True)
class DirectGrant:
    principal: int
    permission: str
    type: GrantType = GrantType.DIRECT
    expires_at: datetime | None = None
    is_active: bool = True

    def is_effective(self, now: datetime) -> bool:
        return _is_effective(self.is_active, self.expires_at, now)


def _is_effective(is_active: bool, expires_at: datetime | None, now: datetime) -> bool:
    if not is_active:
        return False
    if expires_at is None:
        return True
    return naive_utc(expires_at) > naive_utc(now)


@dataclass(frozen=True)
class EffectivePermissionSet:
    """
    Resolved permissions for one principal, valid for a single request.

    ``permissions`` is the final set (restrictions already removed).
    """

    principal: int
    roles: frozenset[str] = frozenset()
    permissions: frozenset[str] = frozenset()
    direct_permissions: frozenset[str] = frozenset()
    restricted_permissions: frozenset[str] = frozenset()
    data_scope: DataScope | None = None

    def allows(self, name: str) -> bool:
        if name in self.restricted_permissions:
            return False
        return name in self.permissions or WILDCARD in self.permissions

    def allows_any(self, names: list[str] | tuple[str, ...]) -> bool:
        return any(self.allows(n) for n in names)

    def allows_all(self, names: list[str] | tuple[str, ...]) -> bool:
        return all(self.allows(n) for n in names)

    def has_role(self, role_name: str) -> bool:
        return role_name in self.roles

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "principal": self.principal,
            "roles": sorted(self.roles),
            "permissions": sorted(self.permissions),
            "direct_permissions": sorted(self.direct_permissions),
            "restricted_permissions": sorted(self.restricted_permissions),
            "data_scope": self.data_scope.model_dump(mode="json") if self.data_scope is not None else None,
        }


@dataclass(frozen=True)
class DataAccessResult:
    has_access: bool
    scope: DataScope = field(default_factory=SelfScope)
    # Empty means "no field restriction", not "no fields".
    allowed_fields: tuple[str, ...] = ()
