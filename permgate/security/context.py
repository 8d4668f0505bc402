from __future__ import annotations

from dataclasses import dataclass

from permgate.security.types import DataAccessResult, EffectivePermissionSet


@dataclass(frozen=True)
class AuthzContext:
    """
    Per-request authorization context.

    Built once per request by ``permgate.security.dependencies`` and passed
    explicitly to query helpers; nothing reads it from global state.
    """

    principal_id: int
    department_id: int | None
    effective: EffectivePermissionSet

    @property
    def roles(self) -> frozenset[str]:
        return self.effective.roles

    @property
    def permissions(self) -> frozenset[str]:
        return self.effective.permissions


@dataclass(frozen=True)
class DataAccessContext:
    """``AuthzContext`` plus the scope/field decision for one resource."""

    authz: AuthzContext
    resource: str
    action: str
    access: DataAccessResult
