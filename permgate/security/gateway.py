"""
Authorization gateway: the single entry point request handlers use.

``check_*`` methods return plain booleans (or a ``DataAccessResult``); denial
is never an exception. Each call resolves the principal exactly once. When
a request needs several checks, call ``resolve()`` once and use the
``EffectivePermissionSet`` helpers instead.

``require_*`` methods wrap the same checks and raise ``PermissionDenied`` /
``DataAccessDenied`` for callers that want exception-style flow (the FastAPI
dependencies). Every raised denial is logged on ``permgate.audit``.

``StoreUnavailable`` always propagates. Callers must treat it as a denial.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from permgate.security.data_scope import DataScopeResolver
from permgate.security.errors import DataAccessDenied, PermissionDenied
from permgate.security.resolver import PermissionResolver
from permgate.security.types import DataAccessResult, EffectivePermissionSet

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("permgate.audit")


class AuthorizationGateway:
    def __init__(self, resolver: PermissionResolver) -> None:
        self._resolver = resolver
        self._data_scopes = DataScopeResolver(resolver)

    @property
    def resolver(self) -> PermissionResolver:
        return self._resolver

    def resolve(self, principal: int | None) -> EffectivePermissionSet:
        return self._resolver.resolve(principal)

    # ---- Boolean checks -------------------------------------------------------------

    def check_permission(self, principal: int | None, name: str) -> bool:
        allowed = self.resolve(principal).allows(name)
        logger.debug("check_permission principal=%s name=%s allowed=%s", principal, name, allowed)
        return allowed

    def check_any_permission(self, principal: int | None, names: Sequence[str]) -> bool:
        return self.resolve(principal).allows_any(tuple(names))

    def check_all_permissions(self, principal: int | None, names: Sequence[str]) -> bool:
        return self.resolve(principal).allows_all(tuple(names))

    def check_role(self, principal: int | None, role_name: str) -> bool:
        return self.resolve(principal).has_role(role_name)

    def check_data_access(self, principal: int | None, resource: str, action: str = "read") -> DataAccessResult:
        return self._data_scopes.resolve(principal, resource, action)

    # ---- Raising variants -----------------------------------------------------------

    def require_permission(self, principal: int | None, name: str) -> EffectivePermissionSet:
        return self.enforce_permissions(self.resolve(principal), [name], require_all=True)

    def require_permissions(
        self,
        principal: int | None,
        names: Sequence[str],
        *,
        require_all: bool = False,
    ) -> EffectivePermissionSet:
        return self.enforce_permissions(self.resolve(principal), names, require_all=require_all)

    def require_role(self, principal: int | None, role_name: str) -> EffectivePermissionSet:
        return self.enforce_role(self.resolve(principal), role_name)

    def require_data_access(self, principal: int | None, resource: str, action: str = "read") -> DataAccessResult:
        return self.enforce_data_access(self.resolve(principal), resource, action)

    # ---- Enforcement against an already-resolved set --------------------------------

    @staticmethod
    def enforce_permissions(
        effective: EffectivePermissionSet,
        names: Sequence[str],
        *,
        require_all: bool = False,
    ) -> EffectivePermissionSet:
        names = tuple(names)
        ok = effective.allows_all(names) if require_all else effective.allows_any(names)
        if not ok:
            _audit_denial(effective, "permission", names)
            raise PermissionDenied(effective.principal, names, effective.permissions, require_all=require_all)
        return effective

    @staticmethod
    def enforce_role(effective: EffectivePermissionSet, role_name: str) -> EffectivePermissionSet:
        if not effective.has_role(role_name):
            _audit_denial(effective, "role", (role_name,))
            raise PermissionDenied(effective.principal, [f"role:{role_name}"], effective.permissions)
        return effective

    @staticmethod
    def enforce_data_access(effective: EffectivePermissionSet, resource: str, action: str = "read") -> DataAccessResult:
        result = DataScopeResolver.resolve_from(effective, resource, action)
        if not result.has_access:
            _audit_denial(effective, "data", (f"{resource}.{action}",))
            raise DataAccessDenied(effective.principal, resource, action, effective.permissions)
        return result


def _audit_denial(effective: EffectivePermissionSet, kind: str, required: Sequence[str]) -> None:
    audit_logger.info(
        "authorization denied kind=%s principal=%s required=%s roles=%s",
        kind,
        effective.principal,
        list(required),
        sorted(effective.roles),
    )
