"""
Permission resolution.

Merges role-derived permissions and direct grants into one
``EffectivePermissionSet`` per call:

1. Active, unexpired role assignments -> catalog permissions (union).
2. Active, unexpired direct grants -> ``direct`` and ``restricted`` names.
3. final = (role permissions | direct) - restricted, by exact name.
4. Data scope = the scoped assignment with the lowest priority value
   (all < department < custom < self); ties go to the earliest assignment.

Nothing is cached: every call reads the store again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from permgate.security.errors import StoreUnavailable, Unauthenticated
from permgate.security.scope import DataScope
from permgate.security.store import PermissionCatalog, PrincipalGrantStore
from permgate.security.types import EffectivePermissionSet, GrantType, RoleAssignment, naive_utc, utcnow

logger = logging.getLogger(__name__)


def _select_data_scope(assignments: list[RoleAssignment]) -> DataScope | None:
    scoped = [(index, a) for index, a in enumerate(assignments) if a.data_scope is not None]
    if not scoped:
        return None

    def sort_key(item: tuple[int, RoleAssignment]) -> tuple[int, datetime, int, int]:
        index, assignment = item
        return (
            assignment.data_scope.priority,
            naive_utc(assignment.created_at) if assignment.created_at is not None else datetime.min,
            assignment.id if assignment.id is not None else index,
            index,
        )

    _, winner = min(scoped, key=sort_key)
    return winner.data_scope


class PermissionResolver:
    def __init__(
        self,
        store: PrincipalGrantStore,
        catalog: PermissionCatalog,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._clock = clock

    @property
    def store(self) -> PrincipalGrantStore:
        return self._store

    def resolve(self, principal: int | None) -> EffectivePermissionSet:
        """
        Compute the effective permission set for ``principal``.

        Raises ``Unauthenticated`` for a missing principal and
        ``StoreUnavailable`` when the store cannot be read; an empty set is
        only ever returned for a principal that genuinely has no grants.
        """

        if principal is None:
            raise Unauthenticated()

        now = self._clock()
        try:
            assignments = [a for a in self._store.active_role_assignments(principal) if a.is_effective(now)]

            role_permissions: set[str] = set()
            for assignment in assignments:
                role_permissions.update(self._catalog.permissions_for_role(assignment.role))

            grants = [g for g in self._store.active_direct_grants(principal) if g.is_effective(now)]
        except StoreUnavailable:
            raise
        except Exception as exc:
            # Third-party store implementations may raise anything; never fail open.
            logger.error("Permission resolution failed principal=%s error=%s", principal, type(exc).__name__)
            raise StoreUnavailable(f"permission store failed: {exc}") from exc

        direct = frozenset(g.permission for g in grants if g.type is GrantType.DIRECT)
        restricted = frozenset(g.permission for g in grants if g.type is GrantType.RESTRICTED)

        final = (role_permissions | direct) - restricted

        result = EffectivePermissionSet(
            principal=principal,
            roles=frozenset(a.role.name for a in assignments),
            permissions=frozenset(final),
            direct_permissions=direct,
            restricted_permissions=restricted,
            data_scope=_select_data_scope(assignments),
        )
        logger.debug(
            "Resolved principal=%s roles=%s permissions=%d restricted=%s scope=%s",
            principal,
            sorted(result.roles),
            len(result.permissions),
            sorted(restricted),
            result.data_scope.type if result.data_scope is not None else None,
        )
        return result
