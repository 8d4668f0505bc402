from __future__ import annotations

import logging

from permgate.security.resolver import PermissionResolver
from permgate.security.scope import SelfScope
from permgate.security.types import FIELD_MARKER, DataAccessResult, EffectivePermissionSet

logger = logging.getLogger(__name__)


def allowed_fields_for(effective: EffectivePermissionSet, resource: str, action: str) -> tuple[str, ...]:
    """Extract ``F`` from every ``{resource}.{action}.field.{F}`` in the final set."""

    prefix = f"{resource}.{action}.{FIELD_MARKER}."
    return tuple(sorted(p[len(prefix) :] for p in effective.permissions if p.startswith(prefix) and len(p) > len(prefix)))


class DataScopeResolver:
    """Row scope and field allow-list for ``(principal, resource, action)``."""

    def __init__(self, resolver: PermissionResolver) -> None:
        self._resolver = resolver

    def resolve(self, principal: int | None, resource: str, action: str = "read") -> DataAccessResult:
        return self.resolve_from(self._resolver.resolve(principal), resource, action)

    @staticmethod
    def resolve_from(effective: EffectivePermissionSet, resource: str, action: str = "read") -> DataAccessResult:
        if not effective.allows(f"{resource}.{action}"):
            logger.debug("Data access denied principal=%s resource=%s action=%s", effective.principal, resource, action)
            return DataAccessResult(has_access=False, scope=SelfScope())

        return DataAccessResult(
            has_access=True,
            scope=effective.data_scope if effective.data_scope is not None else SelfScope(),
            allowed_fields=allowed_fields_for(effective, resource, action),
        )
