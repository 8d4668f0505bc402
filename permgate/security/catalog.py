"""
Permission catalog YAML loader.

The catalog file declares every permission name and the roles that bundle
them. It seeds the SQL tables at startup (``permgate.db.init_db``) and can
also back the engine directly through ``InMemoryPermissionCatalog``.

Expected shape::

    permissions:
      article.read:
        description: Read articles
      article.read.field.title: {}
      "*":
        description: Everything

    roles:
      viewer:
        display_name: Viewer
        permissions: [article.read]
      editor:
        extends: viewer
        system: false
        permissions: [article.update]

Role inheritance (``extends``) is flattened at load time; cycles and unknown
references are rejected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml

from permgate.security.types import Permission, RoleRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionDef:
    permission: Permission
    description: str | None = None

    @property
    def name(self) -> str:
        return self.permission.name


@dataclass(frozen=True)
class RoleDef:
    """Role definition loaded from YAML (direct permissions and parent link)."""

    name: str
    permissions: frozenset[str]
    extends: str | None = None
    display_name: str | None = None
    description: str | None = None
    is_system: bool = False


@dataclass(frozen=True)
class CatalogConfig:
    """Fully-loaded catalog with inheritance already resolved."""

    permissions: Mapping[str, PermissionDef]
    roles: Mapping[str, RoleDef]
    effective_permissions: Mapping[str, frozenset[str]]


class CatalogConfigError(ValueError):
    """Raised when the catalog YAML is invalid."""


def load_catalog_config(path: Path) -> CatalogConfig:
    raw_text = path.read_text(encoding="utf-8")
    return parse_catalog_config(yaml.safe_load(raw_text) or {})


def parse_catalog_config(raw: Mapping[str, object]) -> CatalogConfig:
    if not isinstance(raw, Mapping):
        raise CatalogConfigError("catalog must be a mapping")

    perms_raw = raw.get("permissions") or {}
    roles_raw = raw.get("roles") or {}

    if not isinstance(perms_raw, Mapping):
        raise CatalogConfigError("permissions must be a mapping")
    if not isinstance(roles_raw, Mapping):
        raise CatalogConfigError("roles must be a mapping")

    permissions: dict[str, PermissionDef] = {}
    for perm_name, perm_val in perms_raw.items():
        perm_name = str(perm_name)
        if perm_val is None:
            perm_val = {}
        if not isinstance(perm_val, Mapping):
            raise CatalogConfigError(f"permission {perm_name!r} must be a mapping")
        try:
            parsed = Permission.parse(perm_name)
        except ValueError as exc:
            raise CatalogConfigError(str(exc)) from exc
        description = perm_val.get("description")
        permissions[perm_name] = PermissionDef(
            permission=parsed,
            description=str(description) if description is not None else None,
        )

    roles: dict[str, RoleDef] = {}
    for role_name, role_val in roles_raw.items():
        role_name = str(role_name)
        if role_val is None:
            role_val = {}
        if not isinstance(role_val, Mapping):
            raise CatalogConfigError(f"role {role_name!r} must be a mapping")
        extends = role_val.get("extends")
        if extends is not None:
            extends = str(extends).strip() or None
        perms_list = role_val.get("permissions") or []
        if not isinstance(perms_list, list):
            raise CatalogConfigError(f"role {role_name!r}.permissions must be a list when present")
        display_name = role_val.get("display_name")
        description = role_val.get("description")

        roles[role_name] = RoleDef(
            name=role_name,
            permissions=frozenset(str(p) for p in perms_list),
            extends=extends,
            display_name=str(display_name) if display_name is not None else None,
            description=str(description) if description is not None else None,
            is_system=bool(role_val.get("system", False)),
        )

    for role in roles.values():
        if role.extends and role.extends not in roles:
            raise CatalogConfigError(f"role {role.name!r} extends unknown role {role.extends!r}")
        unknown = role.permissions.difference(permissions.keys())
        if unknown:
            raise CatalogConfigError(f"role {role.name!r} references unknown permissions: {sorted(unknown)}")

    return CatalogConfig(
        permissions=permissions,
        roles=roles,
        effective_permissions=_compute_effective_permissions(roles),
    )


def _compute_effective_permissions(roles: Mapping[str, RoleDef]) -> dict[str, frozenset[str]]:
    """Flatten ``extends`` chains; raise on cycles."""

    effective: dict[str, frozenset[str]] = {}
    visiting: set[str] = set()

    def dfs(role_name: str) -> frozenset[str]:
        if role_name in effective:
            return effective[role_name]
        if role_name in visiting:
            raise CatalogConfigError(f"cycle detected in role inheritance at {role_name!r}")
        visiting.add(role_name)
        role = roles[role_name]
        perms = set(role.permissions)
        if role.extends:
            perms.update(dfs(role.extends))
        result = frozenset(perms)
        effective[role_name] = result
        visiting.remove(role_name)
        return result

    for name in roles:
        dfs(name)

    return effective


class InMemoryPermissionCatalog:
    """``PermissionCatalog`` served from a loaded ``CatalogConfig``; roles are matched by name."""

    def __init__(self, config: CatalogConfig) -> None:
        self._config = config

    @classmethod
    def from_yaml(cls, path: Path) -> InMemoryPermissionCatalog:
        return cls(load_catalog_config(path))

    @classmethod
    def from_mapping(cls, role_permissions: Mapping[str, list[str]]) -> InMemoryPermissionCatalog:
        """Build a catalog from ``{role: [permission, ...]}``; permissions are declared implicitly."""
        names = {p for perms in role_permissions.values() for p in perms}
        return cls(
            parse_catalog_config(
                {
                    "permissions": {name: {} for name in names},
                    "roles": {role: {"permissions": list(perms)} for role, perms in role_permissions.items()},
                }
            )
        )

    @property
    def config(self) -> CatalogConfig:
        return self._config

    def permissions_for_role(self, role: RoleRef) -> list[str]:
        perms = self._config.effective_permissions.get(role.name)
        if perms is None:
            logger.debug("Catalog: unknown role %s contributes no permissions", role.name)
            return []
        return sorted(perms)
