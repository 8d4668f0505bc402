from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DepartmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    code: str


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    is_active: bool
    department: DepartmentOut | None


class EffectivePermissionsOut(BaseModel):
    principal: int
    roles: list[str]
    permissions: list[str]
    direct_permissions: list[str]
    restricted_permissions: list[str]
    data_scope: dict[str, Any] | None


class CheckPermissionRequest(BaseModel):
    """Set one kind of check; checked in field order, first match wins."""

    permission: str | None = None
    permissions: list[str] = Field(default_factory=list)
    require_all: bool = False
    role: str | None = None
    roles: list[str] = Field(default_factory=list)


class CheckPermissionResponse(BaseModel):
    has_permission: bool
    roles: list[str]
    permissions: list[str]
