from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from permgate.models.security import User
from permgate.schemas.security import (
    CheckPermissionRequest,
    CheckPermissionResponse,
    EffectivePermissionsOut,
    UserOut,
)
from permgate.security.context import AuthzContext
from permgate.security.dependencies import get_authz, get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> User:
    return user


@router.get("/me/permissions", response_model=EffectivePermissionsOut)
def my_permissions(ctx: AuthzContext = Depends(get_authz)) -> dict[str, object]:
    return ctx.effective.to_dict()


@router.post("/check-permission", response_model=CheckPermissionResponse)
def check_permission(body: CheckPermissionRequest, ctx: AuthzContext = Depends(get_authz)) -> CheckPermissionResponse:
    # One resolution (get_authz) serves whichever check the body asks for.
    effective = ctx.effective
    if body.permission:
        allowed = effective.allows(body.permission)
    elif body.permissions:
        allowed = effective.allows_all(body.permissions) if body.require_all else effective.allows_any(body.permissions)
    elif body.role:
        allowed = effective.has_role(body.role)
    elif body.roles:
        allowed = any(effective.has_role(r) for r in body.roles)
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="One of permission, permissions, role or roles is required.",
        )

    return CheckPermissionResponse(
        has_permission=allowed,
        roles=sorted(effective.roles),
        permissions=sorted(effective.permissions),
    )
