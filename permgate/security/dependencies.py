"""
FastAPI dependencies that turn engine decisions into HTTP responses.

- no principal                 -> 401
- denied permission/role/data  -> 403, with the required permission
- grant store unavailable      -> 403 (fail closed), logged at ERROR

The caller's permission list is added to 403 bodies only when
``PERMGATE_EXPOSE_PERMISSION_DETAILS`` is on.

Resolution happens once per request (``get_authz``); every ``require_*``
dependency reuses that result.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any, NoReturn

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from permgate.db.filters import SelectT, apply_scope
from permgate.db.session import get_db
from permgate.models.security import User
from permgate.security.auth import extract_user_id, load_user
from permgate.security.context import AuthzContext, DataAccessContext
from permgate.security.errors import (
    DataAccessDenied,
    InvalidScopeCondition,
    PermissionDenied,
    ScopeNotImplemented,
    StoreUnavailable,
)
from permgate.security.gateway import AuthorizationGateway
from permgate.security.resolver import PermissionResolver
from permgate.security.store import SqlGrantStore, SqlPermissionCatalog
from permgate.settings import Settings, get_settings

logger = logging.getLogger(__name__)

GENERIC_DENIAL = "Not authorized"


def get_gateway(db: Session = Depends(get_db)) -> AuthorizationGateway:
    return AuthorizationGateway(PermissionResolver(SqlGrantStore(db), SqlPermissionCatalog(db)))


def get_current_user(
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> User:
    user_id = extract_user_id(request, settings)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    user = load_user(db, user_id)
    request.state.user = user
    return user


def get_authz(
    request: Request,
    user: User = Depends(get_current_user),
    gateway: AuthorizationGateway = Depends(get_gateway),
) -> AuthzContext:
    try:
        effective = gateway.resolve(user.id)
        department_id = gateway.resolver.store.department_of(user.id)
    except StoreUnavailable:
        _store_unavailable(user.id)

    ctx = AuthzContext(principal_id=user.id, department_id=department_id, effective=effective)
    request.state.authz = ctx
    return ctx


def require_permission(name: str) -> Callable[..., AuthzContext]:
    return require_permissions([name], require_all=True)


def require_permissions(names: Sequence[str], require_all: bool = False) -> Callable[..., AuthzContext]:
    names = tuple(names)
    if not names:
        raise ValueError("require_permissions needs at least one permission name")

    def dependency(
        ctx: AuthzContext = Depends(get_authz),
        settings: Settings = Depends(get_settings),
    ) -> AuthzContext:
        try:
            AuthorizationGateway.enforce_permissions(ctx.effective, names, require_all=require_all)
        except PermissionDenied as exc:
            _forbidden(exc, settings, code="FORBIDDEN")
        return ctx

    return dependency


def require_role(role_name: str) -> Callable[..., AuthzContext]:
    def dependency(
        ctx: AuthzContext = Depends(get_authz),
        settings: Settings = Depends(get_settings),
    ) -> AuthzContext:
        try:
            AuthorizationGateway.enforce_role(ctx.effective, role_name)
        except PermissionDenied as exc:
            _forbidden(exc, settings, code="ROLE_FORBIDDEN", debug_extra={"roles": sorted(ctx.roles)})
        return ctx

    return dependency


def require_data_access(resource: str, action: str = "read") -> Callable[..., DataAccessContext]:
    def dependency(
        ctx: AuthzContext = Depends(get_authz),
        settings: Settings = Depends(get_settings),
    ) -> DataAccessContext:
        try:
            access = AuthorizationGateway.enforce_data_access(ctx.effective, resource, action)
        except DataAccessDenied as exc:
            _forbidden(
                exc,
                settings,
                code="DATA_ACCESS_FORBIDDEN",
                extra={"resource": exc.resource, "action": exc.action},
            )
        return DataAccessContext(authz=ctx, resource=resource, action=action, access=access)

    return dependency


def _forbidden(
    exc: PermissionDenied,
    settings: Settings,
    *,
    code: str,
    extra: dict[str, Any] | None = None,
    debug_extra: dict[str, Any] | None = None,
) -> NoReturn:
    detail: dict[str, Any] = {"error": GENERIC_DENIAL, "code": code, "required": list(exc.required)}
    detail.update(extra or {})
    if settings.expose_permission_details:
        detail["permissions"] = list(exc.granted)
        detail.update(debug_extra or {})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail) from exc


def _store_unavailable(principal: int) -> NoReturn:
    logger.error("Authorization store unavailable; denying request principal=%s", principal)
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"error": GENERIC_DENIAL, "code": "FORBIDDEN"},
    )


def scoped_select(stmt: SelectT, model: type, access: DataAccessContext) -> SelectT:
    """Apply the resolved row scope to ``stmt``; an unenforceable scope is a 403."""

    try:
        return apply_scope(stmt, model, access.access.scope, access.authz)
    except (ScopeNotImplemented, InvalidScopeCondition) as exc:
        logger.warning(
            "Data scope cannot be enforced principal=%s resource=%s scope=%s: %s",
            access.authz.principal_id,
            access.resource,
            access.access.scope.type,
            exc,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": GENERIC_DENIAL, "code": "SCOPE_UNAVAILABLE"},
        ) from exc
