from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy import Select, inspect
from sqlalchemy.sql.elements import ColumnElement

from permgate.security.context import AuthzContext
from permgate.security.errors import InvalidScopeCondition, ScopeNotImplemented
from permgate.security.scope import AllScope, CustomScope, DataScope, DepartmentScope, SelfScope

SelectT = TypeVar("SelectT", bound=Select[Any])


def apply_scope(stmt: SelectT, model: type, scope: DataScope, ctx: AuthzContext) -> SelectT:
    """
    Narrow ``stmt`` to the rows of ``model`` visible under ``scope``.

    Models opt in with class attributes:

        __owner_column__ = "owner_id"            # required for "self"
        __department_column__ = "department_id"  # required for "department"
        __scope_fields__ = frozenset({...})      # fields usable in "custom" conditions

    A scope that cannot be enforced raises instead of narrowing to something else.
    """

    if isinstance(scope, AllScope):
        return stmt

    if isinstance(scope, SelfScope):
        return stmt.where(_column(model, _required_attr(model, "__owner_column__", "self")) == ctx.principal_id)

    if isinstance(scope, DepartmentScope):
        column_name = _required_attr(model, "__department_column__", "department")
        if ctx.department_id is None:
            raise ScopeNotImplemented(f"principal {ctx.principal_id} has no department; department scope cannot be applied")
        return stmt.where(_column(model, column_name) == ctx.department_id)

    if isinstance(scope, CustomScope):
        allowed = frozenset(getattr(model, "__scope_fields__", frozenset()))

        def column_for(field_name: str) -> ColumnElement[Any]:
            if field_name not in allowed:
                raise InvalidScopeCondition(f"field {field_name!r} is not filterable on {model.__name__}")
            return _column(model, field_name)

        for condition in scope.conditions:
            stmt = stmt.where(condition.to_clause(column_for))
        return stmt

    raise ScopeNotImplemented(f"unsupported data scope {scope!r}")


def _required_attr(model: type, attr: str, scope_type: str) -> str:
    value = getattr(model, attr, None)
    if not value:
        raise ScopeNotImplemented(f"{model.__name__} does not declare {attr}; {scope_type} scope cannot be applied")
    return value


def _column(model: type, name: str) -> ColumnElement[Any]:
    mapper = inspect(model)
    if name not in mapper.columns:
        raise InvalidScopeCondition(f"{model.__name__} has no column {name!r}")
    return getattr(model, name)
