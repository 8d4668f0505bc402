"""
Row-visibility scopes and the typed predicates used by ``custom`` scopes.

A scope is stored as JSON on a role assignment, e.g.::

    {"type": "all"}
    {"type": "department"}
    {"type": "custom", "conditions": [{"op": "eq", "field": "status", "value": "published"}]}

Custom conditions are a small predicate tree (``eq``/``ne``/``gt``/``lt``/
``in``/``and``/``or``) over named fields. They are compiled to SQLAlchemy
column expressions by ``permgate.db.filters`` or evaluated in memory against
dict rows here. There is no string form: a raw SQL fragment fails validation.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from permgate.security.errors import ScopeNotImplemented

Scalar = Union[bool, int, float, str, None]
ColumnLookup = Callable[[str], ColumnElement[Any]]

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_MISSING = object()


# ---- Predicates ----------------------------------------------------------------------


class _FieldPredicate(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str

    @field_validator("field")
    @classmethod
    def check_field_name(cls, v: str) -> str:
        if not _FIELD_RE.match(v):
            raise ValueError(f"invalid field name {v!r}")
        return v

    def fields(self) -> frozenset[str]:
        return frozenset({self.field})


class _Comparison(_FieldPredicate):
    value: Scalar


class Eq(_Comparison):
    op: Literal["eq"] = "eq"

    def to_clause(self, column_for: ColumnLookup) -> ColumnElement[bool]:
        col = column_for(self.field)
        return col.is_(None) if self.value is None else col == self.value

    def evaluate(self, row: Mapping[str, Any]) -> bool:
        value = row.get(self.field, _MISSING)
        return value is not _MISSING and value == self.value


class Ne(_Comparison):
    op: Literal["ne"] = "ne"

    def to_clause(self, column_for: ColumnLookup) -> ColumnElement[bool]:
        col = column_for(self.field)
        return col.is_not(None) if self.value is None else col != self.value

    def evaluate(self, row: Mapping[str, Any]) -> bool:
        value = row.get(self.field, _MISSING)
        return value is not _MISSING and value != self.value


class Gt(_Comparison):
    op: Literal["gt"] = "gt"

    def to_clause(self, column_for: ColumnLookup) -> ColumnElement[bool]:
        return column_for(self.field) > self.value

    def evaluate(self, row: Mapping[str, Any]) -> bool:
        value = row.get(self.field)
        if value is None or self.value is None:
            return False
        try:
            return value > self.value
        except TypeError:
            return False


class Lt(_Comparison):
    op: Literal["lt"] = "lt"

    def to_clause(self, column_for: ColumnLookup) -> ColumnElement[bool]:
        return column_for(self.field) < self.value

    def evaluate(self, row: Mapping[str, Any]) -> bool:
        value = row.get(self.field)
        if value is None or self.value is None:
            return False
        try:
            return value < self.value
        except TypeError:
            return False


class In(_FieldPredicate):
    op: Literal["in"] = "in"
    values: tuple[Scalar, ...] = Field(min_length=1)

    def to_clause(self, column_for: ColumnLookup) -> ColumnElement[bool]:
        return column_for(self.field).in_(self.values)

    def evaluate(self, row: Mapping[str, Any]) -> bool:
        value = row.get(self.field, _MISSING)
        return value is not _MISSING and value in self.values


class And(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    op: Literal["and"] = "and"
    conditions: tuple[Predicate, ...] = Field(min_length=1)

    def fields(self) -> frozenset[str]:
        return frozenset().union(*(c.fields() for c in self.conditions))

    def to_clause(self, column_for: ColumnLookup) -> ColumnElement[bool]:
        return and_(*(c.to_clause(column_for) for c in self.conditions))

    def evaluate(self, row: Mapping[str, Any]) -> bool:
        return all(c.evaluate(row) for c in self.conditions)


class Or(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    op: Literal["or"] = "or"
    conditions: tuple[Predicate, ...] = Field(min_length=1)

    def fields(self) -> frozenset[str]:
        return frozenset().union(*(c.fields() for c in self.conditions))

    def to_clause(self, column_for: ColumnLookup) -> ColumnElement[bool]:
        return or_(*(c.to_clause(column_for) for c in self.conditions))

    def evaluate(self, row: Mapping[str, Any]) -> bool:
        return any(c.evaluate(row) for c in self.conditions)


Predicate = Annotated[Union[Eq, Ne, Gt, Lt, In, And, Or], Field(discriminator="op")]

And.model_rebuild()
Or.model_rebuild()


# ---- Scopes --------------------------------------------------------------------------


class _Scope(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Lower wins when several role assignments carry a scope.
    priority: ClassVar[int]


class AllScope(_Scope):
    type: Literal["all"] = "all"
    priority: ClassVar[int] = 0

    def matches(self, row: Mapping[str, Any], principal_id: object, department_id: object | None) -> bool:
        return True


class DepartmentScope(_Scope):
    type: Literal["department"] = "department"
    priority: ClassVar[int] = 1

    def matches(self, row: Mapping[str, Any], principal_id: object, department_id: object | None) -> bool:
        if department_id is None:
            raise ScopeNotImplemented("department scope requires a principal with a department")
        if "department_id" not in row:
            raise ScopeNotImplemented("department scope requires rows with a department_id")
        return row["department_id"] == department_id


class CustomScope(_Scope):
    type: Literal["custom"] = "custom"
    priority: ClassVar[int] = 2

    conditions: tuple[Predicate, ...] = ()

    def fields(self) -> frozenset[str]:
        return frozenset().union(*(c.fields() for c in self.conditions))

    def matches(self, row: Mapping[str, Any], principal_id: object, department_id: object | None) -> bool:
        return all(c.evaluate(row) for c in self.conditions)


class SelfScope(_Scope):
    type: Literal["self"] = "self"
    priority: ClassVar[int] = 3

    def matches(self, row: Mapping[str, Any], principal_id: object, department_id: object | None) -> bool:
        return row.get("owner_id", _MISSING) == principal_id


DataScope = Annotated[Union[AllScope, DepartmentScope, CustomScope, SelfScope], Field(discriminator="type")]

_DATA_SCOPE_ADAPTER: TypeAdapter[DataScope] = TypeAdapter(DataScope)


def parse_data_scope(raw: Mapping[str, Any] | _Scope | None) -> DataScope | None:
    """Validate a stored scope value. ``None`` means "no override"."""

    if raw is None or isinstance(raw, _Scope):
        return raw
    return _DATA_SCOPE_ADAPTER.validate_python(raw)


def dump_data_scope(scope: DataScope | None) -> dict[str, Any] | None:
    if scope is None:
        return None
    return scope.model_dump(mode="json")


def filter_rows(
    rows: Iterable[Mapping[str, Any]],
    scope: DataScope,
    principal_id: object,
    department_id: object | None = None,
) -> list[Mapping[str, Any]]:
    """In-memory counterpart of ``permgate.db.filters.apply_scope``."""

    return [row for row in rows if scope.matches(row, principal_id, department_id)]
