"""Tests for DataScope parsing and the typed custom-scope predicates."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from permgate.security.errors import ScopeNotImplemented
from permgate.security.scope import (
    AllScope,
    And,
    CustomScope,
    DepartmentScope,
    Eq,
    Gt,
    In,
    Lt,
    Ne,
    Or,
    SelfScope,
    dump_data_scope,
    filter_rows,
    parse_data_scope,
)

ROWS = [
    {"id": 1, "owner_id": 1, "department_id": 10, "status": "open", "amount": 50},
    {"id": 2, "owner_id": 2, "department_id": 10, "status": "closed", "amount": 500},
    {"id": 3, "owner_id": 3, "department_id": 20, "status": "open", "amount": 900},
]


def _ids(rows):
    return [r["id"] for r in rows]


def test_parse_simple_scopes():
    assert parse_data_scope({"type": "all"}) == AllScope()
    assert parse_data_scope({"type": "department"}) == DepartmentScope()
    assert parse_data_scope({"type": "self"}) == SelfScope()
    assert parse_data_scope(None) is None


def test_parse_custom_scope_with_nested_predicates():
    scope = parse_data_scope(
        {
            "type": "custom",
            "conditions": [
                {"op": "or", "conditions": [{"op": "eq", "field": "status", "value": "open"}, {"op": "gt", "field": "amount", "value": 100}]},
            ],
        }
    )

    assert isinstance(scope, CustomScope)
    assert scope.conditions == (Or(conditions=(Eq(field="status", value="open"), Gt(field="amount", value=100))),)
    assert scope.fields() == frozenset({"status", "amount"})


def test_scope_round_trips_through_json_dump():
    scope = CustomScope(conditions=(In(field="status", values=("open", "held")),))

    assert parse_data_scope(dump_data_scope(scope)) == scope


def test_raw_string_conditions_are_rejected():
    with pytest.raises(ValidationError):
        parse_data_scope({"type": "custom", "conditions": ["status = 'active' OR 1=1"]})


def test_unknown_scope_type_is_rejected():
    with pytest.raises(ValidationError):
        parse_data_scope({"type": "everything"})


@pytest.mark.parametrize("field", ["status; DROP TABLE orders", "a.b", "1abc", ""])
def test_field_names_must_be_identifiers(field):
    with pytest.raises(ValidationError):
        Eq(field=field, value="x")


def test_empty_boolean_groups_are_rejected():
    with pytest.raises(ValidationError):
        And(conditions=())


def test_predicate_evaluation():
    row = {"status": "open", "amount": 50, "note": None}

    assert Eq(field="status", value="open").evaluate(row)
    assert not Eq(field="missing", value=None).evaluate(row)
    assert Eq(field="note", value=None).evaluate(row)
    assert Ne(field="status", value="closed").evaluate(row)
    assert Gt(field="amount", value=10).evaluate(row)
    assert not Gt(field="status", value=10).evaluate(row)
    assert Lt(field="amount", value=100).evaluate(row)
    assert not Lt(field="note", value=100).evaluate(row)
    assert In(field="status", values=("open", "held")).evaluate(row)
    assert And(conditions=(Eq(field="status", value="open"), Lt(field="amount", value=10))).evaluate(row) is False
    assert Or(conditions=(Eq(field="status", value="x"), Lt(field="amount", value=100))).evaluate(row) is True


def test_filter_rows_all_and_self():
    assert _ids(filter_rows(ROWS, AllScope(), principal_id=1)) == [1, 2, 3]
    assert _ids(filter_rows(ROWS, SelfScope(), principal_id=2)) == [2]


def test_filter_rows_department():
    assert _ids(filter_rows(ROWS, DepartmentScope(), principal_id=3, department_id=10)) == [1, 2]


def test_department_scope_without_department_raises():
    with pytest.raises(ScopeNotImplemented):
        filter_rows(ROWS, DepartmentScope(), principal_id=1, department_id=None)


def test_filter_rows_custom_conditions_are_anded():
    scope = CustomScope(conditions=(Eq(field="status", value="open"), Gt(field="amount", value=100)))

    assert _ids(filter_rows(ROWS, scope, principal_id=1)) == [3]


def test_scope_priorities_are_a_total_order():
    priorities = [s.priority for s in (AllScope(), DepartmentScope(), CustomScope(), SelfScope())]

    assert priorities == sorted(priorities)
    assert len(set(priorities)) == 4
