"""
Tests for principal extraction and user loading (ORM).

Uses db_session fixture: in-memory SQLite, rolled back after each test.
"""
from __future__ import annotations

import pytest
from fastapi import HTTPException, Request

from permgate.models.security import Department, User
from permgate.security.auth import extract_user_id, load_user
from permgate.settings import Settings


def test_load_user_returns_user_with_department(db_session):
    dept = Department(name="IT", code="IT", description="IT Dept")
    db_session.add(dept)
    db_session.flush()

    user = User(
        username="testuser",
        email="test@example.com",
        department_id=dept.id,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()

    loaded = load_user(db_session, user.id)

    assert loaded.id == user.id
    assert loaded.username == "testuser"
    assert loaded.department is not None
    assert loaded.department.code == "IT"


def test_load_user_without_department(db_session):
    user = User(username="nodept", email="nodept@example.com", department_id=None, is_active=True)
    db_session.add(user)
    db_session.commit()

    assert load_user(db_session, user.id).department is None


def test_load_user_raises_when_not_found(db_session):
    with pytest.raises(HTTPException) as exc_info:
        load_user(db_session, 99999)
    assert exc_info.value.status_code == 401


def test_load_user_raises_when_inactive(db_session):
    dept = Department(name="IT", code="IT", description="IT")
    db_session.add(dept)
    db_session.flush()
    user = User(
        username="inactive",
        email="inactive@example.com",
        department_id=dept.id,
        is_active=False,
    )
    db_session.add(user)
    db_session.commit()

    with pytest.raises(HTTPException) as exc_info:
        load_user(db_session, user.id)
    assert exc_info.value.status_code == 401


def _request(authorization: bytes | None) -> Request:
    headers = [(b"authorization", authorization)] if authorization is not None else []
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/articles",
            "query_string": b"",
            "headers": headers,
            "scheme": "http",
            "server": ("testserver", 80),
        }
    )


def test_extract_user_id_reads_bearer_user_id():
    assert extract_user_id(_request(b"Bearer 42"), Settings()) == 42
    assert extract_user_id(_request(None), Settings()) is None


def test_extract_user_id_rejects_non_ascii_digits():
    with pytest.raises(HTTPException) as exc_info:
        extract_user_id(_request("Bearer ²".encode("utf-8")), Settings())

    assert exc_info.value.status_code == 400
