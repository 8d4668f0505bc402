"""
Pytest fixtures for the test suite.

Data-layer and API tests use an in-memory SQLite engine and a session that
rolls back after each test, so tests do not affect each other. Engine tests
use the in-memory store/catalog and need no database at all.
"""
from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker


TEST_DB_URL = "sqlite:///:memory:"

NOW = datetime(2026, 6, 1, 12, 0, 0)

CATALOG = {
    "permissions": {
        "*": {},
        "article.read": {},
        "article.update": {},
        "article.delete": {},
        "article.publish": {},
        "article.read.field.id": {},
        "article.read.field.title": {},
        "order.read": {},
    },
    "roles": {
        "admin": {"system": True, "permissions": ["*"]},
        "viewer": {"permissions": ["article.read", "article.read.field.id", "article.read.field.title"]},
        "editor": {"permissions": ["article.read", "article.update"]},
        "publisher": {"extends": "editor", "permissions": ["article.publish"]},
    },
}


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    """Fixed clock; resolution time is NOW for every test."""
    return lambda: NOW


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from permgate.db.base import Base
    import permgate.models.content  # noqa: F401
    import permgate.models.security  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    The transaction is rolled back so the next test gets a clean state.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def catalog_config():
    from permgate.security.catalog import parse_catalog_config

    return parse_catalog_config(CATALOG)


@pytest.fixture
def seeded_catalog(db_session, catalog_config):
    """Catalog tables populated from CATALOG."""
    from permgate.db.init_db import sync_catalog

    sync_catalog(db_session, catalog_config)
    return catalog_config


@pytest.fixture
def departments(db_session):
    from permgate.models.security import Department

    it = Department(name="IT", code="IT", description="IT")
    fin = Department(name="Finance", code="FIN", description="Finance")
    db_session.add_all([it, fin])
    db_session.flush()
    return {"IT": it, "FIN": fin}


@pytest.fixture
def make_user(db_session, departments):
    from permgate.models.security import User

    def _make(username: str, department: str | None = "IT", is_active: bool = True) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            department_id=departments[department].id if department else None,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.flush()
        return user

    return _make
