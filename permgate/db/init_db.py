from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from permgate.db.base import Base
from permgate.db.grants import assign_role, grant_permission
from permgate.db.session import SessionLocal, engine
from permgate.models.content import Article, Order
from permgate.models.security import CatalogPermission, Department, Role, RolePermission, User
from permgate.security.catalog import CatalogConfig, load_catalog_config
from permgate.security.scope import AllScope, CustomScope, DepartmentScope, Eq
from permgate.security.types import GrantType
from permgate.settings import get_settings

logger = logging.getLogger(__name__)


def init_db() -> None:
    """
    Create tables, sync the permission catalog from YAML and seed demo data.

    Catalog sync runs on every startup so YAML edits take effect; demo data
    is only inserted into an empty database.
    """

    settings = get_settings()
    Base.metadata.create_all(bind=engine)

    catalog = load_catalog_config(settings.resolved_catalog_path())

    with SessionLocal() as db:
        sync_catalog(db, catalog)
        if settings.seed_demo_data and not _has_seed_data(db):
            _seed(db)
        db.commit()


def sync_catalog(db: Session, catalog: CatalogConfig) -> None:
    """
    Upsert permissions, roles and role->permission links from ``catalog``.

    Links no longer present in the catalog are deactivated, not deleted.
    Role links use the flattened (``extends``-resolved) permission sets.
    """

    perms_by_name = {p.name: p for p in db.scalars(select(CatalogPermission)).all()}
    for name, definition in catalog.permissions.items():
        row = perms_by_name.get(name)
        if row is None:
            row = CatalogPermission(name=name)
            db.add(row)
            perms_by_name[name] = row
        row.description = definition.description
        row.resource = definition.permission.resource
        row.action = definition.permission.action
        row.field = definition.permission.field

    roles_by_name = {r.name: r for r in db.scalars(select(Role)).all()}
    for name, definition in catalog.roles.items():
        row = roles_by_name.get(name)
        if row is None:
            row = Role(name=name)
            db.add(row)
            roles_by_name[name] = row
        row.display_name = definition.display_name
        row.description = definition.description
        row.is_system = definition.is_system
    db.flush()

    links = {(link.role_id, link.permission_id): link for link in db.scalars(select(RolePermission)).all()}
    wanted: set[tuple[int, int]] = set()
    for role_name, perm_names in catalog.effective_permissions.items():
        role = roles_by_name[role_name]
        for perm_name in perm_names:
            key = (role.id, perms_by_name[perm_name].id)
            wanted.add(key)
            link = links.get(key)
            if link is None:
                db.add(RolePermission(role_id=key[0], permission_id=key[1], is_active=True))
            else:
                link.is_active = True

    for key, link in links.items():
        if key not in wanted and link.is_active:
            link.is_active = False
    db.flush()
    logger.info("Permission catalog synced: %d permissions, %d roles", len(catalog.permissions), len(catalog.roles))


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Department.id).limit(1)).first() is not None


def _seed(db: Session) -> None:
    hr = Department(name="Human Resources", code="HR", description="HR Department")
    it = Department(name="Information Technology", code="IT", description="IT Department")
    fin = Department(name="Finance", code="FIN", description="Finance Department")
    db.add_all([hr, it, fin])
    db.flush()

    alice = User(username="alice_admin", email="alice.admin@example.com", department_id=hr.id, is_active=True)
    eddie = User(username="eddie_editor", email="eddie.editor@example.com", department_id=it.id, is_active=True)
    vera = User(username="vera_viewer", email="vera.viewer@example.com", department_id=it.id, is_active=True)
    fran = User(username="fran_fin", email="fran.fin@example.com", department_id=fin.id, is_active=True)
    db.add_all([alice, eddie, vera, fran])
    db.flush()

    assign_role(db, alice.id, "admin", data_scope=AllScope(), reason="seed")
    assign_role(db, eddie.id, "editor", data_scope=DepartmentScope(), reason="seed")
    assign_role(db, vera.id, "viewer", reason="seed")
    assign_role(
        db,
        fran.id,
        "auditor",
        data_scope=CustomScope(conditions=(Eq(field="status", value="open"),)),
        reason="seed",
    )
    # Direct read grant; the restriction keeps article.publish denied under any later role.
    grant_permission(db, fran.id, "article.read", type=GrantType.DIRECT, reason="seed")
    grant_permission(db, fran.id, "article.publish", type=GrantType.RESTRICTED, reason="seed")

    db.add_all(
        [
            Article(title="Network upgrade plan", body="Internal draft.", status="draft", owner_id=eddie.id, department_id=it.id),
            Article(title="Laptop policy", body="All laptops are encrypted.", status="published", owner_id=vera.id, department_id=it.id),
            Article(title="Benefits overview", body="Open enrolment in May.", status="published", owner_id=alice.id, department_id=hr.id),
            Article(title="Budget notes", body="Q3 figures.", status="draft", owner_id=fran.id, department_id=fin.id),
        ]
    )
    db.add_all(
        [
            Order(reference="ORD-1001", amount=1200.00, customer_email="buyer1@example.com", status="open", owner_id=fran.id, department_id=fin.id),
            Order(reference="ORD-1002", amount=350.50, customer_email="buyer2@example.com", status="closed", owner_id=fran.id, department_id=fin.id),
            Order(reference="ORD-2001", amount=99.99, customer_email="buyer3@example.com", status="open", owner_id=eddie.id, department_id=it.id),
        ]
    )
    db.flush()
