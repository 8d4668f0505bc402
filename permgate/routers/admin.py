from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from permgate.db.session import get_db
from permgate.models.security import User
from permgate.schemas.security import UserOut
from permgate.security.dependencies import require_role

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_role("admin"))])


@router.get("/users", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db)) -> list[User]:
    stmt = select(User).options(selectinload(User.department)).order_by(User.id)
    return list(db.scalars(stmt).all())
