from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from permgate.db.session import get_db
from permgate.models.content import Order
from permgate.schemas.content import OrderOut
from permgate.security.context import DataAccessContext
from permgate.security.dependencies import require_data_access, scoped_select
from permgate.security.field_filter import filter_fields

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=list[dict[str, Any]])
def list_orders(
    db: Session = Depends(get_db),
    access: DataAccessContext = Depends(require_data_access("order", "read")),
) -> list[dict[str, Any]]:
    stmt = scoped_select(select(Order).order_by(Order.id), Order, access)
    records = [OrderOut.model_validate(row).model_dump(mode="json") for row in db.scalars(stmt).all()]
    return filter_fields(records, access.access.allowed_fields)
