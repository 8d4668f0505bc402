from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ArticleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    body: str | None
    status: str
    owner_id: int
    department_id: int | None
    created_at: datetime


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference: str
    amount: float
    customer_email: str
    status: str
    owner_id: int
    department_id: int | None
    created_at: datetime
