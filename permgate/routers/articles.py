from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from permgate.db.session import get_db
from permgate.models.content import Article
from permgate.schemas.content import ArticleOut
from permgate.security.context import DataAccessContext
from permgate.security.dependencies import require_data_access, scoped_select
from permgate.security.field_filter import filter_fields

router = APIRouter(prefix="/articles", tags=["articles"])


@router.get("", response_model=list[dict[str, Any]])
def list_articles(
    db: Session = Depends(get_db),
    access: DataAccessContext = Depends(require_data_access("article", "read")),
) -> list[dict[str, Any]]:
    stmt = scoped_select(select(Article).order_by(Article.id), Article, access)
    records = [ArticleOut.model_validate(row).model_dump(mode="json") for row in db.scalars(stmt).all()]
    return filter_fields(records, access.access.allowed_fields)


@router.get("/{id}", response_model=dict[str, Any])
def get_article(
    id: int,
    db: Session = Depends(get_db),
    access: DataAccessContext = Depends(require_data_access("article", "read")),
) -> dict[str, Any]:
    stmt = scoped_select(select(Article).where(Article.id == id), Article, access)
    article = db.scalars(stmt).first()
    if article is None:
        # Rows outside the caller's scope look exactly like missing rows.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found")
    return filter_fields(ArticleOut.model_validate(article).model_dump(mode="json"), access.access.allowed_fields)
