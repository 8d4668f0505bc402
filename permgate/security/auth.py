from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from permgate.models.security import User
from permgate.settings import Settings

logger = logging.getLogger(__name__)


def extract_user_id(request: Request, settings: Settings) -> int | None:
    """
    Principal id from ``<authorization_header>: <bearer_prefix> <user id>``.

    Credentials are verified upstream; this service only receives the
    authenticated user id. Returns ``None`` when the header is absent (the
    caller answers 401) and raises 400 when it is present but unusable.
    """

    raw = request.headers.get(settings.authorization_header)
    if not raw:
        logger.debug("No principal presented path=%s", request.url.path)
        return None

    scheme, _, token = raw.partition(" ")
    token = token.strip()
    if scheme != settings.bearer_prefix or not (token.isascii() and token.isdigit()):
        # The header value is never logged.
        logger.warning("Unusable principal header path=%s scheme_ok=%s", request.url.path, scheme == settings.bearer_prefix)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{settings.authorization_header} must be '{settings.bearer_prefix} <user id>'.",
        )
    return int(token)


def load_user(db: Session, user_id: int) -> User:
    user = db.execute(
        select(User).where(User.id == user_id).options(selectinload(User.department))
    ).scalar_one_or_none()

    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive user")

    return user
