from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dbaas.core.config import settings
from dbaas.db.engine import get_session
from dbaas.db.models import User
from dbaas.security.models import AdminPrincipal, Principal, principal_for

logger = logging.getLogger(__name__)
api_key_scheme = APIKeyHeader(name=settings.api_key_header, auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
    )


async def _lookup_user(db: AsyncSession, api_key: str) -> Optional[User]:
    try:
        res = await db.execute(select(User).where(User.api_key == api_key))
    except SQLAlchemyError as exc:
        logger.error("API key lookup failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication backend unavailable",
        ) from exc
    return res.scalars().first()


# ---------------------------------------------------------------------
# FastAPI Dependencies
# ---------------------------------------------------------------------


async def get_principal(
    api_key: Optional[str] = Depends(api_key_scheme),
    db: AsyncSession = Depends(get_session),
) -> Principal:
    """
    Resolve the caller from the API key header.

    Raises 401 when the key is missing, unknown or expired.
    """
    if not api_key:
        raise _unauthorized("API key required")

    user = await _lookup_user(db, api_key)
    if user is None:
        logger.info("Rejected unknown API key")
        raise _unauthorized("Invalid API key")

    if not user.has_valid_api_key():
        logger.info("Rejected expired API key for user %s", user.id)
        raise _unauthorized("API key expired")

    try:
        return principal_for(
            user_id=user.id, role=user.role, name=user.name, email=user.email
        )
    except ValueError as exc:
        logger.warning("User %s has an invalid role %r", user.id, user.role)
        raise _unauthorized("Invalid API key") from exc


async def require_admin(
    principal: Principal = Depends(get_principal),
) -> AdminPrincipal:
    if not isinstance(principal, AdminPrincipal):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return principal
