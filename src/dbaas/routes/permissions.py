# dbaas/routes/permissions.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from dbaas.api.query.grants import GrantRepository
from dbaas.core.logging import logging
from dbaas.db.engine import get_session
from dbaas.schemas.permissions import GrantIn, GrantOut
from dbaas.security.auth import get_principal, require_admin
from dbaas.security.models import AdminPrincipal, Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/permissions")
tags = ["permissions"]


@router.get("", response_model=List[GrantOut], name="List own grants")
async def list_own_grants(
    db: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
):
    rows = await GrantRepository(db).list_grants(user_id=principal.id)
    return [GrantOut.model_validate(r) for r in rows]


@router.get("/{table}", response_model=GrantOut, name="Show own grant")
async def show_own_grant(
    table: str,
    db: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_principal),
):
    rows = await GrantRepository(db).list_grants(user_id=principal.id)
    for row in rows:
        if row.table_name == table:
            return GrantOut.model_validate(row)
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"No permissions found for table {table}",
    )


@router.post("", response_model=GrantOut, name="Create or replace grant")
async def upsert_grant(
    body: GrantIn,
    response: Response,
    db: AsyncSession = Depends(get_session),
    admin: AdminPrincipal = Depends(require_admin),
):
    row, created = await GrantRepository(db).upsert_grant(body.to_spec())
    logger.info(
        "Admin %s %s grant %s", admin.id, "created" if created else "updated", row.id
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return GrantOut.model_validate(row)


@router.delete(
    "/{grant_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    name="Revoke grant",
)
async def revoke_grant(
    grant_id: int,
    db: AsyncSession = Depends(get_session),
    admin: AdminPrincipal = Depends(require_admin),
):
    deleted = await GrantRepository(db).delete_grant(grant_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Grant {grant_id} not found",
        )
    logger.info("Admin %s revoked grant %s", admin.id, grant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
