# dbaas/api/query/grants.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dbaas.api.query.conditions import clause_to_json, parse_conditions
from dbaas.api.query.models import ColumnRestrictions, Grant
from dbaas.core.errors import InvalidRequest, StoreError
from dbaas.db.models import Permission, User
from dbaas.db.reflection import normalize_table_name

logger = logging.getLogger(__name__)


@dataclass
class GrantSpec:
    """Administrative input for creating or replacing a grant."""

    user_id: int
    table_name: str
    can_select: bool = False
    can_insert: bool = False
    can_update: bool = False
    can_delete: bool = False
    columns_allowed: List[str] = field(default_factory=list)
    columns_denied: List[str] = field(default_factory=list)
    where_conditions: Optional[Sequence[Any]] = None

    def restrictions_json(self) -> Optional[Dict[str, List[str]]]:
        if self.columns_allowed and self.columns_denied:
            raise InvalidRequest(
                "Column restrictions accept either allowed or denied columns, not both"
            )
        return ColumnRestrictions(
            allowed=tuple(self.columns_allowed),
            denied=tuple(self.columns_denied),
        ).to_json()

    def conditions_json(self) -> Optional[List[Any]]:
        if not self.where_conditions:
            return None
        # validate and normalize the stored shape
        return [clause_to_json(c) for c in parse_conditions(self.where_conditions)]


def grant_from_row(row: Permission) -> Grant:
    return Grant(
        id=row.id,
        user_id=row.user_id,
        table_name=row.table_name,
        can_select=bool(row.can_select),
        can_insert=bool(row.can_insert),
        can_update=bool(row.can_update),
        can_delete=bool(row.can_delete),
        column_restrictions=ColumnRestrictions.from_json(row.column_restrictions),
        where_conditions=tuple(parse_conditions(row.where_conditions)),
    )


def grant_to_dict(row: Permission) -> Dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "table_name": row.table_name,
        "can_select": bool(row.can_select),
        "can_insert": bool(row.can_insert),
        "can_update": bool(row.can_update),
        "can_delete": bool(row.can_delete),
        "where_conditions": row.where_conditions,
        "column_restrictions": row.column_restrictions,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


class GrantRepository:
    """Grant records keyed by the unique (user_id, table_name) pair."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_row(self, user_id: int, table: str) -> Optional[Permission]:
        stmt = select(Permission).where(
            Permission.user_id == user_id,
            Permission.table_name == table,
        )
        try:
            res = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError.wrap(exc) from exc
        return res.scalars().first()

    async def find_grant(self, user_id: int, table: str) -> Optional[Grant]:
        row = await self.find_row(user_id, table)
        if row is None:
            logger.debug("No grant for user %s on table %s", user_id, table)
            return None
        return grant_from_row(row)

    async def list_grants(self, user_id: Optional[int] = None) -> List[Permission]:
        stmt = select(Permission).order_by(Permission.user_id, Permission.table_name)
        if user_id is not None:
            stmt = stmt.where(Permission.user_id == user_id)
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def get_grant(self, grant_id: int) -> Optional[Permission]:
        return await self.session.get(Permission, grant_id)

    async def upsert_grant(self, spec: GrantSpec) -> Tuple[Permission, bool]:
        """Create or replace the grant for (user_id, table_name).

        Returns the row and whether it was created.
        """
        table_name = normalize_table_name(spec.table_name)
        restrictions = spec.restrictions_json()
        conditions = spec.conditions_json()

        user = await self.session.get(User, spec.user_id)
        if user is None:
            raise InvalidRequest(f"Unknown user id: {spec.user_id}")

        row = await self.find_row(spec.user_id, table_name)
        created = row is None
        if row is None:
            row = Permission(user_id=spec.user_id, table_name=table_name)
            self.session.add(row)

        row.can_select = spec.can_select
        row.can_insert = spec.can_insert
        row.can_update = spec.can_update
        row.can_delete = spec.can_delete
        row.column_restrictions = restrictions
        row.where_conditions = conditions

        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Failed to store grant for user %s", spec.user_id)
            raise StoreError.wrap(exc) from exc

        await self.session.refresh(row)
        logger.info(
            "%s grant for user %s on table %s",
            "Created" if created else "Updated",
            spec.user_id,
            table_name,
        )
        return row, created

    async def delete_grant(self, grant_id: int) -> bool:
        row = await self.get_grant(grant_id)
        if row is None:
            return False
        await self.session.delete(row)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError.wrap(exc) from exc
        logger.info(
            "Deleted grant %s (user %s, table %s)", grant_id, row.user_id, row.table_name
        )
        return True
