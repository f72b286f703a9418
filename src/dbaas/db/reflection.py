# dbaas/db/reflection.py
from __future__ import annotations

import logging

from sqlalchemy import MetaData, Table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dbaas.core.errors import InvalidRequest, StoreError

logger = logging.getLogger(__name__)


def normalize_table_name(table_name: str) -> str:
    """Strip each dotted part; at most `catalog.schema.table`."""
    parts = [p.strip() for p in (table_name or "").split(".")]
    if len(parts) > 3 or not all(parts):
        raise InvalidRequest(f"Invalid table name: {table_name!r}")
    return ".".join(parts)


def split_table_name(table_name: str) -> tuple[str | None, str]:
    parts = table_name.split(".")
    if len(parts) == 3:
        _, schema, tbl = parts
    elif len(parts) == 2:
        schema, tbl = parts
    else:
        schema, tbl = None, parts[0]
    return schema, tbl


async def reflect_table_async(db: AsyncSession, table_name: str) -> Table:
    metadata = MetaData()
    schema, tbl = split_table_name(table_name)

    def _reflect(sync_conn):
        metadata.reflect(bind=sync_conn, only=[tbl], schema=schema, views=True)

    try:
        conn = await db.connection()
        await conn.run_sync(_reflect)
    except SQLAlchemyError as exc:
        logger.warning("Failed to reflect table %s: %s", table_name, exc)
        raise StoreError(f"Failed to lookup requested table {table_name}") from exc

    table = metadata.tables.get(tbl)

    # Try qualified
    if table is None:
        qualified = f"{schema}.{tbl}" if schema else tbl
        table = metadata.tables.get(qualified)

    if table is None:
        raise StoreError(f"Failed to lookup requested table {table_name}")

    return table
