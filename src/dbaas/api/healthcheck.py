# dbaas/api/healthcheck.py
from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dbaas.core.logging import logging
from dbaas.db.engine import get_engine

logger = logging.getLogger(__name__)


async def is_healthly() -> bool:
    """Return True when the database cannot be reached."""
    failed = False
    try:
        engine = get_engine()
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connectivity: OK")
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database connectivity failed: %s", e)
        failed = True

    return failed
