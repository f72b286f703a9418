# migrations/env.py
from __future__ import annotations

import os
import asyncio
from logging.config import fileConfig
from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from dotenv import load_dotenv

# Load .env before settings
env_path = os.path.join(os.path.dirname(__file__), "..", ".env")
load_dotenv(env_path)

from dbaas.core.config import settings
from dbaas.db.models import Base


config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


# ────────────────────────────────────────────
# Only manage the gateway's own tables
# ────────────────────────────────────────────
def include_object(object, name, type_, reflected, compare_to):
    if type_ == "table":
        return name in target_metadata.tables
    return True


def _database_url() -> str:
    return settings.database_url.replace("postgresql+psycopg", "postgresql+asyncpg")


# ────────────────────────────────────────────
# OFFLINE migrations
# ────────────────────────────────────────────


def run_migrations_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        include_object=include_object,
        compare_server_default=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


# ────────────────────────────────────────────
# Helper: run migrations inside a sync conn
# ────────────────────────────────────────────
def do_run_migrations(connection):
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_object=include_object,
        compare_server_default=True,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


# ────────────────────────────────────────────
# ONLINE migrations (async)
# ────────────────────────────────────────────
async def run_migrations_online() -> None:
    engine = create_async_engine(
        _database_url(),
        poolclass=pool.NullPool,
        future=True,
    )

    async with engine.connect() as conn:
        await conn.run_sync(do_run_migrations)

    await engine.dispose()


# ────────────────────────────────────────────
# Entrypoint
# ────────────────────────────────────────────
if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
