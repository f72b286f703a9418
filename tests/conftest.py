# tests/conftest.py
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dbaas.core.config import settings
from dbaas.core.policy import TablePolicy, get_table_policy
from dbaas.db.engine import get_session
from dbaas.db.models import Base, User
from dbaas.main import create_app
from dbaas.security.models import AdminPrincipal, UserPrincipal

ADMIN_KEY = "admin-key"
USER_KEY = "user-key"
EXPIRED_KEY = "expired-key"

CUSTOMERS_DDL = """
CREATE TABLE customers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(100) NOT NULL,
    email VARCHAR(255) UNIQUE,
    age INTEGER,
    city VARCHAR(100),
    secret VARCHAR(100),
    owner_id INTEGER
)
"""


def make_policy(**overrides) -> TablePolicy:
    values = dict(
        allowed_tables=frozenset(),
        restricted_tables=frozenset(settings.restricted_tables),
        allowed_operations={
            "select": True,
            "insert": True,
            "update": True,
            "delete": True,
        },
        max_records_per_request=5,
    )
    values.update(overrides)
    return TablePolicy(**values)


@pytest.fixture()
async def test_engine(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'dbaas.db'}"

    engine = create_async_engine(url, future=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(CUSTOMERS_DDL))

    yield engine

    await engine.dispose()


@pytest.fixture
async def test_session(test_engine):
    async_session_factory = async_sessionmaker(
        bind=test_engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )
    async with async_session_factory() as session:
        yield session


@pytest.fixture
async def users(test_session):
    expires = datetime.now(timezone.utc) + timedelta(days=30)
    rows = [
        User(id=1, name="Admin", email="admin@example.com", role="admin",
             api_key=ADMIN_KEY, api_key_expires_at=expires),
        User(id=2, name="Alice", email="alice@example.com", role="user",
             api_key=USER_KEY, api_key_expires_at=expires),
        User(id=3, name="Bob", email="bob@example.com", role="user",
             api_key=EXPIRED_KEY,
             api_key_expires_at=datetime.now(timezone.utc) - timedelta(days=1)),
    ]
    test_session.add_all(rows)
    await test_session.commit()
    return rows


@pytest.fixture
def admin():
    return AdminPrincipal(id=1, name="Admin")


@pytest.fixture
def alice():
    return UserPrincipal(id=2, name="Alice")


@pytest.fixture
def policy_factory():
    return make_policy


@pytest.fixture
def policy():
    return make_policy()


@pytest.fixture
async def client(test_session, users, policy):
    async def override_get_session():
        try:
            yield test_session
        finally:
            if test_session.in_transaction():
                await test_session.rollback()

    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_table_policy] = lambda: policy

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
