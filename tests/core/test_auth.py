# tests/core/test_auth.py
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from dbaas.db.models import User
from dbaas.security.auth import get_principal, require_admin
from dbaas.security.models import AdminPrincipal, UserPrincipal, principal_for


def test_principal_for_roles():
    assert isinstance(principal_for(user_id=1, role="admin"), AdminPrincipal)
    assert isinstance(principal_for(user_id=2, role="user"), UserPrincipal)
    with pytest.raises(ValueError):
        principal_for(user_id=3, role="root")


def test_principal_is_frozen():
    p = UserPrincipal(id=2)
    with pytest.raises(Exception):
        p.id = 1


def test_api_key_expiry_handles_naive_datetimes():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    user = User(api_key="k", api_key_expires_at=datetime(2026, 1, 2))
    assert user.has_valid_api_key(now)
    assert not user.has_valid_api_key(now + timedelta(days=2))
    assert not User(api_key="k").has_valid_api_key(now)


async def test_get_principal(test_session, users):
    admin = await get_principal(api_key="admin-key", db=test_session)
    assert isinstance(admin, AdminPrincipal)
    assert admin.id == 1

    user = await get_principal(api_key="user-key", db=test_session)
    assert isinstance(user, UserPrincipal)

    for key in (None, "", "nope", "expired-key"):
        with pytest.raises(HTTPException) as exc:
            await get_principal(api_key=key, db=test_session)
        assert exc.value.status_code == 401


async def test_require_admin():
    admin = AdminPrincipal(id=1)
    assert await require_admin(admin) is admin
    with pytest.raises(HTTPException) as exc:
        await require_admin(UserPrincipal(id=2))
    assert exc.value.status_code == 403
