from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _BasePrincipal(BaseModel):
    """
    Authenticated caller of a mediated operation.

    The role is fixed by the principal type and cannot change for the
    lifetime of a request.
    """

    id: int = Field(..., description="User id, the grant lookup key")
    name: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
    )


class AdminPrincipal(_BasePrincipal):
    """Bypasses every per-table grant."""

    role: Literal["admin"] = "admin"


class UserPrincipal(_BasePrincipal):
    """Needs a grant on each table it touches."""

    role: Literal["user"] = "user"


Principal = Union[AdminPrincipal, UserPrincipal]


def principal_for(
    *,
    user_id: int,
    role: str,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> Principal:
    if role == "admin":
        return AdminPrincipal(id=user_id, name=name, email=email)
    if role == "user":
        return UserPrincipal(id=user_id, name=name, email=email)
    raise ValueError(f"Invalid role: {role}")
