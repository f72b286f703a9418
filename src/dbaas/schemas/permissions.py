# dbaas/schemas/permissions.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from dbaas.api.query.grants import GrantSpec


class GrantIn(BaseModel):
    """Grant definition, used by the API and by YAML imports."""

    model_config = ConfigDict(extra="forbid")

    user_id: int
    table_name: str = Field(..., min_length=1)
    can_select: bool = False
    can_insert: bool = False
    can_update: bool = False
    can_delete: bool = False
    columns_allowed: List[str] = Field(default_factory=list)
    columns_denied: List[str] = Field(default_factory=list)
    where_conditions: Optional[List[Any]] = None

    @model_validator(mode="after")
    def _one_column_list(self) -> "GrantIn":
        if self.columns_allowed and self.columns_denied:
            raise ValueError("columns_allowed and columns_denied are exclusive")
        return self

    def to_spec(self) -> GrantSpec:
        return GrantSpec(**self.model_dump())


class GrantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    table_name: str
    can_select: bool
    can_insert: bool
    can_update: bool
    can_delete: bool
    where_conditions: Optional[List[Any]] = None
    column_restrictions: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GrantImportFile(BaseModel):
    """Top-level shape of a grant YAML file."""

    grants: List[GrantIn] = Field(default_factory=list)
