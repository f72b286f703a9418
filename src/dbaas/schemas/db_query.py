# dbaas/schemas/db_query.py
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from dbaas.api.query.models import ExecutionOutcome

WriteBody = Union[Dict[str, Any], List[Dict[str, Any]]]


class DbPostBody(BaseModel):
    """Body of ``POST /db``: a select or an insert, insert by default."""

    method: Literal["select", "insert"] = "insert"
    table: str
    data: Optional[WriteBody] = None
    columns: List[str] = Field(default_factory=lambda: ["*"])
    where: Optional[Any] = None
    order_by: Optional[List[Dict[str, Any]]] = None
    limit: Optional[int] = Field(default=None, ge=1)
    offset: Optional[int] = Field(default=None, ge=0)


class InsertBody(BaseModel):
    table: str
    data: WriteBody


class UpdateBody(BaseModel):
    table: str
    data: Dict[str, Any]
    where: Optional[Any] = None
    upsert: bool = False


class DeleteBody(BaseModel):
    table: str
    where: Any


class SelectResult(BaseModel):
    items: List[Dict[str, Any]]
    columns: List[str]
    offset: int
    limit: int
    count: int
    ignored_columns: List[str] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: ExecutionOutcome) -> "SelectResult":
        rows = outcome.rows or []
        return cls(
            items=rows,
            columns=outcome.columns or [],
            offset=outcome.offset or 0,
            limit=outcome.limit or 0,
            count=len(rows),
            ignored_columns=outcome.ignored_columns,
        )


class InsertResult(BaseModel):
    id: Optional[Any] = None
    ids: Optional[List[Any]] = None
    ignored_columns: List[str] = Field(default_factory=list)


class WriteResult(BaseModel):
    affected: int
    ignored_columns: List[str] = Field(default_factory=list)
