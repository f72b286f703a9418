# dbaas/routes/db.py
from __future__ import annotations

import json
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from dbaas.api.query.mediator import QueryMediator
from dbaas.api.query.models import ExecutionOutcome, Operation, OperationRequest
from dbaas.core.errors import InvalidRequest
from dbaas.core.logging import logging
from dbaas.core.policy import TablePolicy, get_table_policy
from dbaas.db.engine import get_session
from dbaas.schemas.db_query import (
    DbPostBody,
    DeleteBody,
    InsertBody,
    InsertResult,
    SelectResult,
    UpdateBody,
    WriteResult,
)
from dbaas.security.auth import get_principal
from dbaas.security.models import Principal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/db")
tags = ["db"]


def get_mediator(
    db: AsyncSession = Depends(get_session),
    policy: TablePolicy = Depends(get_table_policy),
) -> QueryMediator:
    return QueryMediator(db, policy)


def _json_param(name: str, raw: Optional[str]) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidRequest(f"Query parameter '{name}' must be valid JSON") from exc


def _insert_result(outcome: ExecutionOutcome) -> InsertResult:
    return InsertResult(
        id=outcome.inserted_id,
        ids=outcome.inserted_ids,
        ignored_columns=outcome.ignored_columns,
    )


@router.get("", response_model=SelectResult, name="Select rows")
async def select_rows(
    table: str,
    columns: Optional[List[str]] = Query(default=None),
    where: Optional[str] = Query(default=None, description="JSON encoded clauses"),
    order_by: Optional[str] = Query(default=None, description="JSON encoded list"),
    limit: Optional[int] = Query(default=None, ge=1),
    offset: Optional[int] = Query(default=None, ge=0),
    mediator: QueryMediator = Depends(get_mediator),
    principal: Principal = Depends(get_principal),
):
    # ?columns=a,b is accepted as well as repeated ?columns=
    if columns and len(columns) == 1 and "," in columns[0]:
        columns = [c.strip() for c in columns[0].split(",") if c.strip()]

    request = OperationRequest.build(
        Operation.SELECT,
        table,
        columns=columns,
        where=_json_param("where", where),
        order_by=_json_param("order_by", order_by),
        limit=limit,
        offset=offset,
    )
    outcome = await mediator.execute(request, principal)
    return SelectResult.from_outcome(outcome)


@router.post(
    "",
    response_model=None,
    name="Select or insert rows",
)
async def post_rows(
    body: DbPostBody,
    response: Response,
    mediator: QueryMediator = Depends(get_mediator),
    principal: Principal = Depends(get_principal),
):
    if body.method == "select":
        request = OperationRequest.build(
            Operation.SELECT,
            body.table,
            columns=body.columns,
            where=body.where,
            order_by=body.order_by,
            limit=body.limit,
            offset=body.offset,
        )
        outcome = await mediator.execute(request, principal)
        return SelectResult.from_outcome(outcome)

    if body.data is None:
        raise InvalidRequest("Insert requires 'data'")
    request = OperationRequest.build(Operation.INSERT, body.table, data=body.data)
    outcome = await mediator.execute(request, principal)
    response.status_code = status.HTTP_201_CREATED
    return _insert_result(outcome)


@router.post(
    "/insert",
    response_model=InsertResult,
    status_code=status.HTTP_201_CREATED,
    name="Insert rows",
)
async def insert_rows(
    body: InsertBody,
    mediator: QueryMediator = Depends(get_mediator),
    principal: Principal = Depends(get_principal),
):
    request = OperationRequest.build(Operation.INSERT, body.table, data=body.data)
    outcome = await mediator.execute(request, principal)
    return _insert_result(outcome)


@router.api_route(
    "",
    methods=["PUT", "PATCH"],
    response_model=None,
    name="Update rows",
)
async def update_rows(
    body: UpdateBody,
    response: Response,
    mediator: QueryMediator = Depends(get_mediator),
    principal: Principal = Depends(get_principal),
):
    request = OperationRequest.build(
        Operation.UPDATE,
        body.table,
        data=body.data,
        where=body.where,
        upsert=body.upsert,
    )
    outcome = await mediator.execute(request, principal)

    if outcome.kind == "inserted":
        response.status_code = status.HTTP_201_CREATED
        return _insert_result(outcome)
    return WriteResult(
        affected=outcome.affected or 0, ignored_columns=outcome.ignored_columns
    )


@router.delete("", response_model=WriteResult, name="Delete rows")
async def delete_rows(
    body: DeleteBody,
    mediator: QueryMediator = Depends(get_mediator),
    principal: Principal = Depends(get_principal),
):
    request = OperationRequest.build(Operation.DELETE, body.table, where=body.where)
    outcome = await mediator.execute(request, principal)
    return WriteResult(affected=outcome.affected or 0)
