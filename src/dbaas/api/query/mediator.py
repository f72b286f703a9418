# dbaas/api/query/mediator.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy import Table, delete, insert, literal, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dbaas.api.query.columns import filter_columns, filter_fields, is_wildcard
from dbaas.api.query.compiler import (
    compile_conditions,
    compile_order_by,
    resolve_column,
)
from dbaas.api.query.conditions import Clause, merge_conditions
from dbaas.api.query.grants import GrantRepository
from dbaas.api.query.models import (
    ExecutionOutcome,
    Grant,
    Operation,
    OperationRequest,
    Row,
    WriteData,
)
from dbaas.core.errors import (
    InvalidRequest,
    OperationDisabled,
    PermissionDenied,
    StoreError,
    UnsafeDelete,
)
from dbaas.core.policy import TablePolicy
from dbaas.db.reflection import reflect_table_async
from dbaas.security.models import AdminPrincipal, Principal

logger = logging.getLogger(__name__)


class QueryMediator:
    """
    Single entry point for permission-aware table operations.

    Each ``execute`` call is a stateless single pass:

    - operation enabled by policy
    - table allowed by policy
    - grant lookup and operation flag (skipped for admins)
    - column restrictions on projection / written fields
    - grant row filters ANDed in front of the caller filters
    - SELECT limit clamped, DELETE without filters refused
    - execution, with store failures wrapped in ``StoreError``

    Single statements are committed on success. A batch insert checks every
    row first, then runs one statement per row, each committed on its own: a
    store failure leaves the earlier rows in place.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: TablePolicy,
        grants: Optional[GrantRepository] = None,
    ):
        self.session = session
        self.policy = policy
        self.grants = grants or GrantRepository(session)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def execute(
        self, request: OperationRequest, principal: Principal
    ) -> ExecutionOutcome:
        op = request.operation

        if not self.policy.is_operation_allowed(op.value):
            logger.info("Rejected disabled operation %s on %s", op.value, request.table)
            raise OperationDisabled(op.value)

        table_name = self.policy.validate_table(request.table)

        grant = await self._authorize(op, table_name, principal)

        where: List[Clause] = []
        if op is not Operation.INSERT:
            where = merge_conditions(
                request.where, grant.where_conditions if grant else ()
            )

        if op is Operation.DELETE and not where:
            logger.warning(
                "Refused DELETE without conditions on %s (user %s)",
                request.table,
                principal.id,
            )
            raise UnsafeDelete(request.table)

        table = await reflect_table_async(self.session, table_name)

        logger.info(
            "%s on %s by %s %s",
            op.value.upper(),
            request.table,
            principal.role,
            principal.id,
        )

        if op is Operation.SELECT:
            return await self._select(request, table, grant, where)
        if op is Operation.INSERT:
            return await self._insert(request, table, grant)
        if op is Operation.UPDATE:
            return await self._update(request, table, grant, where)
        return await self._delete(request, table, where)

    async def _authorize(
        self, op: Operation, table: str, principal: Principal
    ) -> Optional[Grant]:
        if isinstance(principal, AdminPrincipal):
            return None

        grant = await self.grants.find_grant(principal.id, table)
        if grant is None or not grant.allows(op):
            logger.info(
                "Permission denied: user %s may not %s on %s",
                principal.id,
                op.value,
                table,
            )
            raise PermissionDenied(op.value, table)
        return grant

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def _select(
        self,
        request: OperationRequest,
        table: Table,
        grant: Optional[Grant],
        where: List[Clause],
    ) -> ExecutionOutcome:
        if request.limit is not None and request.limit < 1:
            raise InvalidRequest("limit must be at least 1")
        if request.offset is not None and request.offset < 0:
            raise InvalidRequest("offset must not be negative")

        table_columns = [c.name for c in table.columns]
        columns = filter_columns(
            request.columns, grant, table_columns, table=request.table
        )
        if is_wildcard(columns):
            columns = table_columns
        projection = [resolve_column(table, c) for c in columns]

        max_records = self.policy.max_records_per_request
        limit = min(request.limit or max_records, max_records)

        stmt = select(*projection).select_from(table)
        conditions = compile_conditions(where, table)
        if conditions:
            stmt = stmt.where(*conditions)
        order = compile_order_by(request.order_by, table)
        if order:
            stmt = stmt.order_by(*order)
        stmt = stmt.limit(limit)
        if request.offset:
            stmt = stmt.offset(request.offset)

        self._log_statement(request.table, stmt)

        try:
            result = await self.session.execute(stmt)
            rows = [dict(r) for r in result.mappings().all()]
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.warning("SELECT on %s failed: %s", request.table, exc)
            raise StoreError.wrap(exc) from exc

        requested = table_columns if is_wildcard(request.columns) else request.columns
        return ExecutionOutcome(
            kind="selected",
            operation=Operation.SELECT,
            table=request.table,
            rows=rows,
            columns=list(columns),
            limit=limit,
            offset=request.offset,
            ignored_columns=[c for c in requested if c not in columns],
        )

    async def _insert(
        self,
        request: OperationRequest,
        table: Table,
        grant: Optional[Grant],
    ) -> ExecutionOutcome:
        batch = request.is_batch
        raw_rows = list(request.data or []) if batch else [request.data]
        if not raw_rows:
            raise InvalidRequest("Insert requires at least one row")

        # every row is filtered and checked before the first statement runs
        rows: List[Dict[str, Any]] = []
        ignored: List[str] = []
        for raw in raw_rows:
            data = self._require_mapping(raw, "insert")
            filtered = filter_fields(data, grant, table=request.table)
            self._check_fields(table, filtered)
            ignored.extend(k for k in data if k not in filtered and k not in ignored)
            rows.append(filtered)

        ids = []
        for row in rows:
            ids.append(await self._insert_row(table, row))

        return ExecutionOutcome(
            kind="inserted",
            operation=Operation.INSERT,
            table=request.table,
            inserted_id=None if batch else ids[0],
            inserted_ids=ids if batch else None,
            ignored_columns=ignored,
        )

    async def _update(
        self,
        request: OperationRequest,
        table: Table,
        grant: Optional[Grant],
        where: List[Clause],
    ) -> ExecutionOutcome:
        if request.is_batch:
            raise InvalidRequest("Update data must be a single object")
        data = self._require_mapping(request.data, "update")
        values = filter_fields(data, grant, table=request.table)
        self._check_fields(table, values)
        ignored = [k for k in data if k not in values]

        conditions = compile_conditions(where, table)

        if request.upsert and conditions:
            exists_stmt = (
                select(literal(1)).select_from(table).where(*conditions).limit(1)
            )
            try:
                exists = (await self.session.execute(exists_stmt)).first() is not None
            except SQLAlchemyError as exc:
                await self.session.rollback()
                raise StoreError.wrap(exc) from exc

            if not exists:
                logger.info("Upsert on %s found no match, inserting", request.table)
                new_id = await self._insert_row(table, values)
                return ExecutionOutcome(
                    kind="inserted",
                    operation=Operation.UPDATE,
                    table=request.table,
                    inserted_id=new_id,
                    ignored_columns=ignored,
                )

        if not conditions:
            logger.warning("UPDATE without conditions on %s", request.table)

        stmt = update(table).values(**values)
        if conditions:
            stmt = stmt.where(*conditions)
        affected = await self._execute_write(request.table, stmt)

        return ExecutionOutcome(
            kind="updated",
            operation=Operation.UPDATE,
            table=request.table,
            affected=affected,
            ignored_columns=ignored,
        )

    async def _delete(
        self,
        request: OperationRequest,
        table: Table,
        where: List[Clause],
    ) -> ExecutionOutcome:
        conditions = compile_conditions(where, table)
        stmt = delete(table).where(*conditions)
        affected = await self._execute_write(request.table, stmt)
        return ExecutionOutcome(
            kind="deleted",
            operation=Operation.DELETE,
            table=request.table,
            affected=affected,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_mapping(data: Any, operation: str) -> Mapping[str, Any]:
        if not isinstance(data, Mapping) or not data:
            raise InvalidRequest(f"{operation.capitalize()} data must be a non-empty object")
        return data

    @staticmethod
    def _check_fields(table: Table, data: Mapping[str, Any]) -> None:
        for key in data:
            resolve_column(table, key)

    async def _insert_row(self, table: Table, row: Mapping[str, Any]) -> Any:
        stmt = insert(table).values(**row)
        try:
            result = await self.session.execute(stmt)
            pk = result.inserted_primary_key
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.warning("INSERT into %s failed: %s", table.name, exc)
            raise StoreError.wrap(exc) from exc

        if not pk:
            return None
        return pk[0] if len(pk) == 1 else tuple(pk)

    async def _execute_write(self, table_name: str, stmt) -> int:
        self._log_statement(table_name, stmt)
        try:
            result = await self.session.execute(stmt)
            affected = result.rowcount
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.warning("Write on %s failed: %s", table_name, exc)
            raise StoreError.wrap(exc) from exc
        return affected

    @staticmethod
    def _log_statement(table_name: str, stmt) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Rendered SQL for %s:\n%s", table_name, stmt)

    # ------------------------------------------------------------------
    # Operation shortcuts
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        principal: Principal,
        *,
        columns: Optional[Sequence[str]] = None,
        where: Any = None,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        request = OperationRequest.build(
            Operation.SELECT,
            table,
            columns=columns,
            where=where,
            order_by=order_by,
            limit=limit,
            offset=offset,
        )
        outcome = await self.execute(request, principal)
        return outcome.rows or []

    async def insert(self, table: str, data: WriteData, principal: Principal) -> Any:
        request = OperationRequest.build(Operation.INSERT, table, data=data)
        outcome = await self.execute(request, principal)
        return outcome.value

    async def update(
        self,
        table: str,
        data: Mapping[str, Any],
        principal: Principal,
        *,
        where: Any = None,
        upsert: bool = False,
    ) -> Union[int, Dict[str, Any]]:
        request = OperationRequest.build(
            Operation.UPDATE, table, data=data, where=where, upsert=upsert
        )
        outcome = await self.execute(request, principal)
        if outcome.kind == "inserted":
            return {"inserted_id": outcome.inserted_id}
        return outcome.affected or 0

    async def delete(self, table: str, principal: Principal, *, where: Any) -> int:
        request = OperationRequest.build(Operation.DELETE, table, where=where)
        outcome = await self.execute(request, principal)
        return outcome.affected or 0
