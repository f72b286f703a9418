# dbaas/api/query/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from dbaas.api.query.conditions import Clause, parse_conditions
from dbaas.core.errors import InvalidRequest

WILDCARD = "*"

Row = Dict[str, Any]
WriteData = Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]


class Operation(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: Union[str, "Operation", None]) -> "Operation":
        if isinstance(value, Operation):
            return value
        if not value or not isinstance(value, str):
            raise InvalidRequest("Operation is required")
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise InvalidRequest(f"Unknown operation: {value}") from exc


@dataclass(frozen=True)
class OrderBy:
    column: str
    direction: Literal["asc", "desc"] = "asc"

    @classmethod
    def parse(cls, raw: Any) -> "OrderBy":
        if isinstance(raw, OrderBy):
            return raw
        if not isinstance(raw, Mapping) or not isinstance(raw.get("column"), str):
            raise InvalidRequest(f"Invalid order_by entry: {raw!r}")
        direction = str(raw.get("direction", "asc")).lower()
        if direction not in ("asc", "desc"):
            raise InvalidRequest(f"Invalid order direction: {raw.get('direction')}")
        return cls(column=raw["column"], direction=direction)  # type: ignore[arg-type]


@dataclass(frozen=True)
class ColumnRestrictions:
    """Allow-list or deny-list of columns.

    A non-empty ``allowed`` wins; ``denied`` is only consulted when
    ``allowed`` is empty. Both empty means no restriction.
    """

    allowed: Tuple[str, ...] = ()
    denied: Tuple[str, ...] = ()

    @classmethod
    def from_json(cls, raw: Optional[Mapping[str, Any]]) -> "ColumnRestrictions":
        if not raw:
            return cls()
        return cls(
            allowed=tuple(raw.get("allowed") or ()),
            denied=tuple(raw.get("denied") or ()),
        )

    def is_column_allowed(self, column: str) -> bool:
        if self.allowed:
            return column in self.allowed
        if self.denied:
            return column not in self.denied
        return True

    def to_json(self) -> Optional[Dict[str, List[str]]]:
        if self.allowed:
            return {"allowed": list(self.allowed)}
        if self.denied:
            return {"denied": list(self.denied)}
        return None


@dataclass(frozen=True)
class Grant:
    """A user's permission record on one table."""

    user_id: int
    table_name: str
    can_select: bool = False
    can_insert: bool = False
    can_update: bool = False
    can_delete: bool = False
    column_restrictions: ColumnRestrictions = field(default_factory=ColumnRestrictions)
    where_conditions: Tuple[Clause, ...] = ()
    id: Optional[int] = None

    def allows(self, operation: Union[Operation, str]) -> bool:
        op = Operation.parse(operation)
        return getattr(self, f"can_{op.value}") is True


@dataclass(frozen=True)
class OperationRequest:
    operation: Operation
    table: str
    columns: Tuple[str, ...] = (WILDCARD,)
    data: Optional[WriteData] = None
    where: Tuple[Clause, ...] = ()
    order_by: Tuple[OrderBy, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    upsert: bool = False

    @classmethod
    def build(
        cls,
        operation: Union[str, Operation],
        table: str,
        *,
        columns: Optional[Sequence[str]] = None,
        data: Optional[WriteData] = None,
        where: Any = None,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        upsert: bool = False,
    ) -> "OperationRequest":
        """Build a request from loosely-typed (JSON) inputs."""
        if not table or not isinstance(table, str):
            raise InvalidRequest("Table name is required")
        if isinstance(columns, str):
            columns = [columns]
        return cls(
            operation=Operation.parse(operation),
            table=table,
            columns=tuple(columns) if columns else (WILDCARD,),
            data=data,
            where=tuple(parse_conditions(where)),
            order_by=tuple(OrderBy.parse(o) for o in (order_by or ())),
            limit=limit,
            offset=offset,
            upsert=bool(upsert),
        )

    @property
    def is_batch(self) -> bool:
        return isinstance(self.data, Sequence) and not isinstance(
            self.data, (str, bytes, Mapping)
        )


OutcomeKind = Literal["selected", "inserted", "updated", "deleted"]


@dataclass(frozen=True)
class ExecutionOutcome:
    """Normalized result of one mediated operation.

    ``kind`` tells what actually happened: an upsert that found no row is
    reported as ``inserted`` with an id, never as an affected count.
    """

    kind: OutcomeKind
    operation: Operation
    table: str
    rows: Optional[List[Row]] = None
    columns: Optional[List[str]] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    inserted_id: Any = None
    inserted_ids: Optional[List[Any]] = None
    affected: Optional[int] = None
    ignored_columns: List[str] = field(default_factory=list)

    @property
    def value(self) -> Any:
        if self.kind == "selected":
            return self.rows
        if self.kind == "inserted":
            return self.inserted_ids if self.inserted_ids is not None else self.inserted_id
        return self.affected
