# dbaas/api/query/compiler.py
"""
Translate row-filter clauses into SQLAlchemy expressions.

Column names are resolved against the reflected table, so a clause can only
reference columns of the table being queried. Raw fragments are parsed with
sqlglot before they reach the database: they must be a single boolean
expression over the same table, without subqueries or statements.
"""
from __future__ import annotations

import logging
import re
from typing import List, Sequence

import sqlglot
import sqlglot.errors
from sqlglot import exp
from sqlalchemy import Table, and_, or_, text
from sqlalchemy.sql.elements import ColumnElement

from dbaas.api.query.conditions import And, Clause, Leaf, Or, Raw
from dbaas.api.query.models import OrderBy
from dbaas.core.errors import InvalidCondition, InvalidRequest, StoreError

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Raw fragment guard
# -----------------------------------------------------------------------------

_FORBIDDEN_RAW_EXPRESSIONS = (
    exp.Select,
    exp.Subquery,
    exp.Union,
    exp.Intersect,
    exp.Except,
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Merge,
    exp.Create,
    exp.Drop,
    exp.Command,
)

ALLOWED_RAW_FUNCTIONS = {
    "lower",
    "upper",
    "length",
    "trim",
    "ltrim",
    "rtrim",
    "substring",
    "replace",
    "abs",
    "round",
    "ceil",
    "floor",
    "coalesce",
    "nullif",
    "date",
    "date_trunc",
}

_SEMICOLON_RE = re.compile(r";")
_COMMENT_RE = re.compile(r"--|/\*")


def _bad_fragment(message: str) -> InvalidCondition:
    logger.warning("Raw where clause rejected: %s", message)
    return InvalidCondition(message)


def validate_raw_fragment(sql: str, table: Table) -> None:
    """Reject raw fragments that could escape the queried table."""
    if _SEMICOLON_RE.search(sql):
        raise _bad_fragment("Multiple SQL statements are not allowed in raw clauses")
    if _COMMENT_RE.search(sql):
        raise _bad_fragment("SQL comments are not allowed in raw clauses")

    try:
        ast = sqlglot.parse_one(f"SELECT 1 FROM {table.name} WHERE {sql}")
    except (sqlglot.errors.ParseError, sqlglot.errors.TokenError) as exc:
        raise StoreError(f"Malformed raw where clause: {sql}") from exc

    where = ast.args.get("where") if isinstance(ast, exp.Select) else None
    if where is None:
        raise _bad_fragment(f"Raw clause is not a boolean expression: {sql}")

    # a fragment closing the WHERE early would add clauses to the wrapper
    for key in ("group", "having", "order", "limit", "offset", "joins"):
        if ast.args.get(key):
            raise _bad_fragment(f"Raw clause must be a single condition: {sql}")

    for node in where.this.walk():
        if isinstance(node, _FORBIDDEN_RAW_EXPRESSIONS):
            raise _bad_fragment(
                f"SQL construct not allowed in raw clause: {node.__class__.__name__}"
            )
        if isinstance(node, exp.Anonymous) and node.name.lower() not in ALLOWED_RAW_FUNCTIONS:
            raise _bad_fragment(f"SQL function not allowed: {node.name}")
        if isinstance(node, exp.Column):
            if node.table and node.table != table.name:
                raise _bad_fragment(f"Raw clause references another table: {node.table}")
            if node.name not in table.c:
                raise _bad_fragment(f"Unknown column in raw clause: {node.name}")


# -----------------------------------------------------------------------------
# Clause translation
# -----------------------------------------------------------------------------


def resolve_column(table: Table, name: str) -> ColumnElement:
    if name not in table.c:
        raise InvalidRequest(f"Unknown column '{name}' on table '{table.name}'")
    return table.c[name]


def _compile_leaf(leaf: Leaf, table: Table) -> ColumnElement:
    col = resolve_column(table, leaf.column)
    op, value = leaf.operator, leaf.value

    if op == "=":
        return col.is_(None) if value is None else col == value
    if op == "!=":
        return col.is_not(None) if value is None else col != value
    if op == ">":
        return col > value
    if op == "<":
        return col < value
    if op == ">=":
        return col >= value
    if op == "<=":
        return col <= value
    if op == "in":
        return col.in_(list(value))
    if op == "not in":
        return col.not_in(list(value))
    if op == "like":
        return col.like(value)
    if op == "not like":
        return col.not_like(value)
    raise InvalidCondition(f"Unsupported operator: {op}")


def compile_clause(clause: Clause, table: Table) -> ColumnElement:
    if isinstance(clause, Leaf):
        return _compile_leaf(clause, table)
    if isinstance(clause, And):
        return and_(*(compile_clause(c, table) for c in clause.clauses))
    if isinstance(clause, Or):
        return or_(*(compile_clause(c, table) for c in clause.clauses))
    if isinstance(clause, Raw):
        validate_raw_fragment(clause.sql, table)
        # colons would otherwise be read as bind parameters
        return text("(" + clause.sql.replace(":", r"\:") + ")")
    raise InvalidCondition(f"Unsupported where clause: {clause!r}")


def compile_conditions(clauses: Sequence[Clause], table: Table) -> List[ColumnElement]:
    """One expression per top-level clause; callers AND them together."""
    return [compile_clause(c, table) for c in clauses]


def compile_order_by(order_by: Sequence[OrderBy], table: Table) -> List[ColumnElement]:
    out = []
    for order in order_by:
        col = resolve_column(table, order.column)
        out.append(col.desc() if order.direction == "desc" else col.asc())
    return out
