# dbaas/api/query/conditions.py
"""
Row-filter clauses and the condition merger.

Callers and grants express row filters as JSON-shaped data. They are parsed
once into a closed set of clause types:

- ``Leaf(column, operator, value)``
- ``And(clauses)`` / ``Or(clauses)``
- ``Raw(sql)``: a literal boolean SQL fragment

A clause list is always a conjunction: every top-level clause must hold.
Disjunctions only exist inside an ``Or`` composite, so a caller clause can
narrow but never widen the rows allowed by a grant clause.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple, Union

from dbaas.core.errors import InvalidCondition

logger = logging.getLogger(__name__)


COMPARISON_OPERATORS = frozenset({"=", "!=", ">", "<", ">=", "<="})
SEQUENCE_OPERATORS = frozenset({"in", "not in"})
PATTERN_OPERATORS = frozenset({"like", "not like"})

OPERATORS = COMPARISON_OPERATORS | SEQUENCE_OPERATORS | PATTERN_OPERATORS

_OPERATOR_ALIASES = {"<>": "!=", "==": "="}


@dataclass(frozen=True)
class Leaf:
    column: str
    operator: str
    value: Any


@dataclass(frozen=True)
class And:
    clauses: Tuple["Clause", ...]


@dataclass(frozen=True)
class Or:
    clauses: Tuple["Clause", ...]


@dataclass(frozen=True)
class Raw:
    sql: str


Clause = Union[Leaf, And, Or, Raw]


def normalize_operator(operator: Any) -> str:
    if not isinstance(operator, str):
        raise InvalidCondition(f"Invalid operator: {operator!r}")
    op = " ".join(operator.strip().lower().split())
    op = _OPERATOR_ALIASES.get(op, op)
    if op not in OPERATORS:
        raise InvalidCondition(f"Unsupported operator: {operator}")
    return op


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def make_leaf(column: Any, operator: Any, value: Any) -> Leaf:
    if not isinstance(column, str) or not column:
        raise InvalidCondition(f"Invalid column in where clause: {column!r}")

    op = normalize_operator(operator)

    if op in SEQUENCE_OPERATORS:
        if not _is_sequence(value):
            raise InvalidCondition(
                f"Operator '{op}' on column '{column}' requires a list value"
            )
        value = tuple(value)
        if any(_is_sequence(v) or isinstance(v, dict) for v in value):
            raise InvalidCondition(
                f"Operator '{op}' on column '{column}' requires scalar list items"
            )
    else:
        if _is_sequence(value) or isinstance(value, dict):
            raise InvalidCondition(
                f"Operator '{op}' on column '{column}' requires a scalar value"
            )
        if value is None and op not in ("=", "!="):
            raise InvalidCondition(
                f"Operator '{op}' on column '{column}' does not accept null"
            )
        if op in PATTERN_OPERATORS and not isinstance(value, str):
            raise InvalidCondition(
                f"Operator '{op}' on column '{column}' requires a string pattern"
            )

    return Leaf(column=column, operator=op, value=value)


def parse_clause(raw: Any) -> Clause:
    """Parse one JSON-shaped clause.

    Accepted shapes::

        {"column": "age", "operator": ">", "value": 25}
        ["age", ">", 25]
        {"and": [...]} / {"or": [...]}
        {"raw": "age > 25"}
    """
    if isinstance(raw, (Leaf, And, Or, Raw)):
        return raw

    if isinstance(raw, (list, tuple)):
        if len(raw) != 3:
            raise InvalidCondition(
                f"Where clause lists must be [column, operator, value], got {list(raw)!r}"
            )
        return make_leaf(*raw)

    if not isinstance(raw, dict):
        raise InvalidCondition(f"Invalid where clause: {raw!r}")

    if "column" in raw or "operator" in raw:
        missing = [k for k in ("column", "operator", "value") if k not in raw]
        if missing:
            raise InvalidCondition(
                f"Where clause is missing {', '.join(missing)}: {raw!r}"
            )
        return make_leaf(raw["column"], raw["operator"], raw["value"])

    if len(raw) != 1:
        raise InvalidCondition(f"Invalid where clause: {raw!r}")

    (key, body), = raw.items()

    if key in ("and", "or"):
        if not isinstance(body, (list, tuple)) or not body:
            raise InvalidCondition(f"'{key}' requires a non-empty list of clauses")
        children = tuple(parse_clause(c) for c in body)
        return And(children) if key == "and" else Or(children)

    if key == "raw":
        if not isinstance(body, str) or not body.strip():
            raise InvalidCondition("'raw' requires a non-empty SQL fragment")
        return Raw(body.strip())

    raise InvalidCondition(f"Unknown where clause type: {key}")


def parse_conditions(raw: Any) -> List[Clause]:
    """Parse a list of clauses; ``None`` means no filter."""
    if raw is None:
        return []
    if isinstance(raw, (dict, Leaf, And, Or, Raw)):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        raise InvalidCondition("Where conditions must be a list")
    # A bare triple is a single leaf, not three clauses
    if len(raw) == 3 and isinstance(raw[0], str):
        return [make_leaf(*raw)]
    return [parse_clause(c) for c in raw]


def merge_conditions(
    request_conditions: Sequence[Clause],
    grant_conditions: Sequence[Clause],
) -> List[Clause]:
    """
    Combine caller filters with grant-mandated filters.

    Grant clauses come first and are kept verbatim; the result is ANDed as a
    whole, so caller clauses can only narrow the grant's row scope.
    """
    merged = [*grant_conditions, *request_conditions]
    if grant_conditions:
        logger.debug(
            "Merged %d grant clause(s) with %d request clause(s)",
            len(grant_conditions),
            len(request_conditions),
        )
    return merged


def clause_to_json(clause: Clause) -> Any:
    if isinstance(clause, Leaf):
        value = list(clause.value) if isinstance(clause.value, tuple) else clause.value
        return {"column": clause.column, "operator": clause.operator, "value": value}
    if isinstance(clause, And):
        return {"and": [clause_to_json(c) for c in clause.clauses]}
    if isinstance(clause, Or):
        return {"or": [clause_to_json(c) for c in clause.clauses]}
    if isinstance(clause, Raw):
        return {"raw": clause.sql}
    raise TypeError(f"Not a clause: {clause!r}")
