# dbaas/api/query/columns.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from dbaas.api.query.models import WILDCARD, Grant
from dbaas.core.errors import NoColumnsAllowed

logger = logging.getLogger(__name__)


def is_wildcard(columns: Sequence[str]) -> bool:
    return len(columns) > 0 and columns[0] == WILDCARD


def filter_columns(
    requested: Sequence[str],
    grant: Optional[Grant],
    table_columns: Sequence[str],
    *,
    table: str = "",
) -> List[str]:
    """
    Compute the projection a grant permits.

    Without a grant the request passes unchanged. The wildcard is expanded to
    ``table_columns`` before restrictions are applied. An empty projection
    raises ``NoColumnsAllowed``.
    """
    if grant is None:
        return list(requested)

    restrictions = grant.column_restrictions
    candidates = list(table_columns) if is_wildcard(requested) else list(requested)

    if restrictions.allowed:
        allowed = set(restrictions.allowed)
        out = [c for c in candidates if c in allowed]
    elif restrictions.denied:
        denied = set(restrictions.denied)
        out = [c for c in candidates if c not in denied]
    else:
        out = candidates

    if not out:
        raise NoColumnsAllowed(table or grant.table_name, candidates)

    dropped = [c for c in candidates if c not in out]
    if dropped:
        logger.info(
            "Column restrictions removed %s from projection on %s",
            dropped,
            table or grant.table_name,
        )
    return out


def filter_fields(
    data: Mapping[str, Any],
    grant: Optional[Grant],
    *,
    table: str = "",
) -> Dict[str, Any]:
    """Map variant of ``filter_columns`` for insert/update payloads."""
    if grant is None:
        return dict(data)

    out = {
        k: v for k, v in data.items() if grant.column_restrictions.is_column_allowed(k)
    }
    if not out:
        raise NoColumnsAllowed(table or grant.table_name, data.keys())
    return out
