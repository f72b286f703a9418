# dbaas/core/policy.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import FrozenSet, Mapping

from dbaas.core.config import Settings, get_settings
from dbaas.core.errors import TableNotAllowed, TableRestricted
from dbaas.db.reflection import normalize_table_name, split_table_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TablePolicy:
    """Static table policy shared by every request.

    - allowed_tables: empty means every table is reachable
    - restricted_tables: always denied, checked before allowed_tables
    - allowed_operations: operation name -> enabled, unset means disabled
    - max_records_per_request: hard upper bound for SELECT
    """

    allowed_tables: FrozenSet[str] = frozenset()
    restricted_tables: FrozenSet[str] = frozenset()
    allowed_operations: Mapping[str, bool] = field(default_factory=dict)
    max_records_per_request: int = 1000

    @classmethod
    def from_settings(cls, settings: Settings) -> "TablePolicy":
        return cls(
            allowed_tables=frozenset(settings.allowed_tables),
            restricted_tables=frozenset(settings.restricted_tables),
            allowed_operations=dict(settings.allowed_operations),
            max_records_per_request=settings.max_records_per_request,
        )

    def is_operation_allowed(self, operation: str) -> bool:
        return bool(self.allowed_operations.get(operation, False))

    def validate_table(self, table: str) -> str:
        """Check a requested table and return its normalized name.

        Restricted tables match on the bare name too, so a schema prefix
        never reaches them. Qualified names must be listed as such in
        allowed_tables.
        """
        name = normalize_table_name(table)
        schema, bare = split_table_name(name)
        candidates = {name.lower(), bare.lower()}
        if schema:
            candidates.add(f"{schema}.{bare}".lower())
        restricted = {t.lower() for t in self.restricted_tables}

        if candidates & restricted:
            logger.info("Rejected restricted table %s", table)
            raise TableRestricted(table)

        if self.allowed_tables and name not in self.allowed_tables:
            logger.info("Rejected table %s: not in allowed tables", table)
            raise TableNotAllowed(table)

        return name


@lru_cache
def get_table_policy() -> TablePolicy:
    return TablePolicy.from_settings(get_settings())
