# dbaas/core/errors.py
"""
Error taxonomy of the query mediation layer.

Every pre-execution failure is detected locally and carries enough detail
(table, column, operation) for the caller to diagnose it. ``StoreError`` is
the only error produced by the database itself.

The HTTP boundary maps ``status_code`` and ``kind`` to the response; the core
never raises ``HTTPException``.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class MediatorError(Exception):
    """Base class for every failure surfaced by the mediator."""

    status_code: int = 400
    kind: str = "MediatorError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class TableRestricted(MediatorError):
    status_code = 403
    kind = "TableRestricted"

    def __init__(self, table: str):
        super().__init__(f"Access to table '{table}' is restricted")
        self.table = table


class TableNotAllowed(MediatorError):
    status_code = 403
    kind = "TableNotAllowed"

    def __init__(self, table: str):
        super().__init__(f"Access to table '{table}' is not allowed")
        self.table = table


class OperationDisabled(MediatorError):
    status_code = 403
    kind = "OperationDisabled"

    def __init__(self, operation: str):
        super().__init__(f"{operation.upper()} operation is not allowed")
        self.operation = operation


class PermissionDenied(MediatorError):
    status_code = 403
    kind = "PermissionDenied"

    def __init__(self, operation: str, table: str):
        super().__init__(
            f"You don't have permission to perform {operation} operations on table {table}"
        )
        self.operation = operation
        self.table = table


class NoColumnsAllowed(MediatorError):
    status_code = 400
    kind = "NoColumnsAllowed"

    def __init__(self, table: str, requested: Optional[Iterable[str]] = None):
        requested = sorted(requested or [])
        detail = f" (requested: {', '.join(requested)})" if requested else ""
        super().__init__(
            f"No columns are allowed for this operation on table '{table}'{detail}"
        )
        self.table = table
        self.requested = requested


class UnsafeDelete(MediatorError):
    status_code = 400
    kind = "UnsafeDelete"

    def __init__(self, table: str):
        super().__init__(
            f"DELETE operations on table '{table}' require where conditions"
        )
        self.table = table


class InvalidRequest(MediatorError):
    """Malformed request: unknown operation, column or order direction."""

    status_code = 400
    kind = "InvalidRequest"


class InvalidCondition(InvalidRequest):
    """A where clause does not match any supported shape."""

    kind = "InvalidCondition"


class StoreError(MediatorError):
    """Wraps any failure raised while executing against the database."""

    status_code = 500
    kind = "StoreError"

    @classmethod
    def wrap(cls, exc: BaseException) -> "StoreError":
        # DBAPI errors carry the statement in str(); keep only the driver message
        orig = getattr(exc, "orig", None)
        message = str(orig) if orig is not None else str(exc)
        err = cls(message or exc.__class__.__name__)
        err.__cause__ = exc
        return err
