# dbaas/cli/permissions.py
"""
Grant management commands.

Grants are written straight to the database configured by ``DATABASE_URL``;
they take effect on the next request, no restart needed.
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

import typer
import yaml
from pydantic import ValidationError

from dbaas.api.query.grants import GrantRepository, grant_to_dict
from dbaas.cli.utils import dump_yaml, load_yaml_file, setup_cli_logging
from dbaas.core.errors import MediatorError
from dbaas.db.engine import get_sessionmaker
from dbaas.schemas.permissions import GrantImportFile, GrantIn

logger = logging.getLogger(__name__)

permissions_app = typer.Typer(name="permissions", help="Manage per-table grants")


def _fail(message: str) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(code=1)


def _printable(row) -> dict[str, Any]:
    out = grant_to_dict(row)
    for key in ("created_at", "updated_at"):
        if out.get(key) is not None:
            out[key] = out[key].isoformat()
    return out


async def _upsert(grants: List[GrantIn]) -> List[tuple]:
    results = []
    async with get_sessionmaker()() as session:
        repo = GrantRepository(session)
        for grant in grants:
            row, created = await repo.upsert_grant(grant.to_spec())
            results.append((row.id, row.user_id, row.table_name, created))
    return results


@permissions_app.command("grant")
def grant_cmd(
    user_id: int = typer.Argument(..., help="User receiving the grant"),
    table: str = typer.Argument(..., help="Table name"),
    select: bool = typer.Option(False, "--select", help="Allow SELECT"),
    insert: bool = typer.Option(False, "--insert", help="Allow INSERT"),
    update: bool = typer.Option(False, "--update", help="Allow UPDATE"),
    delete: bool = typer.Option(False, "--delete", help="Allow DELETE"),
    allow: List[str] = typer.Option(
        None, "--allow", help="Allowed column (repeatable)"
    ),
    deny: List[str] = typer.Option(None, "--deny", help="Denied column (repeatable)"),
    where: Optional[str] = typer.Option(
        None, "--where", help="JSON encoded row filter clauses"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Create or replace the grant of USER_ID on TABLE."""
    setup_cli_logging(verbose)

    conditions = None
    if where:
        try:
            conditions = json.loads(where)
        except json.JSONDecodeError as exc:
            raise _fail(f"--where is not valid JSON: {exc}")
        if isinstance(conditions, dict):
            conditions = [conditions]

    try:
        grant = GrantIn(
            user_id=user_id,
            table_name=table,
            can_select=select,
            can_insert=insert,
            can_update=update,
            can_delete=delete,
            columns_allowed=allow or [],
            columns_denied=deny or [],
            where_conditions=conditions,
        )
        [(grant_id, _, _, created)] = asyncio.run(_upsert([grant]))
    except ValidationError as exc:
        raise _fail(f"Invalid grant:\n{exc}")
    except MediatorError as exc:
        raise _fail(f"{exc.kind}: {exc.message}")

    typer.echo(f"{'Created' if created else 'Updated'} grant {grant_id}")


@permissions_app.command("revoke")
def revoke_cmd(
    user_id: int = typer.Argument(...),
    table: str = typer.Argument(...),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Remove the grant of USER_ID on TABLE."""
    setup_cli_logging(verbose)

    async def _revoke() -> bool:
        async with get_sessionmaker()() as session:
            repo = GrantRepository(session)
            row = await repo.find_row(user_id, table)
            if row is None:
                return False
            return await repo.delete_grant(row.id)

    try:
        deleted = asyncio.run(_revoke())
    except MediatorError as exc:
        raise _fail(f"{exc.kind}: {exc.message}")

    if not deleted:
        raise _fail(f"No grant for user {user_id} on table {table}")
    typer.echo(f"Revoked grant of user {user_id} on {table}")


@permissions_app.command("list")
def list_cmd(
    user_id: Optional[int] = typer.Option(None, "--user", "-u"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """List grants, optionally for one user."""
    setup_cli_logging(verbose)

    async def _list():
        async with get_sessionmaker()() as session:
            return await GrantRepository(session).list_grants(user_id=user_id)

    rows = asyncio.run(_list())
    if not rows:
        typer.echo("No grants found.")
        return

    for row in rows:
        flags = "".join(
            letter if enabled else "-"
            for letter, enabled in (
                ("S", row.can_select),
                ("I", row.can_insert),
                ("U", row.can_update),
                ("D", row.can_delete),
            )
        )
        typer.echo(f"{row.id}\tuser={row.user_id}\t{row.table_name}\t{flags}")


@permissions_app.command("show")
def show_cmd(
    user_id: int = typer.Argument(...),
    table: str = typer.Argument(...),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Print one grant as YAML."""
    setup_cli_logging(verbose)

    async def _show():
        async with get_sessionmaker()() as session:
            return await GrantRepository(session).find_row(user_id, table)

    row = asyncio.run(_show())
    if row is None:
        raise _fail(f"No grant for user {user_id} on table {table}")
    typer.echo(dump_yaml(_printable(row)))


@permissions_app.command("import")
def import_cmd(
    input_yaml: Path = typer.Option(
        ..., "--input", "-i", help="YAML file with a 'grants' list"
    ),
    strict: bool = typer.Option(
        False, "--strict", help="Fail on first validation error."
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate only"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Create or replace every grant listed in a YAML file."""
    setup_cli_logging(verbose)

    try:
        data = load_yaml_file(input_yaml)
    except (OSError, yaml.YAMLError) as exc:
        raise _fail(f"Failed to load YAML {input_yaml}: {exc}")

    raw_grants = data.get("grants") if isinstance(data, dict) else None
    if not raw_grants:
        raise _fail(f"YAML {input_yaml} has no 'grants' section.")

    grants: List[GrantIn] = []
    for idx, entry in enumerate(raw_grants):
        try:
            grants.append(GrantIn.model_validate(entry))
        except ValidationError as exc:
            typer.echo(f"Validation error in grant #{idx}:\n{exc}", err=True)
            if strict:
                raise typer.Exit(code=1)
            typer.echo("Warning: skipping invalid grant ...", err=True)

    payload = GrantImportFile(grants=grants)
    typer.echo(f"Validated {len(payload.grants)} grant(s).")

    if dry_run:
        typer.echo("Dry run: nothing written.")
        return

    try:
        results = asyncio.run(_upsert(payload.grants))
    except MediatorError as exc:
        raise _fail(f"{exc.kind}: {exc.message}")

    created = sum(1 for *_, was_created in results if was_created)
    updated = len(results) - created
    typer.echo(f"Imported {len(results)} grant(s): {created} created, {updated} updated.")
