# dbaas/cli/main.py
from __future__ import annotations

import typer

from dbaas.cli.permissions import permissions_app

app = typer.Typer(help="DBaaS gateway command-line utilities", no_args_is_help=True)

app.add_typer(permissions_app, name="permissions")


def run():
    app()


if __name__ == "__main__":
    run()
