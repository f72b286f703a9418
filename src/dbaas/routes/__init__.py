from importlib import import_module
from pathlib import Path

from fastapi import FastAPI

from dbaas.core.logging import logging

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI):

    routes = []

    # Discover all modules in this directory
    pkg_path = Path(__file__).parent

    for file in sorted(pkg_path.glob("*.py")):
        if file.name.startswith("_"):
            continue

        module_name = f"{__name__}.{file.stem}"
        module = import_module(module_name)

        # Convention: each route module must expose `router`
        if not hasattr(module, "router"):
            logger.warning(
                f"Router {module_name} does not expose 'router' variable, skipping"
            )
            continue

        routes.append(
            {
                "router": module.router,
                "tags": getattr(module, "tags", []),
            }
        )

    for route in routes:
        app.include_router(route["router"], tags=route["tags"])
