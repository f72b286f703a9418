# dbaas/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dbaas.api.healthcheck import is_healthly
from dbaas.core.config import settings
from dbaas.core.errors import MediatorError
from dbaas.core.logging import setup_logging
from dbaas.db.engine import dispose_engine
from dbaas.routes import register_routes

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager.
    """
    logger.info("Starting %s (%s mode)", settings.app_name, settings.env)

    failed = await is_healthly()

    if failed:
        raise RuntimeError("System failed health check at startup")

    yield

    await dispose_engine()
    logger.info("Shutting down %s", settings.app_name)


async def mediator_error_handler(request: Request, exc: MediatorError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan if use_lifespan else None,
    )

    app.add_exception_handler(MediatorError, mediator_error_handler)
    register_routes(app)

    return app


app = create_app()
