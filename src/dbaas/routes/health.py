# dbaas/routes/health.py
from __future__ import annotations

from fastapi import APIRouter, HTTPException

from dbaas.api.healthcheck import is_healthly
from dbaas.core.logging import logging

logger = logging.getLogger(__name__)

router = APIRouter()
tags = ["health"]


@router.get("/health")
async def healthcheck():
    failed = await is_healthly()
    if failed:
        raise HTTPException(status_code=503, detail="Unhealthly")
    return {"status": "ready"}
