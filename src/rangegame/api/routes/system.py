"""System health endpoint."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from rangegame.api.deps import app_state, get_db
from rangegame.registry.db import Database

router = APIRouter()

_start_time = time.time()


@router.get("/system/health")
def health(db: Database = Depends(get_db)) -> dict:
    db_ok = db.health_check()
    gateway = app_state.gateway
    return {
        "status": "healthy" if db_ok else "degraded",
        "database": db_ok,
        "llm": bool(gateway and gateway.has_provider("xai")),
        "uptimeSeconds": int(time.time() - _start_time),
    }
