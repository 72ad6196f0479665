"""
Health endpoints.

/healthz is a dependency-free liveness probe; /readyz also checks the usage
row store when one is configured.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from manzai.core.database import check_connection

logger = logging.getLogger("manzai")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request):
    """Readiness check: generator configured and row store reachable."""
    state = request.app.state
    generator_ready = getattr(state, "generator", None) is not None
    engine = getattr(state, "engine", None)

    if engine is not None and not check_connection(engine):
        logger.error("[readyz] usage store unreachable")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    return {
        "status": "ok",
        "generator": "configured" if generator_ready else "missing",
        "usage_tracking": engine is not None,
    }
