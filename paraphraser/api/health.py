"""
Health endpoints.

Liveness needs nothing; readiness only checks that the model key is set.
Neither response exposes configuration values.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from paraphraser.core.config import analytics_disabled, settings

logger = logging.getLogger("paraphraser")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness check: model credentials present."""
    if not settings.GROQ_API_KEY:
        logger.warning("[readyz] GROQ_API_KEY missing")
        return JSONResponse(status_code=503, content={"status": "error", "detail": "model not configured"})
    return {
        "status": "ok",
        "analytics": "off" if analytics_disabled() else ("on" if settings.WATCHMAN_BASE_URL else "unconfigured"),
    }
