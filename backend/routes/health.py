"""Health and readiness check routes."""

import logging

from fastapi import APIRouter, Request

from config import settings
from routes.live import DEFAULT_LATITUDE, DEFAULT_LONGITUDE
from services.open_meteo import OpenMeteoClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/ready")
async def ready() -> dict:
    """Lightweight readiness check — no external calls."""
    return {"status": "ok", "service": "air-quality-live", "commit": settings.git_sha}


@router.get("/health")
async def health(request: Request) -> dict:
    """Deep health check that verifies Open-Meteo connectivity.

    Uses the shared client, so a recent dashboard fetch is served from cache.
    """
    result = {"status": "ok", "service": "air-quality-live", "commit": settings.git_sha, "upstream": "not_tested"}

    client: OpenMeteoClient = request.app.state.open_meteo
    probe = await client.fetch_air_quality(DEFAULT_LATITUDE, DEFAULT_LONGITUDE)
    if probe.success:
        result["upstream"] = "connected"
        result["upstream_url"] = probe.request_url
    else:
        logger.warning("Open-Meteo health check failed: %s", probe.error)
        result["upstream"] = "error"
        result["upstream_error"] = probe.error

    return result
