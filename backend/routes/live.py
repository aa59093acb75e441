"""Live dashboard routes backed by the polling controllers.

GET  /live              → current LiveDataState for a location
POST /live/refresh      → force one fetch cycle now
POST /live/cache/clear  → drop cached upstream data, then fetch
GET  /live/cache/stats  → cache introspection
"""

import logging

from fastapi import APIRouter, Query, Request

from config import settings
from errors import InvalidCoordinatesError
from services.aggregator import current_weather
from services.models import LiveDataState, LocationQuery
from services.refresh import LiveDataController, LiveDataRegistry

logger = logging.getLogger(__name__)

router = APIRouter()

# New Delhi, the dashboard's default view
DEFAULT_LATITUDE = 28.6139
DEFAULT_LONGITUDE = 77.209


def _subscribe(
    request: Request, latitude: float, longitude: float, refresh_seconds: int | None
) -> LiveDataController:
    if not LocationQuery(latitude, longitude).is_valid():
        raise InvalidCoordinatesError(latitude, longitude)
    registry: LiveDataRegistry = request.app.state.live_registry
    return registry.subscribe(latitude, longitude, refresh_seconds)


def _serialize(state: LiveDataState) -> dict:
    result = state.to_dict()
    result["current_weather"] = current_weather(state.weather)

    if state.summary is not None:
        aqi = state.summary.aqi
        result["_summary"] = (
            f"AQI {aqi.index} ({aqi.category}) at {state.summary.timestamp}: "
            f"PM2.5 {state.summary.pm25} µg/m³, PM10 {state.summary.pm10} µg/m³"
        )
    elif state.error:
        result["_summary"] = state.error
    else:
        result["_summary"] = "Air quality summary not yet available"
    return result


@router.get("/live")
async def live_data(
    request: Request,
    latitude: float = Query(DEFAULT_LATITUDE),
    longitude: float = Query(DEFAULT_LONGITUDE),
    refresh_seconds: int | None = Query(None, ge=0, le=settings.max_refresh_seconds),
) -> dict:
    """Latest combined air-quality and weather state. Waits for the first fetch of a new location."""
    controller = _subscribe(request, latitude, longitude, refresh_seconds)
    state = await controller.ready()
    return _serialize(state)


@router.post("/live/refresh")
async def refresh(
    request: Request,
    latitude: float = Query(DEFAULT_LATITUDE),
    longitude: float = Query(DEFAULT_LONGITUDE),
    refresh_seconds: int | None = Query(None, ge=0, le=settings.max_refresh_seconds),
) -> dict:
    controller = _subscribe(request, latitude, longitude, refresh_seconds)
    await controller.ready()
    return _serialize(await controller.refresh())


@router.post("/live/cache/clear")
async def clear_cache(
    request: Request,
    latitude: float = Query(DEFAULT_LATITUDE),
    longitude: float = Query(DEFAULT_LONGITUDE),
    refresh_seconds: int | None = Query(None, ge=0, le=settings.max_refresh_seconds),
) -> dict:
    """Clear the shared upstream cache and fetch fresh data for this location."""
    controller = _subscribe(request, latitude, longitude, refresh_seconds)
    await controller.ready()
    return _serialize(await controller.clear_cache())


@router.get("/live/cache/stats")
async def cache_stats(request: Request) -> dict:
    registry: LiveDataRegistry = request.app.state.live_registry
    stats = registry.client.cache_stats()
    stats["network_calls"] = registry.client.network_calls
    stats["controllers"] = len(registry.controllers())
    return stats
