"""Forecast and history routes serving raw Open-Meteo payloads from a 15-minute cache."""

import logging
from datetime import date, timedelta

from fastapi import APIRouter, Query, Request

from errors import AirQualityServiceError, InvalidCoordinatesError
from services.aggregator import calculate_aqi
from services.forecast import ForecastClient, daily_means, hourly_frame
from services.models import LocationQuery

logger = logging.getLogger(__name__)

router = APIRouter()


def _client(request: Request, lat: float, lon: float) -> ForecastClient:
    if not LocationQuery(lat, lon).is_valid():
        raise InvalidCoordinatesError(lat, lon)
    return request.app.state.forecast_client


def _unavailable(what: str) -> AirQualityServiceError:
    return AirQualityServiceError(f"{what} unavailable from Open-Meteo", status_code=502)


@router.get("/forecast/air-quality")
async def air_quality_forecast(
    request: Request,
    lat: float = Query(...),
    lon: float = Query(...),
    days: int | None = Query(None, ge=1, le=7),
) -> dict:
    data = await _client(request, lat, lon).get_air_quality(lat, lon, days=days)
    if data is None:
        raise _unavailable("Air quality forecast")
    return data


@router.get("/forecast/weather")
async def weather_forecast(
    request: Request,
    lat: float = Query(...),
    lon: float = Query(...),
    days: int | None = Query(None, ge=1, le=16),
) -> dict:
    data = await _client(request, lat, lon).get_weather_forecast(lat, lon, days=days)
    if data is None:
        raise _unavailable("Weather forecast")
    return data


@router.get("/forecast/history")
async def history(
    request: Request,
    lat: float = Query(...),
    lon: float = Query(...),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
) -> dict:
    """Daily means of archived hourly weather. Defaults to the last 7 complete days."""
    end_date = end_date or date.today() - timedelta(days=1)
    start_date = start_date or end_date - timedelta(days=6)
    if start_date > end_date:
        raise ValueError(f"start_date {start_date} is after end_date {end_date}")

    data = await _client(request, lat, lon).get_historical(
        lat, lon, start_date.isoformat(), end_date.isoformat()
    )
    if data is None:
        raise _unavailable("Historical data")

    days = daily_means(hourly_frame(data))
    return {
        "_summary": f"{len(days)} days of history from {start_date} to {end_date}",
        "latitude": lat,
        "longitude": lon,
        "days": days,
    }


@router.get("/forecast/cities")
async def cities(request: Request) -> dict:
    """PM2.5 and AQI from the last reading of each default city's one-day forecast."""
    client: ForecastClient = request.app.state.forecast_client
    results = await client.get_cities_air_quality()

    overview = []
    for entry in results:
        pm25_series = hourly_frame(entry["data"]).get("pm2_5")
        pm25 = None
        if pm25_series is not None and pm25_series.notna().any():
            pm25 = round(float(pm25_series.dropna().iloc[-1]), 1)
        aqi = calculate_aqi(pm25)
        overview.append(
            {
                "city": entry["city"],
                "lat": entry["lat"],
                "lon": entry["lon"],
                "pm25": pm25,
                "aqi": aqi.index,
                "category": aqi.category,
                "color": aqi.color_hint,
            }
        )

    return {"_summary": f"Air quality for {len(overview)} cities", "cities": overview}
