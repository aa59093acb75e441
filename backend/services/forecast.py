"""General-purpose Open-Meteo client for forecast, history and city overviews.

Unlike OpenMeteoClient this returns the raw JSON payload (or None on any
failure) and caches for 15 minutes by default. Historical data can be
turned into a pandas DataFrame for daily aggregation.
"""

import asyncio
import json
import logging

import httpx
import pandas as pd

from config import settings
from services.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_AIR_QUALITY_HOURLY = [
    "pm10",
    "pm2_5",
    "carbon_monoxide",
    "nitrogen_dioxide",
    "sulphur_dioxide",
    "ozone",
    "aerosol_optical_depth",
    "dust",
    "uv_index",
    "ammonia",
]

DEFAULT_WEATHER_CURRENT = [
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "is_day",
    "precipitation",
    "rain",
    "showers",
    "snowfall",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "surface_pressure",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
]

DEFAULT_WEATHER_HOURLY = [
    "temperature_2m",
    "relative_humidity_2m",
    "dew_point_2m",
    "apparent_temperature",
    "precipitation_probability",
    "precipitation",
    "rain",
    "showers",
    "snowfall",
    "snow_depth",
    "weather_code",
    "pressure_msl",
    "surface_pressure",
    "cloud_cover",
    "visibility",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
    "soil_temperature_0cm",
    "soil_moisture_0_to_1cm",
]

DEFAULT_WEATHER_DAILY = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "apparent_temperature_max",
    "apparent_temperature_min",
    "sunrise",
    "sunset",
    "daylight_duration",
    "sunshine_duration",
    "uv_index_max",
    "precipitation_sum",
    "rain_sum",
    "showers_sum",
    "snowfall_sum",
    "precipitation_hours",
    "precipitation_probability_max",
    "wind_speed_10m_max",
    "wind_gusts_10m_max",
    "wind_direction_10m_dominant",
    "shortwave_radiation_sum",
]

DEFAULT_HISTORY_PARAMS = ["temperature_2m", "relative_humidity_2m", "precipitation", "wind_speed_10m"]

# Default city overview (name, lat, lon)
INDIAN_CITIES = [
    ("Delhi", 28.6139, 77.209),
    ("Mumbai", 19.076, 72.8777),
    ("Bangalore", 12.9716, 77.5946),
    ("Chennai", 13.0827, 80.2707),
    ("Kolkata", 22.5726, 88.3639),
    ("Hyderabad", 17.385, 78.4867),
    ("Pune", 18.5204, 73.8567),
    ("Ahmedabad", 23.0225, 72.5714),
    ("Jaipur", 26.9124, 75.7873),
    ("Lucknow", 26.8467, 80.9462),
]


class ForecastClient:
    def __init__(
        self,
        cache_ttl_seconds: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        ttl = cache_ttl_seconds if cache_ttl_seconds is not None else settings.forecast_cache_ttl_seconds
        self.cache = TTLCache(ttl)
        self.timeout = timeout if timeout is not None else settings.upstream_timeout_seconds
        self._transport = transport
        self.headers = {"Accept": "application/json", "User-Agent": settings.user_agent}

    async def get_air_quality(
        self,
        lat: float,
        lon: float,
        hourly: list[str] | None = None,
        days: int | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> dict | None:
        """Hourly air-quality forecast. Defaults to the full pollutant list."""
        params = {
            "latitude": lat,
            "longitude": lon,
            "timezone": "auto",
            "hourly": ",".join(hourly or DEFAULT_AIR_QUALITY_HOURLY),
        }
        if days:
            params["forecast_days"] = days
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date
        return await self._get("air-quality", settings.air_quality_base_url, params)

    async def get_weather_forecast(
        self,
        lat: float,
        lon: float,
        days: int | None = None,
        hourly: list[str] | None = None,
        daily: list[str] | None = None,
        current: list[str] | None = None,
    ) -> dict | None:
        params = {
            "latitude": lat,
            "longitude": lon,
            "timezone": "auto",
            "current": ",".join(current or DEFAULT_WEATHER_CURRENT),
            "hourly": ",".join(hourly or DEFAULT_WEATHER_HOURLY),
            "daily": ",".join(daily or DEFAULT_WEATHER_DAILY),
        }
        if days:
            params["forecast_days"] = days
        return await self._get("weather", settings.weather_base_url, params)

    async def get_historical(
        self,
        lat: float,
        lon: float,
        start_date: str,
        end_date: str,
        parameters: list[str] | None = None,
    ) -> dict | None:
        """Hourly archive data between two YYYY-MM-DD dates (inclusive)."""
        params = {
            "latitude": lat,
            "longitude": lon,
            "start_date": start_date,
            "end_date": end_date,
            "hourly": ",".join(parameters or DEFAULT_HISTORY_PARAMS),
            "timezone": "auto",
        }
        return await self._get("historical", settings.archive_base_url, params)

    async def get_cities_air_quality(self, cities: list[tuple[str, float, float]] | None = None) -> list[dict]:
        """One-day air-quality forecast for each city. Cities that fail are left out."""
        cities = cities or INDIAN_CITIES
        results = await asyncio.gather(
            *[self.get_air_quality(lat, lon, days=1) for _, lat, lon in cities]
        )
        return [
            {"city": name, "lat": lat, "lon": lon, "data": data}
            for (name, lat, lon), data in zip(cities, results)
            if data is not None
        ]

    async def _get(self, kind: str, url: str, params: dict) -> dict | None:
        cache_key = f"{kind}:{json.dumps(params, sort_keys=True)}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params=params, headers=self.headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Open-Meteo %s fetch failed: %s", kind, e)
            return None

        self.cache.set(cache_key, data)
        return data


def hourly_frame(payload: dict | None) -> pd.DataFrame:
    """DataFrame of a payload's hourly block, indexed by timestamp."""
    if not payload or not payload.get("hourly"):
        return pd.DataFrame()
    hourly = dict(payload["hourly"])
    times = pd.to_datetime(hourly.pop("time"))
    return pd.DataFrame(hourly, index=times).apply(pd.to_numeric, errors="coerce")


def daily_means(frame: pd.DataFrame) -> list[dict]:
    """Per-day mean of every column. Days with no readings for a column give None."""
    if frame.empty:
        return []
    daily = frame.resample("D").mean().round(2)
    return [
        {
            "date": ts.date().isoformat(),
            **{col: (None if pd.isna(value) else float(value)) for col, value in row.items()},
        }
        for ts, row in daily.iterrows()
    ]
