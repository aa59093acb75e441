"""Open-Meteo client for live air-quality and weather data.

Free API, no key required. Request URLs are built by hand so the exact URL
can be shown to users and reproduced when debugging. Every failure is
returned as a FetchResult with success=False; nothing raises past this
module.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

import httpx

from config import settings
from errors import HttpStatusError, NetworkError, ResponseValidationError, UpstreamError
from services.cache import TTLCache
from services.models import (
    AirQualitySample,
    DailyWeather,
    FetchResult,
    LocationData,
    LocationQuery,
    WeatherReport,
    WeatherSample,
)

logger = logging.getLogger(__name__)

BASE_AIR_QUALITY_PARAMS = ["pm10", "pm2_5"]

# Pollutants requested on top of PM10/PM2.5 for the live dashboard
LIVE_AIR_QUALITY_PARAMS = [
    "carbon_monoxide",
    "nitrogen_dioxide",
    "sulphur_dioxide",
    "ozone",
    "aerosol_optical_depth",
    "uv_index",
]

WEATHER_DAILY_PARAMS = [
    "weather_code",
    "temperature_2m_max",
    "temperature_2m_min",
    "apparent_temperature_max",
    "apparent_temperature_min",
    "wind_speed_10m_max",
    "sunrise",
    "sunset",
    "daylight_duration",
    "sunshine_duration",
    "uv_index_max",
    "uv_index_clear_sky_max",
    "rain_sum",
    "showers_sum",
    "snowfall_sum",
    "precipitation_hours",
    "precipitation_sum",
    "precipitation_probability_max",
    "wind_gusts_10m_max",
    "wind_direction_10m_dominant",
    "shortwave_radiation_sum",
    "et0_fao_evapotranspiration",
]

WEATHER_HOURLY_PARAMS = [
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
    "vapour_pressure_deficit",
    "et0_fao_evapotranspiration",
    "visibility",
    "evapotranspiration",
    "cloud_cover_high",
    "cloud_cover_mid",
    "cloud_cover_low",
    "cloud_cover",
    "surface_pressure",
    "pressure_msl",
    "weather_code",
    "wind_speed_10m",
    "wind_speed_80m",
    "wind_speed_120m",
    "wind_speed_180m",
    "wind_direction_10m",
    "wind_direction_80m",
    "wind_direction_120m",
    "wind_direction_180m",
    "wind_gusts_10m",
    "temperature_80m",
    "temperature_120m",
    "temperature_180m",
    "soil_temperature_0cm",
    "soil_temperature_6cm",
    "soil_temperature_18cm",
    "soil_temperature_54cm",
    "soil_moisture_0_to_1cm",
    "soil_moisture_1_to_3cm",
    "soil_moisture_3_to_9cm",
    "soil_moisture_9_to_27cm",
    "soil_moisture_27_to_81cm",
]

WEATHER_CURRENT_PARAMS = [
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "is_day",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
    "precipitation",
    "rain",
    "showers",
    "snowfall",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "surface_pressure",
]

_METADATA_FIELDS = ("latitude", "longitude", "timezone", "elevation", "generationtime_ms")


def format_coordinate(value: float) -> str:
    """Render a coordinate the way the dashboard always has: 77.0 -> "77", 77.209 -> "77.209"."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    text = repr(value)
    if "e" not in text:
        return text
    # Decimal notation down to 1e-6, then "1e-7" style exponents
    if abs(value) >= 1e-6:
        return format(Decimal(text), "f")
    mantissa, exponent = text.split("e")
    return f"{mantissa}e{int(exponent)}"


def build_air_quality_url(
    base_url: str, latitude: float, longitude: float, extra_params: list[str] | tuple[str, ...] = ()
) -> str:
    hourly = ",".join([*BASE_AIR_QUALITY_PARAMS, *extra_params])
    return (
        f"{base_url}?latitude={format_coordinate(latitude)}"
        f"&longitude={format_coordinate(longitude)}&hourly={hourly}"
    )


def build_weather_url(base_url: str, latitude: float, longitude: float) -> str:
    return (
        f"{base_url}?latitude={format_coordinate(latitude)}&longitude={format_coordinate(longitude)}"
        f"&daily={','.join(WEATHER_DAILY_PARAMS)}"
        f"&hourly={','.join(WEATHER_HOURLY_PARAMS)}"
        f"&current={','.join(WEATHER_CURRENT_PARAMS)}"
        "&timezone=auto"
    )


def _at(series: list | None, index: int) -> Any:
    if not series or index >= len(series):
        return None
    return series[index]


def _validate_air_quality(payload: Any) -> None:
    hourly = payload.get("hourly") if isinstance(payload, dict) else None
    if not isinstance(hourly, dict):
        raise ResponseValidationError("Invalid API response structure: missing 'hourly'")
    for name in ("time", "pm2_5", "pm10"):
        if not isinstance(hourly.get(name), list):
            raise ResponseValidationError(f"Invalid API response structure: missing 'hourly.{name}'")


def _validate_weather(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise ResponseValidationError("Invalid weather API response structure")
    for name in ("current", "hourly", "daily"):
        if not isinstance(payload.get(name), dict):
            raise ResponseValidationError(f"Invalid weather API response structure: missing '{name}'")


def parse_air_quality(payload: dict) -> list[AirQualitySample]:
    """Turn Open-Meteo's column-oriented hourly block into time-ordered samples."""
    hourly = payload["hourly"]
    extra = [name for name in hourly if name not in ("time", "pm2_5", "pm10")]
    return [
        AirQualitySample(
            time=time,
            pm2_5=_at(hourly["pm2_5"], i),
            pm10=_at(hourly["pm10"], i),
            pollutants={name: _at(hourly[name], i) for name in extra},
        )
        for i, time in enumerate(hourly["time"])
    ]


def _weather_sample(time: str, fields: dict) -> WeatherSample:
    return WeatherSample(
        time=time,
        temperature=fields.get("temperature_2m"),
        humidity=fields.get("relative_humidity_2m"),
        wind_speed=fields.get("wind_speed_10m"),
        pressure=fields.get("pressure_msl"),
        fields=fields,
    )


def parse_weather(payload: dict) -> WeatherReport:
    current = dict(payload["current"])
    hourly = payload["hourly"]
    daily = payload["daily"]

    hourly_names = [name for name in hourly if name != "time"]
    hourly_samples = [
        _weather_sample(time, {name: _at(hourly[name], i) for name in hourly_names})
        for i, time in enumerate(hourly.get("time", []))
    ]
    daily_rows = [
        DailyWeather(
            date=date,
            temperature_max=_at(daily.get("temperature_2m_max"), i),
            temperature_min=_at(daily.get("temperature_2m_min"), i),
            precipitation=_at(daily.get("precipitation_sum"), i),
            wind_speed_max=_at(daily.get("wind_speed_10m_max"), i),
            uv_index_max=_at(daily.get("uv_index_max"), i),
            weather_code=_at(daily.get("weather_code"), i),
        )
        for i, date in enumerate(daily.get("time", []))
    ]
    return WeatherReport(
        current=_weather_sample(current.get("time"), current),
        hourly=hourly_samples,
        daily=daily_rows,
    )


class OpenMeteoClient:
    """Cached client for the Open-Meteo air-quality and forecast endpoints.

    One instance owns one TTLCache. Identical requests that overlap in time
    share a single network call.
    """

    def __init__(
        self,
        cache_ttl_seconds: float | None = None,
        timeout: float | None = None,
        user_agent: str | None = None,
        air_quality_base_url: str | None = None,
        weather_base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] | None = None,
    ):
        ttl = cache_ttl_seconds if cache_ttl_seconds is not None else settings.live_cache_ttl_seconds
        self.cache = TTLCache(ttl, clock=clock)
        self.timeout = timeout if timeout is not None else settings.upstream_timeout_seconds
        self.air_quality_base_url = air_quality_base_url or settings.air_quality_base_url
        self.weather_base_url = weather_base_url or settings.weather_base_url
        self.headers = {
            "Accept": "application/json",
            "User-Agent": user_agent or settings.user_agent,
        }
        self.network_calls = 0
        self._transport = transport
        self._inflight: dict[str, asyncio.Task] = {}

    async def fetch_air_quality(
        self, latitude: float, longitude: float, extra_params: list[str] | tuple[str, ...] = ()
    ) -> FetchResult:
        """Hourly PM10/PM2.5 plus any extra pollutants for one location."""
        extra_params = list(extra_params)
        url = build_air_quality_url(self.air_quality_base_url, latitude, longitude, extra_params)
        key = (
            f"air-quality:{format_coordinate(latitude)}:{format_coordinate(longitude)}:"
            f"{','.join(extra_params)}"
        )
        return await self._fetch(key, url, "air quality", _validate_air_quality, parse_air_quality)

    async def fetch_weather(self, latitude: float, longitude: float) -> FetchResult:
        """Current conditions plus hourly and daily forecast for one location."""
        url = build_weather_url(self.weather_base_url, latitude, longitude)
        # The weather field lists are fixed, so coordinates alone identify the request.
        key = f"weather:{format_coordinate(latitude)}:{format_coordinate(longitude)}"
        return await self._fetch(key, url, "weather", _validate_weather, parse_weather)

    async def get_location_data(self, latitude: float, longitude: float) -> LocationData:
        """Fetch air quality and weather concurrently. Both results are always returned."""
        air_quality, weather = await asyncio.gather(
            self.fetch_air_quality(latitude, longitude, LIVE_AIR_QUALITY_PARAMS),
            self.fetch_weather(latitude, longitude),
        )
        return LocationData(
            air_quality=air_quality,
            weather=weather,
            timestamp=datetime.now(timezone.utc),
            location=LocationQuery(latitude, longitude),
        )

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Open-Meteo cache cleared")

    def cache_stats(self) -> dict:
        return self.cache.stats()

    async def _fetch(self, key: str, url: str, label: str, validate, parse) -> FetchResult:
        cached = self.cache.get(key)
        if cached is not None:
            data, cached_url, metadata = cached
            logger.debug("Cache hit for %s", key)
            return FetchResult(data=data, request_url=cached_url, success=True, metadata=metadata)

        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.create_task(self._request(key, url, label, validate, parse))
            self._inflight[key] = pending
            pending.add_done_callback(lambda _f: self._inflight.pop(key, None))
        else:
            logger.debug("Joining in-flight request for %s", key)
        return await asyncio.shield(pending)

    async def _request(self, key: str, url: str, label: str, validate, parse) -> FetchResult:
        self.network_calls += 1
        logger.info("Fetching %s data from: %s", label, url[:100])
        try:
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    resp = await client.get(url, headers=self.headers)
            except httpx.HTTPError as e:
                raise NetworkError(str(e) or type(e).__name__) from e

            if not resp.is_success:
                raise HttpStatusError(resp.status_code, resp.reason_phrase)
            try:
                payload = resp.json()
            except ValueError as e:
                raise ResponseValidationError(f"Invalid JSON body: {e}") from e

            validate(payload)
            try:
                data = parse(payload)
            except (KeyError, TypeError) as e:
                raise ResponseValidationError(f"Malformed {label} response: {e}") from e
        except UpstreamError as e:
            logger.warning("%s fetch failed: %s", label.capitalize(), e)
            return FetchResult(data=None, request_url=url, success=False, error=str(e))

        metadata = {name: payload[name] for name in _METADATA_FIELDS if name in payload}
        self.cache.set(key, (data, url, metadata))
        logger.info("%s data fetched: %s", label.capitalize(), metadata)
        return FetchResult(data=data, request_url=url, success=True, metadata=metadata)
