"""Derives dashboard summaries from upstream results.

Everything here is a pure function of its inputs: AQI from PM2.5, the
"current conditions" summary from the hourly series, and the next
LiveDataState from one combined fetch.
"""

import logging
import math
from datetime import datetime, timezone

from errors import AllSourcesFailedError
from services.models import (
    AirQualitySample,
    AQIResult,
    DataSource,
    LiveDataState,
    LocationData,
    RefreshStatus,
    Summary,
    WeatherReport,
)

logger = logging.getLogger(__name__)

NO_DATA = AQIResult(index=0, category="No Data", color_hint="#999999", advice="Data unavailable")

# US EPA PM2.5 breakpoints: (conc_lo, conc_hi, index_lo, index_hi, category, color, advice).
# The last band is open-ended; readings above 500.4 extrapolate along it.
PM25_BREAKPOINTS = [
    (0.0, 12.0, 0, 50, "Good", "#00e400", "Air quality is satisfactory for most people"),
    (
        12.1, 35.4, 51, 100, "Moderate", "#ffff00",
        "Unusually sensitive people should consider reducing prolonged outdoor exertion",
    ),
    (
        35.5, 55.4, 101, 150, "Unhealthy for Sensitive Groups", "#ff7e00",
        "Sensitive groups should reduce outdoor exertion",
    ),
    (55.5, 150.4, 151, 200, "Unhealthy", "#ff0000", "Everyone should reduce outdoor exertion"),
    (150.5, 250.4, 201, 300, "Very Unhealthy", "#8f3f97", "Everyone should avoid outdoor activities"),
    (
        250.5, 500.4, 301, 500, "Hazardous", "#7e0023",
        "Emergency conditions - everyone should avoid outdoor activities",
    ),
]

# Summary field -> Open-Meteo hourly variable
SUMMARY_POLLUTANTS = {
    "co": "carbon_monoxide",
    "no2": "nitrogen_dioxide",
    "so2": "sulphur_dioxide",
    "o3": "ozone",
    "aod": "aerosol_optical_depth",
    "uv_index": "uv_index",
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_aqi(pm25: float | None) -> AQIResult:
    """US AQI for a PM2.5 concentration in µg/m³.

    Bands are chosen by their upper bound, so values between two bands
    (e.g. 12.05) land in the upper one and interpolate from just below its
    bottom index.
    """
    if pm25 is None or pm25 < 0:
        return NO_DATA

    band = next((b for b in PM25_BREAKPOINTS if pm25 <= b[1]), PM25_BREAKPOINTS[-1])
    c_lo, c_hi, i_lo, i_hi, category, color, advice = band
    index = _round_half_up((i_hi - i_lo) / (c_hi - c_lo) * (pm25 - c_lo) + i_lo)
    return AQIResult(index=index, category=category, color_hint=color, advice=advice)


def current_summary(
    samples: list[AirQualitySample] | None, location: dict | None = None
) -> Summary | None:
    """Summary of the most recent hourly sample, or None if there is none yet."""
    if not samples:
        return None

    latest = samples[-1]
    pollutants = {
        field: latest.pollutants.get(variable) for field, variable in SUMMARY_POLLUTANTS.items()
    }
    return Summary(
        timestamp=latest.time,
        pm25=latest.pm2_5,
        pm10=latest.pm10,
        aqi=calculate_aqi(latest.pm2_5),
        location=location,
        **pollutants,
    )


def current_weather(report: WeatherReport | None) -> dict | None:
    """Flatten the current weather snapshot into the fields the dashboard shows."""
    if report is None:
        return None
    fields = report.current.fields
    return {
        "time": report.current.time,
        "temperature": report.current.temperature,
        "humidity": report.current.humidity,
        "wind_speed": report.current.wind_speed,
        "wind_direction": fields.get("wind_direction_10m"),
        "pressure": report.current.pressure,
        "precipitation": fields.get("precipitation"),
        "cloud_cover": fields.get("cloud_cover"),
        "weather_code": fields.get("weather_code"),
        "is_day": fields.get("is_day"),
    }


def combine(location_data: LocationData, previous: LiveDataState | None = None) -> LiveDataState:
    """Next LiveDataState after one combined fetch.

    A single successful upstream is enough for a live state. When both fail
    the data is cleared rather than left stale.
    """
    air_quality = location_data.air_quality
    weather = location_data.weather
    request_urls = {"air_quality": air_quality.request_url, "weather": weather.request_url}

    if not air_quality.success and not weather.success:
        error = AllSourcesFailedError(air_quality.error, weather.error)
        logger.warning("Live data fetch failed: %s", error)
        return LiveDataState(
            loading=False,
            error=str(error),
            last_update=previous.last_update if previous else None,
            data_source=DataSource.ERROR,
            status=RefreshStatus.ERRORED,
            request_urls=request_urls,
        )

    summary = None
    if air_quality.success and air_quality.data is not None:
        meta = air_quality.metadata
        location = {
            "latitude": meta.get("latitude", location_data.location.latitude),
            "longitude": meta.get("longitude", location_data.location.longitude),
            "timezone": meta.get("timezone"),
        }
        summary = current_summary(air_quality.data, location)

    return LiveDataState(
        air_quality=air_quality.data if air_quality.success else None,
        weather=weather.data if weather.success else None,
        summary=summary,
        loading=False,
        error=None,
        last_update=datetime.now(timezone.utc),
        data_source=DataSource.LIVE,
        status=RefreshStatus.READY,
        request_urls=request_urls,
    )
